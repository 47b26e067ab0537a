import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse
import uvicorn

from app.core.config import settings
from app.api.v1.api import api_router
from app.core.activitypub import users_router, well_known_router
from app.core.activitypub.federation import Federation, create_http_client
from app.core.context import build_context
from app.core.database import check_db_version, create_engine

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="inks",
    description="Single-actor ActivityPub endpoint for a link log",
    version="1.0.0",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    default_response_class=ORJSONResponse,
)

# CORS settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Enable gzip compression for large responses
app.add_middleware(GZipMiddleware, minimum_size=500)

# Include API routes
app.include_router(api_router, prefix=settings.API_V1_STR)

# Include ActivityPub routes
# /.well-known 只提供發現端點
app.include_router(well_known_router, prefix="/.well-known", tags=["activitypub"])
# 其餘 ActivityPub 端點掛在根目錄
app.include_router(users_router, tags=["activitypub"])

@app.on_event("startup")
async def startup_event():
    """Initialize resources on application startup"""
    # 設定或資料庫版本錯誤時直接中止
    ctx = build_context(settings)
    engine = create_engine(settings.DATABASE_URL)
    await check_db_version(engine)

    federation = Federation(
        ctx,
        engine,
        create_http_client(ctx),
        admin_token=settings.ADMIN_TOKEN,
    )
    federation.start()
    app.state.federation = federation
    logger.info("serving %s as %s", ctx.server_url, ctx.account_name)

@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup resources on application shutdown"""
    federation = getattr(app.state, "federation", None)
    if federation is None:
        return
    await federation.close()
    await federation.client.aclose()
    await federation.engine.dispose()
    app.state.federation = None

if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
