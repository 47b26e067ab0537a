from fastapi import APIRouter, Depends
from fastapi.responses import ORJSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.core.activitypub.deps import get_federation

router = APIRouter()

@router.get("/")
async def health_check(federation=Depends(get_federation)):
    """Health check endpoint"""
    db_status = "healthy"
    followers = None
    try:
        followers = await federation.followers.count()
    except SQLAlchemyError as e:
        db_status = f"unhealthy: {str(e)}"

    return ORJSONResponse({
        "status": "ok",
        "database": db_status,
        "followers": followers,
        "queued_deliveries": federation.delivery.queue.qsize(),
        "waiting_retries": len(federation.delivery.pending()),
        "background_tasks": len(federation.runner),
        "service": federation.ctx.server_name
    }, headers={"Cache-Control": "public, max-age=5"})
