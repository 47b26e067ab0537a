from fastapi import APIRouter
from app.core.activitypub.actor import actor_router
from app.core.activitypub.inbox import inbox_router
from app.core.activitypub.outbox import outbox_router
from app.core.activitypub.webfinger import webfinger_router

# routers
users_router = APIRouter()
well_known_router = APIRouter()

# Actor、inbox、outbox 皆在站台根目錄
users_router.include_router(actor_router)
users_router.include_router(inbox_router)
users_router.include_router(outbox_router)

# 僅在 .well-known 底下提供 WebFinger
well_known_router.include_router(webfinger_router)
