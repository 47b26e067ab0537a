from typing import TYPE_CHECKING

from fastapi import HTTPException, Request

if TYPE_CHECKING:
    from app.core.activitypub.federation import Federation

def get_federation(request: Request) -> "Federation":
    """FastAPI dependency: the Federation built at startup"""
    federation = getattr(request.app.state, "federation", None)
    if federation is None:
        raise HTTPException(status_code=503, detail="Federation not ready")
    return federation
