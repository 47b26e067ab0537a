from typing import Any, Dict

import orjson
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse, Response

from app.core.activitypub.deps import get_federation
from app.core.activitypub.outbox import build_note
from app.core.activitypub.utils import AP_BEST_TYPE, AP_CONTEXT
from app.core.context import ServerContext

actor_router = APIRouter()

def create_actor_object(ctx: ServerContext) -> Dict[str, Any]:
    """建立 Actor 物件"""
    return {
        "@context": AP_CONTEXT,
        "id": ctx.server_url,
        "type": "Application",
        "inbox": ctx.inbox_url,
        "outbox": ctx.outbox_url,
        "followers": ctx.followers_url,
        "following": ctx.following_url,
        "name": ctx.server_name,
        "preferredUsername": ctx.account_name,
        "summary": ctx.server_name,
        "url": ctx.server_url,
        "icon": {
            "type": "Image",
            "mediaType": "image/png",
            "url": f"{ctx.server_url}/icon.png"
        },
        "publicKey": {
            "id": ctx.key_id,
            "owner": ctx.server_url,
            "publicKeyPem": ctx.public_key_pem
        }
    }

def ap_response(data: Dict[str, Any]) -> Response:
    return Response(
        content=orjson.dumps(data),
        media_type=AP_BEST_TYPE,
        headers={"Cache-Control": "max-age=300"},
    )

@actor_router.get("/")
async def get_actor(federation=Depends(get_federation)):
    """Get Actor information"""
    return ap_response(create_actor_object(federation.ctx))

@actor_router.get("/l/{link_id}")
async def get_note(link_id: int, federation=Depends(get_federation)):
    """單一連結的 Note"""
    item = await federation.content.get_item(link_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Link not found")
    note = build_note(federation.ctx, item)
    note.jsonld_context = AP_CONTEXT
    return ap_response(note.to_wire())

# 追蹤者與追蹤中列表不公開
@actor_router.get("/followers")
async def get_followers():
    return PlainTextResponse("no", status_code=403)

@actor_router.get("/following")
async def get_following():
    return PlainTextResponse("no", status_code=403)
