from fastapi import APIRouter, Depends, HTTPException
from typing import Dict, Any
import re

from app.core.activitypub.deps import get_federation
from app.core.context import ServerContext

from fastapi.responses import ORJSONResponse
webfinger_router = APIRouter()

def handle_webfinger(resource: str, ctx: ServerContext) -> Dict[str, Any]:
    """處理 WebFinger 請求"""
    # 解析資源 URI
    # 格式: acct:username@domain，或直接給 Actor IRI
    if resource == ctx.server_url:
        resource = f"acct:{ctx.account_name}@{ctx.server_name}"
    match = re.match(r'^acct:([^@]+)@(.+)$', resource)
    if not match:
        raise HTTPException(status_code=400, detail="Invalid resource format")

    username, domain = match.groups()

    # 檢查域名與帳號是否匹配
    if domain != ctx.server_name or username != ctx.account_name:
        raise HTTPException(status_code=404, detail="Actor not found")

    return {
        "subject": f"acct:{ctx.account_name}@{ctx.server_name}",
        "aliases": [ctx.server_url],
        "links": [
            {
                "rel": "self",
                "type": "application/activity+json",
                "href": ctx.server_url
            }
        ]
    }

@webfinger_router.get("/webfinger")
async def webfinger(resource: str = "", federation=Depends(get_federation)):
    data = handle_webfinger(resource, federation.ctx)
    return ORJSONResponse(data, media_type="application/jrd+json")
