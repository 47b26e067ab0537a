import hmac
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from app.core.activitypub.deps import get_federation

router = APIRouter()

class LinkSave(BaseModel):
    url: str
    title: str
    summary: str = ""
    tags: Union[List[str], str] = []
    source: str = ""

class LinkSaved(BaseModel):
    id: int
    published: str

def split_tags(tags: Union[List[str], str]) -> List[str]:
    if isinstance(tags, str):
        tags = tags.split(" ")
    return [t.strip() for t in tags if t.strip()]

def require_admin(federation=Depends(get_federation), authorization: Optional[str] = Header(default=None)):
    """Bearer token 驗證（取代原本的登入機制）"""
    token = federation.admin_token
    if not token:
        raise HTTPException(status_code=403, detail="Admin API disabled")
    scheme, _, value = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(value.strip().encode(), token.encode()):
        raise HTTPException(status_code=401, detail="Invalid token")
    return federation

def _clean(link: LinkSave) -> LinkSave:
    url = link.url.strip()
    title = link.title.strip()
    if not url or not title:
        raise HTTPException(status_code=400, detail="need a little more info please")
    return LinkSave(
        url=url,
        title=title,
        summary=link.summary.strip(),
        tags=split_tags(link.tags),
        source=link.source.strip(),
    )

@router.post("/", response_model=LinkSaved, status_code=201)
async def create_link(link: LinkSave, federation=Depends(require_admin)):
    """新增連結並排程發佈 Create"""
    link = _clean(link)
    async with federation.save_lock:
        if link.url == await federation.content.last_url():
            raise HTTPException(status_code=400, detail="check again before posting again")
        link_id = await federation.content.save_item(
            url=link.url, title=link.title, summary=link.summary, tags=link.tags, source=link.source
        )
    federation.schedule_publish(link_id, update=False)
    return LinkSaved(id=link_id, published="create")

@router.put("/{link_id}", response_model=LinkSaved)
async def update_link(link_id: int, link: LinkSave, federation=Depends(require_admin)):
    """編輯連結並排程發佈 Update"""
    link = _clean(link)
    async with federation.save_lock:
        saved = await federation.content.save_item(
            url=link.url, title=link.title, summary=link.summary, tags=link.tags, source=link.source, item_id=link_id
        )
    if saved is None:
        raise HTTPException(status_code=404, detail="Link not found")
    federation.schedule_publish(link_id, update=True)
    return LinkSaved(id=link_id, published="update")
