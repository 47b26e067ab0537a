import asyncio
import html
import logging
from typing import Set, Union

import orjson
from fastapi import APIRouter, Depends
from fastapi.responses import Response

from app.core.activitypub.boxes import BoxResolutionError, BoxResolver
from app.core.activitypub.delivery import DeliveryEngine
from app.core.activitypub.deps import get_federation
from app.core.activitypub.utils import AP_BEST_TYPE, AP_CONTEXT, AP_PUBLIC, format_timestamp, utcnow
from app.core.context import ServerContext
from app.core.repository import ContentRepository, FollowerStore
from app.models.activities import Create, Hashtag, Note, OrderedCollection, Update
from app.models.content import ContentItem

logger = logging.getLogger(__name__)

outbox_router = APIRouter()

def note_content(ctx: ServerContext, item: ContentItem) -> str:
    """Note 的 HTML 內容：連結、摘要、標籤"""
    url = html.escape(item.url)
    parts = [f'<p><a href="{url}">{url}</a><p>', item.summary, "<p>"]
    for tag in item.tags:
        parts.append(f'<a href="{ctx.tag_url(tag)}">#{tag}</a> ')
    return "".join(parts)

def build_note(ctx: ServerContext, item: ContentItem) -> Note:
    note_id = ctx.link_url(item.id)
    conversation = f"tag:{ctx.tag_name}:inks-{item.id}"
    return Note(
        id=note_id,
        attributedTo=ctx.server_url,
        content=note_content(ctx, item),
        context=conversation,
        conversation=conversation,
        published=format_timestamp(item.posted),
        summary=item.title,
        to=AP_PUBLIC,
        cc=ctx.followers_url,
        url=note_id,
        tag=[Hashtag(name=f"#{tag}", url=ctx.tag_url(tag)) for tag in item.tags],
    )

def build_create(ctx: ServerContext, item: ContentItem, update: bool = False) -> Union[Create, Update]:
    """Create（或編輯時的 Update）包住 Note"""
    kind = Update if update else Create
    return kind(
        id=f"{ctx.link_url(item.id)}/create",
        actor=ctx.server_url,
        object=build_note(ctx, item),
        published=format_timestamp(item.posted),
        to=AP_PUBLIC,
        cc=ctx.followers_url,
    )

class Publisher:
    """Fan a content item out to every follower's inbox."""

    def __init__(
        self,
        ctx: ServerContext,
        content: ContentRepository,
        followers: FollowerStore,
        boxes: BoxResolver,
        delivery: DeliveryEngine,
    ):
        self.ctx = ctx
        self.content = content
        self.followers = followers
        self.boxes = boxes
        self.delivery = delivery

    async def destinations(self) -> Set[str]:
        """每個追蹤者的投遞位址（優先 sharedInbox），去除重複"""
        addrs: Set[str] = set()
        for actor in await self.followers.list():
            try:
                box = await self.boxes.resolve(actor)
            except BoxResolutionError as e:
                logger.info("skipping follower %s: %s", actor, e)
                continue
            addrs.add(box.destination)
        return addrs

    async def publish(self, item_id: int, update: bool = False) -> int:
        """
        Publish a created or edited item; returns the number of destinations.

        A creation waits the settle delay first so quick fixes go out in
        the first delivery. An edit of an item younger than the settle
        delay is skipped, the pending create will carry it.
        """
        settle = self.ctx.settle_delay
        if not update and settle.total_seconds() > 0:
            await asyncio.sleep(settle.total_seconds())

        item = await self.content.get_item(item_id)
        if item is None:
            return 0
        if update and item.posted > utcnow() - settle:
            logger.info("skipping update for new link %d", item_id)
            return 0

        addrs = await self.destinations()
        activity = build_create(self.ctx, item, update)
        activity.jsonld_context = AP_CONTEXT
        payload = orjson.dumps(activity.to_wire())
        for addr in addrs:
            await self.delivery.submit(addr, payload)
        logger.info("queued %s of link %d to %d inboxes", activity.type, item_id, len(addrs))
        return len(addrs)

@outbox_router.get("/outbox")
async def get_outbox(federation=Depends(get_federation)):
    """Outbox：最近的連結，以 Create 活動呈現"""
    ctx = federation.ctx
    items = await federation.content.list_items(limit=20)
    collection = OrderedCollection(
        jsonld_context=AP_CONTEXT,
        id=ctx.outbox_url,
        totalItems=len(items),
        orderedItems=[build_create(ctx, item).to_wire() for item in items],
    )
    return Response(
        content=orjson.dumps(collection.to_wire()),
        media_type=AP_BEST_TYPE,
        headers={"Cache-Control": "max-age=300"},
    )
