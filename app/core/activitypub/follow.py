import logging

import orjson

from app.core.activitypub.boxes import BoxResolutionError, BoxResolver
from app.core.activitypub.delivery import DeliveryEngine
from app.core.activitypub.utils import AP_CONTEXT, format_timestamp, random_xid, utcnow
from app.core.context import ServerContext
from app.core.repository import FollowerStore
from app.models.activities import Accept, Follow

logger = logging.getLogger(__name__)

def build_accept(ctx: ServerContext, follow: Follow) -> Accept:
    """建立回應 Follow 的 Accept 活動"""
    return Accept(
        jsonld_context=AP_CONTEXT,
        id=f"{ctx.server_url}/accept/{random_xid()}",
        actor=ctx.server_url,
        to=follow.actor,
        published=format_timestamp(utcnow()),
        object=follow,
    )

async def accept_follow(
    ctx: ServerContext,
    follow: Follow,
    boxes: BoxResolver,
    delivery: DeliveryEngine,
    followers: FollowerStore,
) -> bool:
    """
    Answer a Follow with a signed Accept.

    The follower is recorded only when the single Accept delivery
    succeeds. Returns whether the follower was recorded.
    """
    actor = follow.actor
    payload = orjson.dumps(build_accept(ctx, follow).to_wire())

    try:
        box = await boxes.resolve(actor)
    except BoxResolutionError as e:
        logger.info("not accepting follow from %s: %s", actor, e)
        return False

    if not await delivery.deliver_once(box.inbox, payload):
        logger.info("accept to %s not delivered, follower not saved", actor)
        return False

    await followers.add(actor)
    logger.info("new follower: %s", actor)
    return True
