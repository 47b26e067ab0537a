import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

import orjson
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, Response
from pydantic import ValidationError

from app.core.activitypub.signatures import KeyGetter, SignatureError, verify_request
from app.core.activitypub.deps import get_federation
from app.core.background import BackgroundRunner
from app.core.context import ServerContext
from app.core.repository import FollowerStore
from app.models.activities import INBOUND_TYPES, Create, Follow, Undo, parse_inbound

logger = logging.getLogger(__name__)

inbox_router = APIRouter()


class MalformedActivity(ValueError):
    """Body is not a JSON object."""
    pass


class InboxLog:
    """Append-only newline-delimited log of received Create activities."""

    def __init__(self, path: str):
        self.path = path
        self._lock = asyncio.Lock()

    def _append(self, line: bytes) -> None:
        with open(self.path, "ab") as f:
            f.write(line + b"\n")

    async def append(self, activity: Dict[str, Any]) -> None:
        line = orjson.dumps(activity)
        async with self._lock:
            await asyncio.to_thread(self._append, line)


def parse_body(body: bytes) -> Dict[str, Any]:
    try:
        document = orjson.loads(body)
    except orjson.JSONDecodeError as e:
        raise MalformedActivity(str(e)) from e
    if not isinstance(document, dict):
        raise MalformedActivity("activity is not an object")
    return document


class InboxProcessor:
    """
    Validate and dispatch activities posted to the inbox.

    Only Create, Follow and Undo are understood; everything else is
    dropped without a trace. Authentication failures are logged and
    dropped without telling the sender.
    """

    def __init__(
        self,
        ctx: ServerContext,
        key_getter: KeyGetter,
        followers: FollowerStore,
        inbox_log: InboxLog,
        runner: BackgroundRunner,
        on_follow,
    ):
        self.ctx = ctx
        self.key_getter = key_getter
        self.followers = followers
        self.inbox_log = inbox_log
        self.runner = runner
        # async callable(Follow)，負責 Follow handshake
        self.on_follow = on_follow

    async def process(self, method: str, target: str, headers: Mapping[str, str], body: bytes) -> Optional[str]:
        """
        Handle one inbox POST.

        Raises MalformedActivity when the body is not a JSON object.
        Returns the dispatched activity type, or None when dropped.
        """
        document = parse_body(body)
        kind = document.get("type")
        if kind not in INBOUND_TYPES:
            return None

        try:
            key_id = await verify_request(method, target, headers, body, self.key_getter)
        except SignatureError as e:
            logger.warning("dropping %s: bad signature: %s", kind, e)
            return None

        try:
            activity = parse_inbound(document)
        except ValidationError as e:
            logger.warning("dropping malformed %s from %s: %s", kind, key_id, e.errors()[:1])
            return None

        if not activity.actor or not key_id.startswith(activity.actor):
            logger.warning("suspected forgery: %s vs %s", key_id, activity.actor)
            return None

        if isinstance(activity, Create):
            await self.inbox_log.append(document)
        elif isinstance(activity, Follow):
            if activity.target == self.ctx.server_url:
                self.runner.spawn(self.on_follow(activity), name=f"accept:{activity.actor}")
            else:
                logger.info("ignoring follow of %r from %s", activity.object, activity.actor)
        elif isinstance(activity, Undo):
            if activity.undoes_follow:
                await self.followers.remove(activity.actor)
                logger.info("unfollowed by %s", activity.actor)
        return activity.type


@inbox_router.post("/inbox")
async def receive_activity(request: Request, federation=Depends(get_federation)):
    """接收 ActivityPub 活動"""
    body = await request.body()
    target = request.url.path
    if request.url.query:
        target += "?" + request.url.query
    try:
        await federation.inbox.process(request.method, target, request.headers, body)
    except MalformedActivity as e:
        logger.info("bad payload: %s", e)
        return PlainTextResponse("bad payload", status_code=406)
    return Response(status_code=200)
