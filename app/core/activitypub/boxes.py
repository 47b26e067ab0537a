"""Remote actor inbox discovery with a process-wide cache."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

import httpx
import orjson

from app.core.activitypub.signatures import sign_request
from app.core.activitypub.utils import AP_TYPES, FederationError, utcnow
from app.core.context import ServerContext

logger = logging.getLogger(__name__)


class BoxResolutionError(FederationError):
    """The remote actor document could not be fetched or understood."""
    pass


@dataclass(frozen=True)
class RemoteBox:
    inbox: str
    shared_inbox: Optional[str] = None
    fetched_at: Optional[datetime] = None

    @property
    def destination(self) -> str:
        """Preferred delivery address"""
        return self.shared_inbox or self.inbox


class BoxResolver:
    """
    Resolve and memoize remote actors' inbox / sharedInbox URLs.

    The lock only guards the cache dict, never the network fetch, so two
    concurrent misses for one actor may both fetch; the last write wins.
    Entries live forever unless ``box_cache_ttl`` is configured or they
    are dropped with ``invalidate``.
    """

    def __init__(self, ctx: ServerContext, client: httpx.AsyncClient):
        self.ctx = ctx
        self.client = client
        self._cache: Dict[str, RemoteBox] = {}
        self._lock = asyncio.Lock()

    def _fresh(self, box: RemoteBox) -> bool:
        ttl = self.ctx.box_cache_ttl
        if ttl is None or box.fetched_at is None:
            return True
        return utcnow() - box.fetched_at < ttl

    async def cached(self, actor: str) -> Optional[RemoteBox]:
        async with self._lock:
            box = self._cache.get(actor)
        if box is not None and self._fresh(box):
            return box
        return None

    async def invalidate(self, actor: str) -> None:
        async with self._lock:
            self._cache.pop(actor, None)

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()

    async def resolve(self, actor: str) -> RemoteBox:
        box = await self.cached(actor)
        if box is not None:
            return box

        document = await self._fetch(actor)
        inbox = document.get("inbox")
        if not isinstance(inbox, str) or not inbox:
            raise BoxResolutionError(f"no inbox for {actor}")
        endpoints = document.get("endpoints")
        shared = endpoints.get("sharedInbox") if isinstance(endpoints, dict) else None
        box = RemoteBox(
            inbox=inbox,
            shared_inbox=shared if isinstance(shared, str) and shared else None,
            fetched_at=utcnow(),
        )

        async with self._lock:
            self._cache[actor] = box
        return box

    async def _fetch(self, actor: str) -> dict:
        try:
            request = self.client.build_request(
                "GET",
                actor,
                headers={"Accept": AP_TYPES[0]},
                timeout=self.ctx.actor_fetch_timeout,
            )
            if self.ctx.signed_fetch:
                sign_request(self.ctx.key_id, self.ctx.private_key, request, b"")
            response = await self.client.send(request, follow_redirects=True)
            response.raise_for_status()
            document = orjson.loads(response.content)
        except (httpx.HTTPError, httpx.InvalidURL, orjson.JSONDecodeError) as e:
            logger.warning("error fetching actor %s: %s", actor, e)
            raise BoxResolutionError(f"error fetching {actor}: {e}") from e
        if not isinstance(document, dict):
            raise BoxResolutionError(f"actor document for {actor} is not an object")
        return document
