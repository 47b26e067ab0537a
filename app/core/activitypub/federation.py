"""Federation wiring: one object holding every component of the endpoint."""

import asyncio
import logging
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.activitypub.boxes import BoxResolver
from app.core.activitypub.delivery import DeliveryEngine
from app.core.activitypub.follow import accept_follow
from app.core.activitypub.inbox import InboxLog, InboxProcessor
from app.core.activitypub.outbox import Publisher
from app.core.activitypub.signatures import ActivityPubKeyGetter, KeyGetter
from app.core.background import BackgroundRunner
from app.core.context import ServerContext
from app.core.database import create_sessionmaker
from app.core.repository import SQLContentRepository, SQLFollowerStore
from app.models.activities import Follow

logger = logging.getLogger(__name__)


def create_http_client(ctx: ServerContext, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """共享 httpx AsyncClient（HTTP/2、連線池、逾時）"""
    kwargs = {}
    if transport is not None:
        kwargs["transport"] = transport
    else:
        kwargs["http2"] = True
    return httpx.AsyncClient(
        timeout=httpx.Timeout(ctx.delivery_timeout),
        limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
        headers={"User-Agent": ctx.user_agent},
        **kwargs,
    )


class Federation:
    """Builds and owns the federation components for one server actor."""

    def __init__(
        self,
        ctx: ServerContext,
        engine: AsyncEngine,
        client: httpx.AsyncClient,
        key_getter: Optional[KeyGetter] = None,
        admin_token: Optional[str] = None,
    ):
        self.ctx = ctx
        self.admin_token = admin_token
        self.engine = engine
        self.client = client
        sessionmaker = create_sessionmaker(engine)
        self.content = SQLContentRepository(sessionmaker)
        # 重複送出檢查與儲存需一起執行
        self.save_lock = asyncio.Lock()
        self.followers = SQLFollowerStore(sessionmaker)
        self.runner = BackgroundRunner()
        self.boxes = BoxResolver(ctx, client)
        self.delivery = DeliveryEngine(ctx, client)
        self.publisher = Publisher(ctx, self.content, self.followers, self.boxes, self.delivery)
        self.inbox = InboxProcessor(
            ctx,
            key_getter or ActivityPubKeyGetter(client, timeout=ctx.actor_fetch_timeout),
            self.followers,
            InboxLog(ctx.inbox_log_path),
            self.runner,
            self.accept_follow,
        )

    async def accept_follow(self, follow: Follow) -> bool:
        return await accept_follow(self.ctx, follow, self.boxes, self.delivery, self.followers)

    def schedule_publish(self, item_id: int, update: bool = False) -> None:
        """Publish in the background, detached from the caller."""
        kind = "update" if update else "create"
        self.runner.spawn(self.publisher.publish(item_id, update), name=f"publish-{kind}:{item_id}")

    def start(self) -> None:
        self.delivery.start()

    async def join(self) -> None:
        """Wait for background work and deliveries to finish."""
        await self.runner.join()
        await self.delivery.join()

    async def close(self) -> None:
        await self.runner.shutdown()
        await self.delivery.stop()
        logger.info("federation stopped")
