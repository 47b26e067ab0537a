"""
Signed activity delivery with a bounded retry budget.

Deliveries are tasks on a bounded queue consumed by a fixed pool of
workers. A failed task is rescheduled with ``attempt + 1`` after the
retry interval, up to ``max_retries`` retries. Waiting retries are
tracked so they can be listed and are cancelled on shutdown.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional

import httpx

from app.core.activitypub.signatures import sign_request
from app.core.activitypub.utils import AP_BEST_TYPE, FederationError, utcnow
from app.core.context import ServerContext

logger = logging.getLogger(__name__)

# attempt value for a single, never rescheduled delivery (Accept)
NO_RETRY = -1


class DeliveryError(FederationError):
    """POST to a remote inbox failed."""
    pass


@dataclass
class DeliveryTask:
    destination: str
    payload: bytes
    attempt: int = 0
    next_eligible: datetime = field(default_factory=utcnow)
    last_error: Optional[str] = None


class DeliveryEngine:
    """Delivery worker pool"""

    def __init__(self, ctx: ServerContext, client: httpx.AsyncClient):
        self.ctx = ctx
        self.client = client
        self.queue: "asyncio.Queue[DeliveryTask]" = asyncio.Queue(maxsize=ctx.delivery_queue_size)
        self._workers: List[asyncio.Task] = []
        self._waiting: Dict[asyncio.Task, DeliveryTask] = {}

    def start(self) -> None:
        if self._workers:
            return
        for i in range(self.ctx.delivery_workers):
            self._workers.append(asyncio.create_task(self._worker(), name=f"delivery-{i}"))
        logger.info("started %d delivery workers", len(self._workers))

    async def stop(self) -> None:
        """Cancel workers and every waiting retry."""
        dropped = len(self._waiting)
        tasks = list(self._waiting) + self._workers
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if dropped:
            logger.info("dropped %d waiting retries at shutdown", dropped)
        self._waiting.clear()
        self._workers = []

    def pending(self) -> List[DeliveryTask]:
        """Retries waiting for their next eligible time."""
        return sorted(self._waiting.values(), key=lambda t: t.next_eligible)

    async def join(self) -> None:
        """Wait until no delivery is queued, running or waiting to retry."""
        while True:
            await self.queue.join()
            if not self._waiting:
                return
            await asyncio.gather(*list(self._waiting), return_exceptions=True)

    async def submit(self, destination: str, payload: bytes) -> None:
        """Queue a delivery with the full retry budget."""
        await self.queue.put(DeliveryTask(destination=destination, payload=payload))

    async def deliver_once(self, destination: str, payload: bytes) -> bool:
        """Exactly one attempt, never rescheduled."""
        return await self._attempt(DeliveryTask(destination=destination, payload=payload, attempt=NO_RETRY))

    async def post(self, destination: str, payload: bytes) -> None:
        """Signed POST of ``payload``; raises DeliveryError unless 2xx."""
        try:
            request = self.client.build_request(
                "POST",
                destination,
                content=payload,
                headers={"Content-Type": AP_BEST_TYPE},
                timeout=self.ctx.delivery_timeout,
            )
            sign_request(self.ctx.key_id, self.ctx.private_key, request, payload)
            response = await self.client.send(request)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise DeliveryError(f"{type(e).__name__}: {e}") from e
        if not 200 <= response.status_code < 300:
            raise DeliveryError(f"http post status: {response.status_code}")
        logger.info("successful post: %s %d", destination, response.status_code)

    async def _attempt(self, task: DeliveryTask) -> bool:
        try:
            await self.post(task.destination, task.payload)
            return True
        except DeliveryError as e:
            logger.warning("error posting to %s: %s", task.destination, e)
            task.last_error = str(e)
            self._reschedule(task)
            return False

    def _reschedule(self, task: DeliveryTask) -> None:
        if task.attempt == NO_RETRY:
            return
        if task.attempt >= self.ctx.max_retries:
            logger.warning("giving up on %s after %d attempts", task.destination, task.attempt + 1)
            return
        retry = replace(task, attempt=task.attempt + 1, next_eligible=utcnow() + self.ctx.retry_interval)
        waiter = asyncio.create_task(self._requeue_when_eligible(retry))
        self._waiting[waiter] = retry
        waiter.add_done_callback(lambda t: self._waiting.pop(t, None))

    async def _requeue_when_eligible(self, task: DeliveryTask) -> None:
        delay = (task.next_eligible - utcnow()).total_seconds()
        if delay > 0:
            await asyncio.sleep(delay)
        await self.queue.put(task)

    async def _worker(self) -> None:
        while True:
            task = await self.queue.get()
            try:
                await self._attempt(task)
            except Exception:
                logger.exception("unexpected error delivering to %s", task.destination)
            finally:
                self.queue.task_done()
