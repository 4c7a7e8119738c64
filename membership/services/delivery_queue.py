"""Delivery queue: fire-and-forget SMS and email jobs, drained in the background."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from membership.config import settings

logger = logging.getLogger(__name__)


@dataclass
class DeliveryJob:
    """One out-of-band message. send() is awaited exactly once, never retried."""

    label: str
    send: Callable[[], Awaitable[None]]


class DeliveryQueue:
    """
    Background sender for out-of-band messages.

    Enqueue is O(1) and never blocks the caller. A background task drains
    the queue and awaits each job. A failing job is logged and dropped; it
    never reaches the request that enqueued it, so OTP and referral state
    are never rolled back because a message could not be sent.
    """

    def __init__(self, maxsize: int | None = None) -> None:
        """Initialize with a bounded in-memory queue."""
        self._maxsize = maxsize or settings.DELIVERY_QUEUE_SIZE
        self._queue: asyncio.Queue[DeliveryJob] = asyncio.Queue(maxsize=self._maxsize)
        self._running = False
        self.sent = 0
        self.failed = 0

    def enqueue(self, label: str, send: Callable[[], Awaitable[None]]) -> None:
        """
        Add a job to the queue (non-blocking).

        If the queue is full, the oldest job is dropped and a warning is logged.

        Args:
            label: Short description for log lines (never the message body)
            send: Zero-argument coroutine function performing the delivery
        """
        job = DeliveryJob(label=label, send=send)
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            # Drop oldest to make room for newest
            try:
                dropped = self._queue.get_nowait()
                self._queue.task_done()
                logger.warning("Delivery queue full (%d), dropped %s", self._maxsize, dropped.label)
            except asyncio.QueueEmpty:
                pass
            try:
                self._queue.put_nowait(job)
            except asyncio.QueueFull:
                logger.error("Delivery queue failed to enqueue %s", label)

    async def _deliver(self, job: DeliveryJob) -> None:
        try:
            await job.send()
            self.sent += 1
        except Exception:
            self.failed += 1
            logger.exception("Delivery failed: %s", job.label)

    async def run(self) -> None:
        """
        Background loop: deliver queued jobs one by one.

        Runs until cancelled or stopped by drain().
        """
        self._running = True
        logger.info("Delivery queue started")

        while self._running:
            try:
                job = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except TimeoutError:
                continue  # No new jobs, check whether we were stopped
            try:
                await self._deliver(job)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Deliver everything still queued and stop the loop (for clean shutdown and tests)."""
        self._running = False
        while True:
            try:
                job = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            try:
                await self._deliver(job)
            finally:
                self._queue.task_done()

    def pending(self) -> int:
        return self._queue.qsize()
