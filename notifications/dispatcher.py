"""
notifications/dispatcher.py -- Fire-and-forget notification queue with an
asyncio background worker.

Producer side (enqueue):
  Called by suppliers/lifecycle.py after a transition has committed, from
  FastAPI's thread pool or from the event loop itself. The job is handed to
  the loop with call_soon_threadsafe, so the producer never waits on the
  worker and never raises: if the worker is not running the job is logged and
  dropped, and the transition that triggered it stands.

Consumer side (the worker task):
  Started by the API lifespan, one job at a time. The job kind selects a
  template (notifications/templates.py); the blocking mail transport runs in
  a worker thread via asyncio.to_thread. A failed delivery is retried up to
  max_attempts times with exponential backoff, then logged as dropped. The
  ERROR line is the dead-letter record -- there is no persistent queue, so
  jobs still queued at shutdown are lost.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from notifications.templates import render

logger = logging.getLogger("suppliergate.notify")


class MailTransport(Protocol):
    def send(self, to: str, subject: str, html: str) -> None: ...


@dataclass(frozen=True)
class Job:
    kind: str
    payload: dict = field(default_factory=dict)


class NotificationDispatcher:
    """Queue + single consumer task.

    Usage (inside a running event loop):
        dispatcher = NotificationDispatcher(mailer)
        dispatcher.start()
        dispatcher.enqueue("supplier_approved", {"user_id": 1, "email": "a@example.com"})
        await dispatcher.stop()
    """

    def __init__(self, transport: MailTransport, max_attempts: int = 3, backoff_seconds: float = 2.0) -> None:
        self._transport = transport
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff_seconds
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Create the queue and spawn the worker on the running event loop."""
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self._run(), name="notification-worker")
        logger.info("Notification worker started")

    async def stop(self) -> None:
        """Cancel the worker. Jobs still queued are discarded."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        dropped = self._queue.qsize() if self._queue is not None else 0
        if dropped:
            logger.warning("Notification worker stopped with %d undelivered job(s)", dropped)
        self._task = None
        logger.info("Notification worker stopped")

    async def join(self) -> None:
        """Wait until every job enqueued so far has been delivered or dropped."""
        # Let put_nowait callbacks scheduled by enqueue() run first
        await asyncio.sleep(0)
        if self._queue is not None:
            await self._queue.join()

    # ------------------------------------------------------------------
    # Producer
    # ------------------------------------------------------------------

    def enqueue(self, kind: str, payload: dict) -> bool:
        """Queue a job without blocking. Returns False (after logging) if it could not be queued."""
        user_id = payload.get("user_id")
        loop = self._loop
        if loop is None or self._queue is None or not self.running:
            logger.error("Notification worker not running; dropping %s job for user %s", kind, user_id)
            return False
        try:
            loop.call_soon_threadsafe(self._queue.put_nowait, Job(kind=kind, payload=dict(payload)))
        except RuntimeError as e:
            # Event loop closed between the check above and the call
            logger.error("Could not queue %s job for user %s: %s", kind, user_id, e)
            return False
        logger.info("Notification job %s queued for user %s", kind, user_id)
        return True

    # ------------------------------------------------------------------
    # Consumer
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._deliver(job)
            finally:
                self._queue.task_done()

    async def _deliver(self, job: Job) -> None:
        user_id = job.payload.get("user_id")
        try:
            message = render(job.kind, job.payload)
        except KeyError:
            logger.error("Dropping %s job for user %s: unknown kind or incomplete payload", job.kind, user_id)
            return

        for attempt in range(1, self._max_attempts + 1):
            try:
                await asyncio.to_thread(self._transport.send, message.to, message.subject, message.html)
            except Exception as e:
                if attempt >= self._max_attempts:
                    logger.error(
                        "Dropping %s notification for user %s after %d attempt(s): %s",
                        job.kind,
                        user_id,
                        attempt,
                        e,
                    )
                    return
                delay = self._backoff * (2 ** (attempt - 1))
                logger.warning(
                    "Delivery of %s notification for user %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    job.kind,
                    user_id,
                    attempt,
                    self._max_attempts,
                    delay,
                    e,
                )
                await asyncio.sleep(delay)
            else:
                logger.info("Sent %s notification to user %s", job.kind, user_id)
                return
