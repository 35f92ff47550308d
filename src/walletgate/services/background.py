"""Background work that must never affect a request's outcome.

:class:`BackgroundTaskRunner` owns fire-and-forget coroutines (identity
reconciliation after sign-in) and reports their failures to a logger.
:class:`NonceSweeper` periodically purges expired challenges, download nonces
and download tokens.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from contextlib import AbstractContextManager
from typing import Any

from sqlalchemy.orm import Session

from walletgate.core.settings import settings
from walletgate.db.time import utcnow
from walletgate.services.nonce_store import ChallengeStore, Clock, DownloadNonceStore

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


class BackgroundTaskRunner:
    """Run best-effort coroutines detached from the request that spawned them."""

    def __init__(self, task_logger: logging.Logger | None = None) -> None:
        self._logger = task_logger or logger
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        """Schedule ``coro`` on the running loop and keep a reference to it."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.warning(
                "Background task %s failed (non-blocking): %s",
                task.get_name(),
                exc,
                exc_info=exc,
            )

    async def drain(self) -> None:
        """Wait for every outstanding task; failures are already logged."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        """Cancel outstanding tasks, e.g. on shutdown."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


class NonceSweeper:
    """Periodically removes expired challenges and download credentials."""

    def __init__(
        self,
        challenge_store: ChallengeStore,
        session_factory: SessionFactory | None = None,
        *,
        interval_seconds: float | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.challenge_store = challenge_store
        self._session_factory = session_factory
        self._clock = clock
        self.interval_seconds = (
            settings.nonce_sweep_interval_seconds if interval_seconds is None else interval_seconds
        )
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background sweep loop."""
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run(), name="nonce-sweeper")

    async def stop(self) -> None:
        """Stop the background sweep loop."""
        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None

    def sweep_once(self) -> int:
        """Purge everything that has expired; return how many records were removed."""
        removed = self.challenge_store.purge_expired()
        if self._session_factory is not None:
            with self._session_factory() as db:
                removed += DownloadNonceStore(db, clock=self._clock).purge_expired()
        return removed

    async def _run(self) -> None:
        interval = max(0.01, float(self.interval_seconds))

        while not self._stopping.is_set():
            try:
                removed = self.sweep_once()
                if removed:
                    logger.info("Nonce sweep removed %d expired records", removed)
            except Exception as e:
                logger.error("Nonce sweep failed: %s", e, exc_info=True)

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except TimeoutError:
                continue
