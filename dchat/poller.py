"""Status polling loop.

Repeatedly reads every accessor through ``ChatNode.status`` and hands the
result to a callback, the way a chat UI refreshes its display. The ledger
has no push mechanism; polling is the only way to observe changes.
"""
from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from .config import get_config
from .logging_config import get_logger

if TYPE_CHECKING:
    from .node import ChatNode

logger = get_logger("dchat.poller")


def _now_ms() -> int:
    """Current time in milliseconds."""
    return int(time.time() * 1000)


class StatusPoller:
    """Background loop refreshing ledger status for one account.

    Usage:
        poller = StatusPoller(node, on_update=render)
        await poller.start()
        # ... poller runs in background ...
        await poller.stop()
    """

    def __init__(
        self,
        node: "ChatNode",
        on_update: Optional[Callable[[Dict[str, Any]], None]] = None,
        *,
        account: Optional[str] = None,
    ):
        self.node = node
        self.on_update = on_update
        self.account = account
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._failures = 0
        self._polls = 0
        self.last_status: Optional[Dict[str, Any]] = None
        self.last_error: Optional[str] = None
        self.last_poll_ms: Optional[int] = None

    @property
    def interval(self) -> float:
        """Get the polling interval in seconds."""
        return get_config().poll.interval_s

    @property
    def max_failures(self) -> int:
        """Get consecutive failures tolerated before stopping."""
        return get_config().poll.max_failures

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the polling loop."""
        if self._running:
            logger.warning("Status poller already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Status poller started")

    async def stop(self) -> None:
        """Stop the polling loop gracefully."""
        if not self._running and self._task is None:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Status poller stopped")

    async def _run_loop(self) -> None:
        while self._running:
            if not await self._poll_in_executor():
                if self._failures >= self.max_failures:
                    logger.error(f"Status poller stopping after {self._failures} consecutive failures")
                    self._running = False
                    break

            try:
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break

    async def _poll_in_executor(self) -> bool:
        """Like ``poll_once`` but reads status off the event loop (disk I/O)."""
        self.last_poll_ms = _now_ms()
        loop = asyncio.get_running_loop()
        try:
            status = await loop.run_in_executor(None, self.node.status, self.account)
            if self.on_update is not None:
                self.on_update(status)
        except Exception as e:
            return self._failed(e)
        return self._succeeded(status)

    def poll_once(self) -> bool:
        """Read status once; returns False if reading or the callback failed."""
        self.last_poll_ms = _now_ms()
        try:
            status = self.node.status(self.account)
            if self.on_update is not None:
                self.on_update(status)
        except Exception as e:
            return self._failed(e)
        return self._succeeded(status)

    def _failed(self, e: Exception) -> bool:
        self._failures += 1
        self.last_error = f"{type(e).__name__}: {e}"
        logger.warning(f"Status poll failed (attempt {self._failures}): {self.last_error}")
        return False

    def _succeeded(self, status: Dict[str, Any]) -> bool:
        self._failures = 0
        self._polls += 1
        self.last_status = status
        self.last_error = None
        return True

    def get_status(self) -> Dict[str, Any]:
        """Get poller state and the most recent result."""
        return {
            "running": self._running,
            "interval_s": self.interval,
            "polls": self._polls,
            "consecutive_failures": self._failures,
            "last_poll_ms": self.last_poll_ms,
            "last_error": self.last_error,
            "last_status": self.last_status,
        }
