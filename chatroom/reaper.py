"""
Presence reaper: a background task that evicts inactive participants.

Each tick removes participants whose last heartbeat is older than the
expiry window and writes one "left the room" status message for each,
in a single transaction. A failed tick is logged and skipped; the next
tick runs on schedule.
"""

import asyncio
import logging
from typing import Callable, Optional

from chatroom.metrics import record_reaper_tick
from chatroom.models import Message, MessageKind
from chatroom.storage import MessageLog, PresenceStore
from chatroom.utils import now_ms

logger = logging.getLogger(__name__)

LEFT_TEXT = "left the room"


class PresenceReaper:
    """
    Periodic eviction of expired presence records.

    Args:
        presence: Presence store to scan and prune
        messages: Message log receiving the "left" status events
        broadcast: Recipient value for status events
        interval_seconds: Time between ticks
        expiry_window_seconds: Inactivity allowed before eviction
        clock: Returns the current time in milliseconds
    """

    def __init__(
        self,
        presence: PresenceStore,
        messages: MessageLog,
        broadcast: str,
        interval_seconds: float = 15.0,
        expiry_window_seconds: float = 10.0,
        clock: Callable[[], int] = now_ms,
    ):
        self.presence = presence
        self.messages = messages
        self.broadcast = broadcast
        self.interval_seconds = interval_seconds
        self.expiry_window_ms = int(expiry_window_seconds * 1000)
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self, now: Optional[int] = None) -> list[str]:
        """
        Run a single eviction pass.

        Args:
            now: Current time in ms (defaults to the reaper's clock)

        Returns:
            Names of evicted participants

        Raises:
            StorageError: the store failed; nothing was evicted
        """
        if now is None:
            now = self.clock()
        cutoff = now - self.expiry_window_ms

        candidates = self.presence.expired(cutoff)
        if not candidates:
            logger.debug(f"Reaper tick: no participants at or before cutoff {cutoff}")
            return []

        with self.presence.session() as db:
            removed = self.presence.remove_expired(
                [p.name for p in candidates], cutoff, db=db
            )
            if removed:
                self.messages.append_many(
                    [
                        Message(
                            from_name=name,
                            to_name=self.broadcast,
                            text=LEFT_TEXT,
                            kind=MessageKind.STATUS,
                        )
                        for name in removed
                    ],
                    db=db,
                )

        if removed:
            logger.info(f"Evicted {len(removed)} inactive participants: {', '.join(removed)}")
        return removed

    async def tick(self) -> list[str]:
        """Run one pass in a worker thread, never raising."""
        try:
            removed = await asyncio.to_thread(self.run_once)
        except Exception:
            logger.exception("Reaper tick failed; retrying on next schedule")
            record_reaper_tick("error")
            return []
        record_reaper_tick("evicted" if removed else "noop", len(removed))
        return removed

    async def _loop(self) -> None:
        logger.info(
            f"Reaper started: interval={self.interval_seconds}s, "
            f"window={self.expiry_window_ms}ms"
        )
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.tick()

    def start(self) -> asyncio.Task:
        """Schedule the reaper on the running event loop."""
        if self.running:
            return self._task
        self._task = asyncio.create_task(self._loop(), name="presence-reaper")
        return self._task

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reaper stopped")
