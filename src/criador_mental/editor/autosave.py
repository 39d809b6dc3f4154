"""
Autosave Scheduler

Debounced persistence of the open document.

Every change restarts a fixed-delay timer; only a timer that expires
uninterrupted triggers a save, and the snapshot to save is read at that
moment rather than captured when the change happened. At most one save runs
at a time. A failed save is logged and remembered in `last_error`; it is
neither rolled back nor retried, the next change's debounce cycle is the
retry path.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from ..document.models import Snapshot

logger = logging.getLogger("criador.autosave")

SaveCallback = Callable[[Snapshot], Awaitable[None]]


class AutosaveScheduler:
    """
    Last-write-wins debounce around an async save callback.

    The scheduler is inert until `activate()` and never fires before the
    first `notify()` that follows activation, so opening a document does not
    save it back.
    """

    def __init__(
        self,
        save: SaveCallback,
        read_present: Callable[[], Snapshot],
        delay: float,
    ) -> None:
        """
        Parameters
        ----------
        save : SaveCallback
            Coroutine function persisting a snapshot.
        read_present : Callable[[], Snapshot]
            Returns the current `present` when the timer fires.
        delay : float
            Debounce delay in seconds.
        """
        self._save = save
        self._read_present = read_present
        self._delay = delay

        self._active = False
        self._dirty = False
        self._timer: Optional[asyncio.Task] = None
        self._save_lock = asyncio.Lock()

        self.last_error: Optional[str] = None
        self.last_saved_at: Optional[datetime] = None
        self.save_count = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def active(self) -> bool:
        return self._active

    @property
    def pending(self) -> bool:
        """True while a timer is waiting to fire."""
        return self._timer is not None and not self._timer.done()

    @property
    def dirty(self) -> bool:
        return self._dirty

    def activate(self) -> None:
        self._active = True
        self._dirty = False

    def deactivate(self) -> None:
        """Stop scheduling; a pending timer is cancelled without saving."""
        self._active = False
        self._cancel_timer()

    def resume(self) -> None:
        """Reactivate after `deactivate`, rescheduling unsaved changes."""
        self._active = True
        if self._dirty:
            self.notify()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def notify(self) -> None:
        """Record a change and, while active, restart the debounce timer."""
        self._dirty = True
        if not self._active:
            return
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().create_task(self._wait_and_save())

    async def flush(self) -> None:
        """
        Save immediately if there are unsaved changes.

        Cancels the pending timer, and waits for any in-flight save so that
        the caller observes a settled state.
        """
        self._cancel_timer()
        if self._dirty:
            await self._save_now()
        else:
            async with self._save_lock:
                pass

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _wait_and_save(self) -> None:
        try:
            await asyncio.sleep(self._delay)
        except asyncio.CancelledError:
            return
        # Detach before saving so a later notify() cannot cancel the save
        self._timer = None
        await self._save_now()

    async def _save_now(self) -> None:
        async with self._save_lock:
            if not self._dirty:
                return
            snapshot = self._read_present()
            self._dirty = False
            try:
                await self._save(snapshot)
            except Exception as exc:
                logger.exception("Autosave failed")
                self._dirty = True
                self.last_error = str(exc) or type(exc).__name__
                return

            self.last_error = None
            self.last_saved_at = datetime.now(timezone.utc)
            self.save_count += 1
            logger.info("Autosaved document (%d page(s))", len(snapshot.pages))
