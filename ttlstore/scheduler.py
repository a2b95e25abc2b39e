"""Change batching: decides when record mutations are persisted."""

import asyncio
import logging
from typing import Any, Callable, Optional

from .expiry import Duration, resolve_duration

logger = logging.getLogger(__name__)


def normalize_threshold(value: Optional[int]) -> Optional[int]:
    """Clamp a change threshold to at least 1. None stays unset."""
    if value is None:
        return None
    return max(int(value), 1)


def normalize_delay(value: Optional[Duration]) -> Optional[float]:
    """Save delay in seconds, or None when unset or negative."""
    if value is None:
        return None
    seconds = resolve_duration(value).total_seconds()
    return seconds if seconds >= 0 else None


class ChangeScheduler:
    """Gate how often a stream of mutations reaches the backend.

    Each mutation is reported with ``notify()``. A save happens when the
    accumulated change count reaches ``change_threshold``, or when the
    debounce ``delay`` elapses without a further mutation, whichever comes
    first. Without a delay the threshold defaults to 1, so every mutation
    saves. With only a delay, saves are purely debounced.

    The debounce timer runs on an asyncio event loop: ``loop`` if given,
    otherwise the running loop. A delay of 0 fires on the next loop tick.
    With no loop available the debounce is never armed; changes stay counted
    until the threshold is reached or ``save()`` is called.

    Example:
        saves = []
        scheduler = ChangeScheduler(lambda: saves.append(1), subject={},
                                    change_threshold=3)
        scheduler.notify()
        scheduler.notify()   # nothing saved yet
        scheduler.notify()   # saves == [1]
    """

    def __init__(
        self,
        persist: Callable[[], None],
        subject: Any,
        *,
        change_threshold: Optional[int] = None,
        delay: Optional[Duration] = None,
        before_save: Optional[Callable[[Any, bool], Any]] = None,
        on_saved: Optional[Callable[[Any], None]] = None,
        automatic: bool = True,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """Create a scheduler.

        Args:
            persist: Performs the backend write
            subject: Passed to the hooks (the record being saved)
            change_threshold: Mutations needed before a save; < 1 means 1
            delay: Debounce delay in milliseconds or timedelta; negative is unset
            before_save: ``(subject, is_manual)``; truthy vetoes the save
            on_saved: ``(subject)``; called after a successful write
            automatic: If False, mutations are counted but never saved
            loop: Event loop for the debounce timer
        """
        self._persist = persist
        self._subject = subject
        self.delay = normalize_delay(delay)
        threshold = normalize_threshold(change_threshold)
        if threshold is None and self.delay is None:
            threshold = 1
        self.change_threshold = threshold
        self.automatic = automatic
        self._before_save = before_save
        self._on_saved = on_saved
        self._loop = loop
        self._change_count = 0
        self._timer: Optional[asyncio.Handle] = None
        self._warned_no_loop = False

    @property
    def change_count(self) -> int:
        """Mutations since the last automatic save."""
        return self._change_count

    @property
    def pending(self) -> bool:
        """Whether a debounced save is scheduled."""
        return self._timer is not None

    def notify(self) -> None:
        """Record one mutation and save if a trigger condition is met.

        Raises:
            PersistenceRejected: If a save triggered here is refused
        """
        self._change_count += 1
        if not self.automatic:
            return

        if (
            self.change_threshold is not None
            and self._change_count >= self.change_threshold
        ):
            saved = self.save()
            self.cancel()
            if saved:
                self._change_count = 0
        elif self.delay is not None:
            self._schedule()

    def save(self, manual: bool = False) -> bool:
        """Persist now unless ``before_save`` vetoes.

        Neither resets the change count nor touches a pending timer; the
        automatic paths do that themselves.

        Returns:
            True if the write happened, False if vetoed
        """
        if self._before_save is not None and self._before_save(self._subject, manual):
            logger.debug("Save vetoed (manual=%s)", manual)
            return False
        self._persist()
        logger.debug(
            "Saved after %d change(s) (manual=%s)", self._change_count, manual
        )
        if self._on_saved is not None:
            self._on_saved(self._subject)
        return True

    def cancel(self) -> None:
        """Drop the pending debounced save, if any."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule(self) -> None:
        loop = self._event_loop()
        if loop is None:
            if not self._warned_no_loop:
                logger.warning(
                    "No running event loop to debounce saves; changes are held "
                    "until the change threshold or a manual save"
                )
                self._warned_no_loop = True
            return

        self.cancel()
        if self.delay == 0:
            self._timer = loop.call_soon(self._fire)
        else:
            self._timer = loop.call_later(self.delay, self._fire)
        logger.debug("Debounced save in %.3fs", self.delay)

    def _event_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def _fire(self) -> None:
        self._timer = None
        if self.save():
            self._change_count = 0
