"""Observable, expiry-aware record of named fields."""

import asyncio
import logging
from collections.abc import MutableMapping
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, Optional

from .exceptions import FieldNotFoundError
from .expiry import Duration, Expiring, evaluate, utcnow
from .scheduler import ChangeScheduler

logger = logging.getLogger(__name__)

# Field name -> bare value or Expiring.
FieldRecord = Dict[str, Any]


class _Absent:
    """Marker for a field with no stored value."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


class ObservableRecord(MutableMapping):
    """A record of named fields that notices every read, write and delete.

    Reads evaluate expiry: an expired field is removed silently and reads as
    absent. Writes and deletes go through ``before_change`` (which may veto),
    then ``changed``, then the record's ChangeScheduler, which decides when
    ``persist`` is called with the whole FieldRecord.

    Hooks receive the raw FieldRecord as their ``record`` argument. Old and new
    values are raw stored values, ``ABSENT`` when there is none.

    Example:
        record = ObservableRecord({}, persist=print, change_threshold=2)
        record["theme"] = "dark"                         # held in memory
        record["token"] = Expiring.create("t", max_age=60_000)  # saved
        record.get("token")                              # "t"
    """

    def __init__(
        self,
        fields: Optional[FieldRecord],
        persist: Callable[[FieldRecord], None],
        *,
        disable_expiry: bool = False,
        save_delay: Optional[Duration] = None,
        change_threshold: Optional[int] = None,
        before_change: Optional[Callable[[str, Any, Any, FieldRecord], Any]] = None,
        changed: Optional[Callable[[str, Any, Any, FieldRecord], None]] = None,
        before_save: Optional[Callable[[FieldRecord, bool], Any]] = None,
        on_saved: Optional[Callable[[FieldRecord], None]] = None,
        auto_save: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._fields: FieldRecord = fields if fields is not None else {}
        self._persist = persist
        self.expiry_enabled = not disable_expiry
        self._before_change = before_change
        self._changed = changed
        self._clock = clock or utcnow
        self._scheduler = ChangeScheduler(
            self._write_snapshot,
            self._fields,
            change_threshold=change_threshold,
            delay=save_delay,
            before_save=before_save,
            on_saved=on_saved,
            automatic=auto_save,
            loop=loop,
        )

    # Accessors

    def get(self, field: str, default: Any = None) -> Any:
        """Read a field, or ``default`` if it is absent or has expired."""
        if field not in self._fields:
            return default

        stored = self._fields[field]
        if not self.expiry_enabled:
            return stored

        validity = evaluate(stored, self._clock())
        if not validity.valid:
            del self._fields[field]
            logger.debug("Field %r expired and was removed", field)
            return default
        return validity.value

    def set(self, field: str, value: Any) -> bool:
        """Write a field.

        An ``Expiring`` with a ``max_age`` and no start time is stored with its
        countdown starting now.

        Returns:
            True if written, False if ``before_change`` vetoed it

        Raises:
            PersistenceRejected: If a save triggered by this write is refused
        """
        old_value = self._fields.get(field, ABSENT)
        if self._vetoed(field, value, old_value):
            return False

        if self.expiry_enabled and isinstance(value, Expiring):
            value = value.started(self._clock())
        self._fields[field] = value
        self._after_change(field, value, old_value)
        return True

    def remove(self, field: str) -> bool:
        """Delete a field; a missing field still counts as a change.

        Returns:
            True if deleted, False if ``before_change`` vetoed it
        """
        old_value = self._fields.get(field, ABSENT)
        if self._vetoed(field, ABSENT, old_value):
            return False

        self._fields.pop(field, None)
        self._after_change(field, ABSENT, old_value)
        return True

    def raw(self, field: str) -> Any:
        """Stored value without expiry evaluation, or ``ABSENT``."""
        return self._fields.get(field, ABSENT)

    def purge_expired(self) -> int:
        """Silently remove every expired field.

        Returns:
            Number of fields removed
        """
        if not self.expiry_enabled:
            return 0
        now = self._clock()
        expired = [
            name for name, stored in self._fields.items()
            if not evaluate(stored, now).valid
        ]
        for name in expired:
            del self._fields[name]
        if expired:
            logger.debug("Purged %d expired field(s)", len(expired))
        return len(expired)

    def to_dict(self) -> Dict[str, Any]:
        """Live fields with expiring values unwrapped."""
        self.purge_expired()
        if not self.expiry_enabled:
            return dict(self._fields)
        return {
            name: stored.value if isinstance(stored, Expiring) else stored
            for name, stored in self._fields.items()
        }

    # Persistence

    def save(self) -> bool:
        """Persist now, bypassing change counting and the debounce.

        Returns:
            True if written, False if ``before_save`` vetoed it
        """
        return self._scheduler.save(manual=True)

    def cancel_pending(self) -> None:
        """Drop a pending debounced save."""
        self._scheduler.cancel()

    @property
    def pending(self) -> bool:
        return self._scheduler.pending

    @property
    def change_count(self) -> int:
        return self._scheduler.change_count

    # Dict-like interface

    def __getitem__(self, field: str) -> Any:
        value = self.get(field, ABSENT)
        if value is ABSENT:
            raise FieldNotFoundError(field)
        return value

    def __setitem__(self, field: str, value: Any) -> None:
        self.set(field, value)

    def __delitem__(self, field: str) -> None:
        if field not in self._fields:
            raise FieldNotFoundError(field)
        self.remove(field)

    def __contains__(self, field: object) -> bool:
        return self.get(field, ABSENT) is not ABSENT

    def __iter__(self) -> Iterator[str]:
        self.purge_expired()
        return iter(list(self._fields))

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._fields)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._fields!r})"

    # Internals

    def _vetoed(self, field: str, new_value: Any, old_value: Any) -> bool:
        if self._before_change is None:
            return False
        if self._before_change(field, new_value, old_value, self._fields):
            logger.debug("Change to %r vetoed", field)
            return True
        return False

    def _after_change(self, field: str, new_value: Any, old_value: Any) -> None:
        if self._changed is not None:
            self._changed(field, new_value, old_value, self._fields)
        self._scheduler.notify()

    def _write_snapshot(self) -> None:
        self._persist(self._fields)
