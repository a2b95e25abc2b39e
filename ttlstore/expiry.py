"""Expiry policies and validity resolution for stored fields.

A stored field is either a bare value or an ``Expiring`` record, which pairs
the value with an ``ExpiryPolicy``. Policies describe instants loosely: an
epoch-millisecond number, a ``DateDescription`` (or an equivalent mapping),
an ISO 8601 string, or a ``datetime``. Everything is resolved to an aware UTC
``datetime`` before comparison.

Example:
    from ttlstore.expiry import Expiring, evaluate

    token = Expiring.create("abc123", max_age=30_000)
    evaluate(token)  # Validity(valid=True, value='abc123')

All functions here are pure. Removing an expired field is the caller's job.
"""

from dataclasses import dataclass, field, replace
from datetime import MINYEAR, datetime, timedelta, timezone
from typing import Any, Mapping, NamedTuple, Optional, Union

from .exceptions import InvalidTimeDescription

Millisecond = Union[int, float]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)
_DATE_FIELDS = ("year", "month", "day", "hour", "minute", "second", "millisecond")

# Keys that mark a mapping as an expiring record in untagged snapshots.
_EXPIRY_KEYS = ("maxAge", "expiresAt", "expires")


def utcnow() -> datetime:
    """Default clock: the current instant in UTC."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DateDescription:
    """Calendar description of a local-time instant.

    Unset fields take their minimum. ``month`` is 1-based. Year 0 is clamped
    to the first year ``datetime`` can represent.
    """

    year: int = 0
    month: int = 1
    day: int = 1
    hour: int = 0
    minute: int = 0
    second: int = 0
    millisecond: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "DateDescription":
        unknown = set(data) - set(_DATE_FIELDS)
        if unknown:
            raise InvalidTimeDescription(
                data, f"unknown calendar fields: {', '.join(sorted(unknown))}"
            )
        return cls(**{k: v for k, v in data.items() if v is not None})

    def to_datetime(self) -> datetime:
        try:
            local = datetime(
                max(self.year, MINYEAR),
                self.month,
                self.day,
                self.hour,
                self.minute,
                self.second,
                self.millisecond * 1000,
            )
            return local.astimezone(timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise InvalidTimeDescription(self, str(e)) from e


TimeDescription = Union[Millisecond, datetime, DateDescription, Mapping[str, int], str]
Duration = Union[Millisecond, timedelta]


def _local_to_utc(value: datetime, description: Any) -> datetime:
    try:
        return value.astimezone(timezone.utc)
    except (ValueError, OverflowError, OSError) as e:
        raise InvalidTimeDescription(description, str(e)) from e


def _parse_date_string(text: str) -> datetime:
    candidate = text.strip()
    if candidate[-1:] in ("Z", "z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as e:
        raise InvalidTimeDescription(text, "not an ISO 8601 date") from e

    if parsed.tzinfo is not None:
        return parsed.astimezone(timezone.utc)
    # Date-only strings are UTC midnight; date-times without an offset are local.
    if "T" not in candidate and " " not in candidate:
        return parsed.replace(tzinfo=timezone.utc)
    return _local_to_utc(parsed, text)


def resolve_time_point(description: TimeDescription) -> datetime:
    """Resolve any accepted time description to an aware UTC datetime.

    Args:
        description: Epoch milliseconds, ``datetime``, ``DateDescription``,
            mapping of calendar fields, or ISO 8601 string

    Returns:
        The instant as a timezone-aware UTC ``datetime``

    Raises:
        InvalidTimeDescription: If the description cannot be resolved
    """
    if isinstance(description, bool):
        raise InvalidTimeDescription(description, "booleans are not time points")
    if isinstance(description, datetime):
        if description.tzinfo is None:
            return _local_to_utc(description, description)
        return description.astimezone(timezone.utc)
    if isinstance(description, (int, float)):
        try:
            return _EPOCH + timedelta(milliseconds=description)
        except (OverflowError, ValueError) as e:
            raise InvalidTimeDescription(description, str(e)) from e
    if isinstance(description, str):
        return _parse_date_string(description)
    if isinstance(description, DateDescription):
        return description.to_datetime()
    if isinstance(description, Mapping):
        return DateDescription.from_mapping(description).to_datetime()
    raise InvalidTimeDescription(
        description, f"unsupported type {type(description).__name__}"
    )


def resolve_duration(description: Duration) -> timedelta:
    """Resolve milliseconds or a ``timedelta`` to a ``timedelta``."""
    if isinstance(description, timedelta):
        return description
    if isinstance(description, (int, float)) and not isinstance(description, bool):
        try:
            return timedelta(milliseconds=description)
        except (OverflowError, ValueError) as e:
            raise InvalidTimeDescription(description, str(e)) from e
    raise InvalidTimeDescription(
        description, "durations are milliseconds or timedelta"
    )


def to_milliseconds(duration: Duration) -> Millisecond:
    """Duration in milliseconds, as an int when it is whole."""
    ms = resolve_duration(duration) / _ONE_MS
    return int(ms) if ms.is_integer() else ms


def to_epoch_ms(description: TimeDescription) -> int:
    """Instant as whole milliseconds since the Unix epoch."""
    return (resolve_time_point(description) - _EPOCH) // _ONE_MS


@dataclass(frozen=True)
class ExpiryPolicy:
    """When a stored value stops being valid.

    The value expires at ``expires_at``, or ``max_age`` after ``start_time``,
    whichever comes first. A ``max_age`` without a ``start_time`` is not yet
    due. With neither condition the value never expires.

    Any accepted time description may be passed in; the policy always holds
    aware UTC datetimes and a timedelta.

    Raises:
        InvalidTimeDescription: If a time or duration cannot be resolved
    """

    expires_at: Optional[datetime] = None
    max_age: Optional[timedelta] = None
    start_time: Optional[datetime] = None

    def __post_init__(self):
        if self.expires_at is not None:
            object.__setattr__(self, "expires_at", resolve_time_point(self.expires_at))
        if self.max_age is not None:
            object.__setattr__(self, "max_age", resolve_duration(self.max_age))
        if self.start_time is not None:
            object.__setattr__(self, "start_time", resolve_time_point(self.start_time))

    def deadline(self) -> Optional[datetime]:
        """Earliest instant at which the policy expires, or None."""
        candidates = []
        if self.expires_at is not None:
            candidates.append(self.expires_at)
        if self.max_age is not None and self.start_time is not None:
            try:
                candidates.append(self.start_time + self.max_age)
            except OverflowError:
                pass  # beyond datetime.max: never due
        return min(candidates) if candidates else None

    def is_expired(self, now: datetime) -> bool:
        deadline = self.deadline()
        return deadline is not None and now >= deadline


@dataclass(frozen=True)
class Expiring:
    """A stored value carrying an expiry policy."""

    value: Any
    policy: ExpiryPolicy = field(default_factory=ExpiryPolicy)

    @classmethod
    def create(
        cls,
        value: Any,
        *,
        expires_at: Optional[TimeDescription] = None,
        max_age: Optional[Duration] = None,
        start_time: Optional[TimeDescription] = None,
    ) -> "Expiring":
        """Build an expiring value, resolving its policy now.

        Raises:
            InvalidTimeDescription: If a time or duration cannot be resolved
        """
        return cls(value, ExpiryPolicy(expires_at, max_age, start_time))

    def started(self, at: datetime) -> "Expiring":
        """Copy with the max-age countdown anchored at ``at``.

        Returns self unchanged when there is no ``max_age`` or the start time
        is already set.
        """
        if self.policy.max_age is None or self.policy.start_time is not None:
            return self
        return replace(self, policy=replace(self.policy, start_time=at))


class Validity(NamedTuple):
    """Result of evaluating a stored field."""

    valid: bool
    value: Any


def is_expiring_field(candidate: Any) -> bool:
    """Structural test for expiring records.

    True for ``Expiring`` instances and for mappings holding a ``value`` key
    plus at least one of ``maxAge``, ``expiresAt`` or ``expires``. A user
    mapping of that shape is indistinguishable from an expiring record.
    """
    if isinstance(candidate, Expiring):
        return True
    return (
        isinstance(candidate, Mapping)
        and "value" in candidate
        and any(key in candidate for key in _EXPIRY_KEYS)
    )


def evaluate(stored: Any, now: Optional[datetime] = None) -> Validity:
    """Decide whether a stored field is still valid.

    Bare values are always valid. An ``Expiring`` is invalid once either of
    its conditions has elapsed; the stale value is still returned.
    """
    if not isinstance(stored, Expiring):
        return Validity(True, stored)
    if now is None:
        now = utcnow()
    return Validity(not stored.policy.is_expired(now), stored.value)
