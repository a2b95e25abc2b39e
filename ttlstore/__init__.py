"""
ttlstore - self-persisting key/value records with per-field expiry.

A record is a mapping of named fields backed by a storage backend. Reading
a field enforces its expiry; writing or deleting one notifies hooks and is
saved to the backend immediately, after N changes, or after a debounce delay.

Quick Start:
    from ttlstore import RecordController, Expiring

    ctl = RecordController("settings", "sqlite:///settings.db", save_delay=200)
    record = ctl.record

    record["theme"] = "dark"
    record["session"] = Expiring.create("abc123", max_age=30 * 60_000)

    record.get("session")   # "abc123" for the next 30 minutes, then None
    ctl.save()              # persist right away

Supported backends:
    - memory://           In-memory storage (testing)
    - sqlite:///path.db   SQLite file storage
    - sqlite:///:memory:  SQLite in-memory

Key Classes:
    - RecordController: loads a record from a backend, exposes save()
    - ObservableRecord: the record itself, with dict-like access
    - Expiring / ExpiryPolicy: values that expire
    - ChangeScheduler: decides when mutations are persisted
"""

from .backends import MemoryBackend, SQLiteBackend, StorageBackend
from .controller import RecordController, RecordOptions, connect, create_record
from .exceptions import (
    FieldNotFoundError,
    InvalidTimeDescription,
    PersistenceRejected,
    QuotaExceededError,
    SerializationError,
    SnapshotDecodeError,
    StoreError,
)
from .expiry import (
    DateDescription,
    Expiring,
    ExpiryPolicy,
    Validity,
    evaluate,
    is_expiring_field,
    resolve_duration,
    resolve_time_point,
)
from .record import ABSENT, FieldRecord, ObservableRecord
from .scheduler import ChangeScheduler
from .serialization import Serializer

__all__ = [
    # Main API
    "RecordController",
    "RecordOptions",
    "ObservableRecord",
    "FieldRecord",
    "ABSENT",
    "create_record",
    "connect",
    # Expiry
    "Expiring",
    "ExpiryPolicy",
    "DateDescription",
    "Validity",
    "evaluate",
    "is_expiring_field",
    "resolve_time_point",
    "resolve_duration",
    # Scheduling
    "ChangeScheduler",
    # Backends
    "StorageBackend",
    "MemoryBackend",
    "SQLiteBackend",
    # Serialization
    "Serializer",
    # Exceptions
    "StoreError",
    "InvalidTimeDescription",
    "FieldNotFoundError",
    "SerializationError",
    "SnapshotDecodeError",
    "PersistenceRejected",
    "QuotaExceededError",
]

__version__ = "0.1.0"
