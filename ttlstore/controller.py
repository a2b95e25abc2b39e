"""Record controller: loads a record from a backend and saves it back."""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union
from urllib.parse import urlparse

from .backends.base import StorageBackend
from .backends.memory import MemoryBackend
from .exceptions import SnapshotDecodeError
from .expiry import Duration
from .record import FieldRecord, ObservableRecord
from .scheduler import normalize_delay, normalize_threshold
from .serialization import Serializer

logger = logging.getLogger(__name__)


@dataclass
class RecordOptions:
    """Constructor-time configuration of a record.

    ``change_threshold`` below 1 becomes 1 and a negative ``save_delay``
    becomes unset.
    """

    disable_expiry: bool = False
    save_delay: Optional[Duration] = None
    change_threshold: Optional[int] = None
    before_change: Optional[Callable[[str, Any, Any, FieldRecord], Any]] = None
    changed: Optional[Callable[[str, Any, Any, FieldRecord], None]] = None
    before_save: Optional[Callable[[FieldRecord, bool], Any]] = None
    on_saved: Optional[Callable[[FieldRecord], None]] = None
    auto_save: bool = True
    clock: Optional[Callable[[], datetime]] = None
    loop: Optional[asyncio.AbstractEventLoop] = None

    def __post_init__(self):
        self.change_threshold = normalize_threshold(self.change_threshold)
        if normalize_delay(self.save_delay) is None:
            self.save_delay = None

    def as_kwargs(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}


class RecordController:
    """An ObservableRecord persisted under one backend key.

    The snapshot stored under ``key`` is loaded once, at construction. A
    missing or unreadable snapshot gives an empty record. Mutations are saved
    automatically per the options; ``save()`` persists on demand.

    Example:
        from ttlstore import RecordController, Expiring

        with RecordController("settings", "sqlite:///settings.db",
                              change_threshold=3) as ctl:
            ctl.record["theme"] = "dark"
            ctl.record["token"] = Expiring.create("abc", max_age=60_000)
            ctl.save()
    """

    def __init__(
        self,
        key: str,
        backend: Union[StorageBackend, str],
        *,
        serializer: Optional[Serializer] = None,
        **options,
    ):
        """Create a controller.

        Args:
            key: Backend key the record lives under
            backend: StorageBackend instance, or a URL passed to connect()
            serializer: Snapshot codec (default: tagged JSON)
            **options: RecordOptions fields
        """
        self.key = key
        self._owns_backend = isinstance(backend, str)
        self._backend = connect(backend) if self._owns_backend else backend
        self._serializer = serializer or Serializer()
        self.options = RecordOptions(**options)
        self.record = ObservableRecord(
            self._load(), self._persist, **self.options.as_kwargs()
        )

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    def save(self) -> bool:
        """Persist the current record now.

        Returns:
            True if written, False if ``before_save`` vetoed it

        Raises:
            PersistenceRejected: If the backend refuses the write
        """
        return self.record.save()

    def _load(self) -> FieldRecord:
        blob = self._backend.get(self.key)
        if not blob:
            return {}
        try:
            return self._serializer.loads(blob)
        except SnapshotDecodeError as e:
            logger.warning("Discarding unreadable snapshot for %r: %s", self.key, e)
            return {}

    def _persist(self, fields: FieldRecord) -> None:
        self._backend.set(self.key, self._serializer.dumps(fields))

    # Lifecycle

    def close(self) -> None:
        """Drop a pending debounced save and close a backend opened from a URL."""
        self.record.cancel_pending()
        if self._owns_backend:
            self._backend.close()

    def __enter__(self) -> "RecordController":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()


def create_record(
    key: str,
    backend: Union[StorageBackend, str],
    **options,
) -> ObservableRecord:
    """Load the record under key and return it without a controller.

    Takes the same arguments as RecordController.
    """
    return RecordController(key, backend, **options).record


def connect(url: str) -> StorageBackend:
    """Open a storage backend from a URL.

    Supported URL schemes:
        - memory://          In-memory storage (testing)
        - sqlite:///path.db  SQLite file storage
        - sqlite:///:memory: SQLite in-memory

    Args:
        url: Connection URL

    Returns:
        Connected backend

    Example:
        backend = connect("sqlite:///settings.db")
        backend = connect("memory://")
    """
    parsed = urlparse(url)
    scheme = parsed.scheme

    if scheme == "memory":
        backend = MemoryBackend()
        backend.connect()
        return backend

    elif scheme == "sqlite":
        from .backends.sqlite import SQLiteBackend

        # Handle sqlite:///path and sqlite:///:memory:
        path = parsed.path
        if path.startswith("/"):
            path = path[1:]  # Remove leading slash from file path

        backend = SQLiteBackend()
        backend.connect(path=path if path else ":memory:")
        return backend

    else:
        raise ValueError(f"Unknown storage scheme: {scheme}")
