"""Exceptions for the ttlstore package."""


class StoreError(Exception):
    """Base exception for all ttlstore errors."""

    pass


class InvalidTimeDescription(StoreError, ValueError):
    """A time point or duration could not be resolved."""

    def __init__(self, description, reason: str = ""):
        self.description = description
        message = f"Cannot resolve time description: {description!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class FieldNotFoundError(StoreError, KeyError):
    """Field is absent from the record, or has expired."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"No field: {field}")


class SerializationError(StoreError):
    """Failed to serialize a record."""

    pass


class SnapshotDecodeError(SerializationError):
    """A stored snapshot could not be decoded."""

    pass


class PersistenceRejected(StoreError):
    """The storage backend refused a write."""

    def __init__(self, key: str, reason: str = ""):
        self.key = key
        message = f"Backend rejected write for key: {key}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class QuotaExceededError(PersistenceRejected):
    """The write would exceed the backend's capacity."""

    pass
