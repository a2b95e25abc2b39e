"""Serialization of records to and from snapshot strings."""

import json
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from .exceptions import SerializationError, SnapshotDecodeError, StoreError
from .expiry import (
    Expiring,
    ExpiryPolicy,
    is_expiring_field,
    to_epoch_ms,
    to_milliseconds,
)


class Serializer:
    """Encode and decode a FieldRecord as a JSON snapshot.

    Values must be JSON-compatible, ``datetime`` or plain objects. Two
    conversions are lossy: tuples come back as lists and plain objects come
    back as their attribute dict. Everything else decodes equal to what was
    encoded. Expiring fields are written in one of two layouts:

    - tagged (default): ``{"__expiring__": {"value", "expiresAt", "maxAge",
      "startTime"}}``. Any user dict round-trips unambiguously.
    - structural: the untagged ``{"value", "expires", "maxAge", "startTime"}``
      shape in epoch milliseconds. Readable by older snapshots, but a user dict
      of that shape comes back as an expiring record.

    Example:
        serializer = Serializer()
        blob = serializer.dumps({"theme": "dark"})
        fields = serializer.loads(blob)  # {'theme': 'dark'}
    """

    def __init__(self, structural: bool = False):
        """Initialize the serializer.

        Args:
            structural: If True, use the untagged layout for expiring fields
        """
        self.structural = structural

    def encode(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Encode a FieldRecord to a JSON-compatible dict.

        Raises:
            SerializationError: If a value cannot be encoded
        """
        try:
            return {
                name: self._to_json_compatible(stored)
                for name, stored in fields.items()
            }
        except StoreError:
            raise
        except Exception as e:
            raise SerializationError(f"Failed to serialize record: {e}") from e

    def decode(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Decode a dict produced by ``encode`` back to a FieldRecord.

        Raises:
            SnapshotDecodeError: If the data is not a valid snapshot
        """
        try:
            fields = {}
            for name, raw in data.items():
                if self.structural and is_expiring_field(raw):
                    fields[name] = self._decode_structural(raw)
                else:
                    fields[name] = self._from_json_compatible(raw)
            return fields
        except SnapshotDecodeError:
            raise
        except Exception as e:
            raise SnapshotDecodeError(f"Failed to decode snapshot: {e}") from e

    def dumps(self, fields: Mapping[str, Any]) -> str:
        """Encode a FieldRecord to a snapshot string."""
        return json.dumps(self.encode(fields))

    def loads(self, blob: str) -> Dict[str, Any]:
        """Decode a snapshot string.

        Raises:
            SnapshotDecodeError: If the blob is malformed or not a JSON object
        """
        try:
            data = json.loads(blob)
        except (TypeError, ValueError) as e:
            raise SnapshotDecodeError(f"Malformed snapshot: {e}") from e
        if not isinstance(data, dict):
            raise SnapshotDecodeError(
                f"Snapshot must be a JSON object, got {type(data).__name__}"
            )
        return self.decode(data)

    # Expiring fields

    def _encode_expiring(self, item: Expiring) -> Dict[str, Any]:
        policy = item.policy
        if self.structural:
            return {
                "value": self._to_json_compatible(item.value),
                "expires": _optional(to_epoch_ms, policy.expires_at),
                "maxAge": _optional(to_milliseconds, policy.max_age),
                "startTime": _optional(to_epoch_ms, policy.start_time),
            }
        return {
            "__expiring__": {
                "value": self._to_json_compatible(item.value),
                "expiresAt": self._encode_time(policy.expires_at),
                "maxAge": _optional(to_milliseconds, policy.max_age),
                "startTime": self._encode_time(policy.start_time),
            }
        }

    def _encode_time(self, moment: Optional[datetime]) -> Optional[Dict[str, str]]:
        if moment is None:
            return None
        return {"__datetime__": moment.isoformat()}

    def _decode_tagged(self, body: Mapping[str, Any]) -> Expiring:
        return Expiring(
            self._from_json_compatible(body["value"]),
            ExpiryPolicy(
                expires_at=self._from_json_compatible(body.get("expiresAt")),
                max_age=body.get("maxAge"),
                start_time=self._from_json_compatible(body.get("startTime")),
            ),
        )

    def _decode_structural(self, raw: Mapping[str, Any]) -> Expiring:
        # ExpiryPolicy resolves epoch ms, ISO strings and calendar mappings.
        expires = raw.get("expires")
        if expires is None:
            expires = raw.get("expiresAt")
        return Expiring(
            self._from_json_compatible(raw["value"]),
            ExpiryPolicy(
                expires_at=expires,
                max_age=raw.get("maxAge"),
                start_time=raw.get("startTime"),
            ),
        )

    # Values

    def _to_json_compatible(self, value: Any) -> Any:
        """Convert a value to JSON-compatible format."""
        if value is None:
            return None
        if isinstance(value, (str, int, float, bool)):
            return value
        if isinstance(value, Expiring):
            return self._encode_expiring(value)
        if isinstance(value, datetime):
            return {"__datetime__": value.isoformat()}
        if isinstance(value, (list, tuple)):
            return [self._to_json_compatible(v) for v in value]
        if isinstance(value, dict):
            return {str(k): self._to_json_compatible(v) for k, v in value.items()}
        if hasattr(value, "__dict__"):
            return {
                "__type__": type(value).__name__,
                "__data__": self._to_json_compatible(vars(value)),
            }
        raise SerializationError(f"Cannot serialize type: {type(value)}")

    def _from_json_compatible(self, value: Any) -> Any:
        """Convert a value from JSON-compatible format."""
        if value is None:
            return None
        if isinstance(value, (str, int, float, bool)):
            return value
        if isinstance(value, list):
            return [self._from_json_compatible(v) for v in value]
        if isinstance(value, dict):
            if "__expiring__" in value:
                return self._decode_tagged(value["__expiring__"])
            if "__datetime__" in value:
                return datetime.fromisoformat(value["__datetime__"])
            if "__type__" in value and "__data__" in value:
                # Custom object - restored as its data dict
                return self._from_json_compatible(value["__data__"])
            return {k: self._from_json_compatible(v) for k, v in value.items()}
        return value


def _optional(convert, value):
    return None if value is None else convert(value)
