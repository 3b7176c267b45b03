"""Log formatting helpers.

- ISO8601Formatter: JSONL output with UTC ISO 8601 timestamps
- ConsoleFormatter: human-readable stderr output for dict messages
- serialize_event / hash_sensitive_id: event serialization with ID hashing
"""

from __future__ import annotations

__all__ = [
    "ConsoleFormatter",
    "ISO8601Formatter",
    "hash_sensitive_id",
    "serialize_event",
]

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

# Event fields holding identifiers that are hashed before logging
_HASHED_FIELDS: tuple[str, ...] = ("identity_id", "subject", "actor_id")


class ISO8601Formatter(logging.Formatter):
    """Formatter with ISO 8601 timestamps (UTC) for JSONL output.

    Format: YYYY-MM-DDTHH:MM:SS.sssZ
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )

        if isinstance(record.msg, dict):
            log_data = record.msg
        else:
            log_data = {"message": record.getMessage()}

        return json.dumps({"time": timestamp, "level": record.levelname, **log_data}, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output.

    Extracts the 'message' or 'event' field from dict messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            msg = record.msg.get("message") or record.msg.get("event", "")
            return f"{record.levelname}: {msg}"
        return f"{record.levelname}: {record.getMessage()}"


def hash_sensitive_id(value: str, prefix_length: int = 8) -> str:
    """Hash an identifier for logging while keeping it correlatable.

    Args:
        value: Identifier to hash (identity ID, token subject).
        prefix_length: Number of hex characters to keep.

    Returns:
        "sha256:<prefix>", or "sha256:empty" for an empty value.
    """
    if not value:
        return "sha256:empty"
    return f"sha256:{hashlib.sha256(value.encode('utf-8')).hexdigest()[:prefix_length]}"


def serialize_event(event: BaseModel) -> dict[str, Any]:
    """Serialize an event model for logging.

    None values are dropped and identifier fields are hashed.
    """
    data = event.model_dump(mode="json", exclude_none=True)
    for field in _HASHED_FIELDS:
        if isinstance(data.get(field), str):
            data[field] = hash_sensitive_id(data[field])
    return data
