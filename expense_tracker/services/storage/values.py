"""
Stored Value Representation

Backends keep dates as a native `Timestamp` type, the way a hosted
document database does. Callers hand in plain `datetime`/`date` values;
they are converted on the way in, and the store service decodes the
well-known timestamp fields on the way out.

`sort_key` gives every stored value a total order across types
(null < booleans < numbers < timestamps < strings < bytes < arrays < maps).
Range filters only match values of the same type as their bound.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


@dataclass(frozen=True, order=True)
class Timestamp:
    """A point in time as stored by a document backend (always UTC)."""

    value: datetime

    @classmethod
    def from_datetime(cls, moment: datetime) -> "Timestamp":
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return cls(moment.astimezone(timezone.utc))

    @classmethod
    def fromisoformat(cls, text: str) -> "Timestamp":
        return cls.from_datetime(datetime.fromisoformat(text))

    def to_datetime(self) -> datetime:
        return self.value

    def isoformat(self) -> str:
        return self.value.isoformat()


def to_store_value(value: Any) -> Any:
    """Convert a Python value into its stored representation."""
    if isinstance(value, Timestamp):
        return value
    if isinstance(value, datetime):
        return Timestamp.from_datetime(value)
    if isinstance(value, date):
        return Timestamp.from_datetime(datetime(value.year, value.month, value.day))
    if isinstance(value, Enum):
        return to_store_value(value.value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Mapping):
        return {str(key): to_store_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_store_value(item) for item in value]
    return value


def sort_key(value: Any) -> tuple:
    """Total ordering key for a stored value."""
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, (int, float)):
        return (2, float(value))
    if isinstance(value, Timestamp):
        return (3, value.value)
    if isinstance(value, str):
        return (4, value)
    if isinstance(value, bytes):
        return (5, value)
    if isinstance(value, list):
        return (6, tuple(sort_key(item) for item in value))
    if isinstance(value, dict):
        return (7, tuple(sorted((str(k), sort_key(v)) for k, v in value.items())))
    return (8, json.dumps(value, default=repr, sort_keys=True))
