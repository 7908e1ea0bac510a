# border0/client/flexible_time.py
"""
FlexibleTime - timestamps the API sends either as RFC 3339 strings or as
Unix seconds. Always encoded back as Unix seconds; the zero time encodes as 0.
"""

import re
from datetime import datetime, timezone
from typing import Annotated, Any

from pydantic import PlainSerializer, PlainValidator, TypeAdapter, ValidationError

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_DATETIME = TypeAdapter(datetime)

_RFC3339 = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)


def flexible_time_from(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp.

    Only full date-time strings with an offset are accepted; sub-microsecond
    digits are truncated.
    """
    match = _RFC3339.match(value.strip())
    if not match:
        raise ValueError(f"invalid RFC 3339 time: {value!r}")
    date, clock, fraction, offset = match.groups()
    if offset in ("Z", "z"):
        offset = "+00:00"
    micros = f".{(fraction or '0')[:6].ljust(6, '0')}"
    try:
        return _DATETIME.validate_python(f"{date}T{clock}{micros}{offset}")
    except ValidationError as e:
        raise ValueError(f"invalid RFC 3339 time: {value!r}") from e


def format_flexible_time(value: datetime) -> str:
    """RFC 3339 representation, or an empty string for the zero time"""
    if value == ZERO_TIME:
        return ""
    return value.isoformat(timespec="seconds").replace("+00:00", "Z")


def _validate(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        raise ValueError("boolean is not a valid time")
    if isinstance(value, int):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError) as e:
            raise ValueError(f"unix time out of range: {value}") from e
    if isinstance(value, str):
        return flexible_time_from(value)
    raise ValueError(f"expected RFC 3339 string or unix seconds, got {type(value).__name__}")


def _serialize(value: datetime) -> int:
    if value == ZERO_TIME:
        return 0
    return int(value.timestamp())


FlexibleTime = Annotated[
    datetime,
    PlainValidator(_validate),
    PlainSerializer(_serialize, return_type=int),
]
