"""
Date Codec

Converts between in-memory datetimes and ISO-8601 strings for the JSON
boundary. All functions are pure and total over optional values:

- serializing ``None`` gives ``None``
- deserializing ``None``, an empty string, or anything that does not
  parse gives ``None`` (never an exception)

Serialized form is always UTC with millisecond precision and a ``Z``
suffix, e.g. ``2024-03-01T12:30:45.123Z``. Naive datetimes are taken to
be UTC, and so are date-only strings.
"""

from datetime import date, datetime, time, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence


def _as_utc(value: date) -> datetime:
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_iso(text: str) -> datetime:
    text = text.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def serialize_date(value: Optional[date]) -> Optional[str]:
    """Render a date/datetime as an ISO-8601 UTC string, or None."""
    if value is None:
        return None
    stamp = _as_utc(value).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def deserialize_date(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into an aware UTC datetime.

    Returns None for absent input and for anything that is not a valid
    calendar instant. Datetime input is normalized and passed through.
    """
    if not isinstance(value, (date, str)):
        return None
    try:
        if isinstance(value, date):
            return _as_utc(value)
        if not value.strip():
            return None
        return _as_utc(_parse_iso(value))
    except (ValueError, OverflowError):
        # OverflowError: an offset pushed the instant outside years 1..9999
        return None


def is_valid_date(value: Any) -> bool:
    """True when ``value`` is a date or a string naming a valid instant."""
    return deserialize_date(value) is not None


def serialize_dates(values: Iterable[Optional[date]]) -> list[Optional[str]]:
    return [serialize_date(value) for value in values]


def deserialize_dates(values: Iterable[Any]) -> list[Optional[datetime]]:
    return [deserialize_date(value) for value in values]


def serialize_object_dates(
    obj: Mapping[str, Any],
    date_fields: Sequence[str],
) -> dict[str, Any]:
    """
    Copy of ``obj`` with each listed field serialized.

    Listed fields that are missing come out as None; fields that are not
    listed are copied untouched.
    """
    result = dict(obj)
    for field in date_fields:
        result[field] = serialize_date(obj.get(field))
    return result


def deserialize_object_dates(
    obj: Mapping[str, Any],
    date_fields: Sequence[str],
) -> dict[str, Any]:
    """Copy of ``obj`` with each listed field deserialized."""
    result = dict(obj)
    for field in date_fields:
        result[field] = deserialize_date(obj.get(field))
    return result


def serialize_array_dates(
    objects: Iterable[Mapping[str, Any]],
    date_fields: Sequence[str],
) -> list[dict[str, Any]]:
    return [serialize_object_dates(obj, date_fields) for obj in objects]


def deserialize_array_dates(
    objects: Iterable[Mapping[str, Any]],
    date_fields: Sequence[str],
) -> list[dict[str, Any]]:
    return [deserialize_object_dates(obj, date_fields) for obj in objects]
