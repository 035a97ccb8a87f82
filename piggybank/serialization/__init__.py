"""Serialization helpers for the JSON boundary."""

from piggybank.serialization.dates import (
    deserialize_array_dates,
    deserialize_date,
    deserialize_dates,
    deserialize_object_dates,
    is_valid_date,
    serialize_array_dates,
    serialize_date,
    serialize_dates,
    serialize_object_dates,
)

__all__ = [
    "deserialize_array_dates",
    "deserialize_date",
    "deserialize_dates",
    "deserialize_object_dates",
    "is_valid_date",
    "serialize_array_dates",
    "serialize_date",
    "serialize_dates",
    "serialize_object_dates",
]
