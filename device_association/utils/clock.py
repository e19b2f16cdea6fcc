"""Horloge UTC / UTC clock helpers.

Les horodatages sont stockes en UTC naif / Timestamps are stored as naive UTC.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Normaliser une date recue / Normalise an incoming datetime."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def sanitize(value: object) -> str:
    """Retirer les retours ligne avant log / Strip newlines before logging."""
    return str(value).replace("\r", "").replace("\n", "")
