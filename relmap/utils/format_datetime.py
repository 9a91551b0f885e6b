"""Normalize date/time values to the canonical storage format."""

import datetime

STORAGE_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_datetime(value):
    """Return the UTC storage string for datetimes and dates; other values pass through.

    Naive datetimes are taken to be UTC already.
    """
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(datetime.timezone.utc)
        return value.strftime(STORAGE_FORMAT)
    if isinstance(value, datetime.date):
        return value.isoformat()
    return value
