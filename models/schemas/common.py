from datetime import datetime

from marshmallow import ValidationError

from models.base_model import as_utc

MAX_DURATION_MINUTES = 10 * 60


def iso_utc(value: datetime | None) -> str | None:
    """ISO-8601 string in UTC; naive values are taken to be UTC already."""
    if value is None:
        return None
    return as_utc(value).isoformat()


def validate_rating(value: int) -> None:
    if value is not None and not 1 <= value <= 10:
        raise ValidationError("Rating must be between 1 and 10")


def validate_duration(value: int) -> None:
    if value is None:
        return
    if value < 1:
        raise ValidationError("Duration must be at least 1 minute")
    if value > MAX_DURATION_MINUTES:
        raise ValidationError("Duration cannot exceed 10 hours")
