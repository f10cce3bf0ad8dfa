"""Нормализация полей записей перед записью в БД."""
from datetime import datetime, timezone, timedelta
from typing import Any

from sensory_share_gateway.exceptions import ValidationError

# "Никогда не истекает" хранится как конкретная дата, чтобы сравнения
# expires_at < now() нигде не требовали проверки на NULL.
NEVER_EXPIRES = datetime(9999, 12, 31, 23, 59, 59, tzinfo=timezone.utc)


def require_name(value: Any, field: str = "name") -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(f"{field} must not be empty")
    return text


def coerce_non_negative(value: Any, default: int | None = 0) -> int | None:
    """int(value) с отсечением отрицательных; мусор -> default."""
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(number, 0)


def normalize_expiry(value: Any) -> datetime:
    if value is None or value == "never":
        return NEVER_EXPIRES
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError(f"Invalid expiry value: {value!r}") from e
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def expiry_from_hours(hours: Any, now: datetime | None = None) -> datetime | None:
    """expires_in в часах -> момент истечения; пусто/<=0/мусор -> None."""
    count = coerce_non_negative(hours, default=0)
    if not count:
        return None
    return (now or datetime.now(timezone.utc)) + timedelta(hours=count)


def positive_or_none(value: Any) -> int | None:
    number = coerce_non_negative(value, default=0)
    return number if number else None
