# delivery_fees/utils/parsing.py
"""
Parsing of request and database values.

Every numeric field that reaches the pricing code is parsed here exactly once.
Bad input raises a ``ValueError`` subclass instead of silently becoming zero,
so routes can answer with HTTP 400.
"""
import math
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENTS = Decimal("0.01")


class InvalidAmount(ValueError):
    """A money or distance value that is not a finite, non-negative number."""

    def __init__(self, field: str, value: Any, reason: str = "must be a valid number"):
        self.field = field
        self.value = value
        super().__init__(f"{field} {reason} (received: {value!r})")


class InvalidCoordinate(ValueError):
    """A latitude/longitude that is missing, not finite or out of range."""

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        super().__init__(f"{field} {reason} (received: {value!r})")


class InvalidIdentifier(ValueError):
    """An id that is not a UUID."""

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value
        super().__init__(f"{field} must be a valid UUID (received: {value!r})")


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_money(value: Any, field: str, default: Optional[Decimal] = None,
                allow_negative: bool = False) -> Optional[Decimal]:
    """Parse a money-like value into a Decimal.

    Blank values return ``default``. Booleans, non-numeric strings, NaN and
    infinities raise InvalidAmount, as do negative amounts unless allowed.
    """
    if is_blank(value):
        return default
    if isinstance(value, bool):
        raise InvalidAmount(field, value)
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount(field, value)
    if not amount.is_finite():
        raise InvalidAmount(field, value)
    if amount < 0 and not allow_negative:
        raise InvalidAmount(field, value, "must be zero or positive")
    return amount


def parse_float(value: Any, field: str) -> float:
    if is_blank(value) or isinstance(value, bool):
        raise InvalidCoordinate(field, value, "is required")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidCoordinate(field, value, "must be a number")
    if not math.isfinite(number):
        raise InvalidCoordinate(field, value, "must be a finite number")
    return number


def parse_latitude(value: Any, field: str = "latitude") -> float:
    lat = parse_float(value, field)
    if not -90 <= lat <= 90:
        raise InvalidCoordinate(field, value, "must be between -90 and 90")
    return lat


def parse_longitude(value: Any, field: str = "longitude") -> float:
    lng = parse_float(value, field)
    if not -180 <= lng <= 180:
        raise InvalidCoordinate(field, value, "must be between -180 and 180")
    return lng


def parse_int(value: Any, field: str, default: Optional[int] = None) -> Optional[int]:
    if is_blank(value):
        return default
    if isinstance(value, bool):
        raise ValueError(f"{field} must be an integer (received: {value!r})")
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValueError(f"{field} must be an integer (received: {value!r})")


def parse_bool(value: Any, default: Optional[bool] = None) -> Optional[bool]:
    # Accepts 'true'/'1' strings the way the admin forms send them.
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def _naive_utc(moment: datetime) -> datetime:
    # timestamp columns carry no zone: aware values are stored as UTC
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def parse_datetime(value: Any, field: str) -> Optional[datetime]:
    """Parse YYYY-MM-DD or full ISO text into a naive UTC datetime."""
    if is_blank(value):
        return None
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        text = str(value).strip()
        if len(text) == 10:
            return datetime.fromisoformat(text + "T00:00:00")
        return _naive_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        raise ValueError(f"{field} must be an ISO date (received: {value!r})")


def parse_uuid(value: Any, field: str) -> Optional[str]:
    """Blank -> None; otherwise the canonical string form of a UUID."""
    if is_blank(value):
        return None
    try:
        return str(uuid.UUID(str(value).strip()))
    except ValueError:
        raise InvalidIdentifier(field, value)


def optional_text(value: Any) -> Optional[str]:
    if is_blank(value):
        return None
    return str(value).strip()
