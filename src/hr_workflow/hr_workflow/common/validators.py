from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from ..core.exceptions import ValidationError

_PAY_PERIOD_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def _text(value: object, field_name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")
    return value.strip()


def require_non_empty(value: Optional[str], field_name: str) -> str:
    text = _text(value, field_name)
    if not text:
        raise ValidationError(f"{field_name} is required")
    return text


def optional_text(value: Optional[str], field_name: str = "value") -> Optional[str]:
    return _text(value, field_name) or None


def to_decimal(value: object, field_name: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return number


def require_positive(value: Decimal, field_name: str) -> Decimal:
    if value <= 0:
        raise ValidationError(f"{field_name} must be greater than 0")
    return value


def require_positive_int(value: object, field_name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{field_name} must be an integer")
    if number <= 0:
        raise ValidationError(f"{field_name} must be greater than 0")
    return number


def require_pay_period(value: Optional[str]) -> str:
    period = require_non_empty(value, "pay_period")
    if not _PAY_PERIOD_RE.match(period):
        raise ValidationError("pay_period must be YYYY-MM")
    return period
