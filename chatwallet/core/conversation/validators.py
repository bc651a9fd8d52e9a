"""Validation of untrusted chat input."""

from decimal import Decimal, InvalidOperation
from typing import Optional

from ...services.address import is_ledger_id
from ..errors import ValidationError

# Longest amount string we bother parsing, and the largest order of magnitude accepted
_MAX_AMOUNT_LENGTH = 40
_MAX_AMOUNT_EXPONENT = 15


def parse_ledger_id(text: Optional[str], field: str = "account") -> str:
    """Return the trimmed identifier or raise ``ValidationError``."""
    value = (text or "").strip()
    if not is_ledger_id(value):
        raise ValidationError(f"Invalid {field} id {value!r}", field=field, value=value)
    return value


def parse_amount(text: Optional[str], field: str = "amount") -> Decimal:
    """Parse a finite amount strictly greater than zero."""
    value = (text or "").strip()
    if not value or len(value) > _MAX_AMOUNT_LENGTH:
        raise ValidationError(f"Invalid {field} {value!r}", field=field, value=value)
    try:
        amount = Decimal(value)
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid {field} {value!r}", field=field, value=value) from exc
    if not amount.is_finite() or amount <= 0 or amount.adjusted() > _MAX_AMOUNT_EXPONENT:
        raise ValidationError(f"Invalid {field} {value!r}", field=field, value=value)
    return amount
