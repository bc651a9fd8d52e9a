"""
Button callback payloads.

Confirmation buttons carry the fully resolved operation so that executing
it needs nothing beyond the user's credentials. Payloads come back from the
client untrusted and are re-validated on decode.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, localcontext
from typing import Optional

from ..errors import ValidationError
from ..execution.models import OperationKind
from .validators import parse_amount, parse_ledger_id

# Telegram rejects callback_data longer than this many bytes
MAX_CALLBACK_BYTES = 64

CONFIRM_PREFIX = "confirm_"
ESTIMATE_QUANTUM = Decimal("0.0001")


class Action:
    """Static callback_data values."""
    MENU = "menu"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BUY = "buy"
    SELL = "sell"
    DOWNLOAD_KEY = "download_pk"
    SELL_MANUAL = "sell_manual"
    SELL_ALL = "sell_all"
    CANCEL_WITHDRAW = "cancel_withdraw"
    CANCEL_BUY = "cancel_buy"
    CANCEL_SELL = "cancel_sell"


CANCEL_ACTIONS = {
    Action.CANCEL_WITHDRAW: OperationKind.WITHDRAW,
    Action.CANCEL_BUY: OperationKind.BUY,
    Action.CANCEL_SELL: OperationKind.SELL,
}


def _plain(amount: Decimal) -> str:
    """Fixed-point rendering without exponent or trailing zeros."""
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(amount.as_tuple().digits))
        return format(amount.normalize(), "f")


@dataclass(frozen=True)
class Confirmation:
    """A decoded confirm button."""
    operation: OperationKind
    target: str                          # Destination account (withdraw) or token id
    amount: Decimal                      # Native amount for withdraw/buy, token amount for sell
    estimate: Optional[Decimal] = None   # Expected tokens out for buy

    def encode(self) -> str:
        parts = [self.operation.value, self.target, _plain(self.amount)]
        if self.estimate is not None:
            parts.append(_plain(self.estimate.quantize(ESTIMATE_QUANTUM, rounding=ROUND_DOWN)))
        payload = CONFIRM_PREFIX + "_".join(parts)
        if len(payload.encode("utf-8")) > MAX_CALLBACK_BYTES:
            raise ValidationError("Confirmation payload too long", field="callback", value=payload)
        return payload


def parse_confirmation(data: Optional[str]) -> Optional[Confirmation]:
    """Decode ``confirm_<op>_<target>_<amount>[_<estimate>]``; None for other payloads."""
    if not data or not data.startswith(CONFIRM_PREFIX):
        return None

    parts = data[len(CONFIRM_PREFIX):].split("_")
    try:
        operation = OperationKind(parts[0])
    except ValueError as exc:
        raise ValidationError(f"Unknown confirmation {data!r}", field="callback", value=data) from exc

    expected = 4 if operation == OperationKind.BUY else 3
    if len(parts) != expected:
        raise ValidationError(f"Malformed confirmation {data!r}", field="callback", value=data)

    field = "destination" if operation == OperationKind.WITHDRAW else "token"
    target = parse_ledger_id(parts[1], field=field)
    amount = parse_amount(parts[2])
    estimate = None
    if operation == OperationKind.BUY:
        estimate = Decimal(0) if parts[3] == "0" else parse_amount(parts[3], field="estimate")
    return Confirmation(operation=operation, target=target, amount=amount, estimate=estimate)
