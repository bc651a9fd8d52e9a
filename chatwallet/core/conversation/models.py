"""
Conversation flow models.

A flow is the ephemeral state of one multi-step action (withdraw, buy,
sell) for one user. It only ever moves forward one step at a time, and
only after the current step's input validated.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class FlowKind(str, Enum):
    """Kinds of multi-step flows."""
    WITHDRAW = "withdraw"
    BUY = "buy"
    SELL_ALL = "sell_all"
    SELL_MANUAL = "sell_manual"


class FlowStep(str, Enum):
    """What the flow is waiting for."""
    AWAITING_DESTINATION = "awaiting_destination"
    AWAITING_TOKEN = "awaiting_token"
    AWAITING_SELL_MODE = "awaiting_sell_mode"
    AWAITING_AMOUNT = "awaiting_amount"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    EXECUTING = "executing"


class InputKind(str, Enum):
    """Inbound event types a step can consume."""
    TEXT = "text"
    CALLBACK = "callback"


@dataclass
class ConversationFlow:
    """One active flow for one user."""
    user_id: int
    chat_id: int
    kind: FlowKind
    step: FlowStep
    collected: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def get(self, name: str, default: Optional[Any] = None) -> Any:
        return self.collected.get(name, default)
