"""
Transaction plan models and types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Tuple


SUCCESS_STATUS = "SUCCESS"


class StepKind(str, Enum):
    """Ledger operations a plan step can perform."""
    TRANSFER = "transfer"            # Native transfer between accounts
    ASSOCIATE = "associate"          # Make an account eligible to hold a token
    CONTRACT_CALL = "contract_call"  # Smart contract execution


class OperationKind(str, Enum):
    """Logical operations a user confirms."""
    WITHDRAW = "withdraw"
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True)
class ContractParam:
    """One typed ABI argument, e.g. ``("uint256", 0)`` or ``("address[]", [...])``."""
    abi_type: str
    value: Any


@dataclass
class TransactionStep:
    """A single on-chain call within a plan."""
    kind: StepKind
    target: str                                 # Contract, token, or destination account id
    function: Optional[str] = None              # Contract function name
    params: Tuple[ContractParam, ...] = ()
    gas_limit: Optional[int] = None
    payable_amount: Optional[int] = None        # Tinybars attached to a contract call
    amount_base_units: Optional[int] = None     # Transfer amount in tinybars
    memo: Optional[str] = None
    fatal: bool = True                          # Non-fatal failures are logged and skipped
    description: str = ""

    @property
    def label(self) -> str:
        if self.function:
            return f"{self.kind.value}:{self.function}"
        return self.kind.value


@dataclass
class TransactionPlan:
    """Ordered steps realizing one logical operation."""
    operation: OperationKind
    account_id: str
    steps: List[TransactionStep] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def add(self, step: TransactionStep) -> "TransactionPlan":
        self.steps.append(step)
        return self


@dataclass(frozen=True)
class LedgerReceipt:
    """Receipt returned by the ledger for a submitted step."""
    status: str
    transaction_id: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status == SUCCESS_STATUS


@dataclass
class StepOutcome:
    """What happened to one step of a plan."""
    step: TransactionStep
    receipt: Optional[LedgerReceipt] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.receipt is not None and self.receipt.is_success


@dataclass
class PlanResult:
    """Consolidated outcome of a plan; only produced when every fatal step succeeded."""
    plan: TransactionPlan
    outcomes: List[StepOutcome] = field(default_factory=list)

    @property
    def final_receipt(self) -> Optional[LedgerReceipt]:
        for outcome in reversed(self.outcomes):
            if outcome.receipt is not None and outcome.step.fatal:
                return outcome.receipt
        return None

    @property
    def transaction_id(self) -> Optional[str]:
        receipt = self.final_receipt
        return receipt.transaction_id if receipt else None

    @property
    def skipped_failures(self) -> List[StepOutcome]:
        return [o for o in self.outcomes if not o.step.fatal and not o.succeeded]
