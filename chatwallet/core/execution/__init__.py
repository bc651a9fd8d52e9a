"""
Transaction Execution Module

Plan models for ordered ledger operations. The sequencer that runs them
lives in ``chatwallet.core.execution.sequencer``.
"""

from .models import (
    SUCCESS_STATUS,
    ContractParam,
    LedgerReceipt,
    OperationKind,
    PlanResult,
    StepKind,
    StepOutcome,
    TransactionPlan,
    TransactionStep,
)

__all__ = [
    "SUCCESS_STATUS",
    "ContractParam",
    "LedgerReceipt",
    "OperationKind",
    "PlanResult",
    "StepKind",
    "StepOutcome",
    "TransactionPlan",
    "TransactionStep",
]
