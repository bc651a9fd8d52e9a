"""
Transaction sequencer for multi-step ledger operations.

Builds the ordered plan for a confirmed operation and executes it:
- Withdraw: single native transfer
- Buy: associate (only when the token balance is zero, non-fatal) -> swap
- Sell: approve -> swap, swap never attempted unless approve succeeded

Each step is submitted exactly once. Failed steps are reported, never
retried, so a confirmation can't turn into a double spend.
"""

import asyncio
import logging
import time
from decimal import Decimal, ROUND_FLOOR, localcontext
from typing import Callable, Dict, Optional

from ...config import settings
from ...providers.base import LedgerProvider
from ...services.address import to_evm_address
from ..errors import LedgerCallFailed, TransactionFailed, ValidationError
from ..wallet.models import Credentials
from .models import (
    ContractParam,
    LedgerReceipt,
    OperationKind,
    PlanResult,
    StepKind,
    StepOutcome,
    TransactionPlan,
    TransactionStep,
)


logger = logging.getLogger(__name__)


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Scale a human amount to integer base units, truncating toward zero."""
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(amount.as_tuple().digits) + abs(decimals))
        scaled = amount.scaleb(decimals)
        return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def from_base_units(raw: int, decimals: int) -> Decimal:
    return Decimal(raw) / (Decimal(10) ** decimals)


class TransactionSequencer:
    """
    Executes transaction plans against a ledger provider.

    Plans for the same account are serialized with a per-account lock, so
    one user's operations never interleave even if two confirmations race.
    """

    def __init__(
        self,
        ledger: LedgerProvider,
        *,
        native_asset_id: Optional[str] = None,
        native_decimals: Optional[int] = None,
        pool_contract_id: Optional[str] = None,
        swap_gas_limit: Optional[int] = None,
        approve_gas_limit: Optional[int] = None,
        deadline_minutes: Optional[int] = None,
        transfer_memo: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ledger = ledger
        self.native_asset_id = native_asset_id or settings.native_asset_id
        self.native_decimals = settings.native_decimals if native_decimals is None else native_decimals
        self.pool_contract_id = pool_contract_id or settings.pool_contract_id
        self.swap_gas_limit = swap_gas_limit or settings.swap_gas_limit
        self.approve_gas_limit = approve_gas_limit or settings.approve_gas_limit
        self.deadline_minutes = deadline_minutes or settings.swap_deadline_minutes
        self.transfer_memo = transfer_memo if transfer_memo is not None else settings.transfer_memo
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_lock(self, account_id: str) -> asyncio.Lock:
        if account_id not in self._locks:
            self._locks[account_id] = asyncio.Lock()
        return self._locks[account_id]

    def _deadline(self) -> int:
        return int(self._clock()) + self.deadline_minutes * 60

    def _native_base_units(self, amount: Decimal) -> int:
        units = to_base_units(amount, self.native_decimals)
        if units <= 0:
            raise ValidationError(f"Amount {amount} is below the smallest native unit", field="amount")
        return units

    # ------------------------------------------------------------------
    # Plan builders
    # ------------------------------------------------------------------
    def build_withdraw_plan(self, account_id: str, destination: str, amount: Decimal) -> TransactionPlan:
        plan = TransactionPlan(operation=OperationKind.WITHDRAW, account_id=account_id)
        return plan.add(TransactionStep(
            kind=StepKind.TRANSFER,
            target=destination,
            amount_base_units=self._native_base_units(amount),
            memo=self.transfer_memo,
            description=f"Transfer {amount} to {destination}",
        ))

    def build_buy_plan(
        self,
        account_id: str,
        token_id: str,
        native_amount: Decimal,
        *,
        needs_association: bool,
    ) -> TransactionPlan:
        plan = TransactionPlan(operation=OperationKind.BUY, account_id=account_id)
        if needs_association:
            # The swap is still attempted if this fails; the ledger rejects it
            # with a clearer status when association really was required.
            plan.add(TransactionStep(
                kind=StepKind.ASSOCIATE,
                target=token_id,
                fatal=False,
                description=f"Associate {token_id}",
            ))
        path = [to_evm_address(self.native_asset_id), to_evm_address(token_id)]
        plan.add(TransactionStep(
            kind=StepKind.CONTRACT_CALL,
            target=self.pool_contract_id,
            function="swapExactETHForTokens",
            params=(
                ContractParam("uint256", 0),
                ContractParam("address[]", path),
                ContractParam("address", to_evm_address(account_id)),
                ContractParam("uint256", self._deadline()),
            ),
            gas_limit=self.swap_gas_limit,
            payable_amount=self._native_base_units(native_amount),
            description=f"Swap {native_amount} native for {token_id}",
        ))
        return plan

    def build_sell_plan(self, account_id: str, token_id: str, amount_base_units: int) -> TransactionPlan:
        if amount_base_units <= 0:
            raise ValidationError("Nothing to sell", field="amount")
        plan = TransactionPlan(operation=OperationKind.SELL, account_id=account_id)
        plan.add(TransactionStep(
            kind=StepKind.CONTRACT_CALL,
            target=token_id,
            function="approve",
            params=(
                ContractParam("address", to_evm_address(self.pool_contract_id)),
                ContractParam("uint256", amount_base_units),
            ),
            gas_limit=self.approve_gas_limit,
            description=f"Approve pool for {amount_base_units} units of {token_id}",
        ))
        path = [to_evm_address(token_id), to_evm_address(self.native_asset_id)]
        plan.add(TransactionStep(
            kind=StepKind.CONTRACT_CALL,
            target=self.pool_contract_id,
            function="swapExactTokensForETH",
            params=(
                ContractParam("uint256", amount_base_units),
                ContractParam("uint256", 0),
                ContractParam("address[]", path),
                ContractParam("address", to_evm_address(account_id)),
                ContractParam("uint256", self._deadline()),
            ),
            gas_limit=self.swap_gas_limit,
            description=f"Swap {amount_base_units} units of {token_id} for native",
        ))
        return plan

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    async def _submit_once(self, step: TransactionStep, signer: Credentials) -> LedgerReceipt:
        try:
            return await self.ledger.submit(step, signer)
        except LedgerCallFailed:
            raise
        except Exception as e:  # noqa: BLE001
            raise LedgerCallFailed(f"{step.label} raised: {e}", operation=step.label) from e

    async def _run_locked(self, plan: TransactionPlan, signer: Credentials) -> PlanResult:
        result = PlanResult(plan=plan)
        for index, step in enumerate(plan.steps):
            logger.info(
                f"{plan.operation.value} {plan.account_id}: step {index + 1}/{len(plan.steps)} {step.label}"
            )
            try:
                receipt = await self._submit_once(step, signer)
            except LedgerCallFailed as e:
                result.outcomes.append(StepOutcome(step=step, error=e.message))
                if step.fatal:
                    logger.error(f"{plan.operation.value} {plan.account_id}: {step.label} failed: {e.message}")
                    raise
                logger.warning(f"{plan.operation.value} {plan.account_id}: {step.label} failed, continuing: {e.message}")
                continue

            result.outcomes.append(StepOutcome(step=step, receipt=receipt))
            if receipt.is_success:
                continue
            if step.fatal:
                logger.error(
                    f"{plan.operation.value} {plan.account_id}: {step.label} returned {receipt.status}"
                )
                raise TransactionFailed(receipt.status, operation=step.label, transaction_id=receipt.transaction_id)
            logger.warning(
                f"{plan.operation.value} {plan.account_id}: {step.label} returned {receipt.status}, continuing"
            )
        return result

    async def run(self, plan: TransactionPlan, signer: Credentials) -> PlanResult:
        """Execute a prepared plan under the account lock."""
        async with self._get_lock(plan.account_id):
            return await self._run_locked(plan, signer)

    async def withdraw(self, signer: Credentials, destination: str, amount: Decimal) -> PlanResult:
        plan = self.build_withdraw_plan(signer.account_id, destination, amount)
        return await self.run(plan, signer)

    async def buy(self, signer: Credentials, token_id: str, native_amount: Decimal) -> PlanResult:
        async with self._get_lock(signer.account_id):
            try:
                balance = await self.ledger.get_token_balance(signer.account_id, token_id)
            except LedgerCallFailed:
                raise
            except Exception as e:  # noqa: BLE001
                raise LedgerCallFailed(f"Token balance query failed: {e}", operation="balance") from e
            plan = self.build_buy_plan(
                signer.account_id,
                token_id,
                native_amount,
                needs_association=balance == 0,
            )
            return await self._run_locked(plan, signer)

    async def sell(self, signer: Credentials, token_id: str, amount_base_units: int) -> PlanResult:
        plan = self.build_sell_plan(signer.account_id, token_id, amount_base_units)
        return await self.run(plan, signer)
