"""
Tests for the transaction sequencer.

Plans are checked for exact step order and parameters; execution is
checked for single-attempt, stop-on-fatal-failure behaviour.
"""

import asyncio
from decimal import Decimal

import pytest

from chatwallet.core.errors import LedgerCallFailed, TransactionFailed, ValidationError
from chatwallet.core.execution.models import OperationKind, StepKind
from chatwallet.core.execution.sequencer import from_base_units, to_base_units
from chatwallet.core.wallet.models import Credentials


ACCOUNT_ID = "0.0.5005"
TOKEN_ID = "0.0.1234"
NATIVE_EVM = "0x" + "0" * 34 + "163b5a"
POOL_EVM = "0x" + "0" * 34 + "2e7a5d"
DEADLINE = 1_700_000_000 + 20 * 60


@pytest.fixture
def signer() -> Credentials:
    return Credentials(account_id=ACCOUNT_ID, private_key="ab" * 32)


# =============================================================================
# Unit conversion
# =============================================================================

class TestBaseUnits:

    def test_to_base_units_floors(self):
        assert to_base_units(Decimal("0.123456789"), 8) == 12_345_678
        assert to_base_units(Decimal("2.5"), 6) == 2_500_000

    def test_to_base_units_keeps_every_digit(self):
        amount = Decimal("123456789012345.123456789012345678")

        assert to_base_units(amount, 18) == 123456789012345123456789012345678

    def test_from_base_units(self):
        assert from_base_units(2_500_000, 6) == Decimal("2.5")
        assert from_base_units(0, 8) == 0


# =============================================================================
# Plan building
# =============================================================================

class TestPlans:

    def test_withdraw_plan(self, sequencer):
        plan = sequencer.build_withdraw_plan(ACCOUNT_ID, "0.0.9999", Decimal("1.5"))

        assert plan.operation == OperationKind.WITHDRAW
        assert len(plan.steps) == 1
        step = plan.steps[0]
        assert step.kind == StepKind.TRANSFER
        assert step.amount_base_units == 150_000_000
        assert step.memo == "Telegram Bot Withdrawal"

    def test_dust_withdrawal_rejected(self, sequencer):
        with pytest.raises(ValidationError):
            sequencer.build_withdraw_plan(ACCOUNT_ID, "0.0.9999", Decimal("0.000000001"))

    def test_buy_plan_with_association(self, sequencer):
        plan = sequencer.build_buy_plan(ACCOUNT_ID, TOKEN_ID, Decimal("10"), needs_association=True)

        associate, swap = plan.steps
        assert associate.kind == StepKind.ASSOCIATE
        assert associate.fatal is False
        assert swap.target == "0.0.3045981"
        assert swap.function == "swapExactETHForTokens"
        assert swap.gas_limit == 1_120_000
        assert swap.payable_amount == 1_000_000_000
        assert [p.value for p in swap.params] == [
            0,
            [NATIVE_EVM, "0x" + "0" * 37 + "4d2"],
            "0x" + "0" * 36 + "138d",
            DEADLINE,
        ]

    def test_buy_plan_without_association(self, sequencer):
        plan = sequencer.build_buy_plan(ACCOUNT_ID, TOKEN_ID, Decimal("10"), needs_association=False)

        assert [step.function for step in plan.steps] == ["swapExactETHForTokens"]

    def test_sell_plan_approves_exact_amount_first(self, sequencer):
        approve, swap = sequencer.build_sell_plan(ACCOUNT_ID, TOKEN_ID, 2_500_000).steps

        assert approve.target == TOKEN_ID
        assert approve.function == "approve"
        assert approve.gas_limit == 854_241
        assert [p.value for p in approve.params] == [POOL_EVM, 2_500_000]
        assert swap.function == "swapExactTokensForETH"
        assert swap.params[0].value == 2_500_000
        assert swap.params[2].value == ["0x" + "0" * 37 + "4d2", NATIVE_EVM]
        assert swap.params[4].value == DEADLINE

    def test_sell_plan_rejects_zero(self, sequencer):
        with pytest.raises(ValidationError):
            sequencer.build_sell_plan(ACCOUNT_ID, TOKEN_ID, 0)


# =============================================================================
# Execution
# =============================================================================

class TestExecution:

    @pytest.mark.asyncio
    async def test_withdraw_reports_transaction_id(self, sequencer, ledger, signer):
        result = await sequencer.withdraw(signer, "0.0.9999", Decimal("1"))

        assert ledger.labels == ["transfer"]
        assert result.transaction_id == "0.0.5005@1"

    @pytest.mark.asyncio
    async def test_failed_receipt_raises_with_status(self, sequencer, ledger, signer):
        ledger.outcomes["transfer"] = "INVALID_ACCOUNT_ID"

        with pytest.raises(TransactionFailed) as exc:
            await sequencer.withdraw(signer, "0.0.9999", Decimal("1"))

        assert exc.value.status == "INVALID_ACCOUNT_ID"
        assert len(ledger.submitted) == 1

    @pytest.mark.asyncio
    async def test_approve_failure_never_swaps(self, sequencer, ledger, signer):
        ledger.outcomes["contract_call:approve"] = "CONTRACT_REVERT_EXECUTED"

        with pytest.raises(TransactionFailed):
            await sequencer.sell(signer, TOKEN_ID, 1_000)

        assert ledger.labels == ["contract_call:approve"]

    @pytest.mark.asyncio
    async def test_submission_exception_is_wrapped(self, sequencer, ledger, signer):
        ledger.outcomes["contract_call:approve"] = RuntimeError("connection reset")

        with pytest.raises(LedgerCallFailed) as exc:
            await sequencer.sell(signer, TOKEN_ID, 1_000)

        assert not isinstance(exc.value, TransactionFailed)
        assert ledger.labels == ["contract_call:approve"]

    @pytest.mark.asyncio
    async def test_buy_associates_only_without_holding(self, sequencer, ledger, signer):
        await sequencer.buy(signer, TOKEN_ID, Decimal("1"))
        ledger.token_balances[(ACCOUNT_ID, TOKEN_ID)] = 10
        await sequencer.buy(signer, TOKEN_ID, Decimal("1"))

        assert ledger.labels == [
            "associate",
            "contract_call:swapExactETHForTokens",
            "contract_call:swapExactETHForTokens",
        ]

    @pytest.mark.asyncio
    async def test_association_failure_is_skipped(self, sequencer, ledger, signer):
        ledger.outcomes["associate"] = "TOKEN_ALREADY_ASSOCIATED_TO_ACCOUNT"

        result = await sequencer.buy(signer, TOKEN_ID, Decimal("1"))

        assert [o.step.kind for o in result.skipped_failures] == [StepKind.ASSOCIATE]
        assert result.final_receipt.status == "SUCCESS"

    @pytest.mark.asyncio
    async def test_same_account_plans_do_not_interleave(self, sequencer, ledger, signer):
        await asyncio.gather(
            sequencer.sell(signer, TOKEN_ID, 1_000),
            sequencer.sell(signer, TOKEN_ID, 2_000),
        )

        assert ledger.labels == [
            "contract_call:approve",
            "contract_call:swapExactTokensForETH",
            "contract_call:approve",
            "contract_call:swapExactTokensForETH",
        ]
