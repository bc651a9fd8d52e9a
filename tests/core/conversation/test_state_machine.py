"""
Tests for the Conversation State Machine

Covers step ordering per flow kind, input gating and branching.
"""

import pytest

from chatwallet.core.conversation import (
    ConversationStateMachine,
    FlowKind,
    FlowStep,
    InputKind,
    InvalidTransitionError,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def machine() -> ConversationStateMachine:
    return ConversationStateMachine()


# =============================================================================
# Lifecycle
# =============================================================================

class TestFlowLifecycle:

    def test_start_enters_first_step(self, machine: ConversationStateMachine):
        flow = machine.start(1, 10, FlowKind.WITHDRAW)

        assert flow.step == FlowStep.AWAITING_DESTINATION
        assert flow.chat_id == 10
        assert machine.get(1) is flow
        assert len(machine) == 1

    def test_withdraw_steps_in_order(self, machine: ConversationStateMachine):
        machine.start(1, 10, FlowKind.WITHDRAW)

        assert machine.advance(1, destination="0.0.9").step == FlowStep.AWAITING_AMOUNT
        assert machine.advance(1, amount=1).step == FlowStep.AWAITING_CONFIRMATION
        flow = machine.advance(1)

        assert flow.step == FlowStep.EXECUTING
        assert flow.collected == {"destination": "0.0.9", "amount": 1}

    def test_cannot_advance_past_terminal_step(self, machine: ConversationStateMachine):
        machine.start(1, 10, FlowKind.BUY)
        for _ in range(3):
            machine.advance(1)

        with pytest.raises(InvalidTransitionError):
            machine.advance(1)

    def test_advance_without_flow(self, machine: ConversationStateMachine):
        with pytest.raises(KeyError):
            machine.advance(99)

    def test_start_replaces_existing_flow(self, machine: ConversationStateMachine):
        machine.start(1, 10, FlowKind.BUY)
        machine.advance(1, token_id="0.0.5")

        flow = machine.start(1, 10, FlowKind.WITHDRAW)

        assert machine.get(1) is flow
        assert flow.collected == {}
        assert len(machine) == 1

    def test_finish_removes_flow(self, machine: ConversationStateMachine):
        machine.start(1, 10, FlowKind.BUY)

        assert machine.finish(1).kind == FlowKind.BUY
        assert machine.get(1) is None
        assert machine.finish(1) is None

    def test_flows_are_per_user(self, machine: ConversationStateMachine):
        machine.start(1, 10, FlowKind.BUY)
        machine.start(2, 20, FlowKind.WITHDRAW)
        machine.advance(1)

        assert machine.get(1).step == FlowStep.AWAITING_AMOUNT
        assert machine.get(2).step == FlowStep.AWAITING_DESTINATION


# =============================================================================
# Input gating and branching
# =============================================================================

class TestInputGating:

    def test_text_step_ignores_callbacks(self, machine: ConversationStateMachine):
        machine.start(1, 10, FlowKind.WITHDRAW)

        assert machine.expecting(1, InputKind.TEXT) is not None
        assert machine.expecting(1, InputKind.CALLBACK) is None

    def test_confirmation_step_only_takes_callbacks(self, machine: ConversationStateMachine):
        machine.start(1, 10, FlowKind.WITHDRAW)
        machine.advance(1)
        machine.advance(1)

        assert machine.expecting(1, InputKind.TEXT) is None
        assert machine.expecting(1, InputKind.CALLBACK) is not None

    def test_executing_step_takes_nothing(self, machine: ConversationStateMachine):
        machine.start(1, 10, FlowKind.WITHDRAW)
        for _ in range(3):
            machine.advance(1)

        assert machine.expecting(1, InputKind.TEXT) is None
        assert machine.expecting(1, InputKind.CALLBACK) is None

    def test_no_flow_expects_nothing(self, machine: ConversationStateMachine):
        assert machine.expecting(1, InputKind.TEXT) is None


class TestSellBranching:

    def test_sell_all_skips_amount_and_confirmation(self, machine: ConversationStateMachine):
        machine.start(1, 10, FlowKind.SELL_MANUAL)
        machine.advance(1, token_id="0.0.5")
        assert machine.expecting(1, InputKind.CALLBACK).step == FlowStep.AWAITING_SELL_MODE

        machine.branch(1, FlowKind.SELL_ALL)

        assert machine.advance(1).step == FlowStep.EXECUTING

    def test_sell_manual_collects_amount(self, machine: ConversationStateMachine):
        machine.start(1, 10, FlowKind.SELL_MANUAL)
        machine.advance(1)
        machine.branch(1, FlowKind.SELL_MANUAL)

        assert machine.advance(1).step == FlowStep.AWAITING_AMOUNT

    def test_branch_outside_branching_step(self, machine: ConversationStateMachine):
        machine.start(1, 10, FlowKind.SELL_MANUAL)

        with pytest.raises(InvalidTransitionError):
            machine.branch(1, FlowKind.SELL_ALL)

    def test_branch_to_unrelated_kind(self, machine: ConversationStateMachine):
        machine.start(1, 10, FlowKind.SELL_MANUAL)
        machine.advance(1)

        with pytest.raises(InvalidTransitionError):
            machine.branch(1, FlowKind.BUY)
