"""
Conversation State Machine

Keeps at most one active flow per user and advances it through the ordered
steps of its kind. The dispatcher asks which flow, if any, consumes an
inbound event; anything a flow does not expect is ignored.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from .models import ConversationFlow, FlowKind, FlowStep, InputKind


class InvalidTransitionError(Exception):
    """Raised when a flow is asked to move somewhere its kind does not allow."""

    def __init__(self, kind: FlowKind, from_step: FlowStep, message: str):
        super().__init__(message)
        self.kind = kind
        self.from_step = from_step
        self.message = message


class ConversationStateMachine:
    """
    Per-user flow registry.

    Features:
    - Ordered step sequence per flow kind
    - One active flow per user; starting a new one replaces the old
    - Input-type gating per step (free text vs. button callback)
    """

    # Ordered steps for each flow kind
    FLOW_STEPS: Dict[FlowKind, Tuple[FlowStep, ...]] = {
        FlowKind.WITHDRAW: (
            FlowStep.AWAITING_DESTINATION,
            FlowStep.AWAITING_AMOUNT,
            FlowStep.AWAITING_CONFIRMATION,
            FlowStep.EXECUTING,
        ),
        FlowKind.BUY: (
            FlowStep.AWAITING_TOKEN,
            FlowStep.AWAITING_AMOUNT,
            FlowStep.AWAITING_CONFIRMATION,
            FlowStep.EXECUTING,
        ),
        FlowKind.SELL_MANUAL: (
            FlowStep.AWAITING_TOKEN,
            FlowStep.AWAITING_SELL_MODE,
            FlowStep.AWAITING_AMOUNT,
            FlowStep.AWAITING_CONFIRMATION,
            FlowStep.EXECUTING,
        ),
        FlowKind.SELL_ALL: (
            FlowStep.AWAITING_TOKEN,
            FlowStep.AWAITING_SELL_MODE,
            FlowStep.EXECUTING,
        ),
    }

    # Which inbound event each waiting step consumes
    STEP_INPUTS: Dict[FlowStep, InputKind] = {
        FlowStep.AWAITING_DESTINATION: InputKind.TEXT,
        FlowStep.AWAITING_TOKEN: InputKind.TEXT,
        FlowStep.AWAITING_AMOUNT: InputKind.TEXT,
        FlowStep.AWAITING_SELL_MODE: InputKind.CALLBACK,
        FlowStep.AWAITING_CONFIRMATION: InputKind.CALLBACK,
    }

    # Flow kinds that share a prefix and may be switched at the branching step
    BRANCHES: Dict[FlowStep, Tuple[FlowKind, ...]] = {
        FlowStep.AWAITING_SELL_MODE: (FlowKind.SELL_MANUAL, FlowKind.SELL_ALL),
    }

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._flows: Dict[int, ConversationFlow] = {}

    def __len__(self) -> int:
        return len(self._flows)

    def get(self, user_id: int) -> Optional[ConversationFlow]:
        return self._flows.get(user_id)

    def start(self, user_id: int, chat_id: int, kind: FlowKind) -> ConversationFlow:
        """Create a flow at the first step of its kind, replacing any active one."""
        previous = self._flows.get(user_id)
        if previous is not None:
            self.logger.info(
                f"User {user_id}: {previous.kind.value} flow at {previous.step.value} replaced by {kind.value}"
            )
        flow = ConversationFlow(
            user_id=user_id,
            chat_id=chat_id,
            kind=kind,
            step=self.FLOW_STEPS[kind][0],
        )
        self._flows[user_id] = flow
        self.logger.debug(f"User {user_id}: started {kind.value} flow at {flow.step.value}")
        return flow

    def expecting(self, user_id: int, input_kind: InputKind) -> Optional[ConversationFlow]:
        """Return the user's flow if its current step consumes this kind of input."""
        flow = self._flows.get(user_id)
        if flow is None:
            return None
        if self.STEP_INPUTS.get(flow.step) != input_kind:
            return None
        return flow

    def next_step(self, flow: ConversationFlow) -> FlowStep:
        steps = self.FLOW_STEPS[flow.kind]
        index = steps.index(flow.step)
        if index + 1 >= len(steps):
            raise InvalidTransitionError(
                flow.kind,
                flow.step,
                f"{flow.kind.value} flow has no step after {flow.step.value}",
            )
        return steps[index + 1]

    def advance(self, user_id: int, **fields) -> ConversationFlow:
        """Record validated fields and move the user's flow to its next step."""
        flow = self._flows.get(user_id)
        if flow is None:
            raise KeyError(f"No active flow for user {user_id}")

        to_step = self.next_step(flow)
        flow.collected.update(fields)
        from_step = flow.step
        flow.step = to_step
        flow.updated_at = datetime.now(timezone.utc)
        self.logger.debug(f"User {user_id}: {flow.kind.value} {from_step.value} -> {to_step.value}")
        return flow

    def branch(self, user_id: int, kind: FlowKind) -> ConversationFlow:
        """Switch the flow to a sibling kind at a branching step."""
        flow = self._flows.get(user_id)
        if flow is None:
            raise KeyError(f"No active flow for user {user_id}")
        allowed = self.BRANCHES.get(flow.step, ())
        if flow.kind not in allowed or kind not in allowed:
            raise InvalidTransitionError(
                flow.kind,
                flow.step,
                f"Cannot switch {flow.kind.value} to {kind.value} at {flow.step.value}",
            )
        flow.kind = kind
        return flow

    def finish(self, user_id: int, reason: str = "completed") -> Optional[ConversationFlow]:
        """Drop the user's flow (terminal step, cancellation or invalid input)."""
        flow = self._flows.pop(user_id, None)
        if flow is not None:
            self.logger.debug(f"User {user_id}: {flow.kind.value} flow ended ({reason})")
        return flow
