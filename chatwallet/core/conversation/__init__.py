from .models import ConversationFlow, FlowKind, FlowStep, InputKind
from .orchestrator import WalletBot
from .state_machine import ConversationStateMachine, InvalidTransitionError

__all__ = [
    "ConversationFlow",
    "ConversationStateMachine",
    "FlowKind",
    "FlowStep",
    "InputKind",
    "InvalidTransitionError",
    "WalletBot",
]
