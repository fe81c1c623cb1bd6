"""Contact flow execution."""

from .flow import CONTACT_LOCK, ContactFailure, ContactFlowExecutor, ContactOutcome, FlowState, compose_message

__all__ = [
    "CONTACT_LOCK",
    "ContactFailure",
    "ContactFlowExecutor",
    "ContactOutcome",
    "FlowState",
    "compose_message",
]
