# token_budget/engine/__init__.py
from .calibration import CalibrationManager
from .conversation import ConversationStateTracker, KnownConversationState
from .counter import TokenCounter, resolve_encoding_name
from .sequence import CallSequence, CallSequenceTracker, SequenceCall

__all__ = [
    "CalibrationManager",
    "CallSequence",
    "CallSequenceTracker",
    "ConversationStateTracker",
    "KnownConversationState",
    "SequenceCall",
    "TokenCounter",
    "resolve_encoding_name",
]
