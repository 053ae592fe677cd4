# token_budget/__init__.py
"""
token-budget — cheap, self-correcting input-token estimation for chat requests.

Public API surface:
  HybridTokenEstimator — main class; estimate conversations/messages, feed back actuals
  EstimatorConfig      — top-level configuration model
  ChatMessage          — role + typed content parts
  TextPart, DataPart, ToolCallPart, ToolResultPart — content part variants
  ModelInfo            — model family and max input tokens
  ToolSchema           — tool definition for count_tools()
  TokenEstimate        — per-call estimate with confidence, source and margin
  ConversationEstimate — conversation-level estimate (exact / delta / estimated)
  EffectiveLimit       — confidence-discounted input budget
  CalibrationState     — learned per-family correction
  TokenCounter         — tiktoken-backed counter, usable on its own
  TokenBudgetError     — base of all token-budget exceptions
"""

from .config import EstimatorConfig
from .engine.counter import TokenCounter
from .estimator import HybridTokenEstimator
from .exceptions import ConfigError, PersistenceError, TokenBudgetError
from .models import (
    CalibrationState,
    ChatMessage,
    ConversationEstimate,
    ConversationLookup,
    DataPart,
    EffectiveLimit,
    ModelInfo,
    TextPart,
    TokenEstimate,
    ToolCallPart,
    ToolResultPart,
    ToolSchema,
)

__all__ = [
    "HybridTokenEstimator",
    "EstimatorConfig",
    "ChatMessage",
    "TextPart",
    "DataPart",
    "ToolCallPart",
    "ToolResultPart",
    "ModelInfo",
    "ToolSchema",
    "TokenEstimate",
    "ConversationEstimate",
    "ConversationLookup",
    "EffectiveLimit",
    "CalibrationState",
    "TokenCounter",
    "TokenBudgetError",
    "ConfigError",
    "PersistenceError",
]

__version__ = "0.1.0"
