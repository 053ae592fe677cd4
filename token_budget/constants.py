# token_budget/constants.py
"""
Default constants for token-budget.
All tunable values are centralised here so they can be overridden via
EstimatorConfig without touching internal logic.
"""

# ---------------------------------------------------------------------------
# Counter: tokenizer selection and fallback
# ---------------------------------------------------------------------------
DEFAULT_ENCODING: str = "cl100k_base"
O200K_ENCODING: str = "o200k_base"

O200K_FAMILY_MARKERS: tuple[str, ...] = ("gpt-4o", "gpt-4.1", "gpt-5", "o1", "o3", "o4")
"""Substrings of a model family that select the o200k_base encoding."""

FALLBACK_CHARS_PER_TOKEN: float = 3.5
"""Characters per token assumed when no tokenizer is available."""

TEXT_CACHE_SIZE: int = 5_000
"""Capacity of the counter's per-text memo cache."""

# ---------------------------------------------------------------------------
# Counter: structural overheads
# ---------------------------------------------------------------------------
SYSTEM_PROMPT_OVERHEAD: int = 28
"""Tokens added by the vendor's wrapping of the system prompt."""

TOOLS_BASE_OVERHEAD: int = 16
PER_TOOL_OVERHEAD: int = 8

TOOL_SAFETY_MULTIPLIER: float = 1.1
"""Tool schemas are under-counted by raw encoders; scale the total up."""

TOOL_CALL_OVERHEAD: int = 4
TOOL_RESULT_OVERHEAD: int = 4

MESSAGE_OVERHEAD: int = 4
"""Role + separators per message in chat format."""

# ---------------------------------------------------------------------------
# Counter: image heuristics
# ---------------------------------------------------------------------------
ANTHROPIC_IMAGE_TOKENS: int = 1_600
IMAGE_TILE_SIZE: int = 512
IMAGE_TILE_TOKENS: int = 85
IMAGE_BASE_TOKENS: int = 85
IMAGE_MAX_DIMENSION: int = 2_048
IMAGE_MAX_TOKENS: int = 1_700
IMAGE_BYTES_PER_PIXEL: int = 3

# ---------------------------------------------------------------------------
# Ground-truth cache
# ---------------------------------------------------------------------------
GROUND_TRUTH_CACHE_SIZE: int = 5_000

DATA_SAMPLE_BYTES: int = 1_024
"""Binary payloads above 2x this size are digested from head + tail samples."""

# ---------------------------------------------------------------------------
# Conversation state
# ---------------------------------------------------------------------------
CONVERSATION_CAPACITY: int = 100
CONVERSATION_TTL_SECONDS: int = 3_600

DEFAULT_CONVERSATION: str = "__default__"
"""Conversation key used when the caller supplies no conversation id."""

# ---------------------------------------------------------------------------
# Call sequences
# ---------------------------------------------------------------------------
SEQUENCE_GAP_MS: int = 500
"""A gap longer than this since the previous call starts a new sequence."""

# ---------------------------------------------------------------------------
# Calibration
# ---------------------------------------------------------------------------
EMA_ALPHA: float = 0.2
"""Weight of the newest actual/estimated ratio in the correction factor."""

DEFAULT_CORRECTION_FACTOR: float = 1.0

HIGH_CONFIDENCE_MIN_SAMPLES: int = 10
HIGH_CONFIDENCE_MAX_DRIFT: float = 0.10
MEDIUM_CONFIDENCE_MIN_SAMPLES: int = 3

VALID_CONFIDENCES = frozenset({"low", "medium", "high"})

CONFIDENCE_MARGINS: dict[str, float] = {
    "high": 0.05,
    "medium": 0.10,
    "low": 0.15,
}
API_ACTUAL_MARGIN: float = 0.02

LIMIT_MULTIPLIERS: dict[str, float] = {
    "high": 0.95,
    "medium": 0.85,
    "low": 0.75,
}
"""Share of max_input_tokens a caller may plan for at each confidence tier."""

# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------
STORAGE_KEY: str = "token_budget:calibrations"
