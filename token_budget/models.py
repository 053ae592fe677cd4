# token_budget/models.py
"""
Pydantic v2 data models used throughout token-budget.

These are part of the public API surface; changes here require a major
version bump once the library reaches 1.0.

Message content is a tagged union discriminated on the ``type`` field, so
every consumer (counter, digest) dispatches on an explicit kind instead of
probing attributes.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .constants import CONFIDENCE_MARGINS, DEFAULT_CORRECTION_FACTOR, VALID_CONFIDENCES
from .digest import digest_message

Confidence = Literal["low", "medium", "high"]
EstimateSource = Literal["api-actual", "calibrated", "tiktoken", "fallback"]
ConversationSource = Literal["exact", "delta", "estimated"]
LookupType = Literal["exact", "prefix", "none"]


# ---------------------------------------------------------------------------
# Message content
# ---------------------------------------------------------------------------


class TextPart(BaseModel):
    """Plain text content."""

    type: Literal["text"] = "text"
    value: str


class DataPart(BaseModel):
    """Binary content with a media type, e.g. an image attachment."""

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    type: Literal["data"] = "data"
    mime_type: str = Field(..., description="Media type, e.g. 'image/png'.")
    data: bytes = Field(default=b"")


class ToolCallPart(BaseModel):
    """A tool invocation emitted by the assistant."""

    type: Literal["tool_call"] = "tool_call"
    name: str
    call_id: str
    input: dict[str, Any] = Field(default_factory=dict)


ToolResultFragment = Annotated[Union[TextPart, DataPart], Field(discriminator="type")]


class ToolResultPart(BaseModel):
    """The result of a tool invocation, fed back to the model."""

    type: Literal["tool_result"] = "tool_result"
    call_id: str
    content: list[ToolResultFragment] = Field(default_factory=list)


ContentPart = Annotated[
    Union[TextPart, DataPart, ToolCallPart, ToolResultPart],
    Field(discriminator="type"),
]


class ChatMessage(BaseModel):
    """
    A single chat message: a role plus an ordered list of typed parts.

    Two messages with the same digest are treated as the same message by the
    conversation-state tracker. The ground-truth cache keys on a cheaper
    variant that samples large binary payloads.
    """

    role: Literal["system", "user", "assistant"]
    content: list[ContentPart] = Field(default_factory=list)
    name: str | None = None

    @classmethod
    def user(cls, text: str) -> "ChatMessage":
        return cls(role="user", content=[TextPart(value=text)])

    @classmethod
    def assistant(cls, text: str) -> "ChatMessage":
        return cls(role="assistant", content=[TextPart(value=text)])

    @classmethod
    def system(cls, text: str) -> "ChatMessage":
        return cls(role="system", content=[TextPart(value=text)])

    def digest(self) -> str:
        """Stable, order-sensitive SHA-256 digest of role, name and full part content."""
        return digest_message(self)


class ToolSchema(BaseModel):
    """A tool definition as advertised to the model."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Model descriptor
# ---------------------------------------------------------------------------


class ModelInfo(BaseModel):
    """Model family and input window. Immutable per request."""

    model_config = ConfigDict(frozen=True)

    family: str = Field(..., min_length=1, description="Model family, e.g. 'claude', 'gpt-4o'.")
    max_input_tokens: int = Field(..., gt=0, description="Maximum input tokens accepted.")


# ---------------------------------------------------------------------------
# Estimates
# ---------------------------------------------------------------------------


class TokenEstimate(BaseModel):
    """A single token estimate with provenance."""

    tokens: int = Field(..., ge=0)
    confidence: Confidence
    source: EstimateSource
    margin: float = Field(
        ...,
        ge=0.0,
        description="Recommended safety fraction for this estimate (0.05 = 5%).",
    )


class ConversationEstimate(BaseModel):
    """Result of conversation-level estimation."""

    tokens: int = Field(..., ge=0, description="Total estimated input tokens.")
    known_tokens: int = Field(..., ge=0, description="Portion taken from an API-reported actual.")
    estimated_tokens: int = Field(..., ge=0, description="Portion computed by the counter.")
    new_message_count: int = Field(..., ge=0, description="Messages that had to be estimated.")
    source: ConversationSource


class ConversationLookup(BaseModel):
    """Match between a message list and the last recorded state for its key."""

    type: LookupType
    known_tokens: int | None = None
    new_message_count: int = 0
    new_message_indices: list[int] = Field(default_factory=list)


class EffectiveLimit(BaseModel):
    """Usable input budget after discounting for estimation uncertainty."""

    limit: int
    confidence: Confidence


# ---------------------------------------------------------------------------
# Calibration
# ---------------------------------------------------------------------------


class CalibrationState(BaseModel):
    """
    Learned correction for one model family.

    Persisted records carry no schema version, so unknown keys are ignored
    and every field except ``model_family`` has a default.
    """

    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    model_family: str = Field(..., min_length=1)
    correction_factor: float = Field(default=DEFAULT_CORRECTION_FACTOR, gt=0.0)
    sample_count: int = Field(default=0, ge=0)
    drift: float = Field(default=0.0, ge=0.0, description="|1 - last observed ratio|.")
    last_calibrated: float = Field(default=0.0, description="Epoch seconds; 0 when never calibrated.")


def margin_for(confidence: str) -> float:
    """Return the recommended safety margin for *confidence*."""
    if confidence not in VALID_CONFIDENCES:
        raise ValueError(f"confidence must be one of {sorted(VALID_CONFIDENCES)}, got '{confidence}'")
    return CONFIDENCE_MARGINS[confidence]
