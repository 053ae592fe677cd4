# token_budget/estimator.py
"""
HybridTokenEstimator — the primary class the developer interacts with.

Orchestrates the estimation pipeline:
  1. Conversation level: if the message list matches (or extends) a list
     whose actual token count the API already reported, reuse that count
     and estimate only the new tail.
  2. Message level: ground-truth cache → calibrated counter estimate →
     raw counter estimate, each tagged with confidence and margin.
  3. Every estimate except an exact match joins the current call sequence,
     so the next API-reported actual can be compared against the turn's
     total. Calibrating consumes the sequence.
  4. record_actual() feeds the actual back: conversation state for future
     delta estimates, and the calibration manager's per-family EMA.

Everything runs synchronously on the caller's stack. The estimator holds
no locks: a host with concurrent callers must serialize access per
(model family, conversation).
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Callable

from .cache.ground_truth import TokenCache
from .config import EstimatorConfig
from .constants import API_ACTUAL_MARGIN, LIMIT_MULTIPLIERS, MESSAGE_OVERHEAD
from .engine.calibration import CalibrationManager
from .engine.conversation import ConversationStateTracker, KnownConversationState
from .engine.counter import TokenCounter
from .engine.sequence import CallSequence, CallSequenceTracker
from .models import (
    CalibrationState,
    ChatMessage,
    ConversationEstimate,
    ConversationLookup,
    EffectiveLimit,
    EstimateSource,
    ModelInfo,
    TokenEstimate,
    ToolSchema,
    margin_for,
)
from .storage.base import AbstractCalibrationStore

logger = logging.getLogger(__name__)


class HybridTokenEstimator:
    """
    Cheap, self-correcting input-token estimator.

    Parameters
    ----------
    config:
        Estimator configuration. Use one of the factory class methods
        (from_dict, from_yaml, from_env) for convenient construction.
    store:
        Calibration store override. When omitted, the store described by
        ``config`` is used (in-memory by default).
    counter:
        TokenCounter override, e.g. to share one memo between estimators.
    clock:
        Wall-clock time source for conversation TTLs and calibration
        timestamps. The call-sequence tracker always uses a monotonic clock
        unless a ``sequence_clock`` is given.
    sequence_clock:
        Monotonic time source for call-sequence gap detection.
    """

    def __init__(
        self,
        config: EstimatorConfig | None = None,
        *,
        store: AbstractCalibrationStore | None = None,
        counter: TokenCounter | None = None,
        clock: Callable[[], float] = time.time,
        sequence_clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or EstimatorConfig()
        self._store = store if store is not None else self._config.build_store()
        self._counter = counter or TokenCounter(text_cache_size=self._config.text_cache_size)
        self._cache = TokenCache(max_size=self._config.ground_truth_cache_size)
        self._conversations = ConversationStateTracker(
            capacity=self._config.conversation_capacity,
            ttl_seconds=self._config.conversation_ttl_seconds,
            clock=clock,
        )
        self._sequences = CallSequenceTracker(gap_ms=self._config.sequence_gap_ms, clock=sequence_clock)
        self._calibration = CalibrationManager(store=self._store, clock=clock)

    # ------------------------------------------------------------------
    # Factory methods
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> "HybridTokenEstimator":
        """Construct from a plain Python dictionary."""
        return cls(EstimatorConfig.from_dict(data), **kwargs)

    @classmethod
    def from_yaml(cls, path: str, **kwargs: Any) -> "HybridTokenEstimator":
        """Construct from a YAML config file."""
        return cls(EstimatorConfig.from_yaml(path), **kwargs)

    @classmethod
    def from_env(cls, **kwargs: Any) -> "HybridTokenEstimator":
        """Construct from environment variables."""
        return cls(EstimatorConfig.from_env(), **kwargs)

    # ------------------------------------------------------------------
    # Conversation-level estimation
    # ------------------------------------------------------------------

    def estimate_conversation(
        self,
        messages: Sequence[ChatMessage],
        model: ModelInfo,
        conversation_id: str | None = None,
    ) -> ConversationEstimate:
        """
        Estimate the total input tokens for *messages*.

        Uses the delta approach: known actual + counter(new messages only).
        An exact match costs no tokenizer work at all.
        """
        lookup = self._conversations.lookup(messages, model.family, conversation_id)

        if lookup.type == "exact" and lookup.known_tokens is not None:
            logger.debug("[Estimator] Exact match: %d tokens (ground truth)", lookup.known_tokens)
            return ConversationEstimate(
                tokens=lookup.known_tokens,
                known_tokens=lookup.known_tokens,
                estimated_tokens=0,
                new_message_count=0,
                source="exact",
            )

        if lookup.type == "prefix" and lookup.known_tokens is not None:
            new_messages = [messages[i] for i in lookup.new_message_indices]
            estimated = sum(self._raw_message_tokens(m, model) for m in new_messages)
            # The next actual covers the whole list, so the sequence gets the
            # whole total, not just the tail.
            self._record_call(lookup.known_tokens + estimated, model)
            logger.debug(
                "[Estimator] Delta: %d known + %d est (%d new messages) = %d total",
                lookup.known_tokens,
                estimated,
                len(new_messages),
                lookup.known_tokens + estimated,
            )
            return ConversationEstimate(
                tokens=lookup.known_tokens + estimated,
                known_tokens=lookup.known_tokens,
                estimated_tokens=estimated,
                new_message_count=len(new_messages),
                source="delta",
            )

        # No match: estimate everything. Each message joins the call
        # sequence so the next reported actual can calibrate against it.
        estimated = 0
        for message in messages:
            tokens = self._raw_message_tokens(message, model)
            estimated += tokens
            self._record_call(tokens, model)
        logger.debug("[Estimator] Full estimate: %d tokens (%d messages)", estimated, len(messages))
        return ConversationEstimate(
            tokens=estimated,
            known_tokens=0,
            estimated_tokens=estimated,
            new_message_count=len(messages),
            source="estimated",
        )

    def _raw_message_tokens(self, message: ChatMessage, model: ModelInfo) -> int:
        return self._counter.estimate_message(message, model.family) + MESSAGE_OVERHEAD

    def _raw_source(self, model_family: str) -> EstimateSource:
        return "fallback" if self._counter.uses_character_fallback(model_family) else "tiktoken"

    def _record_call(self, tokens: int, model: ModelInfo) -> None:
        confidence = self._calibration.get_confidence(model.family)
        self._sequences.on_call(
            TokenEstimate(
                tokens=tokens,
                confidence=confidence,
                source=self._raw_source(model.family),
                margin=margin_for(confidence),
            )
        )

    # ------------------------------------------------------------------
    # Message-level estimation
    # ------------------------------------------------------------------

    def estimate(self, content: str | ChatMessage, model: ModelInfo) -> TokenEstimate:
        """
        Estimate tokens for a string or a single message, with provenance.

        Lookup order: cached API actual (messages only) → counter estimate
        scaled by the family's correction factor → raw counter estimate when
        the family was never calibrated. The result joins the current call
        sequence.
        """
        if isinstance(content, ChatMessage):
            cached = self._cache.get(content, model.family)
            if cached is not None:
                estimate = TokenEstimate(
                    tokens=cached,
                    confidence="high",
                    source="api-actual",
                    margin=API_ACTUAL_MARGIN,
                )
                self._sequences.on_call(estimate)
                return estimate
            raw = self._counter.estimate_message(content, model.family)
        else:
            raw = self._counter.estimate_text(content, model.family)

        calibration = self._calibration.get_calibration(model.family)
        confidence = self._calibration.get_confidence(model.family)
        if calibration is not None:
            tokens = math.ceil(raw * calibration.correction_factor)
            source: EstimateSource = "calibrated"
        else:
            tokens = raw
            source = self._raw_source(model.family)

        estimate = TokenEstimate(tokens=tokens, confidence=confidence, source=source, margin=margin_for(confidence))
        self._sequences.on_call(estimate)
        logger.debug(
            "Estimate: %d tokens (%s, %s confidence, %.0f%% margin)",
            tokens,
            source,
            confidence,
            estimate.margin * 100,
        )
        return estimate

    def estimate_message(self, content: str | ChatMessage, model: ModelInfo) -> int:
        """Return just the token count of :meth:`estimate`."""
        return self.estimate(content, model).tokens

    def count_tools(self, tools: Iterable[ToolSchema | Mapping[str, Any]] | None, model: ModelInfo) -> int:
        return self._counter.count_tools(tools, model.family)

    def count_system_prompt(self, system_prompt: str | None, model: ModelInfo) -> int:
        return self._counter.count_system_prompt(system_prompt, model.family)

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def record_actual(
        self,
        messages: Sequence[ChatMessage],
        model: ModelInfo,
        actual_tokens: int,
        conversation_id: str | None = None,
    ) -> None:
        """
        Record the input-token count the API reported for *messages*.

        Enables exact/delta estimation for this conversation and calibrates
        the family against the current call sequence's total.
        """
        self._conversations.record_actual(messages, model.family, actual_tokens, conversation_id)
        logger.info(
            "[Estimator] Recorded actual: %d tokens for %d messages (%s)",
            actual_tokens,
            len(messages),
            model.family,
        )
        self.calibrate(model, actual_tokens)

    def calibrate(self, model: ModelInfo, actual_tokens: int) -> None:
        """
        Calibrate *model*'s family against the current call sequence.

        The sequence is consumed: a second actual without new estimate calls
        in between is not calibrated again.
        """
        sequence = self._sequences.get_current()
        if sequence is None or sequence.total_estimate == 0:
            logger.warning("Cannot calibrate %s: no current sequence", model.family)
            return

        logger.debug(
            "Calibrating %s: estimated=%d, actual=%d, ratio=%.3f",
            model.family,
            sequence.total_estimate,
            actual_tokens,
            actual_tokens / sequence.total_estimate,
        )
        self._calibration.calibrate(model.family, sequence.total_estimate, actual_tokens)
        self._sequences.reset()

    def cache_actual(self, message: ChatMessage, model_family: str, actual_tokens: int) -> None:
        """Seed the ground-truth cache with an API-measured count for one message."""
        self._cache.put(message, model_family, actual_tokens)

    # ------------------------------------------------------------------
    # Limits
    # ------------------------------------------------------------------

    def get_effective_limit(self, model: ModelInfo) -> EffectiveLimit:
        """
        Return the usable input budget for *model*.

        The window is discounted by confidence: 95% (high), 85% (medium),
        75% (low). The budget never reaches 100% even when calibration
        is good.
        """
        confidence = self._calibration.get_confidence(model.family)
        return EffectiveLimit(
            limit=math.floor(model.max_input_tokens * LIMIT_MULTIPLIERS[confidence]),
            confidence=confidence,
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def counter(self) -> TokenCounter:
        return self._counter

    @property
    def calibration(self) -> CalibrationManager:
        return self._calibration

    def get_calibration_state(self, model_family: str) -> CalibrationState | None:
        return self._calibration.get_calibration(model_family)

    def get_all_calibration_states(self) -> list[CalibrationState]:
        return self._calibration.get_all()

    def get_conversation_state(
        self, model_family: str, conversation_id: str | None = None
    ) -> KnownConversationState | None:
        return self._conversations.get_state(model_family, conversation_id)

    def lookup_conversation(
        self,
        messages: Sequence[ChatMessage],
        model_family: str,
        conversation_id: str | None = None,
    ) -> ConversationLookup:
        return self._conversations.lookup(messages, model_family, conversation_id)

    def get_current_sequence(self) -> CallSequence | None:
        return self._sequences.get_current()

    def status(self) -> dict[str, Any]:
        """
        Return calibration status for every known family.

        Suitable for a status bar, a health endpoint, or the CLI.
        """
        result: dict[str, Any] = {}
        for state in self._calibration.get_all():
            result[state.model_family] = {
                "correction_factor": round(state.correction_factor, 4),
                "sample_count": state.sample_count,
                "drift_pct": round(state.drift * 100, 1),
                "confidence": self._calibration.get_confidence(state.model_family),
                "last_calibrated": state.last_calibrated,
            }
        return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Forget sequences, conversation state, cached actuals and calibration."""
        self._sequences.reset()
        self._conversations.clear()
        self._cache.clear()
        self._calibration.reset_all()

    def close(self) -> None:
        """Release the calibration store's resources (e.g. Redis connections)."""
        self._store.close()

    def __enter__(self) -> "HybridTokenEstimator":
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()
