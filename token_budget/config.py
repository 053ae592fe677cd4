# token_budget/config.py
"""
EstimatorConfig.

Supports construction from:
  - Python dict   → EstimatorConfig.from_dict(data)
  - YAML file     → EstimatorConfig.from_yaml("token_budget.yaml")
  - Environment   → EstimatorConfig.from_env()
"""

from __future__ import annotations

import os
import re
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

from .constants import (
    CONVERSATION_CAPACITY,
    CONVERSATION_TTL_SECONDS,
    GROUND_TRUTH_CACHE_SIZE,
    SEQUENCE_GAP_MS,
    STORAGE_KEY,
    TEXT_CACHE_SIZE,
)
from .exceptions import ConfigError
from .storage.base import AbstractCalibrationStore

_ENV_PREFIX = "TOKEN_BUDGET_"


class EstimatorConfig(BaseModel):
    """
    Top-level configuration for the HybridTokenEstimator.

    Instantiate directly or use one of the factory class methods:
      EstimatorConfig.from_dict(data)
      EstimatorConfig.from_yaml(path)
      EstimatorConfig.from_env()
    """

    storage_path: str | None = Field(
        default=None,
        description="JSON file for persisted calibration. Mutually exclusive with redis_url.",
    )
    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL. If set, calibration is shared through Redis.",
    )
    storage_key: str = Field(
        default=STORAGE_KEY,
        min_length=1,
        description="Key the calibration table is stored under.",
    )
    ground_truth_cache_size: int = Field(
        default=GROUND_TRUTH_CACHE_SIZE,
        gt=0,
        description="Capacity of the per-message actual-token cache.",
    )
    text_cache_size: int = Field(
        default=TEXT_CACHE_SIZE,
        gt=0,
        description="Capacity of the counter's text memo.",
    )
    conversation_capacity: int = Field(
        default=CONVERSATION_CAPACITY,
        gt=0,
        description="Maximum number of tracked conversation keys.",
    )
    conversation_ttl_seconds: int = Field(
        default=CONVERSATION_TTL_SECONDS,
        gt=0,
        description="Age after which a conversation state is purged.",
    )
    sequence_gap_ms: int = Field(
        default=SEQUENCE_GAP_MS,
        gt=0,
        description="Idle gap that separates two call sequences.",
    )

    @model_validator(mode="after")
    def _single_backend(self) -> "EstimatorConfig":
        if self.storage_path and self.redis_url:
            raise ValueError("Set at most one of storage_path and redis_url.")
        return self

    # ------------------------------------------------------------------
    # Backend selection
    # ------------------------------------------------------------------

    def build_store(self) -> AbstractCalibrationStore:
        """Return the calibration store this config describes."""
        if self.redis_url:
            from .storage.redis import RedisCalibrationStore

            return RedisCalibrationStore(self.redis_url, key=self.storage_key)
        if self.storage_path:
            from .storage.file import JsonFileCalibrationStore

            return JsonFileCalibrationStore(self.storage_path, key=self.storage_key)
        from .storage.memory import InMemoryCalibrationStore

        return InMemoryCalibrationStore(key=self.storage_key)

    # ------------------------------------------------------------------
    # Factory methods
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None, **kwargs: Any) -> "EstimatorConfig":
        """Build config from a plain Python dictionary."""
        merged = {**(data or {}), **kwargs}
        try:
            return cls.model_validate(merged)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

    @classmethod
    def from_yaml(cls, path: str, **kwargs: Any) -> "EstimatorConfig":
        """
        Build config from a YAML file.

        Environment variable interpolation is supported:
          redis_url: "${REDIS_URL}"
        """
        with open(path) as f:
            raw = f.read()

        # Interpolate ${ENV_VAR} placeholders
        def _replace(match: re.Match) -> str:  # type: ignore[type-arg]
            var = match.group(1)
            value = os.environ.get(var)
            if value is None:
                raise EnvironmentError(
                    f"Environment variable '{var}' referenced in '{path}' is not set."
                )
            return value

        raw = re.sub(r"\$\{([^}]+)\}", _replace, raw)
        data = yaml.safe_load(raw) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"'{path}' must contain a mapping at the top level.")
        return cls.from_dict(data, **kwargs)

    @classmethod
    def from_env(cls, **kwargs: Any) -> "EstimatorConfig":
        """
        Build config from environment variables.

        Reads:
          TOKEN_BUDGET_STORAGE_PATH              → storage_path
          TOKEN_BUDGET_REDIS_URL                 → redis_url
          TOKEN_BUDGET_STORAGE_KEY               → storage_key
          TOKEN_BUDGET_CONVERSATION_CAPACITY     → conversation_capacity
          TOKEN_BUDGET_CONVERSATION_TTL_SECONDS  → conversation_ttl_seconds
          TOKEN_BUDGET_SEQUENCE_GAP_MS           → sequence_gap_ms
        """
        data: dict[str, Any] = {}

        for field_name in ("storage_path", "redis_url", "storage_key"):
            value = os.environ.get(_ENV_PREFIX + field_name.upper())
            if value:
                data[field_name] = value

        for field_name in ("conversation_capacity", "conversation_ttl_seconds", "sequence_gap_ms"):
            value = os.environ.get(_ENV_PREFIX + field_name.upper())
            if value:
                try:
                    data[field_name] = int(value)
                except ValueError as exc:
                    raise ConfigError(
                        f"{_ENV_PREFIX + field_name.upper()} must be an integer, got '{value}'"
                    ) from exc

        data.update(kwargs)
        return cls.from_dict(data)
