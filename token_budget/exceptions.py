# token_budget/exceptions.py
"""
Custom exceptions for token-budget.

All public exceptions inherit from TokenBudgetError so callers can catch
the whole family with a single except clause if preferred.

Estimation itself never raises: counter failures degrade to a character
heuristic and persistence failures are logged and swallowed.
"""

from __future__ import annotations


class TokenBudgetError(Exception):
    """Base exception for all token-budget errors."""


class ConfigError(TokenBudgetError):
    """Raised when an EstimatorConfig cannot be turned into a working estimator."""


class PersistenceError(TokenBudgetError):
    """
    Raised *internally* by calibration stores when a read or write fails.
    This exception is never surfaced from estimator operations; the
    calibration manager catches it and keeps operating in memory.

    Attributes
    ----------
    backend:
        Name of the store that failed, e.g. "json-file" or "redis".
    """

    def __init__(self, backend: str, message: str) -> None:
        self.backend = backend
        super().__init__(f"[{backend}] {message}")
