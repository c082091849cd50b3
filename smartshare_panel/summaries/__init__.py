"""Shared exports for the summaries feature."""
from __future__ import annotations

from .engine import (
    Availability,
    EngineError,
    EngineRuntimeError,
    EngineUnavailableError,
    OpenRouterEngine,
    SummarizerEngine,
    SummarizerOptions,
    SummarizerSession,
    UserGestureRequiredError,
)
from .history import MAX_HISTORY_ENTRIES, HistoryEntry, HistoryStatus, HistoryStore
from .openrouter_client import (
    AuthenticationError,
    ClientConfigurationError,
    OpenRouterClient,
    OpenRouterError,
    RateLimitError,
    TransientError,
)
from .prompts import PromptDocument, PromptLoader, PromptValidationError
from .session import SummarizationAttempt, SummarizationSessionManager
from .types import (
    OutcomeStatus,
    SummarizationSettings,
    SummaryFormat,
    SummaryLength,
    SummaryOutcome,
    SummaryType,
)


__all__ = [
    "Availability",
    "EngineError",
    "EngineRuntimeError",
    "EngineUnavailableError",
    "UserGestureRequiredError",
    "SummarizerEngine",
    "SummarizerSession",
    "SummarizerOptions",
    "OpenRouterEngine",
    "HistoryEntry",
    "HistoryStatus",
    "HistoryStore",
    "MAX_HISTORY_ENTRIES",
    "PromptLoader",
    "PromptDocument",
    "PromptValidationError",
    "OpenRouterClient",
    "OpenRouterError",
    "AuthenticationError",
    "RateLimitError",
    "TransientError",
    "ClientConfigurationError",
    "SummarizationAttempt",
    "SummarizationSessionManager",
    "SummarizationSettings",
    "SummaryType",
    "SummaryFormat",
    "SummaryLength",
    "SummaryOutcome",
    "OutcomeStatus",
]
