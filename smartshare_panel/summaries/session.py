"""Lifecycle of the summarizer session behind each summarization attempt."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from ..validation import PageContent
from .engine import (
    SUMMARIZE_CONTEXT,
    Availability,
    EngineUnavailableError,
    SummarizerEngine,
    SummarizerOptions,
    SummarizerSession,
    UserGestureRequiredError,
)
from .types import SummarizationSettings, SummaryOutcome

UNAVAILABLE_NOTICE = "Summarizer API is unavailable."
GESTURE_NOTICE = "User interaction required to download model."

ProgressCallback = Callable[[float], None]

_READ_MORE_LINE = re.compile(r"^\W*read (?:the )?full (?:article|story|post)\b.*$", re.IGNORECASE)


@dataclass
class SummarizationAttempt:
    generation: int
    settings: SummarizationSettings
    progress: float = 0.0
    session: Optional[SummarizerSession] = None
    released: bool = False

    def release(self) -> bool:
        """Destroy the engine session once; return True if it was destroyed now."""
        if self.released:
            return False
        self.released = True
        session, self.session = self.session, None
        if session is None:
            return False
        session.destroy()
        return True


def strip_read_more(text: str) -> str:
    """Drop trailing "read full article" lines the model may append."""
    lines = text.rstrip().splitlines()
    while lines and (not lines[-1].strip() or _READ_MORE_LINE.match(lines[-1].strip())):
        lines.pop()
    return "\n".join(lines).strip()


class SummarizationSessionManager:
    """Owns at most one live summarization attempt at a time."""

    def __init__(
        self,
        engine: SummarizerEngine,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._engine = engine
        self._logger = logger or logging.getLogger(__name__)
        self._generation = 0
        self._attempt: Optional[SummarizationAttempt] = None

    @property
    def attempt(self) -> Optional[SummarizationAttempt]:
        return self._attempt

    def is_current(self, generation: int) -> bool:
        return self._attempt is not None and self._attempt.generation == generation

    async def start(
        self,
        content: PageContent,
        settings: SummarizationSettings,
        on_progress: Optional[ProgressCallback] = None,
        *,
        user_activation: bool = False,
        on_summarizing: Optional[Callable[[], None]] = None,
    ) -> SummaryOutcome:
        self.cancel()
        self._generation += 1
        attempt = SummarizationAttempt(generation=self._generation, settings=settings)
        self._attempt = attempt
        self._log_debug("attempt-start", attempt, {"url": content.source_url})

        try:
            availability = await self._engine.availability()
            if not self.is_current(attempt.generation):
                return SummaryOutcome.superseded()
            if availability is Availability.UNAVAILABLE:
                return SummaryOutcome.capability_gap(UNAVAILABLE_NOTICE)
            if availability is Availability.AFTER_DOWNLOAD and not user_activation:
                return SummaryOutcome.capability_gap(GESTURE_NOTICE)

            session = await self._engine.create(
                SummarizerOptions.from_settings(settings),
                self._progress_handler(attempt, on_progress),
            )
            if not self.is_current(attempt.generation):
                session.destroy()
                return SummaryOutcome.superseded()
            attempt.session = session

            if on_summarizing is not None:
                on_summarizing()
            text = await session.summarize(content.text, context=SUMMARIZE_CONTEXT)
            if not self.is_current(attempt.generation):
                return SummaryOutcome.superseded()
            return SummaryOutcome.success(strip_read_more(text))
        except EngineUnavailableError:
            if not self.is_current(attempt.generation):
                return SummaryOutcome.superseded()
            return SummaryOutcome.capability_gap(UNAVAILABLE_NOTICE)
        except UserGestureRequiredError:
            if not self.is_current(attempt.generation):
                return SummaryOutcome.superseded()
            return SummaryOutcome.capability_gap(GESTURE_NOTICE)
        except Exception as exc:
            if not self.is_current(attempt.generation):
                return SummaryOutcome.superseded()
            message = str(exc) or type(exc).__name__
            self._logger.error("Summary generation failed: %s", message)
            return SummaryOutcome.error(message)
        finally:
            attempt.release()
            if self._attempt is attempt:
                self._attempt = None
            self._log_debug("attempt-end", attempt, {})

    def cancel(self) -> None:
        attempt, self._attempt = self._attempt, None
        if attempt is None:
            return
        attempt.release()
        self._log_debug("attempt-cancel", attempt, {})

    def _progress_handler(
        self, attempt: SummarizationAttempt, on_progress: Optional[ProgressCallback]
    ) -> ProgressCallback:
        def handler(loaded: float) -> None:
            if not self.is_current(attempt.generation):
                return
            fraction = min(max(float(loaded), 0.0), 1.0)
            attempt.progress = max(attempt.progress, fraction)
            if on_progress is not None:
                on_progress(attempt.progress)

        return handler

    def _log_debug(self, event: str, attempt: SummarizationAttempt, extra: Mapping[str, object]) -> None:
        payload = {
            "event": event,
            "generation": attempt.generation,
            "settings": attempt.settings.to_dict(),
        }
        payload.update(dict(extra))
        self._logger.debug("summary-session", extra={"summary": payload})
