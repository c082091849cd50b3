"""Summarizer engine contract and the OpenRouter-backed implementation."""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable, Optional, Tuple

from .openrouter_client import OpenRouterClient
from .prompts import DEFAULT_PROMPT, PromptDocument, PromptLoader
from .types import SummarizationSettings, SummaryFormat, SummaryLength, SummaryType

SHARED_CONTEXT = "Summarizing online articles for sharing."
SUMMARIZE_CONTEXT = "Summarizing webpage content for quick sharing."

ProgressHandler = Callable[[float], None]

_LENGTH_HINTS = {
    SummaryLength.SHORT: "at most three bullet points or two sentences",
    SummaryLength.MEDIUM: "at most five bullet points or a short paragraph",
    SummaryLength.LONG: "at most seven bullet points or a full paragraph",
}

_LANGUAGE_NAMES = {"en": "English"}


class Availability(str, Enum):
    UNAVAILABLE = "unavailable"
    AFTER_DOWNLOAD = "after-download"
    AVAILABLE = "available"


class EngineError(RuntimeError):
    """Base error raised by summarizer engines."""


class EngineUnavailableError(EngineError):
    """Raised when no summarizer can be created on this host."""


class UserGestureRequiredError(EngineError):
    """Raised when the model download needs an explicit user action."""


class EngineRuntimeError(EngineError):
    """Raised when a created session fails to produce a summary."""


@dataclass(frozen=True)
class SummarizerOptions:
    type: SummaryType
    format: SummaryFormat
    length: SummaryLength
    expected_input_languages: Tuple[str, ...] = ("en",)
    output_language: str = "en"
    expected_context_languages: Tuple[str, ...] = ("en",)
    shared_context: str = SHARED_CONTEXT

    @classmethod
    def from_settings(cls, settings: SummarizationSettings) -> "SummarizerOptions":
        return cls(type=settings.type, format=settings.format, length=settings.length)


class SummarizerSession(ABC):
    """One live summarizer instance; ``destroy`` must be called exactly once."""

    @abstractmethod
    async def summarize(self, text: str, *, context: str = SUMMARIZE_CONTEXT) -> str:
        ...

    @abstractmethod
    def destroy(self) -> None:
        ...


class SummarizerEngine(ABC):
    @abstractmethod
    async def availability(self) -> Availability:
        ...

    @abstractmethod
    async def create(
        self,
        options: SummarizerOptions,
        progress_handler: Optional[ProgressHandler] = None,
    ) -> SummarizerSession:
        ...


class OpenRouterSummarizer(SummarizerSession):
    def __init__(
        self,
        client: OpenRouterClient,
        model: str,
        options: SummarizerOptions,
        prompt: PromptDocument,
        *,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
    ) -> None:
        self._client = client
        self.model = model
        self.options = options
        self._prompt = prompt
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.destroyed = False

    async def summarize(self, text: str, *, context: str = SUMMARIZE_CONTEXT) -> str:
        if self.destroyed:
            raise EngineRuntimeError("The summarizer has been destroyed.")
        system_prompt = self._prompt.render(
            {
                "type": self.options.type.value,
                "format": self.options.format.value,
                "length": self.options.length.value,
                "length_hint": _LENGTH_HINTS[self.options.length],
                "shared_context": self.options.shared_context,
                "context": context,
                "output_language": _LANGUAGE_NAMES.get(
                    self.options.output_language, self.options.output_language
                ),
            }
        )
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": text},
        ]
        loop = asyncio.get_running_loop()
        reply = await loop.run_in_executor(
            None,
            partial(
                self._client.generate,
                self.model,
                messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            ),
        )
        return reply.strip()

    def destroy(self) -> None:
        self.destroyed = True


class OpenRouterEngine(SummarizerEngine):
    """Engine backed by OpenRouter chat completions.

    Fetching the model catalog plays the part of the model download: it is
    reported through the progress handler and is only needed when the cached
    catalog is missing or stale.
    """

    def __init__(
        self,
        client: Optional[OpenRouterClient],
        model: str,
        *,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        prompt_loader: Optional[PromptLoader] = None,
        prompt: str = DEFAULT_PROMPT,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._prompt_loader = prompt_loader or PromptLoader()
        self._prompt = prompt
        self._logger = logger or logging.getLogger(__name__)

    async def availability(self) -> Availability:
        if self._client is None:
            return Availability.UNAVAILABLE
        if self._client.has_fresh_catalog():
            return Availability.AVAILABLE
        return Availability.AFTER_DOWNLOAD

    async def create(
        self,
        options: SummarizerOptions,
        progress_handler: Optional[ProgressHandler] = None,
    ) -> SummarizerSession:
        if self._client is None:
            raise EngineUnavailableError("Summarizer API is unavailable.")
        prompt = self._prompt_loader.load(self._prompt)

        if self._client.has_fresh_catalog():
            catalog = self._client.model_catalog()
        else:
            _report(progress_handler, 0.0)
            loop = asyncio.get_running_loop()
            catalog = await loop.run_in_executor(None, self._client.model_catalog)
            _report(progress_handler, 1.0)

        if catalog and self.model not in catalog:
            raise EngineRuntimeError(f"Model '{self.model}' is not offered by OpenRouter.")

        self._logger.debug(
            "engine-create",
            extra={"engine": {"model": self.model, "options": options}},
        )
        return OpenRouterSummarizer(
            self._client,
            self.model,
            options,
            prompt,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )


def _report(handler: Optional[ProgressHandler], loaded: float) -> None:
    if handler is not None:
        handler(loaded)
