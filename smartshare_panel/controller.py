"""State machine behind the summary side panel.

The controller owns the panel state and the current page content. UI events
arrive through :meth:`PanelController.dispatch`, :meth:`change_settings` and
session storage notifications; asynchronous work (extraction, summarization,
history writes) runs in tasks tracked by the controller so that stale results
can be recognised and dropped.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple

from .extraction import ExtractionError, ExtractionGateway
from .storage import PAGE_CONTENT_KEY, PAGE_URL_KEY, StorageArea, StorageChanges
from .summaries.history import HistoryEntry, HistoryStatus, HistoryStore
from .summaries.session import SummarizationSessionManager
from .summaries.types import OutcomeStatus, SummarizationSettings
from .validation import PageContent, ValidationReason, ValidationResult, validate

MAX_MODEL_CHARS = 4000
MAX_MESSAGES = 100

logger = logging.getLogger(__name__)


class PanelState(str, Enum):
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR_UNSUPPORTED = "error-unsupported"
    ERROR_NO_CONTENT = "error-no-content"
    ERROR_EXTRACTION = "error-extraction"
    DOWNLOADING = "downloading"
    SUMMARIZING = "summarizing"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class PanelEvent(str, Enum):
    CONFIRM = "confirm"
    DECLINE = "decline"
    RETRY = "retry"
    CANCEL = "cancel"
    RESUMMARIZE = "resummarize"
    RESTART = "restart"


ERROR_STATES = frozenset(
    {PanelState.ERROR_UNSUPPORTED, PanelState.ERROR_NO_CONTENT, PanelState.ERROR_EXTRACTION}
)

_ERROR_STATE_FOR_REASON = {
    ValidationReason.UNSUPPORTED_SITE: PanelState.ERROR_UNSUPPORTED,
    ValidationReason.MALFORMED_URL: PanelState.ERROR_UNSUPPORTED,
    ValidationReason.INSUFFICIENT_CONTENT: PanelState.ERROR_NO_CONTENT,
}

_TRANSITIONS: Dict[Tuple[PanelState, PanelEvent], str] = {
    (PanelState.READY, PanelEvent.CONFIRM): "_confirm",
    (PanelState.READY, PanelEvent.DECLINE): "_decline",
    (PanelState.ERROR_UNSUPPORTED, PanelEvent.RETRY): "_retry",
    (PanelState.ERROR_NO_CONTENT, PanelEvent.RETRY): "_retry",
    (PanelState.ERROR_EXTRACTION, PanelEvent.RETRY): "_retry",
    (PanelState.DOWNLOADING, PanelEvent.CANCEL): "_cancel",
    (PanelState.SUMMARIZING, PanelEvent.CANCEL): "_cancel",
    (PanelState.COMPLETE, PanelEvent.RESUMMARIZE): "_restart",
    (PanelState.CANCELLED, PanelEvent.RESTART): "_restart",
    (PanelState.CANCELLED, PanelEvent.DECLINE): "_decline",
}

Listener = Callable[["PanelController"], None]
Validator = Callable[[PageContent], ValidationResult]


@dataclass(frozen=True)
class PanelMessage:
    kind: str  # "info", "error" or "summary"
    text: str


class PanelController:
    """Single owner of the panel state, current content and attempt task."""

    def __init__(
        self,
        *,
        session_storage: StorageArea,
        gateway: ExtractionGateway,
        manager: SummarizationSessionManager,
        history: HistoryStore,
        settings: Optional[SummarizationSettings] = None,
        validator: Validator = validate,
        user_activation: bool = True,
    ) -> None:
        self._session_storage = session_storage
        self._gateway = gateway
        self._manager = manager
        self._history = history
        self._validator = validator
        self.user_activation = user_activation

        self.state = PanelState.INITIALIZING
        self.content: Optional[PageContent] = None
        self.page_url = ""
        self.validation: Optional[ValidationResult] = None
        self.settings = settings or SummarizationSettings()
        self.summary = ""
        self.progress = 0.0
        self.warning = ""
        self.prompts_disabled = False
        self.messages: List[PanelMessage] = []

        self._listeners: List[Listener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._attempt_task: Optional[asyncio.Task] = None
        self._started = False

    # ---- Lifecycle ------------------------------------------------------
    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    async def start(self) -> None:
        """Load stored page content, falling back to a fresh extraction."""
        if self._started:
            return
        self._started = True
        self._session_storage.add_listener(self.on_session_changed)

        stored = await self._session_storage.get([PAGE_CONTENT_KEY, PAGE_URL_KEY])
        if self.content is not None:
            # A change notification delivered content while we were reading.
            return
        self.page_url = stored.get(PAGE_URL_KEY) or ""
        text = stored.get(PAGE_CONTENT_KEY)
        if text:
            self.deliver_content(text, self.page_url)
        else:
            await self._extract()

    async def drain(self) -> None:
        """Wait until every task started by the controller has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        self._session_storage.remove_listener(self.on_session_changed)
        self._discard_attempt()
        for task in list(self._tasks):
            task.cancel()

    # ---- Inputs ---------------------------------------------------------
    def dispatch(self, event: PanelEvent) -> bool:
        """Apply a UI event; return False when the current state ignores it."""
        handler_name = _TRANSITIONS.get((self.state, event))
        if handler_name is None:
            logger.debug(
                "panel-event-ignored",
                extra={"panel": {"state": self.state.value, "event": event.value}},
            )
            return False
        return getattr(self, handler_name)()

    def change_settings(self, settings: SummarizationSettings) -> bool:
        """Store new settings; a finished summary is regenerated with them."""
        if settings == self.settings:
            return False
        self.settings = settings
        if self.state is PanelState.COMPLETE:
            # Model is already resident, so skip the download phase.
            self._begin_attempt(PanelState.SUMMARIZING)
        else:
            self._notify()
        return True

    def on_session_changed(self, changes: StorageChanges) -> None:
        if PAGE_URL_KEY in changes:
            self.page_url = changes[PAGE_URL_KEY].get("newValue") or ""
        if PAGE_CONTENT_KEY in changes:
            self.deliver_content(changes[PAGE_CONTENT_KEY].get("newValue") or "", self.page_url)
        elif self.content is not None:
            self.deliver_content(self.content.text, self.page_url)

    def deliver_content(self, text: str, url: Optional[str] = None) -> bool:
        """Adopt new page content; identical text is ignored."""
        text = text or ""
        if url is not None:
            self.page_url = url
        if self.content is not None and self.content.text == text:
            if self.content.source_url != self.page_url:
                self.content = PageContent(text=text, source_url=self.page_url)
                self._notify()
            return False

        self._discard_attempt()
        self.content = PageContent(text=text, source_url=self.page_url)
        self.validation = None
        self.summary = ""
        self.progress = 0.0
        self.prompts_disabled = False
        if len(text) > MAX_MODEL_CHARS:
            self.warning = f"Text too long ({len(text)} chars, max ~{MAX_MODEL_CHARS})."
        else:
            self.warning = ""
        self._transition(PanelState.INITIALIZING)

        result = self._validator(self.content)
        self.validation = result
        if result.valid:
            self._transition(PanelState.READY)
            self._post("info", "Summarize this page?")
        else:
            self._enter_error(_ERROR_STATE_FOR_REASON[result.reason], result.user_message or "")
        return True

    # ---- Transition handlers --------------------------------------------
    def _confirm(self) -> bool:
        if self.prompts_disabled:
            return False
        self._begin_attempt(PanelState.DOWNLOADING)
        return True

    def _decline(self) -> bool:
        self._discard_attempt()
        self.prompts_disabled = True
        self._transition(PanelState.READY)
        self._post("info", "Okay, I won't summarize this page.")
        return True

    def _retry(self) -> bool:
        self._discard_attempt()
        self.content = None
        self.validation = None
        self._transition(PanelState.INITIALIZING)
        self._spawn(self._extract())
        return True

    def _cancel(self) -> bool:
        self._discard_attempt()
        self.progress = 0.0
        self._transition(PanelState.CANCELLED)
        self._post("info", "Summary cancelled.")
        return True

    def _restart(self) -> bool:
        self._begin_attempt(PanelState.DOWNLOADING)
        return True

    # ---- Async work -----------------------------------------------------
    async def _extract(self) -> None:
        try:
            content = await self._gateway.request_extraction()
        except ExtractionError as exc:
            if self.state is not PanelState.INITIALIZING or self.content is not None:
                logger.debug("Dropping extraction failure for superseded request: %s", exc)
                return
            logger.error("Extraction failed (%s): %s", exc.kind.value, exc)
            self._enter_error(PanelState.ERROR_EXTRACTION, f"Couldn't read this page: {exc}")
            return
        self.deliver_content(content.text, content.source_url)

    def _begin_attempt(self, state: PanelState) -> None:
        self._discard_attempt()
        if self.content is None:
            logger.error("Refusing to summarize without page content")
            return
        self.summary = ""
        self.progress = 0.0
        self._transition(state)
        self._attempt_task = self._spawn(self._run_attempt(self.content, self.settings))

    async def _run_attempt(self, content: PageContent, settings: SummarizationSettings) -> None:
        outcome = await self._manager.start(
            content,
            settings,
            self._on_progress,
            user_activation=self.user_activation,
            on_summarizing=self._on_summarizing,
        )
        if outcome.status is OutcomeStatus.SUPERSEDED or self._attempt_task is not asyncio.current_task():
            return
        self._attempt_task = None
        self.summary = outcome.display_text
        self.progress = 1.0 if outcome.status is OutcomeStatus.SUCCESS else self.progress
        self._transition(PanelState.COMPLETE)

        if outcome.notice:
            self._post("info", outcome.notice)
            return

        if outcome.status is OutcomeStatus.ERROR:
            status = HistoryStatus.ERROR
            self._post("error", f"Error: {outcome.text}")
        else:
            status = HistoryStatus.SUCCESS
            self._post("summary", outcome.text)

        entry = HistoryEntry(
            url=content.source_url,
            summary_text=outcome.text,
            status=status,
            settings=settings,
        )
        try:
            await self._history.append(entry)
        except OSError as exc:
            logger.error("Failed to save summary history: %s", exc)
            self._post("error", f"Couldn't save history: {exc}")

    def _on_progress(self, fraction: float) -> None:
        if self.state is not PanelState.DOWNLOADING:
            return
        self.progress = fraction
        self._notify()

    def _on_summarizing(self) -> None:
        if self.state is PanelState.DOWNLOADING:
            self._transition(PanelState.SUMMARIZING)

    def _discard_attempt(self) -> None:
        task, self._attempt_task = self._attempt_task, None
        self._manager.cancel()
        if task is not None and not task.done():
            task.cancel()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Panel task failed", exc_info=exc)
            self._post("error", f"Unexpected error: {exc}")

    # ---- State bookkeeping ----------------------------------------------
    def _enter_error(self, state: PanelState, message: str) -> None:
        self.summary = ""
        self._transition(state)
        logger.warning("Panel error (%s): %s", state.value, message)
        self._post("error", message)

    def _transition(self, state: PanelState) -> None:
        previous, self.state = self.state, state
        logger.debug(
            "panel-transition",
            extra={"panel": {"from": previous.value, "to": state.value, "url": self.page_url}},
        )
        self._notify()

    def _post(self, kind: str, text: str) -> None:
        self.messages.append(PanelMessage(kind=kind, text=text))
        del self.messages[:-MAX_MESSAGES]
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
