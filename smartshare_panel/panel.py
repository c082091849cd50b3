from __future__ import annotations

import asyncio
import dataclasses
import logging
import webbrowser
from enum import Enum
from typing import Dict, List, Optional, Tuple, Type

from prompt_toolkit.application import Application
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.layout import HSplit, Layout, Window
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.layout.dimension import D
from prompt_toolkit.styles import Style

from .controller import ERROR_STATES, PanelController, PanelEvent, PanelState
from .sharing import NothingToShareError, clipboard_payload, linkedin_share_url
from .summaries.history import HistoryEntry, HistoryStore
from .summaries.types import SummaryFormat, SummaryLength, SummaryType

logger = logging.getLogger(__name__)

# Keys that map onto controller events, looked up by the current state.
_EVENT_KEYS: Dict[PanelState, Dict[str, PanelEvent]] = {
    PanelState.READY: {"y": PanelEvent.CONFIRM, "n": PanelEvent.DECLINE},
    PanelState.ERROR_UNSUPPORTED: {"r": PanelEvent.RETRY},
    PanelState.ERROR_NO_CONTENT: {"r": PanelEvent.RETRY},
    PanelState.ERROR_EXTRACTION: {"r": PanelEvent.RETRY},
    PanelState.DOWNLOADING: {"c": PanelEvent.CANCEL},
    PanelState.SUMMARIZING: {"c": PanelEvent.CANCEL},
    PanelState.COMPLETE: {"r": PanelEvent.RESUMMARIZE},
    PanelState.CANCELLED: {"r": PanelEvent.RESTART, "n": PanelEvent.DECLINE},
}

_EVENT_LABELS = {
    PanelEvent.CONFIRM: "summarize",
    PanelEvent.DECLINE: "no thanks",
    PanelEvent.RETRY: "retry",
    PanelEvent.CANCEL: "cancel",
    PanelEvent.RESUMMARIZE: "summarize again",
    PanelEvent.RESTART: "restart",
}

_SETTING_KEYS: Dict[str, Tuple[str, Type[Enum]]] = {
    "t": ("type", SummaryType),
    "f": ("format", SummaryFormat),
    "l": ("length", SummaryLength),
}

_MESSAGE_STYLES = {"info": "class:message", "error": "class:message.error", "summary": "class:message.summary"}


class SummaryPanel:
    """Full-screen terminal panel; a projection of the controller state."""

    VISIBLE_MESSAGES = 6

    def __init__(self, controller: PanelController, history: HistoryStore) -> None:
        self.controller = controller
        self.history = history
        self.status = ""
        self.show_history = False
        self._history_entries: List[HistoryEntry] = []
        self._app: Optional[Application] = None
        controller.subscribe(lambda _controller: self._invalidate())

    # ---- Layout helpers -------------------------------------------------
    def _header_fragments(self) -> list[tuple[str, str]]:
        controller = self.controller
        url = controller.content.source_url if controller.content else controller.page_url
        return [
            ("class:header", f"SmartShare | {url or 'no page'}"),
            ("", "  "),
            ("class:state", f"[{controller.state.value}]"),
        ]

    def _settings_fragments(self) -> list[tuple[str, str]]:
        settings = self.controller.settings
        text = (
            f"type: {settings.type.value} (t) | format: {settings.format.value} (f) | "
            f"length: {settings.length.value} (l)"
        )
        return [("class:settings", text)]

    def _warning_fragments(self) -> list[tuple[str, str]]:
        if not self.controller.warning:
            return []
        return [("class:warning", self.controller.warning)]

    def _body_fragments(self) -> list[tuple[str, str]]:
        if self.show_history:
            return self._history_fragments()

        controller = self.controller
        state = controller.state
        if state is PanelState.INITIALIZING:
            text = "Reading page..."
        elif state is PanelState.READY:
            text = (
                "Summarization declined for this page."
                if controller.prompts_disabled
                else "Summarize this page?"
            )
        elif state in ERROR_STATES:
            last_error = next(
                (m.text for m in reversed(controller.messages) if m.kind == "error"), ""
            )
            text = last_error or "Something went wrong."
        elif state is PanelState.DOWNLOADING:
            text = f"Downloading model... {controller.progress * 100:.1f}%"
        elif state is PanelState.SUMMARIZING:
            text = "Loading summary..."
        elif state is PanelState.COMPLETE:
            text = controller.summary or "There's nothing to summarize."
        else:
            text = "Summary cancelled."
        return [("class:body", text)]

    def _history_fragments(self) -> list[tuple[str, str]]:
        if not self._history_entries:
            return [("class:body", "No summaries yet.")]
        fragments: list[tuple[str, str]] = []
        for entry in self._history_entries:
            stamp = entry.timestamp.astimezone().strftime("%Y-%m-%d %H:%M")
            style = "class:message.error" if entry.status.value == "error" else "class:body"
            first_line = entry.summary_text.strip().splitlines()[0] if entry.summary_text.strip() else ""
            fragments.append(("class:settings", f"{stamp} {entry.url}\n"))
            fragments.append((style, f"  {first_line}\n"))
        return fragments

    def _messages_fragments(self) -> list[tuple[str, str]]:
        fragments: list[tuple[str, str]] = []
        for message in self.controller.messages[-self.VISIBLE_MESSAGES:]:
            if message.kind == "summary":
                continue
            fragments.append((_MESSAGE_STYLES.get(message.kind, ""), f"> {message.text}\n"))
        return fragments

    def _instructions_fragment(self) -> list[tuple[str, str]]:
        actions = [
            f"{key} {_EVENT_LABELS[event]}"
            for key, event in _EVENT_KEYS.get(self.controller.state, {}).items()
        ]
        if self.controller.state is PanelState.COMPLETE:
            actions.extend(["C copy", "S share"])
        actions.extend(["h history", "q quit"])
        return [("class:instructions", " | ".join(actions))]

    def _status_fragment(self) -> list[tuple[str, str]]:
        return [("class:status", self.status)]

    # ---- Actions --------------------------------------------------------
    def _invalidate(self) -> None:
        if self._app is not None:
            self._app.invalidate()

    def _handle_event_key(self, key: str) -> None:
        event = _EVENT_KEYS.get(self.controller.state, {}).get(key)
        if event is None:
            return
        if not self.controller.dispatch(event):
            self.status = f"'{key}' does nothing right now."
        else:
            self.status = ""
        self._invalidate()

    def _cycle_setting(self, key: str) -> None:
        field_name, enum_cls = _SETTING_KEYS[key]
        members = list(enum_cls)
        current = getattr(self.controller.settings, field_name)
        following = members[(members.index(current) + 1) % len(members)]
        settings = dataclasses.replace(self.controller.settings, **{field_name: following})
        self.controller.change_settings(settings)
        self.status = f"{field_name} -> {following.value}"
        self._invalidate()

    def _copy_summary(self) -> None:
        try:
            payload = clipboard_payload(self.controller.summary, self._source_url())
        except NothingToShareError as exc:
            self.status = str(exc)
        else:
            if self._app is not None:
                self._app.clipboard.set_text(payload)
            self.status = "Summary copied to clipboard!"
        self._invalidate()

    def _share_summary(self) -> None:
        try:
            link = linkedin_share_url(self._source_url(), self.controller.summary)
        except NothingToShareError as exc:
            self.status = str(exc)
        else:
            webbrowser.open_new_tab(link)
            self.status = "Opened LinkedIn share page."
        self._invalidate()

    async def _toggle_history(self) -> None:
        self.show_history = not self.show_history
        if self.show_history:
            self._history_entries = await self.history.list()
        self._invalidate()

    def _source_url(self) -> str:
        content = self.controller.content
        return content.source_url if content else self.controller.page_url

    # ---- Key bindings ---------------------------------------------------
    def _build_key_bindings(self) -> KeyBindings:
        kb = KeyBindings()
        event_keys = sorted({key for mapping in _EVENT_KEYS.values() for key in mapping})

        for key in event_keys:
            @kb.add(key)
            def _(event, key=key) -> None:  # pragma: no cover - interactive behaviour
                self._handle_event_key(key)

        for key in _SETTING_KEYS:
            @kb.add(key)
            def _(event, key=key) -> None:  # pragma: no cover - interactive behaviour
                self._cycle_setting(key)

        @kb.add("C")
        def _(event) -> None:  # pragma: no cover - interactive behaviour
            self._copy_summary()

        @kb.add("S")
        def _(event) -> None:  # pragma: no cover - interactive behaviour
            self._share_summary()

        @kb.add("h")
        def _(event) -> None:  # pragma: no cover - interactive behaviour
            event.app.create_background_task(self._toggle_history())

        @kb.add("q")
        @kb.add("escape")
        @kb.add("c-c")
        def _(event) -> None:  # pragma: no cover - interactive behaviour
            event.app.exit(result=0)

        return kb

    # ---- Public API -----------------------------------------------------
    async def run_async(self) -> int:  # pragma: no cover - interactive
        def line(get_fragments, height=1) -> Window:
            return Window(
                content=FormattedTextControl(get_fragments),
                height=height,
                always_hide_cursor=True,
                wrap_lines=True,
            )

        layout = Layout(
            HSplit(
                [
                    line(self._header_fragments),
                    line(self._settings_fragments),
                    line(self._warning_fragments, height=D(max=1)),
                    Window(height=1, char="-", always_hide_cursor=True),
                    line(self._body_fragments, height=D(min=5)),
                    Window(height=1, char="-", always_hide_cursor=True),
                    line(self._messages_fragments, height=D(max=self.VISIBLE_MESSAGES)),
                    line(self._instructions_fragment),
                    line(self._status_fragment),
                ]
            )
        )

        style = Style.from_dict(
            {
                "header": "bold",
                "state": "fg:#5f87af",
                "settings": "fg:#888888",
                "warning": "fg:#d7af00",
                "body": "",
                "message": "fg:#888888",
                "message.error": "fg:#d70000",
                "instructions": "fg:#888888",
                "status": "fg:#000000 bg:#e5e5e5",
            }
        )

        self._app = Application(
            layout=layout,
            key_bindings=self._build_key_bindings(),
            style=style,
            full_screen=True,
        )
        start_task = asyncio.ensure_future(self.controller.start())
        try:
            result = await self._app.run_async()
        finally:
            self.controller.close()
            if not start_task.done():
                start_task.cancel()
        return 0 if result is None else result
