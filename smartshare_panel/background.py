"""Background collaborator: tracks the active tab and extracts its readable text."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx
from bs4 import BeautifulSoup, Comment

from .extraction import EXTRACT_ACTION
from .storage import PAGE_CONTENT_KEY, PAGE_URL_KEY, StorageArea

MAX_EXTRACT_CHARS = 6000

_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
_NOISE_SELECTORS = "script, style, noscript, template"
_WHITESPACE = re.compile(r"\s+")
_HTTP_URL = re.compile(r"^https?:", re.IGNORECASE)

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Mapping[str, Any]], Awaitable[Dict[str, Any]]]


def extract_readable_text(markup: str, limit: int = MAX_EXTRACT_CHARS) -> str:
    """Return the visible body text of an HTML document, trimmed to ``limit`` chars."""
    soup = BeautifulSoup(markup or "", "lxml")
    for bad in soup.select(_NOISE_SELECTORS):
        bad.decompose()
    for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
        comment.extract()

    root = soup.body or soup
    text = _WHITESPACE.sub(" ", root.get_text(" ", strip=True)).strip()
    return text[:limit]


class PageTextExtractor:
    """Fetch a page over HTTP and reduce it to readable text."""

    def __init__(
        self,
        *,
        timeout: float = 15.0,
        limit: int = MAX_EXTRACT_CHARS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.limit = limit
        self._client = httpx.AsyncClient(
            headers={"User-Agent": _USER_AGENT},
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def extract(self, url: str) -> str:
        response = await self._client.get(url)
        response.raise_for_status()
        return extract_readable_text(response.text, self.limit)

    async def aclose(self) -> None:
        await self._client.aclose()


@dataclass
class Tab:
    url: str
    status: str = "loading"


class TabTracker:
    """Holds the single active tab of the host window."""

    def __init__(self, url: Optional[str] = None) -> None:
        self.active: Optional[Tab] = Tab(url=url) if url else None

    def open(self, url: str) -> Tab:
        self.active = Tab(url=url)
        return self.active

    def close(self) -> None:
        self.active = None


class BackgroundWorker:
    """Answers panel messages and auto-extracts pages once they finish loading."""

    def __init__(
        self,
        tabs: TabTracker,
        extractor: PageTextExtractor,
        session_storage: StorageArea,
    ) -> None:
        self.tabs = tabs
        self._extractor = extractor
        self._session_storage = session_storage

    async def navigate(self, url: str) -> None:
        """Open ``url`` in the active tab and run the load-complete hook."""
        tab = self.tabs.open(url)
        tab.status = "complete"
        await self.on_tab_updated(tab.url, tab.status)

    async def on_tab_updated(self, url: str, status: str) -> None:
        if status != "complete" or not _HTTP_URL.match(url):
            return
        try:
            text = await self._extractor.extract(url)
        except httpx.HTTPError as exc:
            logger.error("Auto extraction failed for %s: %s", url, exc)
            return
        await self._session_storage.set({PAGE_CONTENT_KEY: text, PAGE_URL_KEY: url})
        logger.info("Extracted content from: %s", url)

    async def handle_message(self, message: Mapping[str, Any]) -> Dict[str, Any]:
        action = message.get("action") if isinstance(message, Mapping) else None
        if action != EXTRACT_ACTION:
            return {"success": False, "error": f"Unknown action: {action}"}

        tab = self.tabs.active
        if tab is None:
            return {"success": False, "error": "No active tab"}

        try:
            text = await self._extractor.extract(tab.url)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Extraction failed for %s: %s", tab.url, exc)
            return {"success": False, "error": str(exc) or type(exc).__name__}

        await self._session_storage.set({PAGE_CONTENT_KEY: text, PAGE_URL_KEY: tab.url})
        logger.info("Content extracted: %d chars", len(text))
        return {"success": True, "content": text, "url": tab.url}


class MessageChannel:
    """In-process request/response channel between the panel and the worker."""

    def __init__(self, handler: Optional[MessageHandler] = None) -> None:
        self._handler = handler

    def connect(self, handler: MessageHandler) -> None:
        self._handler = handler

    async def send_message(self, message: Mapping[str, Any]) -> Dict[str, Any]:
        if self._handler is None:
            raise ConnectionError("Could not establish connection. Receiving end does not exist.")
        return await self._handler(dict(message))
