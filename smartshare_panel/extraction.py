"""Panel-side gateway to the background page extractor."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional

from .storage import PAGE_CONTENT_KEY, PAGE_URL_KEY, StorageArea
from .validation import PageContent

EXTRACT_ACTION = "extractContent"

SendMessage = Callable[[Mapping[str, Any]], Awaitable[Mapping[str, Any]]]


class ExtractionErrorKind(str, Enum):
    NO_ACTIVE_TAB = "no-active-tab"
    TRANSPORT_FAILURE = "transport-failure"
    EMPTY_RESULT = "empty-result"


class ExtractionError(RuntimeError):
    """Raised when page text could not be obtained from the active tab."""

    def __init__(self, kind: ExtractionErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class ExtractionGateway:
    """Ask the background collaborator for page text and share it via session storage."""

    def __init__(
        self,
        send_message: SendMessage,
        session_storage: StorageArea,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._send_message = send_message
        self._session_storage = session_storage
        self._logger = logger or logging.getLogger(__name__)

    async def request_extraction(self) -> PageContent:
        try:
            response = await self._send_message({"action": EXTRACT_ACTION})
        except Exception as exc:
            self._logger.error("Extraction request failed: %s", exc)
            raise ExtractionError(ExtractionErrorKind.TRANSPORT_FAILURE, str(exc) or type(exc).__name__) from exc

        if not isinstance(response, Mapping):
            raise ExtractionError(
                ExtractionErrorKind.TRANSPORT_FAILURE, "Extractor returned an unexpected response"
            )

        if not response.get("success"):
            error = str(response.get("error") or "Extraction failed")
            kind = (
                ExtractionErrorKind.NO_ACTIVE_TAB
                if error.lower() == "no active tab"
                else ExtractionErrorKind.TRANSPORT_FAILURE
            )
            self._logger.error("Extractor reported failure: %s", error)
            raise ExtractionError(kind, error)

        text = response.get("content")
        url = response.get("url")
        if not isinstance(text, str) or not text.strip():
            raise ExtractionError(ExtractionErrorKind.EMPTY_RESULT, "The page has no readable text")

        content = PageContent(text=text, source_url=url if isinstance(url, str) else "")
        await self._session_storage.set(
            {PAGE_CONTENT_KEY: content.text, PAGE_URL_KEY: content.source_url}
        )
        self._logger.debug(
            "extraction-complete",
            extra={"extraction": {"url": content.source_url, "chars": len(content.text)}},
        )
        return content
