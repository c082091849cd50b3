"""Payloads for copying and sharing a finished summary."""
from __future__ import annotations

from urllib.parse import quote

LINKEDIN_SHARE_URL = "https://www.linkedin.com/sharing/share-offsite/"


class NothingToShareError(ValueError):
    """Raised when there is no summary text to copy or share."""


def clipboard_payload(summary: str, url: str) -> str:
    text = (summary or "").strip()
    if not text:
        raise NothingToShareError("No summary to copy!")
    return f"{text}\n\nRead full article: {url}"


def linkedin_share_url(url: str, summary: str) -> str:
    text = (summary or "").strip()
    if not text:
        raise NothingToShareError("No summary to share!")
    return f"{LINKEDIN_SHARE_URL}?url={quote(url, safe='')}&summary={quote(text, safe='')}"
