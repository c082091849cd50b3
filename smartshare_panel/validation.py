"""Decide whether extracted page content can be summarized."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import urlsplit

MIN_CONTENT_CHARS = 100

# Hostnames and pseudo-protocol pages on which summarization is disabled.
DENYLIST = (
    "mail.google.com",
    "docs.google.com",
    "drive.google.com",
    "accounts.google.com",
    "chromewebstore.google.com",
    "web.whatsapp.com",
    "chrome://",
    "chrome-extension://",
    "edge://",
    "about://",
)


class ValidationReason(str, Enum):
    UNSUPPORTED_SITE = "unsupported-site"
    INSUFFICIENT_CONTENT = "insufficient-content"
    MALFORMED_URL = "malformed-url"


@dataclass(frozen=True)
class PageContent:
    """Text captured from a page together with the URL it came from."""

    text: str
    source_url: str


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Optional[ValidationReason] = None
    user_message: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def invalid(cls, reason: ValidationReason, user_message: str) -> "ValidationResult":
        return cls(valid=False, reason=reason, user_message=user_message)


def page_domain(source_url: str) -> Optional[str]:
    """Return the domain used for denylist checks, or ``None`` if unparsable.

    HTTP(S) pages yield their hostname; other schemes yield ``scheme://netloc``
    (or ``scheme://path`` for opaque URLs such as ``about:blank``).
    """
    try:
        parts = urlsplit(source_url.strip())
        hostname = parts.hostname
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    if not scheme:
        return None
    if scheme in {"http", "https"}:
        return hostname or None
    target = parts.netloc or parts.path
    if not target:
        return None
    return f"{scheme}://{target.lower()}"


def is_denylisted(domain: str) -> bool:
    for blocked in DENYLIST:
        if blocked in domain or domain in blocked:
            return True
    return False


def validate(content: PageContent) -> ValidationResult:
    domain = page_domain(content.source_url or "")
    if domain is None:
        return ValidationResult.invalid(
            ValidationReason.MALFORMED_URL, "page can't be summarized"
        )
    if is_denylisted(domain):
        return ValidationResult.invalid(
            ValidationReason.UNSUPPORTED_SITE,
            f"you're on {domain} — we can't summarize this yet",
        )
    if len((content.text or "").strip()) < MIN_CONTENT_CHARS:
        return ValidationResult.invalid(
            ValidationReason.INSUFFICIENT_CONTENT, "too little text here"
        )
    return ValidationResult.ok()
