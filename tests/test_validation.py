"""Tests for page content validation."""
import pytest

from fakes import article_text
from smartshare_panel.validation import (
    MIN_CONTENT_CHARS,
    PageContent,
    ValidationReason,
    page_domain,
    validate,
)


def test_valid_article():
    result = validate(PageContent(text=article_text(150), source_url="https://example.com/post"))
    assert result.valid is True
    assert result.reason is None


@pytest.mark.parametrize(
    "url",
    [
        "https://example.com/post",
        "http://news.example.org/a?b=c",
        "https://blog.example.net",
    ],
)
@pytest.mark.parametrize("text", ["", "   ", "short text", "x" * (MIN_CONTENT_CHARS - 1), "  " + "y" * 99 + "   "])
def test_short_text_is_insufficient(url, text):
    result = validate(PageContent(text=text, source_url=url))
    assert result.reason is ValidationReason.INSUFFICIENT_CONTENT
    assert result.user_message == "too little text here"


def test_exactly_minimum_length_is_valid():
    result = validate(PageContent(text="z" * MIN_CONTENT_CHARS, source_url="https://example.com"))
    assert result.valid is True


@pytest.mark.parametrize(
    "url, domain",
    [
        ("https://mail.google.com/mail/u/0/#inbox", "mail.google.com"),
        ("https://docs.google.com/document/d/1", "docs.google.com"),
        ("https://web.whatsapp.com/", "web.whatsapp.com"),
        ("https://google.com/search?q=x", "google.com"),
        ("chrome://extensions", "chrome://extensions"),
        ("chrome-extension://abcdef/options.html", "chrome-extension://abcdef"),
        ("about:blank", "about://blank"),
    ],
)
def test_denylisted_sites(url, domain):
    result = validate(PageContent(text=article_text(300), source_url=url))
    assert result.reason is ValidationReason.UNSUPPORTED_SITE
    assert domain in result.user_message


@pytest.mark.parametrize("url", ["", "not a url", "http://", "https://[::1"])
def test_malformed_urls(url):
    result = validate(PageContent(text=article_text(300), source_url=url))
    assert result.reason is ValidationReason.MALFORMED_URL
    assert result.user_message == "page can't be summarized"


def test_page_domain_lowercases_hostname():
    assert page_domain("https://Example.COM/Path") == "example.com"


def test_validation_is_recomputed_for_new_content():
    url = "https://example.com/post"
    assert validate(PageContent(text="tiny", source_url=url)).valid is False
    assert validate(PageContent(text=article_text(120), source_url=url)).valid is True


def test_unsupported_message_wording():
    result = validate(PageContent(text=article_text(300), source_url="https://web.whatsapp.com/"))
    assert result.user_message == "you're on web.whatsapp.com — we can't summarize this yet"
