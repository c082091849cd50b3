"""Tests for the background worker and page text extraction."""
import httpx
import pytest

from smartshare_panel.background import (
    MAX_EXTRACT_CHARS,
    BackgroundWorker,
    MessageChannel,
    PageTextExtractor,
    TabTracker,
    extract_readable_text,
)
from smartshare_panel.extraction import EXTRACT_ACTION, ExtractionGateway
from smartshare_panel.storage import PAGE_CONTENT_KEY, PAGE_URL_KEY, SessionStorage

PAGE = """<html><head><title>T</title><style>body { color: red; }</style>
<script>var secret = "hidden";</script></head>
<body><!-- nav --><h1>Hello &amp; welcome</h1>
<p>First   paragraph.</p><noscript>enable js</noscript><p>Second</p></body></html>"""


def _extractor(pages):
    def handler(request: httpx.Request) -> httpx.Response:
        body = pages.get(str(request.url))
        if body is None:
            return httpx.Response(404, text="missing")
        return httpx.Response(200, text=body)

    return PageTextExtractor(transport=httpx.MockTransport(handler))


def test_extract_readable_text_drops_markup():
    text = extract_readable_text(PAGE)

    assert text == "Hello & welcome First paragraph. Second"
    assert "hidden" not in text
    assert "enable js" not in text


def test_extract_readable_text_starts_at_body():
    markup = "<head><title>Site Title | Brand</title></head><body><p>Article body</p></body>"

    assert extract_readable_text(markup) == "Article body"


def test_extract_readable_text_without_body_markup():
    assert extract_readable_text("plain words &lt;here&gt;") == "plain words <here>"
    assert extract_readable_text("") == ""


def test_extract_readable_text_truncates():
    markup = "<p>" + "a" * (MAX_EXTRACT_CHARS + 500) + "</p>"

    assert len(extract_readable_text(markup)) == MAX_EXTRACT_CHARS
    assert extract_readable_text(markup, limit=10) == "a" * 10


@pytest.mark.asyncio
async def test_handle_message_extracts_active_tab():
    storage = SessionStorage()
    extractor = _extractor({"https://example.com/post": PAGE})
    worker = BackgroundWorker(TabTracker("https://example.com/post"), extractor, storage)

    response = await worker.handle_message({"action": EXTRACT_ACTION})
    await extractor.aclose()

    assert response["success"] is True
    assert response["url"] == "https://example.com/post"
    assert response["content"].startswith("Hello & welcome")
    stored = await storage.get([PAGE_CONTENT_KEY, PAGE_URL_KEY])
    assert stored[PAGE_URL_KEY] == "https://example.com/post"


@pytest.mark.asyncio
async def test_handle_message_without_tab():
    worker = BackgroundWorker(TabTracker(), _extractor({}), SessionStorage())

    response = await worker.handle_message({"action": EXTRACT_ACTION})

    assert response == {"success": False, "error": "No active tab"}


@pytest.mark.asyncio
async def test_handle_message_unknown_action():
    worker = BackgroundWorker(TabTracker("https://example.com"), _extractor({}), SessionStorage())

    response = await worker.handle_message({"action": "summarize"})

    assert response == {"success": False, "error": "Unknown action: summarize"}


@pytest.mark.asyncio
async def test_handle_message_http_error():
    storage = SessionStorage()
    worker = BackgroundWorker(TabTracker("https://example.com/gone"), _extractor({}), storage)

    response = await worker.handle_message({"action": EXTRACT_ACTION})

    assert response["success"] is False
    assert "404" in response["error"]
    assert await storage.get([PAGE_CONTENT_KEY]) == {}


@pytest.mark.asyncio
async def test_tab_update_extracts_only_completed_http_pages():
    storage = SessionStorage()
    worker = BackgroundWorker(TabTracker(), _extractor({"https://example.com/": PAGE}), storage)

    await worker.on_tab_updated("chrome://extensions", "complete")
    await worker.on_tab_updated("https://example.com/", "loading")
    assert await storage.get([PAGE_CONTENT_KEY]) == {}

    await worker.on_tab_updated("https://example.com/", "complete")
    stored = await storage.get([PAGE_CONTENT_KEY, PAGE_URL_KEY])
    assert stored[PAGE_URL_KEY] == "https://example.com/"
    assert "Second" in stored[PAGE_CONTENT_KEY]


@pytest.mark.asyncio
async def test_navigate_opens_tab_and_extracts():
    storage = SessionStorage()
    tabs = TabTracker()
    worker = BackgroundWorker(tabs, _extractor({"https://example.com/a": PAGE}), storage)

    await worker.navigate("https://example.com/a")

    assert tabs.active is not None
    assert tabs.active.status == "complete"
    assert (await storage.get([PAGE_URL_KEY]))[PAGE_URL_KEY] == "https://example.com/a"


@pytest.mark.asyncio
async def test_unconnected_channel_raises():
    with pytest.raises(ConnectionError):
        await MessageChannel().send_message({"action": EXTRACT_ACTION})


@pytest.mark.asyncio
async def test_gateway_through_channel_and_worker():
    storage = SessionStorage()
    worker = BackgroundWorker(
        TabTracker("https://example.com/post"), _extractor({"https://example.com/post": PAGE}), storage
    )
    channel = MessageChannel(worker.handle_message)

    content = await ExtractionGateway(channel.send_message, storage).request_extraction()

    assert content.source_url == "https://example.com/post"
    assert "First paragraph." in content.text
