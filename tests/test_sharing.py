from urllib.parse import parse_qs, urlsplit

import pytest

from smartshare_panel.sharing import NothingToShareError, clipboard_payload, linkedin_share_url


def test_clipboard_payload_appends_link():
    payload = clipboard_payload("- a\n- b\n", "https://example.com/a")
    assert payload == "- a\n- b\n\nRead full article: https://example.com/a"


def test_linkedin_url_encodes_parameters():
    share = linkedin_share_url("https://example.com/a?x=1&y=2", "Big news & more")

    parts = urlsplit(share)
    assert parts.netloc == "www.linkedin.com"
    assert parts.path == "/sharing/share-offsite/"
    query = parse_qs(parts.query)
    assert query["url"] == ["https://example.com/a?x=1&y=2"]
    assert query["summary"] == ["Big news & more"]


@pytest.mark.parametrize("summary", ["", "  \n", None])
def test_empty_summary_cannot_be_shared(summary):
    with pytest.raises(NothingToShareError, match="No summary to copy!"):
        clipboard_payload(summary, "https://example.com")
    with pytest.raises(NothingToShareError, match="No summary to share!"):
        linkedin_share_url("https://example.com", summary)
