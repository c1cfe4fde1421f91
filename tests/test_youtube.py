from typing import Any, Dict, List

import pytest
import requests

from tubewatch import youtube


class DummyResponse:
    def __init__(self, status_code: int, text: str = ""):
        self.status_code = status_code
        self.text = text


@pytest.fixture
def captured_gets(monkeypatch):
    calls: List[Dict[str, Any]] = []
    responses: List[Any] = []

    def fake_get(url: str, **kwargs: Any):
        calls.append({"url": url, **kwargs})
        response = responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(youtube.requests, "get", fake_get)
    return calls, responses


def test_fetch_page_returns_markup_with_browser_headers(captured_gets):
    calls, responses = captured_gets
    responses.append(DummyResponse(200, "<html>ok</html>"))

    assert youtube.fetch_page("https://www.youtube.com/channel/UCX", timeout=3) == "<html>ok</html>"

    call = calls[0]
    assert call["headers"]["User-Agent"].startswith("Mozilla/5.0")
    assert call["headers"]["Accept-Language"] == "ja,en;q=0.9"
    assert set(call["headers"]) == {"User-Agent", "Accept-Language"}
    assert call["timeout"] == 3


@pytest.mark.parametrize("status", [404, 429, 500, 503])
def test_fetch_page_non_success_is_not_available(captured_gets, status):
    _, responses = captured_gets
    responses.append(DummyResponse(status, "error page"))

    assert youtube.fetch_page("https://www.youtube.com/watch?v=abc") is None


def test_fetch_page_transport_failure_raises(captured_gets):
    calls, responses = captured_gets
    responses.append(requests.ConnectionError("connection reset"))

    with pytest.raises(youtube.PageFetchError) as exc:
        youtube.fetch_page("https://www.youtube.com/channel/UCX")

    assert "connection reset" in str(exc.value)
    assert len(calls) == 1


def test_fetch_page_timeout_is_not_retried(captured_gets):
    calls, responses = captured_gets
    responses.append(requests.Timeout("read timed out"))

    with pytest.raises(youtube.PageFetchError):
        youtube.fetch_page("https://www.youtube.com/channel/UCX")
    assert len(calls) == 1


def test_page_urls():
    assert youtube.channel_page_url("UCabc") == "https://www.youtube.com/channel/UCabc"
    assert youtube.channel_videos_url("UCabc") == "https://www.youtube.com/channel/UCabc/videos"
    assert youtube.watch_url("abc12345678") == "https://www.youtube.com/watch?v=abc12345678"


@pytest.mark.parametrize(
    "value, expected",
    [
        ("https://www.youtube.com/channel/UC1234567890123456789012", "UC1234567890123456789012"),
        ("youtube.com/channel/UC1234567890123456789012/videos", "UC1234567890123456789012"),
        ("UC1234567890123456789012", "UC1234567890123456789012"),
        ("  'https://www.youtube.com/channel/UC1234567890123456789012'\u200b ", "UC1234567890123456789012"),
        ("https://www.youtube.com/@example", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_channel_id(value, expected):
    assert youtube.extract_channel_id(value) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("https://www.youtube.com/@example", "example"),
        ("https://www.youtube.com/@example/videos?x=1", "example"),
        ("https://www.youtube.com/%40%E3%83%86%E3%82%B9%E3%83%88", "テスト"),
        ("youtube.com/c/LegacyName", "LegacyName"),
        ("https://www.youtube.com/user/OldUser", "OldUser"),
        ("@handle", "handle"),
        ("https://example.com/@someone", None),
        ("https://www.youtube.com/watch?v=abc", None),
    ],
)
def test_extract_handle(value, expected):
    assert youtube.extract_handle(value) == expected
