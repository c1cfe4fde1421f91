import datetime as dt
from typing import Dict, List, Optional, Union

import pytest

from tubewatch import monetization
from tubewatch.youtube import PageFetchError

CHANNEL_ID = "UC1234567890123456789012"
CHANNEL_URL = f"https://www.youtube.com/channel/{CHANNEL_ID}"
VIDEOS_URL = f"{CHANNEL_URL}/videos"

PageMap = Dict[str, Union[Optional[str], Exception]]


@pytest.fixture
def fake_pages(monkeypatch):
    """Serve canned markup by URL and record every requested URL."""
    pages: PageMap = {}
    requested: List[str] = []

    def fake_fetch(url: str, **_):
        requested.append(url)
        if url not in pages:
            raise AssertionError(f"Unexpected request: {url}")
        value = pages[url]
        if isinstance(value, Exception):
            raise value
        return value

    monkeypatch.setattr(monetization, "fetch_page", fake_fetch)
    return pages, requested


def test_membership_with_unreachable_video_pipeline(fake_pages):
    pages, requested = fake_pages
    pages[CHANNEL_URL] = '<script>var ytInitialData = {"sponsorButton": {}};</script>'
    pages[VIDEOS_URL] = PageFetchError("connection reset")

    verdict = monetization.check_channel(CHANNEL_ID)

    assert verdict.has_membership is True
    assert verdict.has_ads is False
    assert verdict.is_monetized is True
    assert verdict.confidence is monetization.Confidence.HIGH
    assert verdict.reason == "membership feature is enabled"
    assert requested == [CHANNEL_URL, VIDEOS_URL]


def test_ads_on_sampled_video(fake_pages):
    pages, requested = fake_pages
    pages[CHANNEL_URL] = "<html>nothing to see</html>"
    pages[VIDEOS_URL] = '{"videoId":"abc12345678","title":"latest"}'
    pages["https://www.youtube.com/watch?v=abc12345678"] = '{"adPlacements": []}'

    verdict = monetization.check_channel(CHANNEL_ID)

    assert verdict.has_membership is False
    assert verdict.has_ads is True
    assert verdict.is_monetized is True
    assert verdict.confidence is monetization.Confidence.MEDIUM
    assert verdict.reason == "ads detected on a sampled video"
    assert len(requested) == 3


def test_no_video_id_means_no_video_fetch(fake_pages):
    pages, requested = fake_pages
    pages[CHANNEL_URL] = "<html></html>"
    pages[VIDEOS_URL] = '<html>"videoId":"short"</html>'

    verdict = monetization.check_channel(CHANNEL_ID)

    assert verdict.is_monetized is False
    assert verdict.has_membership is False
    assert verdict.has_ads is False
    assert verdict.confidence is monetization.Confidence.LOW
    assert verdict.reason.startswith("no clear evidence")
    assert requested == [CHANNEL_URL, VIDEOS_URL]


def test_channel_page_transport_error_returns_unknown(fake_pages):
    pages, requested = fake_pages
    pages[CHANNEL_URL] = PageFetchError("DNS lookup failed")

    verdict = monetization.check_channel(CHANNEL_ID)

    assert verdict.is_monetized is None
    assert verdict.has_membership is False
    assert verdict.has_ads is False
    assert verdict.confidence is monetization.Confidence.LOW
    assert "DNS lookup failed" in verdict.reason
    assert requested == [CHANNEL_URL]


def test_unavailable_channel_page_still_samples_video(fake_pages):
    pages, _ = fake_pages
    pages[CHANNEL_URL] = None
    pages[VIDEOS_URL] = '"videoId":"ZZZZZZZZZZZ"'
    pages["https://www.youtube.com/watch?v=ZZZZZZZZZZZ"] = '"playerAds":[]'

    verdict = monetization.check_channel(CHANNEL_ID)

    assert verdict.has_membership is False
    assert verdict.has_ads is True
    assert verdict.is_monetized is True


def test_unexpected_error_in_ad_check_degrades_to_false(fake_pages, monkeypatch):
    pages, _ = fake_pages
    pages[CHANNEL_URL] = "plain"

    def broken(_):
        raise ValueError("bad markup")

    monkeypatch.setattr(monetization, "extract_first_video_id", broken)
    pages[VIDEOS_URL] = "anything"

    verdict = monetization.check_channel(CHANNEL_ID)

    assert verdict.has_ads is False
    assert verdict.is_monetized is False


def test_check_channel_never_raises(monkeypatch):
    def explode(channel_id):
        raise RuntimeError("boom")

    monkeypatch.setattr(monetization, "fetch_page", lambda url, **_: "")
    monkeypatch.setattr(monetization, "check_ads", explode)

    verdict = monetization.check_channel(CHANNEL_ID)

    assert verdict.is_monetized is None
    assert verdict.reason == "monetization check failed: boom"


@pytest.mark.parametrize(
    "has_membership, has_ads, expected",
    [
        (True, True, (True, monetization.Confidence.HIGH)),
        (True, False, (True, monetization.Confidence.HIGH)),
        (False, True, (True, monetization.Confidence.MEDIUM)),
        (False, False, (False, monetization.Confidence.LOW)),
    ],
)
def test_reduce_signals_priority(has_membership, has_ads, expected):
    is_monetized, confidence, _ = monetization.reduce_signals(has_membership, has_ads)
    assert (is_monetized, confidence) == expected
    assert is_monetized == (has_membership or has_ads)


@pytest.mark.parametrize(
    "markup",
    ['"sponsorButton"', "メンバーになる", '{"text":"Join"}', "sponsorshipButtonRenderer"],
)
def test_membership_tokens(markup):
    assert monetization.has_membership_signal(f"<html>{markup}</html>") is True


def test_membership_absent_on_empty_page():
    assert monetization.has_membership_signal("") is False
    assert monetization.has_membership_signal(None) is False
    assert monetization.has_membership_signal("Join us") is False


@pytest.mark.parametrize(
    "markup",
    ['"yt_ad":1', '"adPlacements"', '"playerAds"', "ad_preroll", '"adSlots"'],
)
def test_ad_tokens(markup):
    assert monetization.has_ad_signal(markup) is True


def test_extract_first_video_id_picks_first_match():
    html = '"videoId":"AAAAAAAAAAA","x":1,"videoId":"BBBBBBBBBBB"'
    assert monetization.extract_first_video_id(html) == "AAAAAAAAAAA"
    assert monetization.extract_first_video_id('"videoId":"too-short"') is None


def test_verdict_to_dict_shape():
    verdict = monetization.build_verdict(False, True)
    payload = verdict.to_dict()

    assert payload["isMonetized"] is True
    assert payload["hasMembership"] is False
    assert payload["hasAds"] is True
    assert payload["confidence"] == "medium"
    assert payload["indicators"] == {"hasMembership": False, "hasAds": True, "hasSuperChat": False}
    parsed = dt.datetime.fromisoformat(payload["checkedAt"])
    assert parsed.tzinfo is not None


def test_failed_verdict_to_dict_has_null_status():
    payload = monetization.failed_verdict(TimeoutError("timed out")).to_dict()
    assert payload["isMonetized"] is None
    assert payload["confidence"] == "low"
    assert payload["reason"] == "monetization check failed: timed out"
