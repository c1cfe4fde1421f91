"""Infer whether a channel is monetized from its public pages.

The checks below are substring matches against raw markup. The tokens live in
the ``ytInitialData``/``ytInitialPlayerResponse`` script blobs rather than in
the rendered DOM, so there is nothing to gain from parsing the HTML. This also
means detection breaks silently whenever YouTube renames those keys.
"""
from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .youtube import channel_page_url, channel_videos_url, fetch_page, watch_url

logger = logging.getLogger(__name__)

MEMBERSHIP_TOKENS = (
    '"sponsorButton"',
    "メンバーになる",
    '"Join"',
    "sponsorshipButton",
)

AD_TOKENS = (
    '"yt_ad"',
    '"adPlacements"',
    '"playerAds"',
    "ad_preroll",
    '"adSlots"',
)

VIDEO_ID_PATTERN = re.compile(r'"videoId":"([a-zA-Z0-9_-]{11})"')

REASON_MEMBERSHIP = "membership feature is enabled"
REASON_ADS = "ads detected on a sampled video"
REASON_NO_EVIDENCE = "no clear evidence of monetization found"
REASON_FAILED = "monetization check failed: {error}"


class Confidence(str, Enum):
    """How much weight the strongest signal carries."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class MonetizationIndicators:
    has_membership: bool = False
    has_ads: bool = False
    # Super Chat detection is not implemented; always False.
    has_super_chat: bool = False


@dataclass(frozen=True)
class MonetizationVerdict:
    """Outcome of one monetization check.

    ``is_monetized`` is ``None`` when the channel page itself could not be
    loaded, which is different from a check that ran and found nothing.
    """

    is_monetized: Optional[bool]
    checked_at: str
    confidence: Confidence
    reason: str
    indicators: MonetizationIndicators = field(default_factory=MonetizationIndicators)

    @property
    def has_membership(self) -> bool:
        return self.indicators.has_membership

    @property
    def has_ads(self) -> bool:
        return self.indicators.has_ads

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isMonetized": self.is_monetized,
            "hasMembership": self.indicators.has_membership,
            "hasAds": self.indicators.has_ads,
            "checkedAt": self.checked_at,
            "confidence": self.confidence.value,
            "reason": self.reason,
            "indicators": {
                "hasMembership": self.indicators.has_membership,
                "hasAds": self.indicators.has_ads,
                "hasSuperChat": self.indicators.has_super_chat,
            },
        }


def _utcnow_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0).isoformat()


def has_membership_signal(html_text: Optional[str]) -> bool:
    if not html_text:
        return False
    return any(token in html_text for token in MEMBERSHIP_TOKENS)


def has_ad_signal(html_text: Optional[str]) -> bool:
    if not html_text:
        return False
    return any(token in html_text for token in AD_TOKENS)


def extract_first_video_id(html_text: Optional[str]) -> Optional[str]:
    if not html_text:
        return None
    match = VIDEO_ID_PATTERN.search(html_text)
    if match:
        return match.group(1)
    return None


def check_ads(channel_id: str) -> bool:
    """Sample the newest video of a channel and look for ad slot state.

    Issues at most two requests: the ``/videos`` listing and one watch page.
    Any failure along the way counts as "no ads seen".
    """

    try:
        listing_html = fetch_page(channel_videos_url(channel_id))
        video_id = extract_first_video_id(listing_html)
        if not video_id:
            logger.debug("No video found on listing page for %s", channel_id)
            return False
        video_html = fetch_page(watch_url(video_id))
        has_ads = has_ad_signal(video_html)
    except Exception as exc:
        logger.warning("Ad check failed for channel %s: %s", channel_id, exc)
        return False
    logger.debug("Ad check for %s video %s: %s", channel_id, video_id, has_ads)
    return has_ads


def reduce_signals(has_membership: bool, has_ads: bool) -> Tuple[bool, Confidence, str]:
    # First match wins: membership, then ads.
    if has_membership:
        return True, Confidence.HIGH, REASON_MEMBERSHIP
    if has_ads:
        return True, Confidence.MEDIUM, REASON_ADS
    return False, Confidence.LOW, REASON_NO_EVIDENCE


def build_verdict(has_membership: bool, has_ads: bool) -> MonetizationVerdict:
    is_monetized, confidence, reason = reduce_signals(has_membership, has_ads)
    return MonetizationVerdict(
        is_monetized=is_monetized,
        checked_at=_utcnow_iso(),
        confidence=confidence,
        reason=reason,
        indicators=MonetizationIndicators(
            has_membership=has_membership,
            has_ads=has_ads,
        ),
    )


def failed_verdict(error: BaseException) -> MonetizationVerdict:
    return MonetizationVerdict(
        is_monetized=None,
        checked_at=_utcnow_iso(),
        confidence=Confidence.LOW,
        reason=REASON_FAILED.format(error=error),
        indicators=MonetizationIndicators(),
    )


def check_channel(channel_id: str) -> MonetizationVerdict:
    """Run the full check for ``channel_id``. Never raises."""

    try:
        channel_html = fetch_page(channel_page_url(channel_id))
        has_membership = has_membership_signal(channel_html)
        has_ads = check_ads(channel_id)
        verdict = build_verdict(has_membership, has_ads)
    except Exception as exc:
        logger.error("Monetization check error for channel %s: %s", channel_id, exc)
        return failed_verdict(exc)

    logger.info(
        "Monetization check %s: membership=%s ads=%s monetized=%s",
        channel_id,
        has_membership,
        has_ads,
        verdict.is_monetized,
    )
    return verdict
