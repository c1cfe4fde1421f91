"""Plain page fetching and channel reference helpers for youtube.com."""
from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import unquote, urlparse

import requests

from . import config

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept-Language": "ja,en;q=0.9",
}

CHANNEL_URL_TEMPLATE = "https://www.youtube.com/channel/{channel_id}"
VIDEOS_URL_TEMPLATE = "https://www.youtube.com/channel/{channel_id}/videos"
WATCH_URL_TEMPLATE = "https://www.youtube.com/watch?v={video_id}"

CHANNEL_ID_PATTERN = re.compile(r"(UC[\w-]{22})")
CHANNEL_PATH_PATTERN = re.compile(r"youtube\.com/channel/(UC[\w-]+)")
HANDLE_PATH_PATTERN = re.compile(r"youtube\.com/@([^/?&#]+)")
CUSTOM_PATH_PATTERN = re.compile(r"youtube\.com/(?:c|user)/([^/?&#]+)")


class PageFetchError(RuntimeError):
    """Raised when a page could not be retrieved at the transport level."""


def fetch_page(url: str, *, timeout: Optional[float] = None) -> Optional[str]:
    """Return the markup at ``url`` or ``None`` when the site answers non-2xx.

    Network errors and timeouts are raised as :class:`PageFetchError`; callers
    decide whether that degrades a signal or aborts their work.
    """

    if timeout is None:
        timeout = config.PAGE_FETCH_TIMEOUT
    try:
        response = requests.get(url, headers=HEADERS, timeout=timeout)
    except requests.RequestException as exc:
        raise PageFetchError(f"Failed to load {url}: {exc}") from exc

    if not 200 <= response.status_code < 300:
        logger.debug("Page %s not available (HTTP %s)", url, response.status_code)
        return None
    return response.text


def channel_page_url(channel_id: str) -> str:
    return CHANNEL_URL_TEMPLATE.format(channel_id=channel_id)


def channel_videos_url(channel_id: str) -> str:
    return VIDEOS_URL_TEMPLATE.format(channel_id=channel_id)


def watch_url(video_id: str) -> str:
    return WATCH_URL_TEMPLATE.format(video_id=video_id)


def sanitize_channel_input(value: Optional[str]) -> str:
    """Strip invisible characters, wrapping quotes and trailing junk."""

    if value is None:
        return ""
    cleaned = str(value).strip()
    if not cleaned:
        return ""
    cleaned = cleaned.replace("\ufeff", "")
    for marker in ("\u200b", "\u200c", "\u200d", "\u200e", "\u200f"):
        cleaned = cleaned.replace(marker, "")
    cleaned = "".join(ch for ch in cleaned if ch.isprintable())
    cleaned = cleaned.strip().strip("<>\"'()")
    if not cleaned:
        return ""
    cleaned = cleaned.splitlines()[0].strip()
    return cleaned.rstrip(",;)")


def extract_channel_id(value: Optional[str]) -> Optional[str]:
    """Return the ``UC...`` id from a ``/channel/`` URL, if it has one."""

    candidate = sanitize_channel_input(value)
    if not candidate:
        return None
    decoded = unquote(candidate)
    match = CHANNEL_PATH_PATTERN.search(decoded)
    if match:
        return match.group(1)
    if CHANNEL_ID_PATTERN.fullmatch(decoded):
        return decoded
    return None


def extract_handle(value: Optional[str]) -> Optional[str]:
    """Return the ``@handle`` or legacy ``/c/`` and ``/user/`` name of a URL."""

    candidate = sanitize_channel_input(value)
    if not candidate:
        return None
    decoded = unquote(candidate)
    if decoded.startswith("@"):
        handle = decoded[1:].split("/", 1)[0]
        return handle or None
    if not re.match(r"^https?://", decoded, re.IGNORECASE):
        decoded = f"https://{decoded}"
    parsed = urlparse(decoded)
    if "youtube.com" not in parsed.netloc.lower():
        return None
    for pattern in (HANDLE_PATH_PATTERN, CUSTOM_PATH_PATTERN):
        match = pattern.search(decoded)
        if match:
            return match.group(1)
    return None
