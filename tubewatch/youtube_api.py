"""YouTube Data API v3 access and conversion into the stored channel shape."""
from __future__ import annotations

import logging
import math
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import requests

from .youtube import extract_channel_id, extract_handle

logger = logging.getLogger(__name__)

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
CHANNEL_PARTS = "snippet,statistics,brandingSettings,topicDetails,contentDetails"
MAX_IDS_PER_REQUEST = 50
UNKNOWN_CHANNEL_NAME = "Unknown Channel"
SOURCES = ("manual", "search")

_KEYWORD_SPLIT = re.compile(r"[,\s]+")
_LEADING_INT = re.compile(r"\s*\+?(\d+)")


class YouTubeAPIError(RuntimeError):
    """Raised when the Data API answers with a non-success status."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        super().__init__(message or f"YouTube API error: {status_code}")
        self.status_code = status_code


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def _parse_count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, float):
        return int(value) if math.isfinite(value) and value > 0 else 0
    if not isinstance(value, str):
        return 0
    match = _LEADING_INT.match(value)
    if not match:
        return 0
    return int(match.group(1), 10)


@dataclass(frozen=True)
class Thumbnails:
    default: Optional[str] = None
    medium: Optional[str] = None
    high: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "Thumbnails":
        data = _as_dict(data)
        return cls(
            default=_as_str(_as_dict(data.get("default")).get("url")),
            medium=_as_str(_as_dict(data.get("medium")).get("url")),
            high=_as_str(_as_dict(data.get("high")).get("url")),
        )

    def best(self) -> Optional[str]:
        return self.high or self.medium or self.default


@dataclass(frozen=True)
class ChannelSnippet:
    title: Optional[str] = None
    description: Optional[str] = None
    custom_url: Optional[str] = None
    published_at: Optional[str] = None
    country: Optional[str] = None
    thumbnails: Thumbnails = field(default_factory=Thumbnails)

    @classmethod
    def from_dict(cls, data: Any) -> "ChannelSnippet":
        data = _as_dict(data)
        return cls(
            title=_as_str(data.get("title")),
            description=_as_str(data.get("description")),
            custom_url=_as_str(data.get("customUrl")),
            published_at=_as_str(data.get("publishedAt")),
            country=_as_str(data.get("country")),
            thumbnails=Thumbnails.from_dict(data.get("thumbnails")),
        )


@dataclass(frozen=True)
class ChannelStatistics:
    subscriber_count: Any = None
    video_count: Any = None
    view_count: Any = None
    hidden_subscriber_count: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> "ChannelStatistics":
        data = _as_dict(data)
        return cls(
            subscriber_count=data.get("subscriberCount"),
            video_count=data.get("videoCount"),
            view_count=data.get("viewCount"),
            hidden_subscriber_count=bool(data.get("hiddenSubscriberCount", False)),
        )


def _resource_id(data: Dict[str, Any]) -> str:
    # search#list items nest the id as {"kind": ..., "channelId": ...}
    raw = data.get("id")
    if isinstance(raw, str):
        return raw
    return (
        _as_str(_as_dict(raw).get("channelId"))
        or _as_str(_as_dict(data.get("snippet")).get("channelId"))
        or ""
    )


@dataclass(frozen=True)
class ChannelResource:
    """A ``youtube#channel`` resource with every group optional."""

    id: str
    snippet: ChannelSnippet = field(default_factory=ChannelSnippet)
    statistics: ChannelStatistics = field(default_factory=ChannelStatistics)
    keywords: Optional[str] = None
    topic_categories: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChannelResource":
        branding = _as_dict(_as_dict(data.get("brandingSettings")).get("channel"))
        topics = _as_dict(data.get("topicDetails")).get("topicCategories")
        return cls(
            id=_resource_id(data),
            snippet=ChannelSnippet.from_dict(data.get("snippet")),
            statistics=ChannelStatistics.from_dict(data.get("statistics")),
            keywords=_as_str(branding.get("keywords")),
            topic_categories=[str(item) for item in topics] if isinstance(topics, list) else None,
        )


@dataclass
class ChannelMetadata:
    channel_id: str
    channel_name: str
    channel_url: str
    custom_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    description: Optional[str] = None
    subscriber_count: int = 0
    video_count: int = 0
    view_count: int = 0
    country: Optional[str] = None
    published_at: Optional[str] = None
    keywords: Optional[List[str]] = None
    topic_categories: Optional[List[str]] = None
    source: str = "manual"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], *, source: Optional[str] = None) -> "ChannelMetadata":
        """Rebuild metadata posted back by a client, e.g. from a search result."""

        channel_id = str(data.get("channel_id") or "").strip()
        if not channel_id:
            raise ValueError("channel_id is required")
        keywords = data.get("keywords")
        topics = data.get("topic_categories")
        return cls(
            channel_id=channel_id,
            channel_name=_as_str(data.get("channel_name")) or UNKNOWN_CHANNEL_NAME,
            channel_url=_as_str(data.get("channel_url"))
            or f"https://www.youtube.com/channel/{channel_id}",
            custom_url=_as_str(data.get("custom_url")),
            thumbnail_url=_as_str(data.get("thumbnail_url")),
            description=_as_str(data.get("description")),
            subscriber_count=_parse_count(data.get("subscriber_count")),
            video_count=_parse_count(data.get("video_count")),
            view_count=_parse_count(data.get("view_count")),
            country=_as_str(data.get("country")),
            published_at=_as_str(data.get("published_at")),
            keywords=[str(item) for item in keywords] if isinstance(keywords, list) else None,
            topic_categories=[str(item) for item in topics] if isinstance(topics, list) else None,
            source=_normalize_source(source or data.get("source")),
        )


def _normalize_source(value: Any) -> str:
    if value in SOURCES:
        return value
    return "manual"


def _tokenize_keywords(raw: Optional[str]) -> Optional[List[str]]:
    if not raw:
        return None
    return [token for token in _KEYWORD_SPLIT.split(raw) if token]


def normalize_channel(raw: Any, source: str = "manual") -> ChannelMetadata:
    """Convert a channel resource (dict or :class:`ChannelResource`)."""

    resource = raw if isinstance(raw, ChannelResource) else ChannelResource.from_dict(_as_dict(raw))
    snippet = resource.snippet
    stats = resource.statistics
    return ChannelMetadata(
        channel_id=resource.id,
        channel_name=snippet.title or UNKNOWN_CHANNEL_NAME,
        channel_url=f"https://www.youtube.com/channel/{resource.id}",
        custom_url=snippet.custom_url,
        thumbnail_url=snippet.thumbnails.best(),
        description=snippet.description,
        subscriber_count=_parse_count(stats.subscriber_count),
        video_count=_parse_count(stats.video_count),
        view_count=_parse_count(stats.view_count),
        country=snippet.country,
        published_at=snippet.published_at,
        keywords=_tokenize_keywords(resource.keywords),
        topic_categories=resource.topic_categories,
        source=_normalize_source(source),
    )


@dataclass
class ChannelSearchPage:
    channels: List[ChannelMetadata]
    next_page_token: Optional[str]
    total_results: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channels": [channel.to_dict() for channel in self.channels],
            "nextPageToken": self.next_page_token,
            "totalResults": self.total_results,
        }


class YouTubeDataClient:
    """Thin wrapper over the Data API endpoints the service uses."""

    def __init__(self, api_key: str, *, timeout: float = 10.0):
        if not api_key:
            raise ValueError("A YouTube API key is required")
        self.api_key = api_key
        self.timeout = timeout

    def _get(self, resource: str, params: Dict[str, Any]) -> Dict[str, Any]:
        query = dict(params)
        query["key"] = self.api_key
        response = requests.get(
            f"{YOUTUBE_API_BASE}/{resource}",
            params=query,
            timeout=self.timeout,
        )
        if not 200 <= response.status_code < 300:
            logger.warning("YouTube API %s returned HTTP %s", resource, response.status_code)
            raise YouTubeAPIError(response.status_code)
        payload = response.json()
        return payload if isinstance(payload, dict) else {}

    def _first_channel(self, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        payload = self._get("channels", {"part": CHANNEL_PARTS, **params})
        items = payload.get("items") or []
        return items[0] if items else None

    def get_channel_by_id(self, channel_id: str) -> Optional[Dict[str, Any]]:
        return self._first_channel({"id": channel_id})

    def get_channel_by_handle(self, handle: str) -> Optional[Dict[str, Any]]:
        return self._first_channel({"forHandle": handle.replace("@", "")})

    def get_channel_by_url(self, url: str) -> Optional[Dict[str, Any]]:
        channel_id = extract_channel_id(url)
        if channel_id:
            return self.get_channel_by_id(channel_id)
        handle = extract_handle(url)
        if handle:
            return self.get_channel_by_handle(handle)
        return None

    def get_channels_by_ids(self, channel_ids: List[str]) -> List[Dict[str, Any]]:
        if not channel_ids:
            return []
        if len(channel_ids) > MAX_IDS_PER_REQUEST:
            raise ValueError(f"Maximum {MAX_IDS_PER_REQUEST} channels per request")
        payload = self._get("channels", {"part": CHANNEL_PARTS, "id": ",".join(channel_ids)})
        return list(payload.get("items") or [])

    def search_channels(
        self,
        query: str,
        max_results: int = 25,
        page_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "part": "snippet",
            "type": "channel",
            "q": query,
            "maxResults": str(max_results),
        }
        if page_token:
            params["pageToken"] = page_token
        return self._get("search", params)

    def search_and_normalize(
        self,
        query: str,
        *,
        min_subscribers: int = 1000,
        page_token: Optional[str] = None,
    ) -> ChannelSearchPage:
        results = self.search_channels(query, 25, page_token)
        total = _parse_count(_as_dict(results.get("pageInfo")).get("totalResults"))
        next_token = _as_str(results.get("nextPageToken"))

        channel_ids: List[str] = []
        for item in results.get("items") or []:
            item = _as_dict(item)
            channel_id = _as_dict(item.get("id")).get("channelId") or _as_dict(
                item.get("snippet")
            ).get("channelId")
            if channel_id and channel_id not in channel_ids:
                channel_ids.append(channel_id)

        if not channel_ids:
            return ChannelSearchPage(channels=[], next_page_token=next_token, total_results=total)

        channels = [
            normalize_channel(detail, "search") for detail in self.get_channels_by_ids(channel_ids)
        ]
        filtered = [channel for channel in channels if channel.subscriber_count >= min_subscribers]
        return ChannelSearchPage(channels=filtered, next_page_token=next_token, total_results=total)
