"""
Ingestion from podcast RSS feeds
"""
import logging
import re
from datetime import date
from typing import Dict, List, Optional

import feedparser
import httpx

from episode_digest.core.errors import DiscoveryError
from episode_digest.core.schemas import ItemMetadata
from episode_digest.ingestion.base import DiscoveryAdapter
from episode_digest.services.config import FeedConfig

logger = logging.getLogger(__name__)

_TAGS = re.compile(r"<[^>]+>")
_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    return _NON_SLUG.sub("-", text.lower()).strip("-") or "show"


def _entry_date(entry) -> Optional[date]:
    for field in ("published_parsed", "updated_parsed"):
        parsed = entry.get(field)
        if parsed:
            return date(parsed.tm_year, parsed.tm_mon, parsed.tm_mday)
    return None


def _enclosure_url(entry) -> Optional[str]:
    for enclosure in entry.get("enclosures", []) or []:
        href = enclosure.get("href")
        if href:
            return href
    return entry.get("link") or None


def _plain_text(html: str) -> str:
    return " ".join(_TAGS.sub(" ", html or "").split())


class PodcastFeedAdapter(DiscoveryAdapter):
    def __init__(
        self,
        feeds: List[FeedConfig],
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.feeds = feeds
        self.timeout = timeout
        self.transport = transport

    def parse_feed(self, feed: FeedConfig, body: bytes, start: date, end: date) -> List[ItemMetadata]:
        parsed = feedparser.parse(body)
        show = feed.name or parsed.feed.get("title", "") or feed.url
        items: List[ItemMetadata] = []

        for entry in parsed.entries:
            published = _entry_date(entry)
            if published is None or published < start or published > end:
                continue

            item_id = entry.get("id") or entry.get("guid") or f"{slugify(show)}-{published.isoformat()}"
            items.append(
                ItemMetadata(
                    id=item_id,
                    source_name=show,
                    title=entry.get("title", "") or "(untitled)",
                    published_date=published,
                    content_ref=_enclosure_url(entry),
                    summary=_plain_text(entry.get("summary", "")) or None,
                )
            )

        return items

    async def discover(self, start: date, end: date) -> List[ItemMetadata]:
        found: Dict[str, ItemMetadata] = {}

        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            for feed in self.feeds:
                try:
                    resp = await client.get(feed.url)
                    resp.raise_for_status()
                except httpx.HTTPError as e:
                    logger.error(f"Failed to fetch feed {feed.name} ({feed.url}): {e}")
                    raise DiscoveryError(f"Failed to fetch feed {feed.name}: {e}") from e

                entries = self.parse_feed(feed, resp.content, start, end)
                logger.info(f"Feed {feed.name}: {len(entries)} episodes between {start} and {end}")
                for item in entries:
                    found.setdefault(item.id, item)

        return sorted(found.values(), key=lambda i: (i.published_date, i.id))
