"""
Source Factory - Creates the discovery adapter chain from configuration.
"""
import logging

from episode_digest.ingestion.base import DiscoveryAdapter
from episode_digest.ingestion.cached import CachedDiscoveryAdapter
from episode_digest.ingestion.rss import PodcastFeedAdapter
from episode_digest.services.config import Config, get_enabled_feeds
from episode_digest.services.item_store import ItemStore

logger = logging.getLogger(__name__)


def create_discovery_adapter(config: Config, store: ItemStore) -> DiscoveryAdapter:
    """
    Build the podcast feed adapter, wrapped in the discovery cache when enabled.

    Raises:
        ValueError: If no feed is enabled
    """
    feeds = get_enabled_feeds(config)
    if not feeds:
        raise ValueError("No enabled feeds configured")

    adapter: DiscoveryAdapter = PodcastFeedAdapter(feeds)
    logger.info(f"Created podcast feed adapter for {len(feeds)} feed(s)")

    if config.caching.enable_discovery_cache:
        adapter = CachedDiscoveryAdapter(adapter, store, ttl_days=config.caching.discovery_cache_days)
        logger.info(f"Discovery cache enabled ({config.caching.discovery_cache_days} days)")

    return adapter
