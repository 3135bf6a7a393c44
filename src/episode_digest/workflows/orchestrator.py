"""
Parallel episode processing for one period.

Discovery -> cache categorization -> bounded analysis pool. Every analyzed
episode is written to the item store as soon as its analyzer call returns,
so a cancelled or crashed run keeps whatever it already paid for.
"""
import asyncio
import logging
import math
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from episode_digest.core.cancellation import CancellationToken
from episode_digest.core.entities import ProcessError, ProcessResult, ProcessStats
from episode_digest.core.schemas import ItemInsight, ItemMetadata
from episode_digest.core.versioning import SCHEMA_VERSION
from episode_digest.ingestion.base import DiscoveryAdapter
from episode_digest.processing.analyzer import ItemAnalyzer
from episode_digest.services.config import CachingConfig, FeaturesConfig, ProcessingConfig
from episode_digest.services.item_store import ItemStore

logger = logging.getLogger(__name__)

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 20

# completed, total, current_id, was_cached
ProgressCallback = Callable[[int, int, str, bool], None]
# total, cached, new
DiscoveryCallback = Callable[[int, int, int], None]


@dataclass
class ProcessOptions:
    """
    Per-call overrides. Fields left as None fall back to the processor's config.
    """
    concurrency: Optional[int] = None
    force_reprocess: bool = False
    staleness_threshold_days: Optional[int] = None
    ignore_staleness: bool = False  # reuse every stored insight regardless of the configured threshold
    schema_version: str = SCHEMA_VERSION
    progress_cb: Optional[ProgressCallback] = None
    discovery_cb: Optional[DiscoveryCallback] = None
    cancel_token: Optional[CancellationToken] = None


def estimate_processing_time(total: int, cached: int, concurrency: int = 10) -> int:
    """Rough wall-clock estimate in seconds for a run with the given cache split."""
    uncached = max(0, total - cached)
    cached_time = cached * 0.01
    analysis_time = (uncached / max(1, concurrency)) * 6 * 1.2
    discovery_time = 2
    return math.ceil(cached_time + analysis_time + discovery_time)


class _RunState:
    def __init__(self, total: int, progress_cb: Optional[ProgressCallback], detailed: bool):
        self.total = total
        self.completed = 0
        self.analyzed: List[ItemInsight] = []
        self.errors: List[ProcessError] = []
        self.progress_cb = progress_cb
        self.log_level = logging.INFO if detailed else logging.DEBUG

    def advance(self, item_id: str, was_cached: bool) -> None:
        self.completed += 1
        logger.log(
            self.log_level,
            f"Progress {self.completed}/{self.total}: {item_id}{' (cached)' if was_cached else ''}",
        )
        if self.progress_cb is None:
            return
        try:
            self.progress_cb(self.completed, self.total, item_id, was_cached)
        except Exception as e:
            logger.warning(f"Progress callback failed for {item_id}: {e}")


class EpisodeProcessor:
    def __init__(
        self,
        discovery: DiscoveryAdapter,
        analyzer: ItemAnalyzer,
        store: ItemStore,
        processing_config: Optional[ProcessingConfig] = None,
        caching_config: Optional[CachingConfig] = None,
        features_config: Optional[FeaturesConfig] = None,
    ):
        self.discovery = discovery
        self.analyzer = analyzer
        self.store = store
        self.processing_config = processing_config or ProcessingConfig()
        self.caching_config = caching_config or CachingConfig()
        self.features_config = features_config or FeaturesConfig()

    def _resolve_concurrency(self, options: ProcessOptions) -> int:
        concurrency = options.concurrency if options.concurrency is not None else self.processing_config.concurrency
        if not MIN_CONCURRENCY <= concurrency <= MAX_CONCURRENCY:
            raise ValueError(
                f"concurrency must be between {MIN_CONCURRENCY} and {MAX_CONCURRENCY}, got {concurrency}"
            )
        return concurrency

    async def categorize(
        self,
        discovered: List[ItemMetadata],
        force_reprocess: bool,
        staleness_threshold_days: Optional[int],
        now: Optional[datetime] = None,
    ) -> Tuple[List[ItemInsight], List[ItemMetadata]]:
        """Split discovered episodes into reusable stored insights and episodes needing analysis."""
        if force_reprocess:
            return [], list(discovered)

        now = now or datetime.now(timezone.utc)
        cached: List[ItemInsight] = []
        uncached: List[ItemMetadata] = []

        for meta in discovered:
            existing = await self.store.get_item(meta.id)
            if existing is None:
                uncached.append(meta)
                continue

            if staleness_threshold_days is not None:
                age = now - existing.processed_at
                if age > timedelta(days=staleness_threshold_days):
                    logger.info(f"Stored analysis for {meta.id} is {age.days} days old, reprocessing")
                    uncached.append(meta)
                    continue

            cached.append(existing)

        return cached, uncached

    async def _worker(
        self,
        worker_id: int,
        queue: "asyncio.Queue[ItemMetadata]",
        state: _RunState,
        schema_version: str,
        token: CancellationToken,
    ) -> None:
        while True:
            if token.cancelled:
                logger.debug(f"Worker {worker_id} stopping: cancelled")
                return
            try:
                meta = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            try:
                insight = await self.analyzer.analyze(meta.id, meta, schema_version)
                await self.store.put_item(insight)
            except Exception as e:
                logger.error(f"Failed to analyze episode {meta.id}: {e}")
                state.errors.append(ProcessError(id=meta.id, message=str(e) or e.__class__.__name__))
            else:
                state.analyzed.append(insight)
            finally:
                queue.task_done()

            state.advance(meta.id, was_cached=False)

    async def process(
        self,
        period_start: date,
        period_end: date,
        options: Optional[ProcessOptions] = None,
    ) -> ProcessResult:
        """
        Discover, categorize and analyze every episode published in [period_start, period_end].

        Discovery failures propagate. Per-episode failures are collected in
        ProcessResult.errors. Cancellation never raises: the result reports
        stats.cancelled and how many episodes were never started.
        """
        options = options or ProcessOptions()
        concurrency = self._resolve_concurrency(options)
        token = options.cancel_token or CancellationToken()
        staleness = options.staleness_threshold_days
        if options.ignore_staleness:
            staleness = None
        elif staleness is None:
            staleness = self.caching_config.staleness_threshold_days

        started = time.monotonic()
        stats = ProcessStats()
        logger.info(
            f"Processing episodes from {period_start} to {period_end} "
            f"(concurrency={concurrency}, force_reprocess={options.force_reprocess})"
        )

        if token.cancelled:
            logger.info("Processing cancelled before discovery")
            stats.cancelled = True
            return ProcessResult(stats=stats)

        discovered = await self.discovery.discover(period_start, period_end)
        stats.total = len(discovered)

        if not discovered:
            logger.warning(f"No episodes found between {period_start} and {period_end}")
            stats.duration = time.monotonic() - started
            return ProcessResult(stats=stats)

        logger.info(f"Discovered {len(discovered)} episodes")

        cached, uncached = await self.categorize(discovered, options.force_reprocess, staleness)
        stats.cached = len(cached)
        logger.info(f"Cache status: {len(cached)} cached, {len(uncached)} to analyze")
        logger.info(
            f"Estimated processing time: "
            f"{estimate_processing_time(len(discovered), len(cached), concurrency)}s"
        )

        if options.discovery_cb is not None:
            try:
                options.discovery_cb(len(discovered), len(cached), len(uncached))
            except Exception as e:
                logger.warning(f"Discovery callback failed: {e}")

        state = _RunState(len(discovered), options.progress_cb, self.features_config.enable_detailed_progress)
        for insight in cached:
            state.advance(insight.id, was_cached=True)

        queue: asyncio.Queue[ItemMetadata] = asyncio.Queue()
        for meta in uncached:
            queue.put_nowait(meta)

        if uncached and not token.cancelled:
            pool_size = min(concurrency, len(uncached))
            logger.info(f"Analyzing {len(uncached)} episodes with {pool_size} workers")
            workers = [
                asyncio.create_task(self._worker(i, queue, state, options.schema_version, token))
                for i in range(pool_size)
            ]
            await asyncio.gather(*workers)
        elif not uncached:
            logger.info("All episodes cached, skipping analysis")

        stats.newly_analyzed = len(state.analyzed)
        stats.failed = len(state.errors)
        stats.skipped = queue.qsize()
        stats.cancelled = token.cancelled
        stats.duration = time.monotonic() - started

        if stats.cancelled:
            logger.warning(f"Processing cancelled: {stats.skipped} episodes not started")

        items = sorted(cached + state.analyzed, key=lambda i: (i.published_date, i.id))
        logger.info(
            f"Processing complete in {stats.duration:.2f}s: {stats.newly_analyzed} analyzed, "
            f"{stats.cached} cached, {stats.failed} failed"
        )

        return ProcessResult(items=items, stats=stats, errors=list(state.errors))
