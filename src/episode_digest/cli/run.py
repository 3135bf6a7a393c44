import argparse
import asyncio
import logging
import os
import signal
import sys
import time
from typing import List, Optional

from dotenv import load_dotenv

from episode_digest.core.cancellation import CancellationToken
from episode_digest.core.errors import DigestError
from episode_digest.core.periods import parse_date, week_windows
from episode_digest.core.versioning import SCHEMA_VERSION, is_version_outdated
from episode_digest.delivery.base import DeliveryChannel
from episode_digest.delivery.file_delivery import FileDelivery
from episode_digest.ingestion.source_factory import create_discovery_adapter
from episode_digest.processing.analyzer import EpisodeAnalyzer
from episode_digest.services.config import Config, load_config
from episode_digest.services.database import Database
from episode_digest.services.item_store import ItemStore
from episode_digest.services.llm import OllamaClient
from episode_digest.services.logging import setup_logging
from episode_digest.workflows.cache_manager import AggregateCacheManager
from episode_digest.workflows.composer import PeriodComposer
from episode_digest.workflows.orchestrator import EpisodeProcessor, ProcessOptions

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="episode-digest", description="Weekly podcast issue digest")
    parser.add_argument("--config", help="Path to config.yml")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run_parser = sub.add_parser("run", help="Analyze episodes and write one report per week")
    run_parser.add_argument("--start", required=True, help="First day, YYYY-MM-DD")
    run_parser.add_argument("--end", required=True, help="Last day, YYYY-MM-DD")
    run_parser.add_argument("--force", action="store_true", help="Reanalyze episodes already stored")
    run_parser.add_argument("--concurrency", type=int, help="Parallel analyzer calls (1-20)")
    run_parser.add_argument("--output", default="output", help="Directory for report JSON files")

    sub.add_parser("status", help="Show stored episode and cache counts")
    return parser


def _install_signal_handlers(token: CancellationToken) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, token.cancel)
        except (NotImplementedError, RuntimeError):
            signal.signal(sig, lambda *_: token.cancel())


def _log_progress(completed: int, total: int, item_id: str, was_cached: bool) -> None:
    logger.debug(f"{completed}/{total} {item_id} cached={was_cached}")


async def run_periods(config: Config, args: argparse.Namespace) -> int:
    start_time = time.perf_counter()
    start = parse_date(args.start)
    end = parse_date(args.end)
    windows = week_windows(start, end)

    db = Database(config.DATABASE_PATH)
    await db.init_tables()
    store = ItemStore(db)

    llm = OllamaClient(
        base_url=config.OLLAMA_BASE_URL,
        model=config.OLLAMA_MODEL,
        max_attempts=config.processing.retry_attempts + 1,
        retry_delay=config.processing.retry_delay,
        timeout=config.processing.timeout_seconds,
        api_key=config.OLLAMA_API_KEY,
    )

    async def refresh_credentials() -> None:
        load_dotenv(override=True)
        llm.set_api_key(os.getenv("OLLAMA_API_KEY"))
        logger.info("Reloaded Ollama credentials from environment")

    llm.credential_refresh = refresh_credentials

    if not await llm.health_check():
        logger.warning(f"Ollama at {config.OLLAMA_BASE_URL} is not reachable; analysis will fail")

    processor = EpisodeProcessor(
        discovery=create_discovery_adapter(config, store),
        analyzer=EpisodeAnalyzer(llm),
        store=store,
        processing_config=config.processing,
        caching_config=config.caching,
        features_config=config.features,
    )
    composer = PeriodComposer(
        store,
        AggregateCacheManager(store, max_entries=config.caching.max_period_cache_entries),
        report_config=config.report,
        caching_config=config.caching,
    )
    deliveries: List[DeliveryChannel] = [FileDelivery(args.output)]

    token = CancellationToken()
    _install_signal_handlers(token)

    logger.info(f"Starting digest run for {len(windows)} week(s) from {windows[0].start} to {windows[-1].end}")

    for window in windows:
        result = await processor.process(
            window.start,
            window.end,
            ProcessOptions(
                concurrency=args.concurrency,
                force_reprocess=args.force,
                progress_cb=_log_progress,
                cancel_token=token,
            ),
        )
        for error in result.errors:
            logger.warning(f"Episode {error.id} failed: {error.message}")

        if result.stats.cancelled:
            logger.warning("Run cancelled; stored analyses are kept")
            return 1

        if result.stats.total and result.stats.failed == result.stats.total:
            logger.error(f"All {result.stats.total} episodes failed for week {window.start}")

        report = await composer.compose(window.start, window.end, window.prior_start, window.prior_end)

        for delivery in deliveries:
            try:
                await delivery.deliver(report=report)
                logger.info(f"Delivered report for {window.start} via {delivery.name}")
            except OSError as e:
                logger.error(f"Delivery failed: week={window.start}, channel={delivery.name}, error={e}")

    logger.info(f"Digest run completed in {time.perf_counter() - start_time:.2f}s")
    return 0


async def show_status(config: Config) -> int:
    db = Database(config.DATABASE_PATH)
    await db.init_tables()
    store = ItemStore(db)

    versions = await store.item_schema_versions()
    outdated = sum(1 for v in versions if is_version_outdated(v))

    print(f"Schema version:        {SCHEMA_VERSION}")
    print(f"Stored episodes:       {len(versions)}")
    print(f"Outdated episodes:     {outdated}")
    print(f"Cached weekly reports: {await store.count_aggregates()}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = load_config(args.config)
        if args.command == "status":
            return asyncio.run(show_status(config))
        return asyncio.run(run_periods(config, args))
    except (DigestError, ValueError, FileNotFoundError) as e:
        logger.error(f"Digest run failed: {e}")
        return 1


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
