"""
Workflows module - episode processing and period report composition.
"""
from episode_digest.workflows.cache_manager import AggregateCacheManager
from episode_digest.workflows.composer import PeriodComposer
from episode_digest.workflows.orchestrator import EpisodeProcessor, ProcessOptions, estimate_processing_time

__all__ = [
    "AggregateCacheManager",
    "EpisodeProcessor",
    "PeriodComposer",
    "ProcessOptions",
    "estimate_processing_time",
]
