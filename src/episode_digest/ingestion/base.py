"""
Base classes for Ingestion
"""
from abc import ABC, abstractmethod
from datetime import date
from typing import List

from episode_digest.core.schemas import ItemMetadata


class DiscoveryAdapter(ABC):
    """
    Base interface for all episode discovery sources.
    """

    @abstractmethod
    async def discover(self, start: date, end: date) -> List[ItemMetadata]:
        """
        Metadata for episodes published in [start, end].
        Failures raise DiscoveryError; the caller treats them as fatal for the period.
        """
        raise NotImplementedError
