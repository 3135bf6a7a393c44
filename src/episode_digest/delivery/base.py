"""
Module to contain base class for Delivery channels
"""
from abc import ABC, abstractmethod

from episode_digest.core.report import PeriodReport


class DeliveryChannel(ABC):
    """
    Base interface for all delivery channels.
    """

    name: str

    @abstractmethod
    async def deliver(self, *, report: PeriodReport) -> None:
        """
        Deliver one period report.
        Must raise exceptions on failure (handled upstream).
        """
        raise NotImplementedError
