"""
Base Publisher

Abstract interface for schedule change delivery channels.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..models.change_event import ScheduleChangeEvent


@dataclass
class PublishResult:
    """Result of a publish attempt"""
    success: bool
    error: Optional[str] = None


class BasePublisher(ABC):
    """Abstract change event publisher"""

    @abstractmethod
    async def publish(self, event: ScheduleChangeEvent) -> PublishResult:
        """
        Deliver a committed schedule change.

        Args:
            event: The change to deliver
        Returns:
            PublishResult with success flag and optional error message
        """
        ...

    @abstractmethod
    async def close(self):
        """Cleanup resources"""
        ...
