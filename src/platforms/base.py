"""Abstract base class for problem-stats sources."""

from abc import ABC, abstractmethod

from src.core.schemas import StatsResult


class StatsSource(ABC):
    """Base class that every stats source must implement."""

    @property
    @abstractmethod
    def source_id(self) -> str:
        """Unique identifier for this source (e.g. 'leetcode')."""

    @abstractmethod
    async def fetch(self, username: str, jobs_applied: int = 0) -> StatsResult:
        """Fetch solved-problem counts for one user.

        Never raises for upstream failures: returns UserNotFound or
        TransientFailure instead.
        """
