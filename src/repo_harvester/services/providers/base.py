from abc import ABC, abstractmethod
from typing import Any, List

from repo_harvester.models.search import (
    CommitRecord,
    Query,
    SearchPage,
    SubRange,
)
from repo_harvester.utils.exceptions import APIError, RateLimitError

__all__ = ["APIError", "RateLimitError", "SearchProvider"]


class SearchProvider(ABC):
    """Abstract base class for repository search providers

    The crawl engine only talks to this interface, so the planner, fetcher
    and processor can be exercised against in-memory fakes.
    """

    @abstractmethod
    async def search_repositories(
        self, query: Query, sub_range: SubRange, page: int, per_page: int
    ) -> SearchPage:
        """Fetch one page of repositories created inside a window

        Args:
            query: Run query (keyword, ceiling, page size)
            sub_range: Creation-date window bounding the search
            page: 1-based page number
            per_page: Items per page

        Returns:
            SearchPage with the items and the window's total match count

        Raises:
            APIError: If the request fails after retries
            RateLimitError: If the rate limit stays exhausted
        """
        pass

    @abstractmethod
    async def count_repositories(self, query: Query, sub_range: SubRange) -> int:
        """Count-only probe for a window (no pagination)

        Raises:
            APIError: If the request fails after retries
        """
        pass

    @abstractmethod
    async def list_commits(self, full_name: str, limit: int) -> List[CommitRecord]:
        """Fetch the most recent commits of a repository

        Args:
            full_name: Repository identity ("owner/name")
            limit: Maximum number of commits to request

        Raises:
            APIError: If the request fails after retries
        """
        pass

    @abstractmethod
    def validate_query(self, keyword: str) -> str:
        """Validate a keyword against provider-specific syntax

        Raises:
            ValueError: If the keyword contains invalid syntax
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging and identification"""
        pass

    async def __aenter__(self) -> "SearchProvider":
        return self

    async def __aexit__(self, *_: Any) -> None:
        return None
