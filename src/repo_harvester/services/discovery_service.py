"""Paginated fetcher for one ceiling-bounded search window."""

from dataclasses import dataclass, field
from typing import List, Optional, Set

import structlog

from repo_harvester.models.search import Query, Repository, SubRange
from repo_harvester.observability.metrics import SUB_RANGES
from repo_harvester.services.providers.base import APIError, SearchProvider
from repo_harvester.utils.exceptions import SubRangeFetchError
from repo_harvester.utils.rate_limiter import RequestPacer

logger = structlog.get_logger()


@dataclass
class SubRangeResult:
    """Entities found for one window plus its exact match count"""

    sub_range: SubRange
    entities: List[Repository] = field(default_factory=list)
    total_count: int = 0
    pages_fetched: int = 0
    exceeds_ceiling: bool = False

    @property
    def is_complete(self) -> bool:
        """True when every match was retrieved."""
        return not self.exceeds_ceiling and len(self.entities) >= self.total_count


class DiscoveryService:
    """Walk one window page by page against the search endpoint.

    Requests are strictly sequential and separated by the pacer's fixed
    delay.
    """

    def __init__(self, provider: SearchProvider, pacer: Optional[RequestPacer] = None):
        """Initialize the fetcher.

        Args:
            provider: Search provider
            pacer: Fixed-delay pacer shared with the planner
        """
        self.provider = provider
        self.pacer = pacer or RequestPacer(0.0, name="search")

    async def fetch_sub_range(self, query: Query, sub_range: SubRange) -> SubRangeResult:
        """Retrieve all repositories of a window.

        Stops when a page is short or ``query.page_cap`` pages were read.
        The first page doubles as the count probe: an over-ceiling window
        that is not marked truncated comes back empty with
        ``exceeds_ceiling=True`` so the caller can subdivide it.

        Args:
            query: Run query (keyword, ceiling, page size)
            sub_range: Window to fetch

        Returns:
            SubRangeResult with ordered, de-duplicated repositories

        Raises:
            SubRangeFetchError: If any page request fails after retries
        """
        result = SubRangeResult(sub_range=sub_range)
        seen: Set[str] = set()
        page = 1

        while page <= query.page_cap:
            await self.pacer.acquire()
            try:
                search_page = await self.provider.search_repositories(
                    query, sub_range, page=page, per_page=query.page_size
                )
            except APIError as e:
                logger.error(
                    "sub_range_fetch_failed",
                    window=sub_range.label,
                    page=page,
                    status=e.status,
                    error=str(e),
                )
                raise SubRangeFetchError(
                    sub_range, e.status, f"Window {sub_range.label} failed on page {page}: {e}"
                ) from e

            result.pages_fetched += 1

            if page == 1:
                result.total_count = search_page.total_count
                logger.info(
                    "sub_range_counted",
                    window=sub_range.label,
                    total_count=search_page.total_count,
                    ceiling=query.ceiling,
                )
                if search_page.total_count > query.ceiling and not sub_range.truncated:
                    result.exceeds_ceiling = True
                    logger.info(
                        "sub_range_needs_split",
                        window=sub_range.label,
                        total_count=search_page.total_count,
                    )
                    return result

            if search_page.incomplete_results:
                logger.warning("search_results_incomplete", window=sub_range.label, page=page)

            for repo in search_page.items:
                if repo.full_name in seen:
                    continue
                seen.add(repo.full_name)
                result.entities.append(repo)

            if search_page.raw_count < query.page_size:
                break
            page += 1

        SUB_RANGES.labels(outcome="fetched").inc()
        logger.info(
            "sub_range_fetched",
            window=sub_range.label,
            entities=len(result.entities),
            total_count=result.total_count,
            pages=result.pages_fetched,
            truncated=sub_range.truncated,
        )
        return result
