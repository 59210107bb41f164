"""
Bounded query planner.

Splits a keyword's creation-date range into windows whose search result
count fits under the API ceiling:
1. Cut the range into fixed-size windows (default 30 days), clipped to today
2. Probe a window's count when it is reached
3. Bisect windows over the ceiling, recursively, up to a depth bound
"""

from datetime import date, timedelta
from typing import List, Optional, Sequence

import structlog

from repo_harvester.models.search import Query, SubRange
from repo_harvester.observability.metrics import SUB_RANGES
from repo_harvester.services.providers.base import SearchProvider
from repo_harvester.utils.rate_limiter import RequestPacer

logger = structlog.get_logger()


def covers(sub_ranges: Sequence[SubRange], start: date, end: date) -> bool:
    """
    Check that windows are contiguous, disjoint and span exactly [start, end].

    Args:
        sub_ranges: Windows in planned order
        start: First day of the requested period
        end: Last day of the requested period

    Returns:
        True if the windows tile the period with no gap or overlap
    """
    if not sub_ranges:
        return False
    if sub_ranges[0].start != start or sub_ranges[-1].end != end:
        return False
    for left, right in zip(sub_ranges, sub_ranges[1:]):
        if right.start != left.end + timedelta(days=1):
            return False
    return True


class QueryPlanner:
    """
    Decompose an unbounded search into ceiling-bounded windows.

    Windows are produced left to right so progress through the list is
    meaningful for resumption.
    """

    def __init__(
        self,
        provider: SearchProvider,
        window_days: int = 30,
        max_split_depth: int = 6,
        pacer: Optional[RequestPacer] = None,
    ):
        """
        Initialize planner.

        Args:
            provider: Search provider used for count probes
            window_days: Size of the initial windows
            max_split_depth: Bisection depth after which an over-ceiling
                window is accepted as truncated
            pacer: Shared request pacer (probes count as requests)
        """
        if window_days < 1:
            raise ValueError("window_days must be at least 1")
        self.provider = provider
        self.window_days = window_days
        self.max_split_depth = max_split_depth
        self.pacer = pacer or RequestPacer(0.0, name="planner")

    def initial_windows(
        self, start: date, end: date, today: Optional[date] = None
    ) -> List[SubRange]:
        """
        Cut [start, end] into fixed-size windows without probing.

        Args:
            start: First creation date to search
            end: Last creation date to search
            today: Clip date for windows spanning "now" (defaults to today)

        Returns:
            Contiguous windows covering [start, min(end, today)]

        Raises:
            ValueError: If start is after the clipped end
        """
        today = today or date.today()
        end = min(end, today)
        if start > end:
            raise ValueError(f"Empty search period: {start} > {end}")

        windows = []
        current = start
        step = timedelta(days=self.window_days)
        while current <= end:
            window_end = min(current + step - timedelta(days=1), end)
            windows.append(SubRange(start=current, end=window_end))
            current = current + step

        logger.info(
            "windows_generated",
            start=start.isoformat(),
            end=end.isoformat(),
            window_days=self.window_days,
            count=len(windows),
        )
        return windows

    async def probe(self, query: Query, sub_range: SubRange) -> int:
        """Count-only search for one window."""
        await self.pacer.acquire()
        return await self.provider.count_repositories(query, sub_range)

    async def subdivide(
        self, query: Query, sub_range: SubRange, depth: int = 0
    ) -> List[SubRange]:
        """
        Bisect an over-ceiling window until every piece fits.

        The caller has already observed that ``sub_range`` exceeds the
        ceiling. Each half is probed; halves still over the ceiling are
        bisected again until the depth bound or a single-day window, which
        is accepted with ``truncated=True``.

        Args:
            query: Run query (ceiling)
            sub_range: Window known to exceed the ceiling
            depth: Current recursion depth

        Returns:
            Ordered windows covering exactly ``sub_range``

        Raises:
            APIError: If a probe fails after retries
        """
        if depth >= self.max_split_depth or not sub_range.can_split():
            logger.warning(
                "window_truncated",
                window=sub_range.label,
                depth=depth,
                reason="minimum window size reached",
            )
            SUB_RANGES.labels(outcome="truncated").inc()
            return [sub_range.as_truncated()]

        SUB_RANGES.labels(outcome="split").inc()
        result: List[SubRange] = []
        for half in sub_range.split():
            count = await self.probe(query, half)
            if count > query.ceiling:
                logger.info(
                    "window_over_ceiling",
                    window=half.label,
                    count=count,
                    ceiling=query.ceiling,
                    depth=depth + 1,
                )
                result.extend(await self.subdivide(query, half, depth + 1))
            else:
                result.append(half)

        logger.debug(
            "window_subdivided",
            window=sub_range.label,
            pieces=len(result),
            depth=depth,
        )
        return result

    async def bound(self, query: Query, sub_range: SubRange) -> List[SubRange]:
        """Probe one window and subdivide it only if it exceeds the ceiling."""
        count = await self.probe(query, sub_range)
        if count <= query.ceiling:
            return [sub_range]
        logger.info(
            "window_over_ceiling",
            window=sub_range.label,
            count=count,
            ceiling=query.ceiling,
            depth=0,
        )
        return await self.subdivide(query, sub_range)

    async def plan(
        self,
        query: Query,
        start: date,
        end: date,
        today: Optional[date] = None,
    ) -> List[SubRange]:
        """
        Eagerly plan a whole period (probe every window).

        The harvest pipeline plans lazily instead; this is used for
        dry runs and reports.

        Returns:
            Ordered ceiling-bounded windows covering the period
        """
        planned: List[SubRange] = []
        for window in self.initial_windows(start, end, today=today):
            planned.extend(await self.bound(query, window))

        logger.info(
            "plan_complete",
            keyword=query.keyword,
            windows=len(planned),
            truncated=sum(1 for w in planned if w.truncated),
        )
        return planned
