"""Custom exceptions for the harvest engine

This module defines the exception hierarchy for the crawl engine:
- Base exception for all harvest errors
- External API errors (transient and rate-limit)
- Store errors (SQLite failures, checkpoint corruption)

All exceptions inherit from HarvestError to allow catching all harvest-related
errors in a single except block when needed.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from repo_harvester.models.search import SubRange


class HarvestError(Exception):
    """Base exception for all harvest errors

    Use this to catch any error raised by the crawl engine:
    ```python
    try:
        await pipeline.run(query, start, end)
    except HarvestError as e:
        logger.error("harvest_failed", error=str(e))
    ```
    """

    pass


class APIError(HarvestError):
    """External API request failed

    Raised when:
    - API returns a non-success status
    - Network timeout or connection error
    - Response body cannot be decoded

    The HTTP status is kept when one was received so callers can
    report it.
    """

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status

    @property
    def retryable(self) -> bool:
        """Network failures and 5xx responses are worth another attempt."""
        return self.status is None or self.status >= 500


class RateLimitError(APIError):
    """Rate limit exceeded with optional retry-after metadata.

    Raised when:
    - API returns 429 status
    - API returns 403 with an exhausted X-RateLimit-Remaining header
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message, status=status)
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        return True


class SubRangeFetchError(APIError):
    """Fetching one search window failed after retries

    The window is treated as contributing zero entities for this attempt.
    """

    def __init__(
        self, sub_range: "SubRange", status: Optional[int], message: str
    ) -> None:
        super().__init__(message, status=status)
        self.sub_range = sub_range


class StoreError(HarvestError):
    """Persistent store operation failed

    Raised when:
    - The SQLite database cannot be opened or migrated
    - A read or write fails (locked database, disk error)
    """

    pass


class CheckpointIntegrityError(StoreError):
    """Persisted checkpoint violates an engine invariant

    Raised when:
    - Sub-range indices point outside the stored plan
    - Stored sub-ranges overlap or leave gaps

    This is fatal: no partial checkpoint is assumed valid.
    """

    pass
