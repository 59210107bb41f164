"""Search-side data models: query, date windows and repositories."""

from datetime import date, datetime, timedelta
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

GITHUB_SEARCH_CEILING = 1000
GITHUB_MAX_PAGE_SIZE = 100


class SubRange(BaseModel):
    """Inclusive ``created:`` date window used to bound one search query"""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date
    # Accepted over the ceiling at the minimum window size
    truncated: bool = False

    @model_validator(mode="after")
    def _validate_order(self) -> "SubRange":
        if self.end < self.start:
            raise ValueError("SubRange end must not be before start")
        return self

    @property
    def days(self) -> int:
        """Number of calendar days covered (inclusive)."""
        return (self.end - self.start).days + 1

    @property
    def label(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def can_split(self) -> bool:
        return self.days > 1

    def split(self) -> List["SubRange"]:
        """Bisect the window at its midpoint day.

        Returns:
            Two adjacent windows covering exactly this one, left first

        Raises:
            ValueError: If the window is a single day
        """
        if not self.can_split():
            raise ValueError(f"Cannot split single-day window {self.label}")
        mid = self.start + timedelta(days=(self.days - 1) // 2)
        return [
            SubRange(start=self.start, end=mid),
            SubRange(start=mid + timedelta(days=1), end=self.end),
        ]

    def as_truncated(self) -> "SubRange":
        return SubRange(start=self.start, end=self.end, truncated=True)


class Query(BaseModel):
    """Immutable description of one harvest run's search"""

    model_config = ConfigDict(frozen=True)

    keyword: str = Field(..., min_length=1, max_length=256)
    ceiling: int = Field(GITHUB_SEARCH_CEILING, ge=1, le=GITHUB_SEARCH_CEILING)
    page_size: int = Field(GITHUB_MAX_PAGE_SIZE, ge=1, le=GITHUB_MAX_PAGE_SIZE)
    max_pages: Optional[int] = Field(None, ge=1)

    @property
    def page_cap(self) -> int:
        """Maximum pages to walk for one window."""
        if self.max_pages is not None:
            return self.max_pages
        return max(1, -(-self.ceiling // self.page_size))

    def search_string(self, sub_range: SubRange) -> str:
        return f"{self.keyword} created:{sub_range.label}"


class Repository(BaseModel):
    """A repository returned by the search API (the crawled entity)"""

    full_name: str = Field(..., min_length=1)
    html_url: Optional[str] = None
    stargazers_count: int = Field(0, ge=0)
    created_at: Optional[datetime] = None
    # Max commits requested when extracting contributors
    secondary_ceiling: int = Field(30, ge=1, le=100)

    @property
    def identity(self) -> str:
        return self.full_name

    @property
    def popularity(self) -> int:
        return self.stargazers_count


class SearchPage(BaseModel):
    """One page of repository search results"""

    items: List[Repository] = Field(default_factory=list)
    total_count: int = Field(0, ge=0)
    incomplete_results: bool = False
    # Raw items the provider could not parse
    dropped_count: int = Field(0, ge=0)

    @property
    def raw_count(self) -> int:
        return len(self.items) + self.dropped_count


class CommitAuthor(BaseModel):
    """Author block of a commit's git metadata"""

    name: Optional[str] = None
    email: Optional[str] = None
    date: Optional[datetime] = None


class CommitRecord(BaseModel):
    """A commit returned by the commits API"""

    sha: str
    author: Optional[CommitAuthor] = None
