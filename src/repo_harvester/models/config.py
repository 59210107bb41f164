from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from repo_harvester.models.search import (
    GITHUB_MAX_PAGE_SIZE,
    GITHUB_SEARCH_CEILING,
    Query,
)
from repo_harvester.utils.identity import DEFAULT_IGNORE_PATTERNS


class GitHubSettings(BaseModel):
    """GitHub API access settings"""

    token: Optional[str] = Field(None, description="Personal access token")
    base_url: str = "https://api.github.com"
    timeout_seconds: float = Field(30.0, gt=0, le=300)
    retry_attempts: int = Field(3, ge=1, le=10)
    retry_min_wait_seconds: float = Field(2.0, ge=0)
    retry_max_wait_seconds: float = Field(10.0, ge=0)
    max_rate_limit_wait_seconds: float = Field(
        300.0, ge=0, description="Upper bound on a rate-limit reset wait"
    )

    @field_validator("token")
    @classmethod
    def blank_token_is_none(cls, v: Optional[str]) -> Optional[str]:
        # Unset ${GITHUB_TOKEN} placeholders survive substitution verbatim
        if v is None or not v.strip() or v.strip().startswith("${"):
            return None
        return v.strip()


class SearchSettings(BaseModel):
    """Repository search and window planning settings"""

    keyword: str = Field("OPENROUTER", min_length=1, max_length=256)
    start_date: date = date(2024, 1, 1)
    end_date: Optional[date] = Field(None, description="Defaults to today")
    ceiling: int = Field(GITHUB_SEARCH_CEILING, ge=1, le=GITHUB_SEARCH_CEILING)
    page_size: int = Field(GITHUB_MAX_PAGE_SIZE, ge=1, le=GITHUB_MAX_PAGE_SIZE)
    max_pages: Optional[int] = Field(None, ge=1, le=100)
    window_days: int = Field(30, ge=1, le=366)
    max_split_depth: int = Field(6, ge=0, le=12)
    page_delay_seconds: float = Field(0.5, ge=0)
    window_delay_seconds: float = Field(1.0, ge=0)

    @field_validator("end_date")
    @classmethod
    def validate_end_date(cls, v: Optional[date], info) -> Optional[date]:
        values = info.data
        if v is not None and "start_date" in values and v < values["start_date"]:
            raise ValueError("end_date must be after start_date")
        return v


class ExtractionSettings(BaseModel):
    """Commit scanning settings"""

    commits_per_repo: int = Field(30, ge=1, le=100)
    entity_delay_seconds: float = Field(1.0, ge=0)
    ignore_patterns: List[str] = Field(
        default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS)
    )
    max_entities_per_run: Optional[int] = Field(
        None, ge=1, description="Stop after this many repositories hit the commits API"
    )
    top_contributors: int = Field(10, ge=0, le=1000)


class StorageSettings(BaseModel):
    """Persistent store settings"""

    db_path: str = "./data/contributor_emails.db"


class LoggingSettings(BaseModel):
    level: str = Field("INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    json_output: bool = True


class HarvestConfig(BaseModel):
    """Complete harvester configuration"""

    model_config = ConfigDict(protected_namespaces=())

    github: GitHubSettings = Field(default_factory=GitHubSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def build_query(self, keyword: Optional[str] = None) -> Query:
        """Derive the immutable run query, optionally overriding the keyword."""
        return Query(
            keyword=keyword or self.search.keyword,
            ceiling=self.search.ceiling,
            page_size=self.search.page_size,
            max_pages=self.search.max_pages,
        )
