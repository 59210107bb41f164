"""Shared fixtures: an in-memory search provider and a temporary store."""

from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

import pytest

from repo_harvester.models.config import (
    ExtractionSettings,
    HarvestConfig,
    SearchSettings,
    StorageSettings,
)
from repo_harvester.models.search import (
    CommitAuthor,
    CommitRecord,
    Query,
    Repository,
    SearchPage,
    SubRange,
)
from repo_harvester.observability.metrics import reset_metrics
from repo_harvester.services.providers.base import APIError, SearchProvider
from repo_harvester.storage.database import Database


class FakeSearchProvider(SearchProvider):
    """Search provider backed by a day -> repositories table.

    Result counts are exact, so window planning behaves like the real API
    minus the network.
    """

    def __init__(
        self,
        repos_by_day: Optional[Dict[date, List[str]]] = None,
        commits: Optional[Dict[str, List[CommitRecord]]] = None,
        fail_windows: Optional[Set[str]] = None,
        fail_commits: Optional[Set[str]] = None,
        crash_after_commits: Optional[int] = None,
    ):
        self.repos_by_day = repos_by_day or {}
        self.commits = commits or {}
        self.fail_windows = fail_windows or set()
        self.fail_commits = fail_commits or set()
        self.crash_after_commits = crash_after_commits
        self.search_calls: List[tuple] = []
        self.count_calls: List[str] = []
        self.commit_calls: List[str] = []

    @property
    def name(self) -> str:
        return "fake"

    def validate_query(self, keyword: str) -> str:
        return keyword.strip()

    def _matching(self, sub_range: SubRange) -> List[str]:
        names: List[str] = []
        for day in sorted(self.repos_by_day):
            if sub_range.contains(day):
                names.extend(self.repos_by_day[day])
        return names

    async def search_repositories(
        self, query: Query, sub_range: SubRange, page: int, per_page: int
    ) -> SearchPage:
        self.search_calls.append((sub_range.label, page))
        if sub_range.label in self.fail_windows:
            raise APIError("boom", status=502)
        names = self._matching(sub_range)
        chunk = names[(page - 1) * per_page : page * per_page]
        return SearchPage(
            items=[Repository(full_name=name) for name in chunk],
            total_count=len(names),
        )

    async def count_repositories(self, query: Query, sub_range: SubRange) -> int:
        self.count_calls.append(sub_range.label)
        return len(self._matching(sub_range))

    async def list_commits(self, full_name: str, limit: int) -> List[CommitRecord]:
        if (
            self.crash_after_commits is not None
            and len(self.commit_calls) >= self.crash_after_commits
        ):
            raise RuntimeError("process killed")
        self.commit_calls.append(full_name)
        if full_name in self.fail_commits:
            raise APIError("commits unavailable", status=409)
        if full_name in self.commits:
            return self.commits[full_name][:limit]
        owner = full_name.split("/")[0]
        return [make_commit(f"{owner}@example.com", name=owner)]


def make_commit(
    email: Optional[str],
    name: Optional[str] = None,
    when: Optional[datetime] = None,
    sha: Optional[str] = None,
) -> CommitRecord:
    when = when or datetime(2024, 1, 15, tzinfo=timezone.utc)
    return CommitRecord(
        sha=sha or f"sha-{email}-{when.isoformat()}",
        author=CommitAuthor(name=name, email=email, date=when),
    )


def spread(start: date, days: int, per_day: int, prefix: str = "org") -> Dict[date, List[str]]:
    """Repositories spread evenly over consecutive days."""
    table: Dict[date, List[str]] = {}
    for offset in range(days):
        day = start + timedelta(days=offset)
        table[day] = [
            f"{prefix}{offset}-{i}/repo" for i in range(per_day)
        ]
    return table


@pytest.fixture(autouse=True)
def _clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def database(tmp_path):
    db = Database(tmp_path / "harvest.db").open()
    yield db
    db.close()


@pytest.fixture
def harvest_config(tmp_path):
    return HarvestConfig(
        search=SearchSettings(
            keyword="OPENROUTER",
            start_date=date(2024, 1, 1),
            end_date=date(2024, 3, 30),
            page_delay_seconds=0,
            window_delay_seconds=0,
        ),
        extraction=ExtractionSettings(entity_delay_seconds=0),
        storage=StorageSettings(db_path=str(tmp_path / "harvest.db")),
    )


@pytest.fixture
def query():
    return Query(keyword="OPENROUTER")


@pytest.fixture
def fake_provider_cls():
    return FakeSearchProvider


@pytest.fixture
def commit_factory():
    return make_commit


@pytest.fixture
def spread_repos():
    return spread
