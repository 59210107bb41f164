"""Contributor records extracted from commit metadata."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field


class SubRecord(BaseModel):
    """Contributor e-mail captured from a repository's commits

    The store keeps only the first-seen row per identity. ``occurrence_count``
    reflects the owning repository's commits at capture time.
    """

    model_config = ConfigDict(protected_namespaces=())

    identity: str = Field(..., min_length=1)
    owning_entity: str = Field(..., min_length=1)
    keyword: Optional[str] = None
    occurrence_count: int = Field(1, ge=1)
    display_name: Optional[str] = None
    last_seen: Optional[datetime] = None
    ignored: bool = False


class EntityStatus(str, Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"
    FAILED = "failed"


class EntityOutcome(BaseModel):
    """Result of processing one repository"""

    entity: str
    status: EntityStatus
    commits_seen: int = 0
    sub_records_found: int = 0
    sub_records_inserted: int = 0
    error: Optional[str] = None


class ContributorStats(BaseModel):
    """Aggregated activity for one identity within a run"""

    identity: str
    display_name: Optional[str] = None
    commit_count: int = 0
    repositories: Set[str] = Field(default_factory=set)
    last_commit_date: Optional[datetime] = None
    ignored: bool = False


class ContributorStatistics:
    """In-memory contributor aggregate for one run.

    Ephemeral: recomputable from the commits API and never persisted.
    """

    def __init__(self) -> None:
        self._by_identity: Dict[str, ContributorStats] = {}

    def __len__(self) -> int:
        return len(self._by_identity)

    def __contains__(self, identity: object) -> bool:
        return identity in self._by_identity

    def get(self, identity: str) -> Optional[ContributorStats]:
        return self._by_identity.get(identity)

    def observe(self, record: SubRecord) -> None:
        """Fold one repository's record for an identity into the aggregate."""
        stats = self._by_identity.get(record.identity)
        if stats is None:
            stats = ContributorStats(
                identity=record.identity,
                display_name=record.display_name,
                ignored=record.ignored,
            )
            self._by_identity[record.identity] = stats

        stats.commit_count += record.occurrence_count
        stats.repositories.add(record.owning_entity)
        if record.last_seen is not None and (
            stats.last_commit_date is None or record.last_seen > stats.last_commit_date
        ):
            stats.last_commit_date = record.last_seen

    def top(self, limit: Optional[int] = None) -> List[ContributorStats]:
        """Contributors sorted by commit count, most active first."""
        ranked = sorted(
            self._by_identity.values(),
            key=lambda s: (-s.commit_count, s.identity),
        )
        return ranked if limit is None else ranked[:limit]

    @property
    def actionable_count(self) -> int:
        return sum(1 for s in self._by_identity.values() if not s.ignored)
