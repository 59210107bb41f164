"""Harvest result data structure."""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from repo_harvester.models.checkpoint import RunState
from repo_harvester.models.contributor import (
    ContributorStatistics,
    EntityOutcome,
    EntityStatus,
)


@dataclass
class HarvestResult:
    """Result of a harvest run for one keyword.

    Counters cover this run only; a resumed run does not re-count work
    finished before the interruption.
    """

    keyword: str
    state: RunState = RunState.FRESH
    sub_ranges_total: int = 0
    sub_ranges_fetched: int = 0
    sub_ranges_skipped: int = 0
    sub_ranges_split: int = 0
    entities_found: int = 0
    entities_processed: int = 0
    entities_skipped: int = 0
    entities_failed: int = 0
    sub_records_inserted: int = 0
    unique_contributors: int = 0
    duration_seconds: float = 0.0
    top_contributors: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)

    def record_outcome(self, outcome: EntityOutcome) -> None:
        """Fold one repository outcome into the counters."""
        if outcome.status == EntityStatus.PROCESSED:
            self.entities_processed += 1
            self.sub_records_inserted += outcome.sub_records_inserted
        elif outcome.status == EntityStatus.SKIPPED:
            self.entities_skipped += 1
        else:
            self.entities_failed += 1

    def summarize_contributors(
        self, statistics: ContributorStatistics, limit: int
    ) -> None:
        """Copy the run's contributor ranking into the result."""
        self.unique_contributors = len(statistics)
        self.top_contributors = [
            {
                "identity": stats.identity,
                "name": stats.display_name,
                "commits": stats.commit_count,
                "repositories": len(stats.repositories),
                "ignored": stats.ignored,
            }
            for stats in statistics.top(limit)
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "keyword": self.keyword,
            "state": self.state.value,
            "sub_ranges_total": self.sub_ranges_total,
            "sub_ranges_fetched": self.sub_ranges_fetched,
            "sub_ranges_skipped": self.sub_ranges_skipped,
            "sub_ranges_split": self.sub_ranges_split,
            "entities_found": self.entities_found,
            "entities_processed": self.entities_processed,
            "entities_skipped": self.entities_skipped,
            "entities_failed": self.entities_failed,
            "sub_records_inserted": self.sub_records_inserted,
            "unique_contributors": self.unique_contributors,
            "duration_seconds": self.duration_seconds,
            "top_contributors": self.top_contributors,
            "errors": self.errors,
        }
