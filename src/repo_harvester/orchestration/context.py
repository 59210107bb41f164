"""Harvest context: the explicit handle threaded through a run."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import structlog

from repo_harvester.models.config import HarvestConfig
from repo_harvester.models.contributor import ContributorStatistics
from repo_harvester.observability.context import new_run_id
from repo_harvester.services.checkpoint_service import CheckpointService
from repo_harvester.services.dedup_service import DeduplicationService
from repo_harvester.services.discovery_service import DiscoveryService
from repo_harvester.services.extraction_service import ContributorExtractionService
from repo_harvester.services.planner_service import QueryPlanner
from repo_harvester.services.providers.base import SearchProvider
from repo_harvester.storage.database import Database
from repo_harvester.utils.rate_limiter import RequestPacer

logger = structlog.get_logger()


@dataclass
class HarvestContext:
    """Shared state for one harvest run.

    Holds configuration, the open store, the provider and every service
    built on them, plus the run's in-memory contributor statistics.
    Nothing here is global; the pipeline receives the context explicitly.
    """

    config: HarvestConfig
    database: Database
    provider: SearchProvider
    planner: QueryPlanner
    discovery: DiscoveryService
    checkpoints: CheckpointService
    dedup: DeduplicationService
    extraction: ContributorExtractionService
    window_pacer: RequestPacer
    statistics: ContributorStatistics = field(default_factory=ContributorStatistics)
    run_id: str = field(default_factory=new_run_id)
    started_at: datetime = field(default_factory=datetime.utcnow)

    # Error tracking
    errors: List[Dict[str, str]] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        config: HarvestConfig,
        database: Database,
        provider: SearchProvider,
        run_id: Optional[str] = None,
    ) -> "HarvestContext":
        """Wire every service from configuration.

        Search requests (probes and pages) share one pacer so the fixed
        page delay holds across planner and fetcher.

        Args:
            config: Validated configuration
            database: Open store
            provider: Search provider (typically an open GitHubProvider)
            run_id: Optional explicit run identifier

        Returns:
            Ready-to-run context
        """
        search = config.search
        search_pacer = RequestPacer(search.page_delay_seconds, name="search")
        commits_pacer = RequestPacer(
            config.extraction.entity_delay_seconds, name="commits"
        )
        dedup = DeduplicationService(database)

        context = cls(
            config=config,
            database=database,
            provider=provider,
            planner=QueryPlanner(
                provider,
                window_days=search.window_days,
                max_split_depth=search.max_split_depth,
                pacer=search_pacer,
            ),
            discovery=DiscoveryService(provider, pacer=search_pacer),
            checkpoints=CheckpointService(database),
            dedup=dedup,
            extraction=ContributorExtractionService(
                provider,
                dedup,
                pacer=commits_pacer,
                ignore_patterns=config.extraction.ignore_patterns,
            ),
            window_pacer=RequestPacer(search.window_delay_seconds, name="windows"),
        )
        if run_id:
            context.run_id = run_id
        return context

    def add_error(self, stage: str, error: str, sub_range: Optional[str] = None) -> None:
        """Record a non-fatal error.

        Args:
            stage: Where the error occurred (fetch, split, process)
            error: Error message
            sub_range: Optional window label
        """
        entry: Dict[str, str] = {"stage": stage, "error": error}
        if sub_range:
            entry["sub_range"] = sub_range
        self.errors.append(entry)
        logger.error("harvest_error", stage=stage, error=error, sub_range=sub_range)
