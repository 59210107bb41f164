"""Contributor extraction: commits in, first-seen contributor records out."""

from typing import Dict, List, Optional, Sequence

import structlog

from repo_harvester.models.contributor import (
    ContributorStatistics,
    EntityOutcome,
    EntityStatus,
    SubRecord,
)
from repo_harvester.models.search import CommitRecord, Repository
from repo_harvester.observability.metrics import ENTITIES_PROCESSED
from repo_harvester.services.dedup_service import DeduplicationService
from repo_harvester.services.providers.base import APIError, SearchProvider
from repo_harvester.utils.identity import (
    DEFAULT_IGNORE_PATTERNS,
    is_ignored_identity,
    normalize_identity,
)
from repo_harvester.utils.rate_limiter import RequestPacer

logger = structlog.get_logger()


def extract_sub_records(
    commits: Sequence[CommitRecord],
    entity: str,
    keyword: Optional[str] = None,
    ignore_patterns: Sequence[str] = DEFAULT_IGNORE_PATTERNS,
) -> List[SubRecord]:
    """Collapse a repository's commits into one record per author e-mail.

    Args:
        commits: Commits in API order (newest first)
        entity: Owning repository full name
        keyword: Search keyword that found the repository
        ignore_patterns: Substrings marking non-actionable addresses

    Returns:
        Records in first-seen order with per-identity commit counts
    """
    by_identity: Dict[str, SubRecord] = {}

    for commit in commits:
        author = commit.author
        if author is None:
            continue
        identity = normalize_identity(author.email)
        if identity is None:
            continue

        record = by_identity.get(identity)
        if record is None:
            by_identity[identity] = SubRecord(
                identity=identity,
                owning_entity=entity,
                keyword=keyword,
                occurrence_count=1,
                display_name=author.name,
                last_seen=author.date,
                ignored=is_ignored_identity(identity, ignore_patterns),
            )
            continue

        record.occurrence_count += 1
        if author.date is not None and (
            record.last_seen is None or author.date > record.last_seen
        ):
            record.last_seen = author.date

    return list(by_identity.values())


class ContributorExtractionService:
    """Process one repository at a time, gated by the dedup store."""

    def __init__(
        self,
        provider: SearchProvider,
        dedup: DeduplicationService,
        pacer: Optional[RequestPacer] = None,
        ignore_patterns: Sequence[str] = DEFAULT_IGNORE_PATTERNS,
    ):
        self.provider = provider
        self.dedup = dedup
        self.pacer = pacer or RequestPacer(0.0, name="commits")
        self.ignore_patterns = tuple(ignore_patterns)

    async def process(
        self,
        entity: Repository,
        keyword: Optional[str],
        statistics: ContributorStatistics,
    ) -> EntityOutcome:
        """Extract and persist contributors for a repository.

        Already-processed repositories are skipped without any API call.
        A failed commits fetch is logged and the repository is left
        unmarked, so a later run retries it.

        Args:
            entity: Repository to process
            keyword: Search keyword (stored with each record)
            statistics: Run-wide contributor aggregate to update

        Returns:
            EntityOutcome describing what happened

        Raises:
            StoreError: If persisting fails
        """
        if self.dedup.exists(entity.full_name):
            logger.info("entity_skipped", entity=entity.full_name, reason="already_processed")
            ENTITIES_PROCESSED.labels(status="skipped").inc()
            return EntityOutcome(entity=entity.full_name, status=EntityStatus.SKIPPED)

        await self.pacer.acquire()
        try:
            commits = await self.provider.list_commits(
                entity.full_name, limit=entity.secondary_ceiling
            )
        except APIError as e:
            logger.warning(
                "entity_fetch_failed",
                entity=entity.full_name,
                status=e.status,
                error=str(e),
            )
            ENTITIES_PROCESSED.labels(status="failed").inc()
            return EntityOutcome(
                entity=entity.full_name,
                status=EntityStatus.FAILED,
                error=str(e),
            )

        records = extract_sub_records(
            commits,
            entity=entity.full_name,
            keyword=keyword,
            ignore_patterns=self.ignore_patterns,
        )
        inserted = self.dedup.record_entity(entity.full_name, records, keyword=keyword)

        for record in records:
            statistics.observe(record)

        ENTITIES_PROCESSED.labels(status="processed").inc()
        logger.info(
            "entity_processed",
            entity=entity.full_name,
            commits=len(commits),
            contributors=len(records),
            inserted=inserted,
            ignored=sum(1 for r in records if r.ignored),
        )
        return EntityOutcome(
            entity=entity.full_name,
            status=EntityStatus.PROCESSED,
            commits_seen=len(commits),
            sub_records_found=len(records),
            sub_records_inserted=inserted,
        )
