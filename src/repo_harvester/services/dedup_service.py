"""
Repository and contributor deduplication service.

Durable two-level dedup backed by SQLite:
1. Repository level: processed_entities marker (one row per repository)
2. Contributor level: UNIQUE identity on sub_records, first write wins
"""

from datetime import datetime
from typing import Iterable, Iterator, Optional

import structlog

from repo_harvester.models.contributor import SubRecord
from repo_harvester.models.dedup import DedupStats
from repo_harvester.observability.metrics import SUB_RECORDS
from repo_harvester.storage.database import Database

logger = structlog.get_logger()

_INSERT_SQL = """
    INSERT OR IGNORE INTO sub_records
        (identity, owning_entity, keyword, display_name,
         occurrence_count, last_seen, ignored)
    VALUES (?, ?, ?, ?, ?, ?, ?)
"""

_MARK_SQL = """
    INSERT OR IGNORE INTO processed_entities (identity, keyword, sub_record_count)
    VALUES (?, ?, ?)
"""


def _row_params(record: SubRecord) -> tuple:
    return (
        record.identity,
        record.owning_entity,
        record.keyword,
        record.display_name,
        record.occurrence_count,
        record.last_seen.isoformat() if record.last_seen else None,
        1 if record.ignored else 0,
    )


class DeduplicationService:
    """
    Detect repositories and contributors seen in earlier runs.

    Every lookup is an indexed primary-key or unique-index probe.
    """

    def __init__(self, database: Database):
        """
        Initialize deduplication service.

        Args:
            database: Open store handle
        """
        self.database = database
        self.stats = DedupStats()

    def exists(self, entity_identity: str) -> bool:
        """
        Check whether a repository was already processed.

        A repository counts as processed when it carries a processed marker
        or owns any stored contributor record.

        Args:
            entity_identity: Repository full name

        Returns:
            True if the repository can be skipped
        """
        self.stats.entities_checked += 1
        row = self.database.fetchone(
            """
            SELECT 1 FROM processed_entities WHERE identity = ?
            UNION ALL
            SELECT 1 FROM sub_records WHERE owning_entity = ?
            LIMIT 1
            """,
            (entity_identity, entity_identity),
        )
        found = row is not None
        if found:
            self.stats.entities_already_processed += 1
        return found

    def insert_or_ignore(self, record: SubRecord) -> bool:
        """
        Insert a contributor record unless its identity is already stored.

        Args:
            record: Contributor record

        Returns:
            True if a row was inserted, False for a duplicate
        """
        cursor = self.database.execute(_INSERT_SQL, _row_params(record))
        inserted = cursor.rowcount == 1
        self._count(record, inserted)
        return inserted

    def mark_processed(
        self, entity_identity: str, keyword: Optional[str] = None, sub_record_count: int = 0
    ) -> None:
        """Record that a repository was visited, even with zero contributors."""
        self.database.execute(_MARK_SQL, (entity_identity, keyword, sub_record_count))
        self.stats.entities_marked += 1

    def record_entity(
        self,
        entity_identity: str,
        sub_records: Iterable[SubRecord],
        keyword: Optional[str] = None,
    ) -> int:
        """
        Persist a repository's contributors and its processed marker atomically.

        Args:
            entity_identity: Repository full name
            sub_records: First-seen record per identity for this repository
            keyword: Search keyword that found the repository; also stored on
                records that carry none

        Returns:
            Number of contributor rows actually inserted
        """
        records = [
            record.model_copy(update={"keyword": keyword})
            if record.keyword is None and keyword is not None
            else record
            for record in sub_records
        ]
        outcomes = []
        with self.database.transaction() as conn:
            for record in records:
                cursor = conn.execute(_INSERT_SQL, _row_params(record))
                outcomes.append((record, cursor.rowcount == 1))
            conn.execute(_MARK_SQL, (entity_identity, keyword, len(records)))

        # Counters only move once the transaction committed
        for record, inserted in outcomes:
            self._count(record, inserted)
        self.stats.entities_marked += 1

        inserted_total = sum(1 for _, inserted in outcomes if inserted)
        logger.debug(
            "entity_recorded",
            entity=entity_identity,
            found=len(records),
            inserted=inserted_total,
        )
        return inserted_total

    def _count(self, record: SubRecord, inserted: bool) -> None:
        if inserted:
            self.stats.sub_records_inserted += 1
            SUB_RECORDS.labels(outcome="inserted").inc()
            logger.debug(
                "sub_record_saved",
                identity=record.identity,
                entity=record.owning_entity,
                ignored=record.ignored,
            )
        else:
            self.stats.sub_records_duplicate += 1
            SUB_RECORDS.labels(outcome="duplicate").inc()
            logger.debug("sub_record_exists", identity=record.identity)

    def count_sub_records(self, include_ignored: bool = True) -> int:
        sql = "SELECT COUNT(*) FROM sub_records"
        if not include_ignored:
            sql += " WHERE ignored = 0"
        row = self.database.fetchone(sql)
        return int(row[0]) if row else 0

    def count_processed_entities(self) -> int:
        row = self.database.fetchone("SELECT COUNT(*) FROM processed_entities")
        return int(row[0]) if row else 0

    def iter_sub_records(
        self, keyword: Optional[str] = None, include_ignored: bool = False
    ) -> Iterator[SubRecord]:
        """
        Stream stored contributor records in insertion order.

        Args:
            keyword: Only records captured for this keyword
            include_ignored: Include non-actionable identities

        Yields:
            SubRecord rows
        """
        clauses = []
        params: list = []
        if keyword is not None:
            clauses.append("keyword = ?")
            params.append(keyword)
        if not include_ignored:
            clauses.append("ignored = 0")

        sql = (
            "SELECT identity, owning_entity, keyword, display_name, "
            "occurrence_count, last_seen, ignored FROM sub_records"
        )
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY id"

        for row in self.database.fetchall(sql, params):
            yield SubRecord(
                identity=row["identity"],
                owning_entity=row["owning_entity"],
                keyword=row["keyword"],
                display_name=row["display_name"],
                occurrence_count=row["occurrence_count"],
                last_seen=datetime.fromisoformat(row["last_seen"]) if row["last_seen"] else None,
                ignored=bool(row["ignored"]),
            )

    def get_stats(self) -> DedupStats:
        return self.stats
