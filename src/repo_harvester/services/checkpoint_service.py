"""
Checkpoint service for resumable harvest runs.

Saves progress at every window transition and before every repository so an
interrupted run can resume at or before the failure point. One row per
keyword; saves replace the row atomically.
"""

import json
from datetime import datetime
from typing import List, Optional

import structlog
from pydantic import ValidationError

from repo_harvester.models.checkpoint import Checkpoint
from repo_harvester.models.search import SubRange
from repo_harvester.observability.metrics import CHECKPOINT_SAVES
from repo_harvester.storage.database import Database
from repo_harvester.utils.exceptions import CheckpointIntegrityError, StoreError

logger = structlog.get_logger()

_UPSERT_SQL = """
    INSERT INTO checkpoints
        (keyword, sub_ranges, current_sub_range_index, current_entity_index,
         total_entities_found, last_updated)
    VALUES (?, ?, ?, ?, ?, ?)
    ON CONFLICT(keyword) DO UPDATE SET
        sub_ranges = excluded.sub_ranges,
        current_sub_range_index = excluded.current_sub_range_index,
        current_entity_index = excluded.current_entity_index,
        total_entities_found = excluded.total_entities_found,
        last_updated = excluded.last_updated
"""

_SELECT_SQL = """
    SELECT keyword, sub_ranges, current_sub_range_index, current_entity_index,
           total_entities_found, last_updated
    FROM checkpoints
"""


class CheckpointService:
    """
    Manage per-keyword harvest checkpoints.

    Provides atomic saves and integrity-checked loads.
    """

    def __init__(self, database: Database):
        """
        Initialize checkpoint service.

        Args:
            database: Open store handle
        """
        self.database = database

    def load(self, keyword: str) -> Optional[Checkpoint]:
        """
        Load the live checkpoint for a keyword.

        Args:
            keyword: Search keyword

        Returns:
            Checkpoint if one exists, None otherwise

        Raises:
            CheckpointIntegrityError: If the stored record is corrupt
        """
        row = self.database.fetchone(_SELECT_SQL + " WHERE keyword = ?", (keyword,))
        if row is None:
            logger.debug("no_checkpoint_found", keyword=keyword)
            return None

        checkpoint = self._from_row(row)
        self.validate(checkpoint)

        logger.info(
            "checkpoint_loaded",
            keyword=keyword,
            sub_range=checkpoint.current_sub_range_index,
            sub_ranges=len(checkpoint.sub_ranges),
            entity=checkpoint.current_entity_index,
        )
        return checkpoint

    def save(self, checkpoint: Checkpoint) -> None:
        """
        Replace the keyword's checkpoint atomically.

        Args:
            checkpoint: Progress to persist (last_updated is stamped here)

        Raises:
            StoreError: If the write fails
        """
        checkpoint.last_updated = datetime.utcnow()
        params = (
            checkpoint.keyword,
            json.dumps([r.model_dump(mode="json") for r in checkpoint.sub_ranges]),
            checkpoint.current_sub_range_index,
            checkpoint.current_entity_index,
            checkpoint.total_entities_found,
            checkpoint.last_updated.isoformat(),
        )
        try:
            self.database.execute(_UPSERT_SQL, params)
        except StoreError:
            CHECKPOINT_SAVES.labels(status="failed").inc()
            raise

        CHECKPOINT_SAVES.labels(status="ok").inc()
        logger.debug(
            "checkpoint_saved",
            keyword=checkpoint.keyword,
            sub_range=checkpoint.current_sub_range_index,
            sub_ranges=len(checkpoint.sub_ranges),
            entity=checkpoint.current_entity_index,
        )

    def clear(self, keyword: str) -> bool:
        """
        Delete a keyword's checkpoint.

        Returns:
            True if a checkpoint was deleted
        """
        cursor = self.database.execute("DELETE FROM checkpoints WHERE keyword = ?", (keyword,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("checkpoint_cleared", keyword=keyword)
        return deleted

    def list_checkpoints(self) -> List[Checkpoint]:
        """All live checkpoints, most recently updated first."""
        rows = self.database.fetchall(_SELECT_SQL + " ORDER BY last_updated DESC")
        return [self._from_row(row) for row in rows]

    @staticmethod
    def validate(checkpoint: Checkpoint) -> None:
        """
        Verify the invariants a resumable checkpoint must hold.

        Raises:
            CheckpointIntegrityError: On out-of-range cursors or a plan with
                gaps or overlaps
        """
        count = len(checkpoint.sub_ranges)
        if checkpoint.current_sub_range_index > count:
            raise CheckpointIntegrityError(
                f"Checkpoint for {checkpoint.keyword!r} points at window "
                f"{checkpoint.current_sub_range_index} of {count}"
            )
        if checkpoint.current_sub_range_index == count and checkpoint.current_entity_index:
            raise CheckpointIntegrityError(
                f"Checkpoint for {checkpoint.keyword!r} has an entity cursor past the last window"
            )
        for left, right in zip(checkpoint.sub_ranges, checkpoint.sub_ranges[1:]):
            if right.start <= left.end or (right.start - left.end).days != 1:
                raise CheckpointIntegrityError(
                    f"Checkpoint for {checkpoint.keyword!r} has non-contiguous windows "
                    f"{left.label} / {right.label}"
                )

    @staticmethod
    def _from_row(row) -> Checkpoint:
        try:
            sub_ranges = [SubRange(**item) for item in json.loads(row["sub_ranges"])]
            return Checkpoint(
                keyword=row["keyword"],
                sub_ranges=sub_ranges,
                current_sub_range_index=row["current_sub_range_index"],
                current_entity_index=row["current_entity_index"],
                total_entities_found=row["total_entities_found"],
                last_updated=datetime.fromisoformat(row["last_updated"]),
            )
        except (ValueError, TypeError, ValidationError) as e:
            raise CheckpointIntegrityError(
                f"Unreadable checkpoint for {row['keyword']!r}: {e}"
            ) from e
