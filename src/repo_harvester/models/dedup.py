"""Data models for deduplication system."""

from pydantic import BaseModel, ConfigDict


class DedupStats(BaseModel):
    """Deduplication statistics for the current process"""

    model_config = ConfigDict(protected_namespaces=())

    entities_checked: int = 0
    entities_already_processed: int = 0
    entities_marked: int = 0
    sub_records_inserted: int = 0
    sub_records_duplicate: int = 0

    @property
    def skip_rate(self) -> float:
        """Share of checked entities that were already processed"""
        if self.entities_checked == 0:
            return 0.0
        return self.entities_already_processed / self.entities_checked
