"""Data models for checkpoint system."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from repo_harvester.models.search import SubRange


class RunState(str, Enum):
    """Lifecycle of a harvest run for one keyword"""

    FRESH = "fresh"
    PLANNING = "planning"
    FETCHING = "fetching"
    PROCESSING = "processing"
    PAUSED = "paused"  # Per-run entity cap reached; checkpoint kept
    SUSPENDED = "suspended"  # Failed; checkpoint kept for resume
    COMPLETE = "complete"


class Checkpoint(BaseModel):
    """Durable progress record for one keyword"""

    model_config = ConfigDict(protected_namespaces=())

    keyword: str
    sub_ranges: List[SubRange] = Field(default_factory=list)
    current_sub_range_index: int = Field(0, ge=0)
    current_entity_index: int = Field(0, ge=0)
    total_entities_found: int = Field(0, ge=0)
    last_updated: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_finished(self) -> bool:
        return self.current_sub_range_index >= len(self.sub_ranges)

    @property
    def current_sub_range(self) -> Optional[SubRange]:
        if self.is_finished:
            return None
        return self.sub_ranges[self.current_sub_range_index]

    def advance_entity(self, entity_index: int) -> None:
        """Move the entity cursor forward, never backward."""
        if entity_index > self.current_entity_index:
            self.current_entity_index = entity_index

    def advance_sub_range(self, entities_found: int = 0) -> None:
        """Move to the next window and reset the entity cursor."""
        self.current_sub_range_index += 1
        self.current_entity_index = 0
        self.total_entities_found += entities_found

    def replace_current(self, children: List[SubRange]) -> None:
        """Swap the current window for its subdivision, in place."""
        i = self.current_sub_range_index
        self.sub_ranges = self.sub_ranges[:i] + list(children) + self.sub_ranges[i + 1 :]
        self.current_entity_index = 0
