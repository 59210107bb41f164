"""Orchestration module for harvest run coordination."""

from repo_harvester.orchestration.context import HarvestContext
from repo_harvester.orchestration.harvest_pipeline import (
    HarvestPipeline,
    plan_harvest,
    run_harvest,
)
from repo_harvester.orchestration.result import HarvestResult

__all__ = [
    "HarvestContext",
    "HarvestPipeline",
    "HarvestResult",
    "plan_harvest",
    "run_harvest",
]
