"""End-to-end harvest runs against an in-memory search provider.

Each test goes through run_harvest, so the store is opened from
configuration and migrated exactly as the CLI does it.
"""

from datetime import date

import pytest

from repo_harvester.models.checkpoint import Checkpoint, RunState
from repo_harvester.orchestration import run_harvest
from repo_harvester.services.checkpoint_service import CheckpointService
from repo_harvester.services.dedup_service import DeduplicationService
from repo_harvester.services.planner_service import QueryPlanner, covers
from repo_harvester.storage.database import Database

TODAY = date(2024, 6, 1)


def _store(config):
    return Database(config.storage.db_path)


@pytest.mark.asyncio
async def test_small_keyword_single_window(harvest_config, fake_provider_cls, spread_repos):
    harvest_config.search.end_date = date(2024, 1, 30)
    provider = fake_provider_cls(spread_repos(date(2024, 1, 1), 10, 5))

    result = await run_harvest(harvest_config, provider=provider, today=TODAY)

    assert result.state == RunState.COMPLETE
    assert result.sub_ranges_total == 1
    assert result.sub_ranges_split == 0
    assert result.entities_processed == 50
    assert len(provider.commit_calls) == 50
    with _store(harvest_config) as database:
        assert DeduplicationService(database).count_sub_records() == 50
        assert CheckpointService(database).load("OPENROUTER") is None


@pytest.mark.asyncio
async def test_over_ceiling_window_is_subdivided(
    harvest_config, fake_provider_cls, spread_repos
):
    harvest_config.search.end_date = date(2024, 1, 30)
    table = spread_repos(date(2024, 1, 1), 30, 50)
    provider = fake_provider_cls(table)

    result = await run_harvest(harvest_config, provider=provider, today=TODAY)

    assert result.state == RunState.COMPLETE
    assert result.sub_ranges_split == 1
    assert result.sub_ranges_total == 2
    assert result.sub_ranges_fetched == 2
    assert result.entities_found == 1500
    assert result.entities_processed == 1500
    # Only the two halves were paged after the overflowing window
    fetched_labels = {label for label, _ in provider.search_calls}
    fetched_labels.discard("2024-01-01..2024-01-30")
    assert fetched_labels == {"2024-01-01..2024-01-15", "2024-01-16..2024-01-30"}


@pytest.mark.asyncio
async def test_resume_skips_finished_windows_and_entities(
    harvest_config, fake_provider_cls, spread_repos
):
    table = spread_repos(date(2024, 1, 5), 1, 4, prefix="jan")
    table.update(spread_repos(date(2024, 2, 5), 1, 4, prefix="feb"))
    table.update(spread_repos(date(2024, 3, 5), 1, 8, prefix="mar"))
    windows = QueryPlanner(fake_provider_cls()).initial_windows(
        date(2024, 1, 1), date(2024, 3, 30), today=TODAY
    )
    with _store(harvest_config) as database:
        CheckpointService(database).save(
            Checkpoint(
                keyword="OPENROUTER",
                sub_ranges=windows,
                current_sub_range_index=2,
                current_entity_index=5,
                total_entities_found=8,
            )
        )
    provider = fake_provider_cls(table)

    result = await run_harvest(harvest_config, provider=provider, today=TODAY)

    assert result.state == RunState.COMPLETE
    assert provider.commit_calls == ["mar0-5/repo", "mar0-6/repo", "mar0-7/repo"]
    assert {label for label, _ in provider.search_calls} == {"2024-03-01..2024-03-30"}


@pytest.mark.asyncio
async def test_interrupted_run_resumes_without_duplicates(
    harvest_config, fake_provider_cls, spread_repos
):
    table = spread_repos(date(2024, 1, 1), 60, 1)
    crashing = fake_provider_cls(table, crash_after_commits=40)

    with pytest.raises(RuntimeError):
        await run_harvest(harvest_config, provider=crashing, today=TODAY)

    with _store(harvest_config) as database:
        saved = CheckpointService(database).load("OPENROUTER")
        assert saved is not None
        assert covers(saved.sub_ranges, date(2024, 1, 1), date(2024, 3, 30))
        assert saved.current_sub_range_index == 1

    resumed = fake_provider_cls(table)
    result = await run_harvest(harvest_config, provider=resumed, today=TODAY)

    assert result.state == RunState.COMPLETE
    # Nothing processed before the crash is fetched again
    assert set(crashing.commit_calls).isdisjoint(resumed.commit_calls)
    assert len(crashing.commit_calls) + len(resumed.commit_calls) == 60
    with _store(harvest_config) as database:
        assert DeduplicationService(database).count_processed_entities() == 60
        assert CheckpointService(database).load("OPENROUTER") is None


@pytest.mark.asyncio
async def test_second_run_is_idempotent(harvest_config, fake_provider_cls, spread_repos):
    table = spread_repos(date(2024, 2, 1), 5, 3)

    await run_harvest(harvest_config, provider=fake_provider_cls(table), today=TODAY)
    again = fake_provider_cls(table)
    result = await run_harvest(harvest_config, provider=again, today=TODAY)

    assert again.commit_calls == []
    assert result.entities_skipped == 15
    assert result.sub_records_inserted == 0
    with _store(harvest_config) as database:
        assert DeduplicationService(database).count_sub_records() == 15


@pytest.mark.asyncio
async def test_padded_keyword_is_stripped(harvest_config, fake_provider_cls, spread_repos):
    harvest_config.search.end_date = date(2024, 1, 30)
    provider = fake_provider_cls(spread_repos(date(2024, 1, 1), 1, 2))

    result = await run_harvest(
        harvest_config, keyword="  langchain ", provider=provider, today=TODAY
    )

    assert result.keyword == "langchain"
    with _store(harvest_config) as database:
        keywords = {r.keyword for r in DeduplicationService(database).iter_sub_records()}
    assert keywords == {"langchain"}
