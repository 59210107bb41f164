"""Tests for the harvest pipeline state machine."""

from datetime import date

import pytest

from repo_harvester.models.checkpoint import Checkpoint, RunState
from repo_harvester.models.search import SubRange
from repo_harvester.orchestration import HarvestContext, HarvestPipeline, HarvestResult
from repo_harvester.utils.exceptions import CheckpointIntegrityError, StoreError

START = date(2024, 1, 1)
END = date(2024, 3, 30)
TODAY = date(2024, 6, 1)


@pytest.fixture
def build(harvest_config, database):
    def _build(provider):
        context = HarvestContext.create(harvest_config, database, provider)
        return context, HarvestPipeline(context)

    return _build


@pytest.mark.asyncio
async def test_plans_windows_and_completes(
    build, query, fake_provider_cls, spread_repos
):
    provider = fake_provider_cls(spread_repos(date(2024, 2, 10), 3, 2))
    context, pipeline = build(provider)

    result = await pipeline.run(query, START, END, today=TODAY)

    assert result.state == RunState.COMPLETE
    assert pipeline.state == RunState.COMPLETE
    assert result.sub_ranges_total == 3
    assert result.sub_ranges_fetched == 3
    assert result.entities_found == 6
    assert result.entities_processed == 6
    assert result.sub_records_inserted == 6
    assert result.unique_contributors == 6
    assert context.checkpoints.load(query.keyword) is None
    # One search page per window, nothing probed separately
    assert len(provider.search_calls) == 3
    assert provider.count_calls == []


@pytest.mark.asyncio
async def test_failed_window_is_skipped(build, query, fake_provider_cls, spread_repos):
    table = spread_repos(date(2024, 1, 5), 1, 2, prefix="jan")
    table.update(spread_repos(date(2024, 2, 5), 1, 2, prefix="feb"))
    table.update(spread_repos(date(2024, 3, 5), 1, 2, prefix="mar"))
    provider = fake_provider_cls(table, fail_windows={"2024-01-31..2024-02-29"})
    context, pipeline = build(provider)

    result = await pipeline.run(query, START, END, today=TODAY)

    assert result.state == RunState.COMPLETE
    assert result.sub_ranges_skipped == 1
    assert result.sub_ranges_fetched == 2
    assert result.entities_processed == 4
    assert result.errors[0]["sub_range"] == "2024-01-31..2024-02-29"
    assert not any(name.startswith("feb") for name in provider.commit_calls)


@pytest.mark.asyncio
async def test_entity_failure_is_retried_next_run(
    build, query, fake_provider_cls, spread_repos
):
    table = spread_repos(date(2024, 1, 5), 1, 3)
    provider = fake_provider_cls(table, fail_commits={"org0-1/repo"})
    context, pipeline = build(provider)

    first = await pipeline.run(query, START, END, today=TODAY)

    assert first.entities_processed == 2
    assert first.entities_failed == 1
    assert not context.dedup.exists("org0-1/repo")

    retry_provider = fake_provider_cls(table)
    _, retry_pipeline = build(retry_provider)
    second = await retry_pipeline.run(query, START, END, today=TODAY)

    assert retry_provider.commit_calls == ["org0-1/repo"]
    assert second.entities_skipped == 2
    assert second.entities_processed == 1


@pytest.mark.asyncio
async def test_entity_cap_pauses_and_next_run_continues(
    build, harvest_config, query, fake_provider_cls, spread_repos
):
    harvest_config.extraction.max_entities_per_run = 3
    table = spread_repos(date(2024, 1, 5), 1, 5)
    provider = fake_provider_cls(table)
    context, pipeline = build(provider)

    first = await pipeline.run(query, START, END, today=TODAY)

    assert first.state == RunState.PAUSED
    assert provider.commit_calls == ["org0-0/repo", "org0-1/repo", "org0-2/repo"]
    saved = context.checkpoints.load(query.keyword)
    assert saved.current_sub_range_index == 0
    assert saved.current_entity_index == 3

    next_provider = fake_provider_cls(table)
    _, next_pipeline = build(next_provider)
    second = await next_pipeline.run(query, START, END, today=TODAY)

    assert second.state == RunState.COMPLETE
    assert next_provider.commit_calls == ["org0-3/repo", "org0-4/repo"]


@pytest.mark.asyncio
async def test_crash_suspends_with_checkpoint(
    build, query, fake_provider_cls, spread_repos
):
    table = spread_repos(date(2024, 1, 5), 1, 4)
    provider = fake_provider_cls(table, crash_after_commits=2)
    context, pipeline = build(provider)

    with pytest.raises(RuntimeError):
        await pipeline.run(query, START, END, today=TODAY)

    assert pipeline.state == RunState.SUSPENDED
    saved = context.checkpoints.load(query.keyword)
    assert saved.current_sub_range_index == 0
    assert saved.current_entity_index == 2


@pytest.mark.asyncio
async def test_corrupt_checkpoint_is_fatal(build, query, database, fake_provider_cls):
    context, pipeline = build(fake_provider_cls())
    context.checkpoints.save(
        Checkpoint(
            keyword=query.keyword,
            sub_ranges=[SubRange(start=START, end=date(2024, 1, 30))],
        )
    )
    database.execute(
        "UPDATE checkpoints SET current_sub_range_index = 5 WHERE keyword = ?",
        (query.keyword,),
    )

    with pytest.raises(CheckpointIntegrityError):
        await pipeline.run(query, START, END, today=TODAY)

    assert pipeline.state == RunState.SUSPENDED
    row = database.fetchone(
        "SELECT current_sub_range_index FROM checkpoints WHERE keyword = ?",
        (query.keyword,),
    )
    assert row[0] == 5


@pytest.mark.asyncio
async def test_fresh_discards_checkpoint(build, query, fake_provider_cls, spread_repos):
    provider = fake_provider_cls(spread_repos(date(2024, 1, 5), 1, 2))
    context, pipeline = build(provider)
    context.checkpoints.save(
        Checkpoint(
            keyword=query.keyword,
            sub_ranges=[
                SubRange(start=START, end=date(2024, 1, 30)),
                SubRange(start=date(2024, 1, 31), end=date(2024, 2, 29)),
            ],
            current_sub_range_index=1,
        )
    )

    result = await pipeline.run(query, START, END, today=TODAY, fresh=True)

    assert result.entities_processed == 2
    assert result.sub_ranges_total == 3


@pytest.mark.asyncio
async def test_window_pause_between_windows(
    build, harvest_config, query, fake_provider_cls
):
    pauses = []

    async def fake_sleep(seconds):
        pauses.append(seconds)

    context, pipeline = build(fake_provider_cls())
    context.window_pacer.delay_seconds = 1.0
    context.window_pacer._sleep = fake_sleep

    await pipeline.run(query, START, END, today=TODAY)

    assert pauses == [1.0, 1.0]


def test_result_to_dict():
    data = HarvestResult(keyword="k", state=RunState.PAUSED).to_dict()

    assert data["keyword"] == "k"
    assert data["state"] == "paused"
    assert data["errors"] == []


def _fail_record_entity_at(context, position):
    """Make the store fail while persisting the repository at ``position``."""
    real_record_entity = context.dedup.record_entity
    calls = []

    def record_entity(entity_identity, sub_records, keyword=None):
        calls.append(entity_identity)
        if len(calls) == position + 1:
            raise StoreError("database is locked")
        return real_record_entity(entity_identity, sub_records, keyword=keyword)

    context.dedup.record_entity = record_entity


@pytest.mark.asyncio
async def test_store_failure_suspends_at_failing_entity(
    build, query, fake_provider_cls, spread_repos
):
    provider = fake_provider_cls(spread_repos(date(2024, 1, 5), 1, 4))
    context, pipeline = build(provider)
    _fail_record_entity_at(context, 2)

    with pytest.raises(StoreError, match="database is locked"):
        await pipeline.run(query, START, END, today=TODAY)

    assert pipeline.state == RunState.SUSPENDED
    saved = context.checkpoints.load(query.keyword)
    assert saved.current_sub_range_index == 0
    assert saved.current_entity_index == 2
    assert context.dedup.exists("org0-1/repo")
    assert not context.dedup.exists("org0-2/repo")


@pytest.mark.asyncio
async def test_failed_checkpoint_save_keeps_store_error(
    build, query, fake_provider_cls, spread_repos
):
    provider = fake_provider_cls(spread_repos(date(2024, 1, 5), 1, 3))
    context, pipeline = build(provider)
    _fail_record_entity_at(context, 1)

    real_save = context.checkpoints.save
    save_attempts = []

    def save(checkpoint):
        save_attempts.append(checkpoint.current_entity_index)
        if pipeline.state == RunState.SUSPENDED:
            raise StoreError("disk I/O error")
        real_save(checkpoint)

    context.checkpoints.save = save

    with pytest.raises(StoreError, match="database is locked"):
        await pipeline.run(query, START, END, today=TODAY)

    assert pipeline.state == RunState.SUSPENDED
    # Best-effort save was attempted at the failing entity
    assert save_attempts[-1] == 1
    saved = context.checkpoints.load(query.keyword)
    assert saved.current_entity_index == 1


@pytest.mark.asyncio
async def test_run_reports_duration(build, query, fake_provider_cls):
    _, pipeline = build(fake_provider_cls())

    result = await pipeline.run(query, START, END, today=TODAY)

    assert result.duration_seconds >= 0
    assert result.to_dict()["duration_seconds"] == result.duration_seconds
