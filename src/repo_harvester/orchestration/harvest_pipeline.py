"""Resumable harvest pipeline.

Drives one keyword through the run states:

    FRESH -> PLANNING -> FETCHING(i) -> PROCESSING(j) -> FETCHING(i+1) -> ... -> COMPLETE

Progress is checkpointed at every window transition and before every
repository, so an interrupted run resumes at or before the failure point.

Usage:
    async with GitHubProvider(config.github) as provider:
        with Database(config.storage.db_path) as database:
            context = HarvestContext.create(config, database, provider)
            result = await HarvestPipeline(context).run(query, start, end)
"""

from datetime import date, datetime
from typing import List, Optional

import structlog

from repo_harvester.models.checkpoint import Checkpoint, RunState
from repo_harvester.models.contributor import EntityStatus
from repo_harvester.models.config import HarvestConfig
from repo_harvester.models.search import Query, SubRange
from repo_harvester.observability.context import run_id_context
from repo_harvester.observability.logging import bind_context, clear_context
from repo_harvester.observability.metrics import SUB_RANGES
from repo_harvester.orchestration.context import HarvestContext
from repo_harvester.orchestration.result import HarvestResult
from repo_harvester.services.planner_service import QueryPlanner
from repo_harvester.services.providers.base import APIError, SearchProvider
from repo_harvester.services.providers.github import GitHubProvider
from repo_harvester.storage.database import Database
from repo_harvester.utils.exceptions import (
    CheckpointIntegrityError,
    StoreError,
    SubRangeFetchError,
)
from repo_harvester.utils.rate_limiter import RequestPacer

logger = structlog.get_logger()


class HarvestPipeline:
    """Run the crawl for one keyword against an explicit context.

    Units run strictly one after another: a window is fetched completely
    before its repositories are processed, and each repository is persisted
    before the next one starts.
    """

    def __init__(self, context: HarvestContext):
        self.context = context
        self.state = RunState.FRESH

    def _transition(self, state: RunState, **details) -> None:
        if state != self.state:
            logger.debug(
                "run_state_changed",
                from_state=self.state.value,
                to_state=state.value,
                **details,
            )
        self.state = state

    async def run(
        self,
        query: Query,
        start: date,
        end: date,
        today: Optional[date] = None,
        fresh: bool = False,
    ) -> HarvestResult:
        """Harvest contributors for a keyword over a creation-date period.

        An existing checkpoint for the keyword is resumed and its stored
        window plan wins over ``start``/``end``.

        Args:
            query: Immutable run query
            start: First repository creation date
            end: Last repository creation date (clipped to today)
            today: Override for "today" when clipping the period
            fresh: Discard any checkpoint and plan from scratch

        Returns:
            HarvestResult with final state COMPLETE or PAUSED

        Raises:
            CheckpointIntegrityError: If the stored checkpoint is corrupt
            StoreError: If the store fails
            APIError: On an unrecoverable provider failure outside a window
        """
        ctx = self.context
        result = HarvestResult(keyword=query.keyword)
        checkpoint: Optional[Checkpoint] = None
        self.state = RunState.FRESH

        logger.info(
            "harvest_started",
            keyword=query.keyword,
            start=start.isoformat(),
            end=end.isoformat(),
            fresh=fresh,
        )

        try:
            if fresh:
                ctx.checkpoints.clear(query.keyword)

            checkpoint = ctx.checkpoints.load(query.keyword)
            if checkpoint is None:
                self._transition(RunState.PLANNING)
                windows = ctx.planner.initial_windows(start, end, today=today)
                checkpoint = Checkpoint(keyword=query.keyword, sub_ranges=windows)
                ctx.checkpoints.save(checkpoint)
            else:
                logger.info(
                    "harvest_resumed",
                    keyword=query.keyword,
                    sub_range=checkpoint.current_sub_range_index,
                    sub_ranges=len(checkpoint.sub_ranges),
                    entity=checkpoint.current_entity_index,
                    entities_found=checkpoint.total_entities_found,
                )

            paused = await self._crawl(query, checkpoint, result)

            if paused:
                self._transition(RunState.PAUSED)
                ctx.checkpoints.save(checkpoint)
                logger.info(
                    "harvest_paused",
                    keyword=query.keyword,
                    sub_range=checkpoint.current_sub_range_index,
                    entity=checkpoint.current_entity_index,
                    limit=ctx.config.extraction.max_entities_per_run,
                )
            else:
                self._transition(RunState.COMPLETE)
                ctx.checkpoints.clear(query.keyword)

        except CheckpointIntegrityError as e:
            self._transition(RunState.SUSPENDED)
            logger.error("checkpoint_corrupt", keyword=query.keyword, error=str(e))
            raise
        except Exception as e:
            self._transition(RunState.SUSPENDED)
            logger.error(
                "harvest_suspended",
                keyword=query.keyword,
                error=str(e),
                error_type=type(e).__name__,
            )
            if checkpoint is not None:
                self._save_best_effort(checkpoint)
            raise
        finally:
            result.state = self.state
            result.errors = list(ctx.errors)
            result.duration_seconds = (
                datetime.utcnow() - ctx.started_at
            ).total_seconds()
            if checkpoint is not None:
                result.sub_ranges_total = len(checkpoint.sub_ranges)
            result.summarize_contributors(
                ctx.statistics, ctx.config.extraction.top_contributors
            )

        self._log_summary(result)
        return result

    async def _crawl(
        self, query: Query, checkpoint: Checkpoint, result: HarvestResult
    ) -> bool:
        """Walk the remaining windows.

        Returns:
            True if the per-run repository cap paused the run
        """
        ctx = self.context
        limit = ctx.config.extraction.max_entities_per_run
        api_calls = 0
        first_window = True

        while not checkpoint.is_finished:
            sub_range = checkpoint.current_sub_range
            assert sub_range is not None
            index = checkpoint.current_sub_range_index

            if not first_window:
                await ctx.window_pacer.pause()
            first_window = False

            self._transition(RunState.FETCHING, sub_range=index)
            try:
                fetched = await ctx.discovery.fetch_sub_range(query, sub_range)
            except SubRangeFetchError as e:
                self._skip_sub_range(checkpoint, sub_range, "fetch", str(e))
                result.sub_ranges_skipped += 1
                continue

            if fetched.exceeds_ceiling:
                children = await self._subdivide(query, sub_range)
                if children is None:
                    self._skip_sub_range(
                        checkpoint, sub_range, "split", "count probe failed"
                    )
                    result.sub_ranges_skipped += 1
                    continue
                checkpoint.replace_current(children)
                ctx.checkpoints.save(checkpoint)
                result.sub_ranges_split += 1
                logger.info(
                    "sub_range_split",
                    window=sub_range.label,
                    pieces=[child.label for child in children],
                    total_count=fetched.total_count,
                )
                continue

            entities = fetched.entities
            start_at = checkpoint.current_entity_index
            if start_at > len(entities):
                logger.warning(
                    "entity_cursor_past_window",
                    window=sub_range.label,
                    entity=start_at,
                    entities=len(entities),
                )
                start_at = len(entities)
            elif start_at:
                logger.info(
                    "sub_range_resumed",
                    window=sub_range.label,
                    entity=start_at,
                    entities=len(entities),
                )

            self._transition(RunState.PROCESSING, sub_range=index)
            for position in range(start_at, len(entities)):
                if limit is not None and api_calls >= limit:
                    checkpoint.advance_entity(position)
                    return True

                checkpoint.advance_entity(position)
                ctx.checkpoints.save(checkpoint)

                outcome = await ctx.extraction.process(
                    entities[position], query.keyword, ctx.statistics
                )
                result.record_outcome(outcome)
                if outcome.status != EntityStatus.SKIPPED:
                    api_calls += 1

            checkpoint.advance_sub_range(len(entities))
            ctx.checkpoints.save(checkpoint)
            result.sub_ranges_fetched += 1
            result.entities_found += len(entities)

            logger.info(
                "sub_range_complete",
                window=sub_range.label,
                progress=f"{checkpoint.current_sub_range_index}/{len(checkpoint.sub_ranges)}",
                entities=len(entities),
                total_entities_found=checkpoint.total_entities_found,
            )

        return False

    async def _subdivide(
        self, query: Query, sub_range: SubRange
    ) -> Optional[List[SubRange]]:
        try:
            return await self.context.planner.subdivide(query, sub_range)
        except APIError as e:
            logger.error("sub_range_split_failed", window=sub_range.label, error=str(e))
            return None

    def _skip_sub_range(
        self, checkpoint: Checkpoint, sub_range: SubRange, stage: str, error: str
    ) -> None:
        """Count a failed window as zero entities and move past it."""
        self.context.add_error(stage, error, sub_range=sub_range.label)
        SUB_RANGES.labels(outcome="skipped").inc()
        logger.warning("sub_range_skipped", window=sub_range.label, stage=stage)
        checkpoint.advance_sub_range(0)
        self.context.checkpoints.save(checkpoint)

    def _save_best_effort(self, checkpoint: Checkpoint) -> None:
        try:
            self.context.checkpoints.save(checkpoint)
        except StoreError as e:
            logger.error(
                "checkpoint_save_failed",
                keyword=checkpoint.keyword,
                error=str(e),
            )

    def _log_summary(self, result: HarvestResult) -> None:
        dedup_stats = self.context.dedup.get_stats()
        logger.info(
            "harvest_completed",
            keyword=result.keyword,
            state=result.state.value,
            sub_ranges=result.sub_ranges_total,
            sub_ranges_skipped=result.sub_ranges_skipped,
            entities_found=result.entities_found,
            entities_processed=result.entities_processed,
            entities_skipped=result.entities_skipped,
            entities_failed=result.entities_failed,
            sub_records_inserted=result.sub_records_inserted,
            sub_records_duplicate=dedup_stats.sub_records_duplicate,
            unique_contributors=result.unique_contributors,
            actionable_contributors=self.context.statistics.actionable_count,
            duration_seconds=round(result.duration_seconds, 2),
        )
        for rank, entry in enumerate(result.top_contributors, start=1):
            logger.info("top_contributor", rank=rank, **entry)


def _period(config: HarvestConfig, today: Optional[date]) -> tuple:
    today = today or date.today()
    return config.search.start_date, config.search.end_date or today


async def run_harvest(
    config: HarvestConfig,
    keyword: Optional[str] = None,
    fresh: bool = False,
    today: Optional[date] = None,
    provider: Optional[SearchProvider] = None,
) -> HarvestResult:
    """Open the store and provider, then run the pipeline once.

    Args:
        config: Validated configuration
        keyword: Override for the configured keyword
        fresh: Discard any checkpoint first
        today: Override for "today"
        provider: Pre-built provider (a GitHubProvider from config if None)

    Returns:
        HarvestResult of the run
    """
    provider = provider or GitHubProvider(
        config.github, commits_per_repo=config.extraction.commits_per_repo
    )
    query = config.build_query(
        provider.validate_query(keyword or config.search.keyword)
    )
    start, end = _period(config, today)

    with run_id_context() as run_id:
        bind_context(keyword=query.keyword)
        try:
            async with provider:
                with Database(config.storage.db_path) as database:
                    context = HarvestContext.create(
                        config, database, provider, run_id=run_id
                    )
                    return await HarvestPipeline(context).run(
                        query, start, end, today=today, fresh=fresh
                    )
        finally:
            clear_context()


async def plan_harvest(
    config: HarvestConfig,
    keyword: Optional[str] = None,
    today: Optional[date] = None,
    provider: Optional[SearchProvider] = None,
) -> List[SubRange]:
    """Probe every window of the configured period without fetching pages."""
    provider = provider or GitHubProvider(
        config.github, commits_per_repo=config.extraction.commits_per_repo
    )
    query = config.build_query(
        provider.validate_query(keyword or config.search.keyword)
    )
    start, end = _period(config, today)

    async with provider:
        planner = QueryPlanner(
            provider,
            window_days=config.search.window_days,
            max_split_depth=config.search.max_split_depth,
            pacer=RequestPacer(config.search.page_delay_seconds, name="search"),
        )
        return await planner.plan(query, start, end, today=today)
