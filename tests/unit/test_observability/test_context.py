"""Tests for run ID context management."""

import asyncio

import pytest

from repo_harvester.observability.context import (
    clear_run_id,
    get_run_id,
    run_id_context,
    set_run_id,
)


class TestSetRunId:
    def test_generates_id_when_none_provided(self):
        clear_run_id()

        result = set_run_id()

        assert len(result) == 12
        assert get_run_id() == result

    def test_uses_provided_id(self):
        set_run_id("run-1")
        assert get_run_id() == "run-1"
        clear_run_id()


class TestRunIdContext:
    def test_restores_previous_value(self):
        set_run_id("outer")

        with run_id_context("inner") as run_id:
            assert run_id == "inner"
            assert get_run_id() == "inner"

        assert get_run_id() == "outer"
        clear_run_id()

    def test_restores_after_exception(self):
        clear_run_id()

        with pytest.raises(RuntimeError):
            with run_id_context("temp"):
                raise RuntimeError("boom")

        assert get_run_id() is None

    @pytest.mark.asyncio
    async def test_tasks_see_their_own_id(self):
        async def worker(name):
            with run_id_context(name):
                await asyncio.sleep(0)
                return get_run_id()

        results = await asyncio.gather(worker("a"), worker("b"))

        assert results == ["a", "b"]
