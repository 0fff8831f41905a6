"""Tests for the step context handed to step work."""

import logging

import pytest

from stepwise.context import StepContext
from stepwise.persistence import InMemoryRunRepository


@pytest.mark.asyncio
async def test_context_writes_to_own_step():
    repo = InMemoryRunRepository()
    run = await repo.create_run("wf", ["a", "b"])
    step = run.get_step("a")
    ctx = StepContext(repo, run.id, step.id, "a")

    await ctx.update_progress(120, "nearly done")
    await ctx.save_checkpoint({"page": 3})

    stored = await repo.get_step(run.id, "a")
    assert stored.progress == 100
    assert stored.message == "nearly done"
    assert await ctx.load_checkpoint() == {"page": 3}
    other = await repo.get_step(run.id, "b")
    assert other.progress == 0
    assert other.checkpoint == {}


@pytest.mark.asyncio
async def test_detached_context_drops_writes(caplog):
    repo = InMemoryRunRepository()
    run = await repo.create_run("wf", ["a"])
    step = run.get_step("a")
    ctx = StepContext(repo, run.id, step.id, "a")
    await ctx.save_checkpoint({"page": 1})

    ctx.detach()
    assert not ctx.attached
    with caplog.at_level(logging.WARNING, logger="stepwise.context"):
        await ctx.update_progress(80)
        await ctx.save_checkpoint({"page": 9})

    stored = await repo.get_step(run.id, "a")
    assert stored.progress == 0
    assert stored.checkpoint == {"page": 1}
    assert await ctx.load_checkpoint() == {"page": 1}
    assert "Discarding progress update" in caplog.text


def test_step_logger_prefixes_run_and_step(caplog):
    ctx = StepContext(InMemoryRunRepository(), 7, 3, "load")
    with caplog.at_level(logging.INFO, logger="stepwise.step"):
        ctx.logger.info("fetched 10 rows")

    record = caplog.records[-1]
    assert record.getMessage() == "[run=7 step=load] fetched 10 rows"
    assert record.run_id == 7
    assert record.step_name == "load"
