"""Runs survive a process restart when state lives in a database file."""

import pytest

from stepwise import WorkflowEngine, define_workflow
from stepwise.db import SQLModelRunRepository
from stepwise.errors import StepFailure
from stepwise.persistence import RunStatus, StepStatus, get_repository, reset_repository


def _database_url(kind, tmp_path):
    if kind == "sqlite":
        return f"sqlite://{tmp_path / 'runs.db'}"
    return f"sqlite+aiosqlite:///{tmp_path / 'runs_sqlmodel.db'}"


async def _close(repo):
    if isinstance(repo, SQLModelRunRepository):
        await repo.dispose()
    else:
        repo.close()


def _workflow(calls, fail_publish):
    async def record(ctx):
        calls.append(ctx.step_name)
        await ctx.save_checkpoint({"attempt": calls.count(ctx.step_name)})
        if ctx.step_name == "publish" and fail_publish:
            raise RuntimeError("CDN rejected upload")

    def steps(wf):
        wf.define_step("init", record)
        wf.define_step("load", record, dependencies=["init"])
        wf.define_step("publish", record, dependencies=["load"])

    return define_workflow("content-pipeline", steps)


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", ["sqlite", "sqlmodel"])
async def test_failed_run_resumes_in_new_process(kind, tmp_path):
    url = _database_url(kind, tmp_path)
    first_calls = []

    repo = get_repository(url)
    with pytest.raises(StepFailure) as exc:
        await WorkflowEngine(repo).run_workflow(_workflow(first_calls, fail_publish=True))
    run_id = exc.value.run_id
    await _close(repo)
    reset_repository()

    second_calls = []
    repo = get_repository(url)
    failed = await repo.get_run(run_id)
    assert failed.status == RunStatus.FAILED
    assert failed.error == "CDN rejected upload"

    await WorkflowEngine(repo).run_workflow(
        _workflow(second_calls, fail_publish=False), resume_run_id=run_id
    )

    assert first_calls == ["init", "load", "publish"]
    assert second_calls == ["publish"]
    run = await repo.get_run(run_id)
    assert run.status == RunStatus.COMPLETED
    assert run.completed_steps == 3
    assert all(s.status == StepStatus.COMPLETED for s in run.steps)
    assert run.get_step("init").checkpoint == {"attempt": 1}
    await _close(repo)


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", ["sqlite", "sqlmodel"])
async def test_interrupted_run_listed_as_resumable(kind, tmp_path):
    url = _database_url(kind, tmp_path)

    repo = get_repository(url)
    run = await repo.create_run("content-pipeline", ["init", "load", "publish"])
    await repo.begin_step(run.id, "init")
    await repo.complete_step(run.id, "init", 5)
    await repo.begin_step(run.id, "load")
    await _close(repo)
    reset_repository()

    repo = get_repository(url)
    resumable = await repo.list_resumable_runs()
    assert [r.id for r in resumable] == [run.id]
    assert resumable[0].current_step == "load"

    calls = []
    await WorkflowEngine(repo).run_workflow(
        _workflow(calls, fail_publish=False), resume_run_id=run.id
    )

    assert calls == ["load", "publish"]
    assert await repo.list_resumable_runs() == []
    await _close(repo)
