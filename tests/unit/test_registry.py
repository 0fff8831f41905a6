"""Tests for workflow discovery and the registry."""

import textwrap

import pytest

from stepwise import define_workflow
from stepwise.config import StepwiseConfig
from stepwise.errors import WorkflowNotFoundError
from stepwise.registry import WorkflowRegistry, get_registry

WORKFLOW_MODULE = textwrap.dedent(
    """
    from stepwise import define_workflow


    async def init(ctx):
        return None


    def _steps(wf):
        wf.define_step("init", init)
        wf.define_step("load", init, dependencies=["init"])


    {var} = define_workflow("{name}", _steps, {{"description": "{name} workflow"}})
    """
)


def _write_workflow(directory, filename, name, var="workflow"):
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text(WORKFLOW_MODULE.format(name=name, var=var))
    return path


def test_register_and_lookup():
    registry = WorkflowRegistry()
    workflow = define_workflow("manual", lambda wf: wf.define_step("a", lambda ctx: None))

    registry.register(workflow)

    assert registry.has("manual")
    assert registry.get("manual") is workflow
    assert registry.require("manual") is workflow
    assert registry.names() == ["manual"]
    assert registry.get("missing") is None
    with pytest.raises(WorkflowNotFoundError):
        registry.require("missing")


def test_discover_loads_workflows_from_directory(tmp_path):
    root = tmp_path / "workflows"
    _write_workflow(root, "content.py", "content-pipeline")
    _write_workflow(root / "reports", "nightly.py", "nightly-report", var="nightly")
    (root / "helpers.py").write_text("VALUE = 1\n")

    registry = WorkflowRegistry(root)
    found = registry.discover()

    assert sorted(w.name for w in found) == ["content-pipeline", "nightly-report"]
    workflow = registry.require("content-pipeline")
    assert workflow.step_names == ["init", "load"]
    assert workflow.metadata.description == "content-pipeline workflow"


def test_discover_skips_broken_and_ignored_modules(tmp_path):
    root = tmp_path / "workflows"
    _write_workflow(root, "good.py", "good")
    (root / "broken.py").write_text("raise RuntimeError('import time failure')\n")
    _write_workflow(root / "scratch", "draft.py", "draft")
    (root / ".gitignore").write_text("scratch/\n")

    registry = WorkflowRegistry(root)
    registry.discover()

    assert registry.names() == ["good"]


def test_duplicate_names_keep_first_definition(tmp_path):
    root = tmp_path / "workflows"
    _write_workflow(root, "a_first.py", "shared")
    _write_workflow(root, "b_second.py", "shared")

    registry = WorkflowRegistry(root)
    found = registry.discover()

    assert len(found) == 1
    assert registry.names() == ["shared"]


def test_discover_missing_path_raises(tmp_path):
    registry = WorkflowRegistry(tmp_path / "nowhere")
    with pytest.raises(FileNotFoundError):
        registry.discover()


def test_refresh_picks_up_new_modules(tmp_path):
    root = tmp_path / "workflows"
    _write_workflow(root, "one.py", "one")
    registry = WorkflowRegistry(root)
    registry.discover()

    _write_workflow(root, "two.py", "two")
    registry.refresh()

    assert sorted(registry.names()) == ["one", "two"]


def test_get_registry_discovers_configured_path(tmp_path):
    root = tmp_path / "workflows"
    _write_workflow(root, "content.py", "content-pipeline")

    registry = get_registry(StepwiseConfig(workflows_path=str(root)))

    assert registry.has("content-pipeline")
    assert get_registry() is registry
