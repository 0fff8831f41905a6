"""Tests for workflow definition and the builder API."""

import pytest
from pydantic import ValidationError

from stepwise import WorkflowBuilder, WorkflowMetadata, define_workflow
from stepwise.errors import CyclicDependencyError, UnknownDependencyError


async def _work(ctx):
    return None


def _pipeline(wf):
    wf.define_step("init", _work, description="Initialize database")
    wf.define_step("load", _work, dependencies=["init"])
    wf.define_step("process", _work, dependencies="load", timeout=30)
    wf.define_step("publish", _work, dependencies=["process"])


def test_define_workflow_builds_validated_workflow():
    workflow = define_workflow(
        "content-pipeline",
        _pipeline,
        {"description": "Generate content", "version": "1.0.0", "tags": ["content"]},
    )

    assert workflow.name == "content-pipeline"
    assert workflow.step_names == ["init", "load", "process", "publish"]
    assert isinstance(workflow.metadata, WorkflowMetadata)
    assert workflow.metadata.version == "1.0.0"
    assert workflow.metadata.tags == ("content",)

    process = workflow.get_step("process")
    assert process.dependencies == ("load",)
    assert process.timeout == 30
    assert workflow.get_step("missing") is None


def test_workflow_info_and_transitive_queries():
    workflow = define_workflow("content-pipeline", _pipeline)
    info = workflow.info()

    assert info.total_steps == 4
    assert info.description is None
    assert info.dependencies["publish"] == ["process"]
    assert set(workflow.dependencies_of("publish")) == {"init", "load", "process"}
    assert set(workflow.dependents_of("load")) == {"process", "publish"}


def test_decorator_form_registers_step():
    builder = WorkflowBuilder("decorated")

    @builder.define_step("first")
    async def first(ctx):
        return "first"

    @builder.define_step("second", dependencies=["first"], timeout=1.5)
    def second(ctx):
        return "second"

    workflow = builder.build()
    assert workflow.step_names == ["first", "second"]
    assert workflow.get_step("second").work is second
    assert workflow.get_step("second").timeout == 1.5


def test_invalid_graph_rejected_at_definition_time():
    def steps(wf):
        wf.define_step("a", _work, dependencies=["b"])
        wf.define_step("b", _work, dependencies=["a"])

    with pytest.raises(CyclicDependencyError) as exc:
        define_workflow("loop", steps)
    assert exc.value.workflow_name == "loop"


def test_unknown_dependency_rejected_at_definition_time():
    def steps(wf):
        wf.define_step("a", _work, dependencies=["nope"])

    with pytest.raises(UnknownDependencyError):
        define_workflow("broken", steps)


def test_non_positive_timeout_rejected():
    builder = WorkflowBuilder("bad-timeout")
    with pytest.raises(ValidationError):
        builder.define_step("a", _work, timeout=0)


def test_workflow_is_immutable():
    workflow = define_workflow("content-pipeline", _pipeline)
    with pytest.raises(ValidationError):
        workflow.name = "renamed"
    with pytest.raises(ValidationError):
        workflow.get_step("init").timeout = 5
