"""Tests for step graph validation and ordering."""

import pytest

from stepwise.definition import StepDefinition
from stepwise.errors import (
    CyclicDependencyError,
    DuplicateStepError,
    SelfDependencyError,
    UnknownDependencyError,
    UnsatisfiedSubsetError,
)
from stepwise.graph import all_dependencies, all_dependents, order_steps, validate_steps


def _noop(ctx):
    return None


def _step(name, *deps):
    return StepDefinition(name=name, dependencies=deps, work=_noop)


def test_validate_accepts_dag():
    steps = [_step("init"), _step("load", "init"), _step("process", "load")]
    validate_steps("pipeline", steps)


def test_duplicate_step_rejected():
    with pytest.raises(DuplicateStepError) as exc:
        validate_steps("wf", [_step("a"), _step("b"), _step("a")])
    assert exc.value.step == "a"
    assert exc.value.workflow_name == "wf"


def test_self_dependency_rejected():
    with pytest.raises(SelfDependencyError) as exc:
        validate_steps("wf", [_step("a"), _step("b", "b")])
    assert exc.value.step == "b"


def test_unknown_dependency_rejected():
    with pytest.raises(UnknownDependencyError) as exc:
        validate_steps("wf", [_step("a"), _step("b", "ghost")])
    assert exc.value.step == "b"
    assert exc.value.dependency == "ghost"


def test_duplicate_reported_before_unknown_dependency():
    with pytest.raises(DuplicateStepError):
        validate_steps("wf", [_step("a", "ghost"), _step("a")])


def test_cycle_reports_step_on_the_cycle():
    steps = [
        _step("entry", "a"),
        _step("a", "b"),
        _step("b", "c"),
        _step("c", "a"),
    ]
    with pytest.raises(CyclicDependencyError) as exc:
        validate_steps("wf", steps)
    assert exc.value.step in {"a", "b", "c"}


def test_long_chain_validates_without_recursion_limit():
    steps = [_step("s0")] + [_step(f"s{i}", f"s{i - 1}") for i in range(1, 5000)]
    validate_steps("long", steps)
    order = order_steps(steps)
    assert order[0] == "s0"
    assert order[-1] == "s4999"


def test_order_keeps_declaration_order_within_a_wave():
    steps = [_step("c"), _step("a"), _step("b", "a"), _step("d", "c")]
    assert order_steps(steps) == ["c", "a", "b", "d"]


def test_order_places_dependencies_first():
    steps = [
        _step("publish", "process", "review"),
        _step("process", "load"),
        _step("review", "load"),
        _step("load"),
    ]
    order = order_steps(steps)
    assert order == ["load", "process", "review", "publish"]
    for step in steps:
        for dep in step.dependencies:
            assert order.index(dep) < order.index(step.name)


def test_order_subset_without_dependents():
    steps = [_step("a"), _step("b", "a"), _step("c", "b")]
    assert order_steps(steps, include=["a", "b"]) == ["a", "b"]


def test_order_subset_missing_dependency_rejected():
    steps = [_step("a"), _step("b", "a"), _step("c", "b")]
    with pytest.raises(UnsatisfiedSubsetError) as exc:
        order_steps(steps, include=["a", "c"])
    assert exc.value.remaining == ["c"]
    assert exc.value.missing == {"c": ["b"]}
    assert "'c' needs [b]" in str(exc.value)


def test_transitive_closures():
    steps = [_step("a"), _step("b", "a"), _step("c", "b"), _step("d", "a")]
    assert set(all_dependencies("c", steps)) == {"a", "b"}
    assert all_dependencies("a", steps) == []
    assert set(all_dependents("a", steps)) == {"b", "c", "d"}
    assert all_dependents("c", steps) == []
