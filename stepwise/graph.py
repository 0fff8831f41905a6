"""Dependency graph validation and ordering for workflow steps."""

from __future__ import annotations

from typing import TYPE_CHECKING, Collection, Iterator, Mapping, Optional, Sequence

from .errors import (
    CyclicDependencyError,
    DuplicateStepError,
    SelfDependencyError,
    UnknownDependencyError,
    UnsatisfiedSubsetError,
)

if TYPE_CHECKING:
    from .definition import StepDefinition


def _dependency_map(steps: Sequence["StepDefinition"]) -> dict[str, tuple[str, ...]]:
    return {step.name: tuple(step.dependencies) for step in steps}


def _find_cycle(
    graph: Mapping[str, Sequence[str]], roots: Sequence[str]
) -> Optional[str]:
    """Return a step on a dependency cycle, or ``None`` when acyclic.

    Depth-first traversal with a visited set and an on-stack set; an edge back
    to an on-stack step closes a cycle. Uses an explicit stack so chain depth
    is bounded by memory rather than the interpreter's recursion limit.
    """
    visited: set[str] = set()
    on_stack: set[str] = set()

    for root in roots:
        if root in visited:
            continue
        visited.add(root)
        on_stack.add(root)
        stack: list[tuple[str, Iterator[str]]] = [(root, iter(graph.get(root, ())))]
        while stack:
            node, deps = stack[-1]
            for dep in deps:
                if dep in on_stack:
                    return dep
                if dep not in visited:
                    visited.add(dep)
                    on_stack.add(dep)
                    stack.append((dep, iter(graph.get(dep, ()))))
                    break
            else:
                stack.pop()
                on_stack.discard(node)
    return None


def validate_steps(workflow_name: str, steps: Sequence["StepDefinition"]) -> None:
    """Validate a workflow's steps, raising a ``DefinitionError`` subclass.

    Checks run in order: duplicate names, self dependencies, unknown
    dependencies, cycles.
    """
    seen: set[str] = set()
    for step in steps:
        if step.name in seen:
            raise DuplicateStepError(workflow_name, step.name)
        seen.add(step.name)

    for step in steps:
        if step.name in step.dependencies:
            raise SelfDependencyError(workflow_name, step.name)

    for step in steps:
        for dep in step.dependencies:
            if dep not in seen:
                raise UnknownDependencyError(workflow_name, step.name, dep)

    cyclic = _find_cycle(_dependency_map(steps), [s.name for s in steps])
    if cyclic is not None:
        raise CyclicDependencyError(workflow_name, cyclic)


def order_steps(
    steps: Sequence["StepDefinition"], include: Optional[Collection[str]] = None
) -> list[str]:
    """Return the names of the included steps in dependency order.

    Each pass selects every remaining step whose dependencies have all been
    ordered, keeping declaration order within the pass. A declared dependency
    that is not included never becomes ordered, so its dependents are
    reported through ``UnsatisfiedSubsetError`` rather than silently run.
    """
    selected = [s for s in steps if include is None or s.name in include]
    selected_names = {s.name for s in selected}
    missing = {
        s.name: [d for d in s.dependencies if d not in selected_names]
        for s in selected
    }
    missing = {name: deps for name, deps in missing.items() if deps}

    ordered: list[str] = []
    done: set[str] = set()
    remaining = selected
    while remaining:
        ready = [s for s in remaining if all(d in done for d in s.dependencies)]
        if not ready:
            raise UnsatisfiedSubsetError([s.name for s in remaining], missing)
        for step in ready:
            ordered.append(step.name)
            done.add(step.name)
        remaining = [s for s in remaining if s.name not in done]
    return ordered


def _closure(start: str, edges: Mapping[str, Sequence[str]]) -> list[str]:
    result: list[str] = []
    seen = {start}
    stack: list[Iterator[str]] = [iter(edges.get(start, ()))]
    while stack:
        for node in stack[-1]:
            if node in seen:
                continue
            seen.add(node)
            result.append(node)
            stack.append(iter(edges.get(node, ())))
            break
        else:
            stack.pop()
    return result


def all_dependencies(step_name: str, steps: Sequence["StepDefinition"]) -> list[str]:
    """Names of every step ``step_name`` depends on, directly or indirectly."""
    return _closure(step_name, _dependency_map(steps))


def all_dependents(step_name: str, steps: Sequence["StepDefinition"]) -> list[str]:
    """Names of every step that depends on ``step_name``, directly or indirectly."""
    reverse: dict[str, list[str]] = {}
    for step in steps:
        for dep in step.dependencies:
            reverse.setdefault(dep, []).append(step.name)
    return _closure(step_name, reverse)
