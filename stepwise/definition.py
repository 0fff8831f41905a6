"""Workflow definitions: steps, metadata and the definition builder."""

from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
    Union,
)

from pydantic import BaseModel, ConfigDict, Field

from .graph import all_dependencies, all_dependents, validate_steps

if TYPE_CHECKING:
    from .context import StepContext

StepWork = Callable[["StepContext"], Union[Awaitable[Any], Any]]


class StepDefinition(BaseModel):
    """Defines one step in a workflow."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    description: str = ""
    dependencies: Tuple[str, ...] = ()
    timeout: Optional[float] = Field(
        default=None, gt=0, description="Seconds before the step is failed"
    )
    work: Callable[..., Any]


class WorkflowMetadata(BaseModel):
    """Optional descriptive data attached to a workflow."""

    model_config = ConfigDict(frozen=True)

    description: Optional[str] = None
    tags: Tuple[str, ...] = ()
    version: Optional[str] = None
    author: Optional[str] = None


class WorkflowInfo(BaseModel):
    """Summary of a workflow's shape for operator listings."""

    name: str
    description: Optional[str] = None
    total_steps: int
    step_names: List[str]
    dependencies: Dict[str, List[str]]


class Workflow(BaseModel):
    """A named, validated set of steps.

    Instances are only produced by ``WorkflowBuilder.build`` (or
    ``define_workflow``), which validates the dependency graph first.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    steps: Tuple[StepDefinition, ...]
    metadata: Optional[WorkflowMetadata] = None

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self.steps]

    def get_step(self, name: str) -> Optional[StepDefinition]:
        return next((step for step in self.steps if step.name == name), None)

    def dependencies_of(self, name: str) -> list[str]:
        """All steps ``name`` transitively depends on."""
        return all_dependencies(name, self.steps)

    def dependents_of(self, name: str) -> list[str]:
        """All steps that transitively depend on ``name``."""
        return all_dependents(name, self.steps)

    def info(self) -> WorkflowInfo:
        return WorkflowInfo(
            name=self.name,
            description=self.metadata.description if self.metadata else None,
            total_steps=len(self.steps),
            step_names=self.step_names,
            dependencies={step.name: list(step.dependencies) for step in self.steps},
        )


class WorkflowBuilder:
    """Accumulates step definitions for a single workflow.

    Steps may be declared directly::

        builder.define_step("load", load, dependencies=["init"])

    or with the decorator form::

        @builder.define_step("load", dependencies=["init"], timeout=30)
        async def load(ctx): ...
    """

    def __init__(
        self,
        name: str,
        metadata: Optional[Union[WorkflowMetadata, Dict[str, Any]]] = None,
    ) -> None:
        self.name = name
        self._metadata = metadata
        self._steps: List[StepDefinition] = []

    def define_step(
        self,
        name: str,
        work: Optional[StepWork] = None,
        *,
        description: str = "",
        dependencies: Iterable[str] = (),
        timeout: Optional[float] = None,
    ) -> Any:
        """Add a step; returns the definition, or a decorator if ``work`` is omitted."""
        if isinstance(dependencies, str):
            dependencies = (dependencies,)

        if work is None:

            def decorator(fn: StepWork) -> StepWork:
                self.define_step(
                    name,
                    fn,
                    description=description,
                    dependencies=dependencies,
                    timeout=timeout,
                )
                return fn

            return decorator

        step = StepDefinition(
            name=name,
            description=description,
            dependencies=tuple(dependencies),
            timeout=timeout,
            work=work,
        )
        self._steps.append(step)
        return step

    def build(self) -> Workflow:
        """Validate the accumulated steps and return the workflow."""
        validate_steps(self.name, self._steps)
        return Workflow(name=self.name, steps=tuple(self._steps), metadata=self._metadata)


def define_workflow(
    name: str,
    define_fn: Callable[[WorkflowBuilder], None],
    metadata: Optional[Union[WorkflowMetadata, Dict[str, Any]]] = None,
) -> Workflow:
    """Define and validate a workflow in one call.

    ``define_fn`` receives a fresh ``WorkflowBuilder`` and declares steps on
    it. An invalid graph raises a ``DefinitionError`` here, before anything
    can be run.

    Example::

        def steps(wf):
            wf.define_step("init", init_db, description="Initialize database")
            wf.define_step("process", process, dependencies=["init"], timeout=30)

        workflow = define_workflow("my-workflow", steps, {"version": "1.0.0"})
    """
    builder = WorkflowBuilder(name, metadata)
    define_fn(builder)
    return builder.build()
