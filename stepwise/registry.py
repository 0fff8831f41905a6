"""Catalogue of code-defined workflows."""

from __future__ import annotations

import logging
import sys
from importlib.util import module_from_spec, spec_from_file_location
from pathlib import Path
from types import ModuleType
from typing import Dict, Optional, Union

from .cli_utils.fs import iter_python_files
from .config import StepwiseConfig, load_config
from .definition import Workflow
from .errors import WorkflowNotFoundError

logger = logging.getLogger(__name__)


def _module_name(path: Path, root: Path) -> str:
    try:
        relative = path.relative_to(root)
    except ValueError:
        relative = Path(path.name)
    parts = list(relative.with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts = parts[:-1] or [root.name]
    return "stepwise_workflows__" + "__".join(p.replace("-", "_") for p in parts)


def _load_module(path: Path, root: Path) -> ModuleType:
    module_name = _module_name(path, root)
    spec = spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load workflow module from {path}")
    module = module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    return module


class WorkflowRegistry:
    """Registry for managing code-defined workflows.

    Workflows can be registered directly or discovered by importing every
    Python file under ``workflows_path`` and collecting module attributes
    that are ``Workflow`` instances.
    """

    def __init__(self, workflows_path: Optional[Union[str, Path]] = None) -> None:
        self.workflows_path = Path(workflows_path) if workflows_path else None
        self._workflows: Dict[str, Workflow] = {}

    def register(self, workflow: Workflow) -> None:
        existing = self._workflows.get(workflow.name)
        if existing is not None and existing is not workflow:
            logger.warning(f"Replacing previously registered workflow {workflow.name}")
        self._workflows[workflow.name] = workflow

    def discover(self, respect_gitignore: bool = True) -> list[Workflow]:
        """Import workflow modules and register what they define.

        Files that fail to import are logged and skipped. Returns the newly
        registered workflows.
        """
        if self.workflows_path is None:
            return []
        root = self.workflows_path.expanduser().resolve()
        if not root.exists():
            raise FileNotFoundError(f"Workflows path does not exist: {root}")

        found: list[Workflow] = []
        base = root if root.is_dir() else root.parent
        for py_file in iter_python_files(root, respect_gitignore=respect_gitignore):
            try:
                module = _load_module(py_file, base)
            except Exception as exc:
                logger.error(f"Failed to load workflow module {py_file}: {exc}")
                continue

            for value in vars(module).values():
                if not isinstance(value, Workflow):
                    continue
                if self._workflows.get(value.name) is value:
                    continue
                if value.name in self._workflows:
                    logger.warning(
                        f"Workflow {value.name} in {py_file} shadows an earlier "
                        "definition; keeping the first"
                    )
                    continue
                self._workflows[value.name] = value
                found.append(value)
                logger.info(f"Loaded workflow {value.name} from {py_file}")
        return found

    def refresh(self) -> list[Workflow]:
        """Forget all workflows and re-run discovery."""
        self._workflows.clear()
        return self.discover()

    def get(self, name: str) -> Optional[Workflow]:
        return self._workflows.get(name)

    def require(self, name: str) -> Workflow:
        workflow = self._workflows.get(name)
        if workflow is None:
            raise WorkflowNotFoundError(name)
        return workflow

    def has(self, name: str) -> bool:
        return name in self._workflows

    def names(self) -> list[str]:
        return list(self._workflows)

    def all(self) -> list[Workflow]:
        return list(self._workflows.values())


_registry_instance: WorkflowRegistry | None = None


def get_registry(config: Optional[StepwiseConfig] = None) -> WorkflowRegistry:
    """Return the process-wide registry, discovering workflows on first use."""
    global _registry_instance
    if _registry_instance is not None and config is None:
        return _registry_instance

    config = config or load_config()
    registry = WorkflowRegistry(config.workflows_path)
    if registry.workflows_path is not None and registry.workflows_path.exists():
        registry.discover()
    _registry_instance = registry
    return registry


def reset_registry() -> None:
    """Forget the process-wide registry so the next call rediscovers."""
    global _registry_instance
    _registry_instance = None
