"""
Provisioning task graph — explicit nodes and "consumes output of" edges.

Ordering is a first-class artifact here rather than a side effect of code
sequence: levels are computed with Kahn's algorithm (insertion order breaks
ties, so the order is deterministic), and tasks within one level share no
edges and may run concurrently.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from provisioning.errors import DependencyCycleError, UnresolvedReferenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Task:
    """A graph node. `run` receives the outputs of `depends_on`, read-only."""

    name: str
    run: Callable[[Mapping[str, Any]], Any]
    depends_on: tuple[str, ...] = ()


class TaskGraph:
    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}

    def add(
        self,
        name: str,
        run: Callable[[Mapping[str, Any]], Any],
        depends_on: Sequence[str] = (),
    ) -> None:
        if name in self._tasks:
            raise ValueError(f"Task {name!r} already defined")
        self._tasks[name] = Task(name=name, run=run, depends_on=tuple(depends_on))

    @property
    def tasks(self) -> dict[str, Task]:
        return dict(self._tasks)

    def edges(self) -> list[tuple[str, str]]:
        """`(dependency, dependent)` pairs."""
        return [(dep, task.name) for task in self._tasks.values() for dep in task.depends_on]

    def levels(self) -> list[list[str]]:
        """Group tasks into generations; every task follows all of its dependencies."""
        for task in self._tasks.values():
            for dep in task.depends_on:
                if dep not in self._tasks:
                    raise UnresolvedReferenceError(task.name, f"depends on unknown task {dep!r}")

        remaining = {name: set(task.depends_on) for name, task in self._tasks.items()}
        levels: list[list[str]] = []
        while remaining:
            ready = [name for name, deps in remaining.items() if not deps]
            if not ready:
                stuck = sorted(remaining)
                raise DependencyCycleError(stuck[0], f"dependency cycle among tasks {stuck}")
            levels.append(ready)
            for name in ready:
                del remaining[name]
            for deps in remaining.values():
                deps.difference_update(ready)
        return levels

    def topological_order(self) -> list[str]:
        return [name for level in self.levels() for name in level]

    def execute(self, max_workers: int = 1) -> dict[str, Any]:
        """
        Run every task once, level by level.

        Fail-fast: the first failing task aborts the run. Tasks of the same
        level that have not started are cancelled, and the error is raised
        unchanged. Nothing is retried.
        """
        outputs: dict[str, Any] = {}
        for level in self.levels():
            if max_workers <= 1 or len(level) == 1:
                for name in level:
                    outputs[name] = self._run(name, outputs)
                continue

            with ThreadPoolExecutor(max_workers=min(max_workers, len(level))) as pool:
                futures = {name: pool.submit(self._run, name, outputs) for name in level}
                _, pending = wait(futures.values(), return_when=FIRST_EXCEPTION)
                for future in pending:
                    future.cancel()

            for name in level:
                future = futures[name]
                if not future.cancelled() and future.exception() is not None:
                    raise future.exception()
            for name in level:
                outputs[name] = futures[name].result()
        return outputs

    def _run(self, name: str, outputs: Mapping[str, Any]) -> Any:
        task = self._tasks[name]
        inputs = MappingProxyType({dep: outputs[dep] for dep in task.depends_on})
        logger.info("Running %s", name)
        return task.run(inputs)
