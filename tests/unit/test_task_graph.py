"""
Unit tests for the provisioning task graph.
"""

from __future__ import annotations

import threading

import pytest

from orchestration.task_graph import TaskGraph
from provisioning.errors import CapacityError, DependencyCycleError, UnresolvedReferenceError


def _diamond():
    graph = TaskGraph()
    graph.add("a", lambda _: 1)
    graph.add("b", lambda inputs: inputs["a"] + 1, depends_on=["a"])
    graph.add("c", lambda inputs: inputs["a"] + 2, depends_on=["a"])
    graph.add("d", lambda inputs: inputs["b"] * inputs["c"], depends_on=["b", "c"])
    return graph


class TestLevels:

    def test_diamond(self):
        assert _diamond().levels() == [["a"], ["b", "c"], ["d"]]

    def test_edges(self):
        assert sorted(_diamond().edges()) == [("a", "b"), ("a", "c"), ("b", "d"), ("c", "d")]

    def test_cycle(self):
        graph = TaskGraph()
        graph.add("a", lambda _: None, depends_on=["b"])
        graph.add("b", lambda _: None, depends_on=["a"])
        with pytest.raises(DependencyCycleError):
            graph.levels()

    def test_unknown_dependency(self):
        graph = TaskGraph()
        graph.add("a", lambda _: None, depends_on=["ghost"])
        with pytest.raises(UnresolvedReferenceError):
            graph.topological_order()

    def test_duplicate_task(self):
        graph = TaskGraph()
        graph.add("a", lambda _: None)
        with pytest.raises(ValueError):
            graph.add("a", lambda _: None)


class TestExecute:

    @pytest.mark.parametrize("max_workers", [1, 4])
    def test_outputs(self, max_workers):
        outputs = _diamond().execute(max_workers=max_workers)
        assert outputs == {"a": 1, "b": 2, "c": 3, "d": 6}

    def test_inputs_limited_to_dependencies(self):
        seen = {}
        graph = TaskGraph()
        graph.add("a", lambda _: "x")
        graph.add("b", lambda _: "y")
        graph.add("c", lambda inputs: seen.update(keys=set(inputs)), depends_on=["b"])
        graph.execute()
        assert seen["keys"] == {"b"}

    def test_inputs_are_read_only(self):
        def mutate(inputs):
            inputs["a"] = "changed"

        graph = TaskGraph()
        graph.add("a", lambda _: "x")
        graph.add("b", mutate, depends_on=["a"])
        with pytest.raises(TypeError):
            graph.execute()

    def test_same_level_runs_concurrently(self):
        barrier = threading.Barrier(2, timeout=5)
        graph = TaskGraph()
        graph.add("left", lambda _: barrier.wait())
        graph.add("right", lambda _: barrier.wait())
        outputs = graph.execute(max_workers=2)
        assert set(outputs) == {"left", "right"}

    @pytest.mark.parametrize("max_workers", [1, 3])
    def test_fail_fast(self, max_workers):
        ran = []

        def boom(_):
            raise CapacityError("ec2-instance", "no room")

        graph = TaskGraph()
        graph.add("a", lambda _: ran.append("a"))
        graph.add("b", boom, depends_on=["a"])
        graph.add("c", lambda _: ran.append("c"), depends_on=["a"])
        graph.add("d", lambda _: ran.append("d"), depends_on=["b", "c"])

        with pytest.raises(CapacityError):
            graph.execute(max_workers=max_workers)
        assert "d" not in ran
