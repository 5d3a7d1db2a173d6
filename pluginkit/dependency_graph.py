"""Explicit dependency graph with stable topological ordering and cycle reporting."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Mapping


@dataclass(frozen=True)
class DependencyResolution:
    order: tuple[str, ...]
    cycles: tuple[tuple[str, ...], ...] = ()
    # node -> dependencies that are not graph nodes and not externally satisfied
    missing: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    # node -> the unresolved dependency that blocks it (cycle member or failed node)
    blocked: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return not self.cycles and not self.missing and not self.blocked

    def cycle_for(self, node: str) -> tuple[str, ...] | None:
        for cycle in self.cycles:
            if node in cycle[:-1]:
                return cycle
        return None


class DependencyGraph:
    """Nodes plus adjacency (node -> the nodes it depends on)."""

    def __init__(self) -> None:
        self._deps: dict[str, tuple[str, ...]] = {}

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[str]]) -> "DependencyGraph":
        graph = cls()
        for node, deps in mapping.items():
            graph.add_node(node, deps)
        return graph

    def add_node(self, node: str, dependencies: Iterable[str] = ()) -> None:
        if not isinstance(node, str) or not node.strip():
            raise TypeError("Dependency graph node must be a non-empty string")
        key = node.strip()
        if key in self._deps:
            raise ValueError(f"Duplicate dependency graph node: {key}")
        deduped: list[str] = []
        for dep in dependencies:
            dep_key = str(dep).strip()
            if dep_key and dep_key not in deduped:
                deduped.append(dep_key)
        self._deps[key] = tuple(deduped)

    def nodes(self) -> tuple[str, ...]:
        return tuple(self._deps.keys())

    def dependencies_of(self, node: str) -> tuple[str, ...]:
        return self._deps.get(node, ())

    def dependents_of(self, node: str) -> tuple[str, ...]:
        return tuple(name for name, deps in self._deps.items() if node in deps)

    def resolve(self, satisfied: Iterable[str] = ()) -> DependencyResolution:
        """Kahn's algorithm, stable by insertion order.

        Dependencies listed in `satisfied` (e.g. analyzers already registered)
        count as resolved edges. Nodes that cannot be ordered are classified as
        cycle members, nodes with missing dependencies, or nodes blocked by one
        of those.
        """

        external = {str(name) for name in satisfied} - set(self._deps)
        missing: dict[str, tuple[str, ...]] = {}
        for node, deps in self._deps.items():
            absent = tuple(d for d in deps if d not in self._deps and d not in external)
            if absent:
                missing[node] = absent

        in_degree: dict[str, int] = {}
        for node, deps in self._deps.items():
            in_degree[node] = sum(1 for d in deps if d in self._deps)

        queue: deque[str] = deque(
            node for node in self._deps if in_degree[node] == 0 and node not in missing
        )
        order: list[str] = []
        while queue:
            current = queue.popleft()
            order.append(current)
            for node in self._deps:
                if current in self._deps[node]:
                    in_degree[node] -= 1
                    if in_degree[node] == 0 and node not in missing:
                        queue.append(node)

        ordered = set(order)
        remaining = [node for node in self._deps if node not in ordered and node not in missing]
        cycles = self._find_cycles(remaining)
        on_cycle = {node for cycle in cycles for node in cycle}

        blocked: dict[str, str] = {}
        for node in remaining:
            if node in on_cycle:
                continue
            blocker = next(
                (d for d in self._deps[node] if d in self._deps and d not in ordered),
                None,
            )
            if blocker is not None:
                blocked[node] = blocker

        return DependencyResolution(
            order=tuple(order), cycles=tuple(cycles), missing=missing, blocked=blocked
        )

    def _find_cycles(self, candidates: list[str]) -> list[tuple[str, ...]]:
        candidate_set = set(candidates)
        cycles: list[tuple[str, ...]] = []
        seen_members: set[str] = set()

        for start in candidates:
            if start in seen_members:
                continue
            path: list[str] = []
            on_path: set[str] = set()
            visited: set[str] = set()

            def walk(node: str) -> tuple[str, ...] | None:
                path.append(node)
                on_path.add(node)
                visited.add(node)
                for dep in self._deps.get(node, ()):
                    if dep not in candidate_set:
                        continue
                    if dep in on_path:
                        idx = path.index(dep)
                        return tuple(path[idx:]) + (dep,)
                    if dep not in visited:
                        found = walk(dep)
                        if found is not None:
                            return found
                path.pop()
                on_path.discard(node)
                return None

            cycle = walk(start)
            if cycle is None:
                continue
            members = set(cycle)
            if members & seen_members:
                continue
            seen_members.update(members)
            cycles.append(cycle)
        return cycles
