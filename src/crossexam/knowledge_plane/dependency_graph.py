"""Deterministic file dependency graph derived from a verification context."""

from __future__ import annotations

import re
from collections import deque
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from crossexam.domain.models import FileContext, VerificationContext
from crossexam.knowledge_plane.references import FileAnalysis, FunctionInfo

IMPORTANCE_PER_DEPENDENT: Final[int] = 2

_DOTTED_MODULE: Final[re.Pattern[str]] = re.compile(
    r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$"
)
_PATH_RESOLVE_SUFFIXES: Final[tuple[str, ...]] = (
    "",
    ".py",
    "/__init__.py",
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    ".mjs",
    "/index.ts",
    "/index.js",
)

FileAnalyzer = Callable[[FileContext], FileAnalysis | None]


class NodeKind(StrEnum):
    FILE = "file"
    EXTERNAL = "external"


class ImpactKind(StrEnum):
    DIRECT = "direct"
    TRANSITIVE = "transitive"


@dataclass(frozen=True, slots=True)
class GraphNode:
    path: str
    kind: NodeKind = NodeKind.FILE
    functions: tuple[FunctionInfo, ...] = ()


@dataclass(frozen=True, slots=True)
class DependencyEdge:
    """``source`` depends on ``target``."""

    source: str
    target: str
    reason: str = "import"
    weight: int = 1


@dataclass(frozen=True, slots=True)
class AffectedFile:
    path: str
    depth: int
    impact: ImpactKind
    reason: str
    affected_functions: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "depth": self.depth,
            "impact": self.impact.value,
            "reason": self.reason,
            "affected_functions": list(self.affected_functions),
        }


@dataclass(frozen=True, slots=True)
class RippleEffect:
    changed_file: str
    changed_function: str | None
    affected_files: tuple[AffectedFile, ...]

    @property
    def total_affected(self) -> int:
        return len(self.affected_files)

    @property
    def max_depth(self) -> int:
        return max((item.depth for item in self.affected_files), default=0)

    def to_dict(self) -> dict[str, object]:
        return {
            "changed_file": self.changed_file,
            "changed_function": self.changed_function,
            "affected_files": [item.to_dict() for item in self.affected_files],
            "total_affected": self.total_affected,
            "max_depth": self.max_depth,
        }


@dataclass(frozen=True, slots=True)
class GraphStats:
    nodes: int
    edges: int
    external_nodes: int
    circular_dependencies: int

    def to_dict(self) -> dict[str, int]:
        return {
            "nodes": self.nodes,
            "edges": self.edges,
            "external_nodes": self.external_nodes,
            "circular_dependencies": self.circular_dependencies,
        }


class DependencyGraph:
    """Directed "depends-on" graph with insertion-ordered traversal."""

    __slots__ = ("_nodes", "_dependencies", "_dependents")

    def __init__(
        self,
        nodes: Iterable[GraphNode] | None = None,
        edges: Iterable[DependencyEdge] | None = None,
    ) -> None:
        self._nodes: dict[str, GraphNode] = {}
        self._dependencies: dict[str, dict[str, DependencyEdge]] = {}
        self._dependents: dict[str, dict[str, DependencyEdge]] = {}

        if nodes is not None:
            for node in nodes:
                self.add_node(node)
        if edges is not None:
            for edge in edges:
                self.add_edge(edge)

    @classmethod
    def from_context(
        cls,
        context: VerificationContext,
        *,
        analyzer: FileAnalyzer | None = None,
    ) -> DependencyGraph:
        """Build nodes for every context file and edges from their dependency references.

        References that do not resolve to a context file become external nodes.
        """

        graph = cls()
        files = list(context.files.values())
        for file_context in files:
            analysis = analyzer(file_context) if analyzer is not None else None
            functions = analysis.functions if analysis is not None else ()
            graph.add_node(GraphNode(path=file_context.path, functions=functions))

        known = tuple(item.path for item in files)
        for file_context in files:
            for reference in file_context.dependencies:
                resolved = _resolve_reference(reference, file_context.path, known)
                if resolved is None:
                    graph.add_node(GraphNode(path=reference, kind=NodeKind.EXTERNAL))
                    target = reference
                else:
                    target = resolved
                if target == file_context.path:
                    continue
                graph.add_edge(
                    DependencyEdge(source=file_context.path, target=target, reason=reference)
                )
        return graph

    @property
    def nodes(self) -> tuple[str, ...]:
        return tuple(self._nodes)

    @property
    def file_nodes(self) -> tuple[str, ...]:
        return tuple(path for path, node in self._nodes.items() if node.kind is NodeKind.FILE)

    @property
    def edges(self) -> tuple[DependencyEdge, ...]:
        return tuple(edge for targets in self._dependencies.values() for edge in targets.values())

    def __contains__(self, path: object) -> bool:
        return path in self._nodes

    def node(self, path: str) -> GraphNode:
        self._assert_node_exists(path)
        return self._nodes[path]

    def add_node(self, node: GraphNode) -> None:
        """Add ``node`` unless a node with the same path already exists."""
        if not node.path:
            raise ValueError("Node path must be non-empty.")
        if node.path in self._nodes:
            return
        self._nodes[node.path] = node
        self._dependencies[node.path] = {}
        self._dependents[node.path] = {}

    def add_edge(self, edge: DependencyEdge) -> None:
        for endpoint in (edge.source, edge.target):
            if endpoint not in self._nodes:
                self.add_node(GraphNode(path=endpoint, kind=NodeKind.EXTERNAL))
        if edge.target in self._dependencies[edge.source]:
            return
        self._dependencies[edge.source][edge.target] = edge
        self._dependents[edge.target][edge.source] = edge

    def dependencies_of(self, path: str) -> tuple[str, ...]:
        self._assert_node_exists(path)
        return tuple(self._dependencies[path])

    def dependents_of(self, path: str) -> tuple[str, ...]:
        self._assert_node_exists(path)
        return tuple(self._dependents[path])

    def importance(self, path: str) -> int:
        """Score proportional to in-degree: how many files depend on ``path``."""
        self._assert_node_exists(path)
        return len(self._dependents[path]) * IMPORTANCE_PER_DEPENDENT

    def importance_scores(self) -> dict[str, int]:
        """Scores for file nodes only; external packages are never review targets."""
        return {path: self.importance(path) for path in self.file_nodes}

    def find_node(self, reference: str) -> str | None:
        """Match a mentioned path against file nodes by exact or suffix match."""
        if reference in self._nodes and self._nodes[reference].kind is NodeKind.FILE:
            return reference
        tail = "/" + reference.lstrip("./")
        for path in self.file_nodes:
            if path.endswith(tail):
                return path
        return None

    def detect_cycles(self) -> tuple[tuple[str, ...], ...]:
        """
        Detect directed cycles.

        Returns cycle paths as closed paths, e.g. ``("A", "B", "C", "A")``.
        """
        state: dict[str, int] = {}
        stack: list[str] = []
        stack_index: dict[str, int] = {}
        cycles: dict[tuple[str, ...], None] = {}

        for start in self._nodes:
            if state.get(start, 0) != 0:
                continue

            state[start] = 1
            stack.append(start)
            stack_index[start] = len(stack) - 1
            frames: list[tuple[str, Iterator[str]]] = [(start, iter(self._dependencies[start]))]

            while frames:
                node, child_iter = frames[-1]

                try:
                    child = next(child_iter)
                except StopIteration:
                    frames.pop()
                    state[node] = 2
                    stack.pop()
                    del stack_index[node]
                    continue

                child_state = state.get(child, 0)
                if child_state == 0:
                    state[child] = 1
                    stack_index[child] = len(stack)
                    stack.append(child)
                    frames.append((child, iter(self._dependencies[child])))
                    continue

                if child_state == 1:
                    start_index = stack_index[child]
                    cycle = tuple(stack[start_index:] + [child])
                    cycles[_canonicalize_cycle(cycle)] = None

        return tuple(sorted(cycles))

    def ripple_effect(
        self,
        changed_file: str,
        changed_function: str | None = None,
        *,
        max_depth: int | None = None,
    ) -> RippleEffect | None:
        """Breadth-first walk over reverse edges from ``changed_file``.

        Returns ``None`` when ``changed_file`` is not a node, so callers can tell
        "unknown file" apart from "no impact".
        """
        if changed_file not in self._nodes:
            return None

        depths = self._reverse_depths(changed_file, max_depth=max_depth)
        affected: list[AffectedFile] = []
        for path, depth in depths.items():
            reason = (
                f"Directly imports {changed_file}" if depth == 1 else f"{depth}-level dependency"
            )
            functions: tuple[str, ...] = ()
            if changed_function:
                functions = self.functions_calling(path, changed_function)
            affected.append(
                AffectedFile(
                    path=path,
                    depth=depth,
                    impact=ImpactKind.DIRECT if depth == 1 else ImpactKind.TRANSITIVE,
                    reason=reason,
                    affected_functions=functions,
                )
            )
        return RippleEffect(
            changed_file=changed_file,
            changed_function=changed_function,
            affected_files=tuple(affected),
        )

    def affected_files(self, path: str, *, depth: int) -> tuple[str, ...]:
        """Dependents of ``path`` up to ``depth`` hops away, nearest first."""
        if path not in self._nodes:
            return ()
        return tuple(self._reverse_depths(path, max_depth=depth))

    def functions_calling(self, path: str, function_name: str) -> tuple[str, ...]:
        self._assert_node_exists(path)
        return tuple(
            info.name for info in self._nodes[path].functions if function_name in info.calls
        )

    def stats(self) -> GraphStats:
        external = sum(1 for node in self._nodes.values() if node.kind is NodeKind.EXTERNAL)
        return GraphStats(
            nodes=len(self._nodes),
            edges=len(self.edges),
            external_nodes=external,
            circular_dependencies=len(self.detect_cycles()),
        )

    def _reverse_depths(self, start: str, *, max_depth: int | None) -> dict[str, int]:
        depths: dict[str, int] = {}
        visited = {start}
        pending: deque[tuple[str, int]] = deque([(start, 0)])
        while pending:
            node, depth = pending.popleft()
            if max_depth is not None and max_depth > 0 and depth >= max_depth:
                continue
            for dependent in self._dependents[node]:
                if dependent in visited:
                    continue
                visited.add(dependent)
                depths[dependent] = depth + 1
                pending.append((dependent, depth + 1))
        return depths

    def _assert_node_exists(self, path: str) -> None:
        if path not in self._nodes:
            raise KeyError(f"Unknown node: {path}")


def _resolve_reference(reference: str, importer: str, known: Sequence[str]) -> str | None:
    known_set = set(known)
    if reference.startswith("/"):
        for suffix in _PATH_RESOLVE_SUFFIXES:
            if reference + suffix in known_set:
                return reference + suffix
        return None

    if importer.endswith(".py") and _DOTTED_MODULE.fullmatch(reference):
        relative = reference.replace(".", "/")
        for suffix in (".py", "/__init__.py"):
            tail = "/" + relative + suffix
            for path in known:
                if path.endswith(tail):
                    return path
    return None


def _canonicalize_cycle(cycle: Sequence[str]) -> tuple[str, ...]:
    if len(cycle) < 2:
        raise ValueError("Cycle path must contain at least two nodes.")

    core = tuple(cycle[:-1])
    if len(core) == 1:
        return (core[0], core[0])

    best = core
    for offset in range(1, len(core)):
        rotated = core[offset:] + core[:offset]
        if rotated < best:
            best = rotated

    return best + (best[0],)


__all__ = [
    "AffectedFile",
    "DependencyEdge",
    "DependencyGraph",
    "FileAnalyzer",
    "GraphNode",
    "GraphStats",
    "ImpactKind",
    "NodeKind",
    "RippleEffect",
]
