"""Dependency resolution, cycle detection and leaves-first ordering.

The resolver walks local imports depth-first, keeping the chain of files
currently being resolved on a stack. Reaching a file that is already on that
stack closes a cycle: the cycle is recorded and the import is answered with a
``cyclic`` placeholder instead of recursing, which keeps resolution finite on
any import graph.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple

from ..models.dependency import (
    CYCLIC,
    EXTERNAL,
    RESOLVED,
    UNRESOLVED,
    DependencyGraph,
    DependencyInfo,
    DependencyResolution,
    FunctionSignature,
    ImportInfo,
    ModuleStructure,
)
from ..parsers.base_parser import BaseParser
from ..parsers.typescript_parser import TypeScriptParser
from ..utils.file_utils import is_external_import, resolve_local_import

logger = logging.getLogger(__name__)


def cycle_key(cycle: List[str]) -> Tuple[str, ...]:
    """Rotation-insensitive identity of a cycle."""
    pivot = cycle.index(min(cycle))
    return tuple(cycle[pivot:] + cycle[:pivot])


def topological_sort(graph: DependencyGraph) -> List[str]:
    """Order files so that dependencies come before their dependents.

    Nodes are every key of ``graph`` plus every node that only appears as an
    edge target, visited in first-seen order. A node reached again while it
    is still being visited is skipped, so cyclic graphs still produce each
    node exactly once.

    Args:
        graph: Adjacency lists mapping a file to the files it imports.

    Returns:
        All nodes, leaves first.
    """
    nodes: List[str] = []
    seen: Set[str] = set()
    for node, deps in graph.items():
        for candidate in [node, *deps]:
            if candidate not in seen:
                seen.add(candidate)
                nodes.append(candidate)

    order: List[str] = []
    done: Set[str] = set()
    visiting: Set[str] = set()

    for root in nodes:
        if root in done:
            continue
        visiting.add(root)
        stack: List[Tuple[str, Iterator[str]]] = [(root, iter(graph.get(root, ())))]
        while stack:
            node, children = stack[-1]
            for child in children:
                if child in done or child in visiting:
                    continue
                visiting.add(child)
                stack.append((child, iter(graph.get(child, ()))))
                break
            else:
                stack.pop()
                visiting.discard(node)
                done.add(node)
                order.append(node)

    return order


class DependencyResolver:
    """Resolves imports of source files into DependencyInfo records.

    One instance holds one resolution session: a cache of analyzed files,
    the current resolution stack and the cycles found so far. Do not share an
    instance between concurrent resolutions; call ``reset()`` (or use a new
    instance) between unrelated runs.

    Attributes:
        parser: Analyzer used to read imports and exports of local files.
        max_depth: Maximum import depth followed from the starting file.
    """

    def __init__(self, parser: Optional[BaseParser] = None, max_depth: int = 10):
        self.parser = parser or TypeScriptParser()
        self.max_depth = max_depth
        self.reset()

    def reset(self) -> None:
        """Clear the cache, the resolution stack and recorded cycles."""
        self._stack: List[str] = []
        self._cache: Dict[str, DependencyInfo] = {}
        self._structures: Dict[str, Optional[ModuleStructure]] = {}
        self._graph: DependencyGraph = {}
        self._circular: List[List[str]] = []
        self._cycle_keys: Set[Tuple[str, ...]] = set()

    def get_circular_dependencies(self) -> List[List[str]]:
        return [list(cycle) for cycle in self._circular]

    def resolve_dependencies(
        self, imports: List[ImportInfo], from_file: str
    ) -> DependencyResolution:
        """Resolve the direct imports of ``from_file``.

        Package imports become external stubs without touching the
        filesystem. Local imports are resolved, analyzed and followed
        recursively (up to ``max_depth``) to build the graph and detect
        cycles. Missing or unparseable local files produce ``unresolved``
        placeholders; nothing here raises for a bad import.

        Args:
            imports: Import statements of ``from_file``.
            from_file: File the imports belong to.

        Returns:
            DependencyResolution with one DependencyInfo per import, in order.
        """
        self.reset()
        origin = str(Path(from_file).resolve())
        self._graph[origin] = []
        self._stack.append(origin)

        dependencies: List[DependencyInfo] = []
        try:
            for import_info in imports:
                if is_external_import(import_info.path):
                    dependencies.append(self._external_stub(import_info))
                    continue

                target = resolve_local_import(import_info.path, origin)
                if target is None:
                    missing = os.path.normpath(os.path.join(os.path.dirname(origin), import_info.path))
                    logger.warning("Could not resolve import '%s' from %s", import_info.path, origin)
                    dependencies.append(DependencyInfo(path=missing, is_external=False, resolution=UNRESOLVED))
                    continue

                self._add_edge(origin, str(target))
                dependencies.append(self._resolve_local(str(target), depth=1))
        finally:
            self._stack.pop()

        return DependencyResolution(
            dependencies=dependencies,
            graph={node: list(deps) for node, deps in self._graph.items()},
            circular_dependencies=self.get_circular_dependencies(),
            resolved_count=sum(1 for d in dependencies if d.resolution == RESOLVED),
            external_count=sum(1 for d in dependencies if d.is_external),
        )

    def build_dependency_graph(self, start_file: str, max_depth: int = 5) -> DependencyGraph:
        """Build the local import graph reachable from ``start_file``.

        Every visited file becomes a key listing its existing local imports
        once each. Cycles met along the way are recorded and available from
        ``get_circular_dependencies()``.
        """
        graph: DependencyGraph = {}
        visited: Set[str] = set()
        stack: List[str] = []

        def visit(path: str, depth: int) -> None:
            if path in stack:
                self._record_cycle(stack[stack.index(path):])
                return
            if path in visited or depth > max_depth:
                return
            visited.add(path)
            edges = graph.setdefault(path, [])

            structure = self._analyze(path)
            if structure is None:
                return

            stack.append(path)
            try:
                for import_info in structure.imports:
                    if is_external_import(import_info.path):
                        continue
                    target = resolve_local_import(import_info.path, path)
                    if target is None:
                        continue
                    if str(target) not in edges:
                        edges.append(str(target))
                    visit(str(target), depth + 1)
            finally:
                stack.pop()

        visit(str(Path(start_file).resolve()), 0)
        return graph

    def topological_sort(self, graph: DependencyGraph) -> List[str]:
        return topological_sort(graph)

    def _resolve_local(self, path: str, depth: int) -> DependencyInfo:
        if path in self._stack:
            self._record_cycle(self._stack[self._stack.index(path):])
            return DependencyInfo(path=path, is_external=False, resolution=CYCLIC)

        cached = self._cache.get(path)
        if cached is not None:
            return cached

        structure = self._analyze(path)
        if structure is None:
            info = DependencyInfo(path=path, is_external=False, resolution=UNRESOLVED)
            self._cache[path] = info
            return info

        info = DependencyInfo(
            path=path,
            is_external=False,
            exports=list(structure.exports),
            types=list(structure.types),
            function_signatures=list(structure.function_signatures),
            resolution=RESOLVED,
        )
        self._cache[path] = info
        self._graph.setdefault(path, [])

        if depth >= self.max_depth:
            return info

        self._stack.append(path)
        try:
            for import_info in structure.imports:
                if is_external_import(import_info.path):
                    continue
                child = resolve_local_import(import_info.path, path)
                if child is None:
                    continue
                self._add_edge(path, str(child))
                self._resolve_local(str(child), depth + 1)
        finally:
            self._stack.pop()

        return info

    def _analyze(self, path: str) -> Optional[ModuleStructure]:
        if path not in self._structures:
            try:
                self._structures[path] = self.parser.parse_file(path)
            except (OSError, ValueError, SyntaxError, RuntimeError) as e:
                logger.warning("Failed to analyze %s: %s", path, e)
                self._structures[path] = None
        return self._structures[path]

    def _add_edge(self, source: str, target: str) -> None:
        edges = self._graph.setdefault(source, [])
        if target not in edges:
            edges.append(target)

    def _record_cycle(self, cycle: List[str]) -> None:
        key = cycle_key(cycle)
        if key not in self._cycle_keys:
            self._cycle_keys.add(key)
            self._circular.append(list(cycle))
            logger.debug("Circular dependency: %s", ' -> '.join(cycle + [cycle[0]]))

    @staticmethod
    def _external_stub(import_info: ImportInfo) -> DependencyInfo:
        signatures = []
        for spec in import_info.specifiers:
            if spec.is_type:
                continue
            name = spec.alias if spec.name == '*' else spec.name
            signatures.append(FunctionSignature(name=name or import_info.path))
        return DependencyInfo(
            path=import_info.path,
            is_external=True,
            function_signatures=signatures,
            resolution=EXTERNAL,
        )
