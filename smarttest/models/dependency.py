"""Data models describing a source file's module surface and its dependencies."""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional


# Absolute file path -> absolute paths of its local dependencies
DependencyGraph = Dict[str, List[str]]

# Values of DependencyInfo.resolution
RESOLVED = 'resolved'
EXTERNAL = 'external'
UNRESOLVED = 'unresolved'
CYCLIC = 'cyclic'


@dataclass
class ImportSpecifier:
    name: str
    alias: Optional[str] = None
    is_type: bool = False


@dataclass
class ImportInfo:
    """One import statement.

    Attributes:
        path: Module specifier exactly as written ('./util.js', 'lodash').
        specifiers: Imported names.
        is_default: Whether a default import is present.
        is_namespace: Whether this is an ``import * as ns`` import.
    """

    path: str
    specifiers: List[ImportSpecifier] = field(default_factory=list)
    is_default: bool = False
    is_namespace: bool = False

    @property
    def is_external(self) -> bool:
        return not (self.path.startswith('.') or self.path.startswith('/'))


@dataclass
class ExportInfo:
    name: str
    kind: str  # function, class, variable, type, interface, enum
    is_default: bool = False
    is_type: bool = False


@dataclass
class TypeInfo:
    name: str
    definition: str
    kind: str  # interface, type, enum, class


@dataclass
class ParameterInfo:
    name: str
    type: str = 'unknown'
    is_optional: bool = False
    default_value: Optional[str] = None


@dataclass
class FunctionSignature:
    name: str
    params: List[ParameterInfo] = field(default_factory=list)
    return_type: str = 'void'
    is_async: bool = False
    is_exported: bool = False


@dataclass
class ModuleStructure:
    """Everything the analyzer extracts from one source file.

    Attributes:
        filepath: Absolute path of the analyzed file.
        language: 'typescript' or 'javascript'.
        imports: Import statements in source order.
        exports: Exported names.
        types: Type-level declarations.
        function_signatures: Top-level functions and arrow-function constants.
    """

    filepath: str
    language: str
    imports: List[ImportInfo] = field(default_factory=list)
    exports: List[ExportInfo] = field(default_factory=list)
    types: List[TypeInfo] = field(default_factory=list)
    function_signatures: List[FunctionSignature] = field(default_factory=list)


@dataclass
class DependencyInfo:
    """Resolved view of one imported module.

    ``resolution`` tells how the entry was produced:

    - ``resolved``: the local file was found and analyzed.
    - ``external``: a package import; only the imported names are known.
    - ``unresolved``: a local import that does not exist or could not be
      analyzed. A placeholder with no exports.
    - ``cyclic``: a local import that closes a cycle on the current resolution
      path. Intentionally left unresolved.

    Attributes:
        path: Absolute path for local imports, the module specifier otherwise.
        is_external: True for package imports.
        exports: Names exported by the module.
        types: Type declarations of the module.
        function_signatures: Function signatures of the module.
        resolution: One of the values above.
    """

    path: str
    is_external: bool
    exports: List[ExportInfo] = field(default_factory=list)
    types: List[TypeInfo] = field(default_factory=list)
    function_signatures: List[FunctionSignature] = field(default_factory=list)
    resolution: str = RESOLVED

    @property
    def is_placeholder(self) -> bool:
        return self.resolution in (UNRESOLVED, CYCLIC)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DependencyResolution:
    """Result of resolving one file's imports.

    Attributes:
        dependencies: One entry per direct import of the file, in order.
        graph: Local dependency edges discovered while resolving.
        circular_dependencies: Distinct cycles found during the session.
        resolved_count: Direct local imports that resolved to a file.
        external_count: Direct package imports.
    """

    dependencies: List[DependencyInfo]
    graph: DependencyGraph
    circular_dependencies: List[List[str]] = field(default_factory=list)
    resolved_count: int = 0
    external_count: int = 0


def merge_graphs(*graphs: DependencyGraph) -> DependencyGraph:
    """Union several graphs, keeping first-seen order and dropping duplicate edges."""
    merged: DependencyGraph = {}
    for graph in graphs:
        for node, deps in graph.items():
            edges = merged.setdefault(node, [])
            for dep in deps:
                if dep not in edges:
                    edges.append(dep)
    return merged
