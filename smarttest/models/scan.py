"""Data models for codebase scans and dependency-ordered processing."""

from dataclasses import dataclass, field, asdict
from typing import List

from .dependency import DependencyGraph


@dataclass
class ScanCoverage:
    tested: int
    untested: int
    percentage: float


@dataclass
class ScanResult:
    """Source and test files found under a directory.

    Attributes:
        source_files: Absolute paths of non-test source files, sorted.
        test_files: Absolute paths of test files, sorted.
        untested_files: Source files with no conventional test file on disk.
        total_files: Number of source plus test files.
        coverage: Tested/untested counts and tested percentage.
    """

    source_files: List[str]
    test_files: List[str]
    untested_files: List[str]
    total_files: int
    coverage: ScanCoverage

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CodebaseGraph:
    files: List[str]
    graph: DependencyGraph
    sorted_files: List[str]
    circular_dependencies: List[List[str]] = field(default_factory=list)


@dataclass
class CodebaseAnalysis:
    scan: ScanResult
    graph: CodebaseGraph
    processing_order: List[str]
