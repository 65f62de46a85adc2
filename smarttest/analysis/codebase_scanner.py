"""Codebase scanning, dependency-ordered processing and batch execution."""

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence, Set

from ..errors import SourceFileNotFoundError, get_error_message
from ..models.dependency import DependencyGraph, merge_graphs
from ..models.pipeline import (
    BatchResult,
    GenerationResult,
    PipelineMetrics,
    ProgressCallback,
    ProgressPhase,
    ProgressUpdate,
    noop_progress,
)
from ..models.scan import CodebaseAnalysis, CodebaseGraph, ScanCoverage, ScanResult
from ..parsers.base_parser import BaseParser
from ..utils.file_utils import SOURCE_EXTENSIONS, is_test_file, matches_any
from .dependency_resolver import DependencyResolver, cycle_key, topological_sort

logger = logging.getLogger(__name__)

FileProcessor = Callable[[str], Awaitable[GenerationResult]]

# Directory names never descended into
DEFAULT_EXCLUDES = {
    "node_modules",
    "dist",
    "build",
    "coverage",
    ".git",
    "__tests__",
    "__mocks__",
}


def _is_candidate(filename: str) -> bool:
    return filename.endswith(SOURCE_EXTENSIONS) and not filename.endswith('.d.ts')


def scan_directory(
    directory: str,
    include: Optional[Sequence[str]] = None,
    exclude: Optional[Sequence[str]] = None,
) -> ScanResult:
    """Find source and test files under ``directory``.

    Args:
        directory: Root to scan.
        include: fnmatch patterns on paths relative to ``directory``; when
            given, only matching files are kept.
        exclude: fnmatch patterns on relative paths or directory names to
            skip, in addition to DEFAULT_EXCLUDES.

    Returns:
        ScanResult with sorted absolute paths.

    Raises:
        SourceFileNotFoundError: If ``directory`` does not exist.
    """
    root = Path(directory).resolve()
    if not root.is_dir():
        raise SourceFileNotFoundError(str(directory))

    exclude = list(exclude or [])
    source_files: List[str] = []
    test_files: List[str] = []

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames
            if d not in DEFAULT_EXCLUDES and not matches_any(d, exclude)
        )
        for filename in sorted(filenames):
            if not _is_candidate(filename):
                continue
            full_path = os.path.join(dirpath, filename)
            relpath = os.path.relpath(full_path, root).replace(os.sep, '/')
            if exclude and matches_any(relpath, exclude):
                continue
            if include and not matches_any(relpath, include):
                continue
            if is_test_file(filename):
                test_files.append(full_path)
            else:
                source_files.append(full_path)

    source_files.sort()
    test_files.sort()
    untested = find_untested_files(source_files)
    tested = len(source_files) - len(untested)
    percentage = round(tested / len(source_files) * 100, 1) if source_files else 0.0

    return ScanResult(
        source_files=source_files,
        test_files=test_files,
        untested_files=untested,
        total_files=len(source_files) + len(test_files),
        coverage=ScanCoverage(tested=tested, untested=len(untested), percentage=percentage),
    )


def _test_file_candidates(source_file: str) -> List[Path]:
    path = Path(source_file)
    candidates = []
    for marker in ('.test', '.spec'):
        for ext in SOURCE_EXTENSIONS:
            candidates.append(path.parent / f"{path.stem}{marker}{ext}")
            candidates.append(path.parent / '__tests__' / f"{path.stem}{marker}{ext}")
    for ext in SOURCE_EXTENSIONS:
        candidates.append(path.parent / '__tests__' / f"{path.stem}{ext}")
    return candidates


def find_untested_files(source_files: Sequence[str]) -> List[str]:
    """Source files with no test file at a conventional location on disk."""
    return [
        source for source in source_files
        if not any(candidate.is_file() for candidate in _test_file_candidates(source))
    ]


def build_codebase_graph(
    files: Sequence[str],
    parser: Optional[BaseParser] = None,
    max_depth: int = 10,
) -> CodebaseGraph:
    """Merge the dependency graphs of ``files`` and order them leaves-first.

    One resolver is reused and reset between files. Cycles are de-duplicated
    across files; ``sorted_files`` only contains the input files.
    """
    resolver = DependencyResolver(parser, max_depth=max_depth)
    graphs: List[DependencyGraph] = []
    cycles: List[List[str]] = []
    keys: Set[tuple] = set()

    for file in files:
        resolver.reset()
        graphs.append(resolver.build_dependency_graph(file, max_depth=max_depth))
        for cycle in resolver.get_circular_dependencies():
            key = cycle_key(cycle)
            if key not in keys:
                keys.add(key)
                cycles.append(cycle)

    resolved_files = [str(Path(f).resolve()) for f in files]
    wanted = set(resolved_files)
    graph = merge_graphs(*graphs)
    sorted_files = [f for f in topological_sort(graph) if f in wanted]

    if cycles:
        logger.warning("Found %d circular dependency chain(s)", len(cycles))

    return CodebaseGraph(
        files=resolved_files,
        graph=graph,
        sorted_files=sorted_files,
        circular_dependencies=cycles,
    )


def _failed_result(file: str, error: BaseException) -> GenerationResult:
    metrics = PipelineMetrics(files_failed=1)
    return GenerationResult(
        source_file=file,
        test_file='',
        test_code='',
        success=False,
        metrics=metrics,
        error=get_error_message(error),
    )


async def process_batch(
    files: Sequence[str],
    processor: FileProcessor,
    parallel: int = 1,
    stop_on_error: bool = False,
    on_progress: Optional[ProgressCallback] = None,
) -> BatchResult:
    """Run ``processor`` over ``files``.

    With ``parallel == 1`` files are processed strictly in order. Otherwise
    they run in fixed-size chunks of ``parallel`` files, each chunk awaited
    with asyncio.gather. An exception from the processor becomes a failed
    result carrying the error text. With ``stop_on_error`` processing stops
    after the first failed file (sequential) or after the chunk that
    contained one (parallel); files never started are counted as skipped.
    """
    report = on_progress or noop_progress
    start = time.perf_counter()
    batch = BatchResult(total_files=len(files))
    total = len(files)

    def record(file: str, result: GenerationResult) -> None:
        batch.results.append(result)
        batch.metrics.merge(result.metrics)
        if result.success:
            batch.success_count += 1
        else:
            batch.failed_count += 1
        report(ProgressUpdate(
            phase=ProgressPhase.COMPLETE if result.success else ProgressPhase.ERROR,
            file=file,
            message=f"Processed {len(batch.results)}/{total}",
            current=len(batch.results),
            total=total,
        ))

    if parallel <= 1:
        for file in files:
            try:
                result = await processor(file)
            except Exception as e:
                logger.error("Failed to process %s: %s", file, get_error_message(e))
                result = _failed_result(file, e)
            record(file, result)
            if stop_on_error and not result.success:
                break
    else:
        for index in range(0, len(files), parallel):
            chunk = files[index:index + parallel]
            outcomes = await asyncio.gather(
                *(processor(file) for file in chunk), return_exceptions=True
            )
            chunk_failed = False
            for file, outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    logger.error("Failed to process %s: %s", file, get_error_message(outcome))
                    outcome = _failed_result(file, outcome)
                record(file, outcome)
                chunk_failed = chunk_failed or not outcome.success
            if stop_on_error and chunk_failed:
                break

    batch.skipped_count = batch.total_files - len(batch.results)
    batch.duration = time.perf_counter() - start
    return batch


class CodebaseScanner:
    """Scans a codebase, orders its files and drives batch processing.

    Attributes:
        parser: Analyzer handed to the dependency resolver.
        on_progress: Receives one update per processed file.
        max_depth: Import depth followed when building graphs.
    """

    def __init__(
        self,
        parser: Optional[BaseParser] = None,
        on_progress: Optional[ProgressCallback] = None,
        max_depth: int = 10,
    ):
        self.parser = parser
        self.on_progress = on_progress or noop_progress
        self.max_depth = max_depth

    def scan(
        self,
        directory: str,
        include: Optional[Sequence[str]] = None,
        exclude: Optional[Sequence[str]] = None,
    ) -> ScanResult:
        return scan_directory(directory, include, exclude)

    def build_graph(self, files: Sequence[str]) -> CodebaseGraph:
        return build_codebase_graph(files, self.parser, self.max_depth)

    def get_processing_order(self, files: Sequence[str]) -> List[str]:
        return self.build_graph(files).sorted_files

    async def process(
        self,
        files: Sequence[str],
        processor: FileProcessor,
        parallel: int = 1,
        stop_on_error: bool = False,
    ) -> BatchResult:
        return await process_batch(files, processor, parallel, stop_on_error, self.on_progress)

    def analyze(
        self,
        directory: str,
        include: Optional[Sequence[str]] = None,
        exclude: Optional[Sequence[str]] = None,
    ) -> CodebaseAnalysis:
        """Scan ``directory`` and order its untested files leaves-first.

        Falls back to the scan order when the graph yields no ordering.
        """
        scan = self.scan(directory, include, exclude)
        graph = self.build_graph(scan.untested_files)
        order = graph.sorted_files or list(scan.untested_files)
        return CodebaseAnalysis(scan=scan, graph=graph, processing_order=order)


def format_scan_result(result: ScanResult) -> str:
    lines = [
        f"Source files:   {len(result.source_files)}",
        f"Test files:     {len(result.test_files)}",
        f"Untested files: {len(result.untested_files)}",
        f"Coverage:       {result.coverage.percentage}% "
        f"({result.coverage.tested}/{result.coverage.tested + result.coverage.untested} files tested)",
    ]
    if result.untested_files:
        lines.append("")
        lines.append("Untested:")
        lines.extend(f"  {path}" for path in result.untested_files)
    return '\n'.join(lines)


def format_batch_result(result: BatchResult) -> str:
    lines = [
        f"Processed {len(result.results)}/{result.total_files} files in {result.duration:.1f}s",
        f"  Succeeded: {result.success_count}",
        f"  Failed:    {result.failed_count}",
        f"  Skipped:   {result.skipped_count}",
        f"  LLM calls: {result.metrics.llm_calls}",
    ]
    failures = [r for r in result.results if not r.success]
    if failures:
        lines.append("")
        lines.append("Failures:")
        for failed in failures:
            reason = failed.error or f"{failed.remaining_failures} test(s) still failing"
            lines.append(f"  {failed.source_file}: {reason}")
    return '\n'.join(lines)
