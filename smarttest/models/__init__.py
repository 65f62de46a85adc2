"""Data models shared across smarttest.

- dependency: imports, exports, signatures and dependency graphs
- run_result: test run results and the self-healing fix history
- quality: static validation reports
- pipeline: per-file pipeline state, options, results and metrics
- scan: codebase scans and dependency-ordered processing
"""

from .dependency import (
    DependencyGraph,
    DependencyInfo,
    DependencyResolution,
    ExportInfo,
    FunctionSignature,
    ImportInfo,
    ImportSpecifier,
    ModuleStructure,
    ParameterInfo,
    TypeInfo,
    merge_graphs,
)
from .pipeline import (
    AnalysisOutput,
    BatchResult,
    GenerationOptions,
    GenerationResult,
    PipelineError,
    PipelineMetrics,
    PipelineState,
    ProgressPhase,
    ProgressUpdate,
)
from .quality import ImportIssue, LintError, MockIssue, QualityReport
from .run_result import (
    FailureAnalysis,
    FixDescription,
    FixHistory,
    HealingAttempt,
    TestFailure,
    TestFramework,
    TestRunOutput,
)
from .scan import CodebaseAnalysis, CodebaseGraph, ScanCoverage, ScanResult

__all__ = [
    "AnalysisOutput",
    "BatchResult",
    "CodebaseAnalysis",
    "CodebaseGraph",
    "DependencyGraph",
    "DependencyInfo",
    "DependencyResolution",
    "ExportInfo",
    "FailureAnalysis",
    "FixDescription",
    "FixHistory",
    "FunctionSignature",
    "GenerationOptions",
    "GenerationResult",
    "HealingAttempt",
    "ImportInfo",
    "ImportIssue",
    "ImportSpecifier",
    "LintError",
    "MockIssue",
    "ModuleStructure",
    "ParameterInfo",
    "PipelineError",
    "PipelineMetrics",
    "PipelineState",
    "ProgressPhase",
    "ProgressUpdate",
    "QualityReport",
    "ScanCoverage",
    "ScanResult",
    "TestFailure",
    "TestFramework",
    "TestRunOutput",
    "TypeInfo",
    "merge_graphs",
]
