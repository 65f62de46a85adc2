"""Data models for the per-file generation pipeline and batch runs."""

import time
from dataclasses import dataclass, field, asdict
from datetime import datetime, UTC
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..errors import ExitCode
from .dependency import DependencyInfo, ExportInfo, FunctionSignature, ImportInfo
from .quality import QualityReport
from .run_result import FixHistory, TestFramework, TestRunOutput


class ProgressPhase(str, Enum):
    ANALYZING = 'analyzing'
    GENERATING = 'generating'
    VALIDATING = 'validating'
    RUNNING = 'running'
    FIXING = 'fixing'
    COMPLETE = 'complete'
    ERROR = 'error'


@dataclass
class ProgressUpdate:
    phase: ProgressPhase
    file: str
    message: str
    current: Optional[int] = None
    total: Optional[int] = None


ProgressCallback = Callable[[ProgressUpdate], None]


def noop_progress(update: ProgressUpdate) -> None:
    """Progress sink used when the caller does not supply one."""


@dataclass
class PipelineError:
    agent: str
    phase: str
    message: str
    recoverable: bool
    timestamp: str = field(
        default_factory=lambda: datetime.now(UTC).isoformat()
    )


@dataclass
class AnalysisOutput:
    """What the analyze phase hands to the rest of the pipeline."""

    source_file: str
    source_code: str
    language: str
    imports: List[ImportInfo] = field(default_factory=list)
    exports: List[ExportInfo] = field(default_factory=list)
    function_signatures: List[FunctionSignature] = field(default_factory=list)
    dependencies: List[DependencyInfo] = field(default_factory=list)
    circular_dependencies: List[List[str]] = field(default_factory=list)


@dataclass
class PipelineState:
    """Mutable state threaded through one orchestrator invocation."""

    source_file: str
    source_code: str = ''
    language: str = 'typescript'
    imports: List[ImportInfo] = field(default_factory=list)
    exports: List[ExportInfo] = field(default_factory=list)
    dependencies: List[DependencyInfo] = field(default_factory=list)
    test_code: str = ''
    test_count: int = 0
    edge_cases: List[str] = field(default_factory=list)
    validation_result: Optional[QualityReport] = None
    test_run_result: Optional[TestRunOutput] = None
    fix_attempts: FixHistory = field(default_factory=FixHistory)
    errors: List[PipelineError] = field(default_factory=list)
    phase: ProgressPhase = ProgressPhase.ANALYZING


@dataclass
class PipelineMetrics:
    """Wall-clock seconds per phase plus counters.

    ``llm_calls`` only ever grows. ``merge`` folds another run's metrics in,
    which is how batch totals are built.
    """

    durations: Dict[str, float] = field(default_factory=dict)
    llm_calls: int = 0
    files_completed: int = 0
    files_failed: int = 0

    def record(self, phase: 'ProgressPhase | str', seconds: float) -> None:
        key = phase.value if isinstance(phase, ProgressPhase) else phase
        self.durations[key] = self.durations.get(key, 0.0) + seconds

    def add_llm_call(self) -> None:
        self.llm_calls += 1

    @property
    def total_duration(self) -> float:
        return sum(self.durations.values())

    def merge(self, other: 'PipelineMetrics') -> None:
        for phase, seconds in other.durations.items():
            self.record(phase, seconds)
        self.llm_calls += other.llm_calls
        self.files_completed += other.files_completed
        self.files_failed += other.files_failed

    def to_dict(self) -> dict:
        data = asdict(self)
        data['total_duration'] = self.total_duration
        return data


class PhaseTimer:
    """Context manager adding elapsed time to a metrics bucket."""

    def __init__(self, metrics: PipelineMetrics, phase: ProgressPhase):
        self.metrics = metrics
        self.phase = phase
        self._start = 0.0

    def __enter__(self) -> 'PhaseTimer':
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.metrics.record(self.phase, time.perf_counter() - self._start)


@dataclass
class GenerationOptions:
    """Options for generating tests for one file.

    Attributes:
        framework: Test framework the generated file targets.
        output_dir: Directory for the test file; the source's directory if None.
        test_suffix: Inserted between basename and extension.
        run: Execute the generated tests.
        fix: Repair failing tests (requires ``run``).
        max_retries: Upper bound on fix attempts.
        timeout: Seconds allowed per backend call.
        test_timeout: Seconds allowed per test run.
        provider_retries: Retries for recoverable backend errors.
        auto_fix: Let the validator apply mechanical fixes.
        accept_fixes: Adopt the validator's fixed code.
        verbose: Log healing progress in detail.
    """

    framework: TestFramework = TestFramework.VITEST
    output_dir: Optional[str] = None
    test_suffix: str = '.test'
    run: bool = False
    fix: bool = False
    max_retries: int = 3
    timeout: float = 120.0
    test_timeout: float = 60.0
    provider_retries: int = 2
    auto_fix: bool = True
    accept_fixes: bool = True
    verbose: bool = False

    @property
    def self_healing(self) -> bool:
        return self.run and self.fix


@dataclass
class GenerationResult:
    """Outcome for one source file.

    ``success`` is the last test run's verdict when the self-healing loop ran,
    and True otherwise once a test file was produced.
    """

    source_file: str
    test_file: str
    test_code: str
    success: bool
    test_count: int = 0
    edge_cases: List[str] = field(default_factory=list)
    validation_passed: bool = False
    quality_score: float = 0.0
    healing_attempts: int = 0
    tests_ran: bool = False
    remaining_failures: int = 0
    errors: List[PipelineError] = field(default_factory=list)
    metrics: PipelineMetrics = field(default_factory=PipelineMetrics)
    error: Optional[str] = None

    @property
    def exit_code(self) -> ExitCode:
        if self.error is not None:
            return ExitCode.GENERATION_FAILED
        if self.tests_ran and not self.success:
            if self.healing_attempts > 0:
                return ExitCode.SELF_HEAL_EXHAUSTED
            return ExitCode.TEST_RUN_FAILED
        if not self.validation_passed and not self.tests_ran:
            return ExitCode.VALIDATION_FAILED
        return ExitCode.SUCCESS

    def to_dict(self) -> dict:
        data = asdict(self)
        data['metrics'] = self.metrics.to_dict()
        data['exit_code'] = int(self.exit_code)
        data.pop('test_code')
        return data


@dataclass
class BatchResult:
    total_files: int
    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    results: List[GenerationResult] = field(default_factory=list)
    duration: float = 0.0
    metrics: PipelineMetrics = field(default_factory=PipelineMetrics)

    def to_dict(self) -> dict:
        return {
            'total_files': self.total_files,
            'success_count': self.success_count,
            'failed_count': self.failed_count,
            'skipped_count': self.skipped_count,
            'duration': self.duration,
            'results': [r.to_dict() for r in self.results],
            'metrics': self.metrics.to_dict(),
        }
