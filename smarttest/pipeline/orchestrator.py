"""Per-file pipeline: analyze, generate, validate, then run and fix in a bounded loop."""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import SmartTestError, get_error_message, to_smart_test_error, with_retry
from ..models.pipeline import (
    GenerationOptions,
    GenerationResult,
    PhaseTimer,
    PipelineError,
    PipelineMetrics,
    PipelineState,
    ProgressCallback,
    ProgressPhase,
    ProgressUpdate,
    noop_progress,
)
from ..models.quality import QualityReport
from ..models.run_result import FixHistory
from ..quality.qa_validator import QualityAssuranceValidator
from ..runner.test_runner import TestRunner, format_healing_progress
from ..utils.file_utils import get_test_file_path, write_text_file_async
from .agents import SourceAnalyzer, TestFixer, TestWriter

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Agent responsible for each phase, as recorded in PipelineError
PHASE_AGENTS = {
    ProgressPhase.ANALYZING: 'analyzer',
    ProgressPhase.GENERATING: 'writer',
    ProgressPhase.VALIDATING: 'validator',
    ProgressPhase.RUNNING: 'runner',
    ProgressPhase.FIXING: 'fixer',
    ProgressPhase.COMPLETE: 'orchestrator',
}


class Orchestrator:
    """Drives one source file through the generation pipeline.

    Phases run in the order analyzing, generating, validating, then, when
    self-healing is requested and static validation failed, alternate
    between running and fixing until a run passes or ``max_retries`` fix
    attempts are spent. Running out of attempts is not an error: the result
    reports ``success=False`` with the attempt count.

    Each call to ``generate`` owns its own PipelineState and metrics, so one
    orchestrator can serve concurrent files.

    Attributes:
        analyzer: Produces AnalysisOutput for a source file.
        writer: Generates test code.
        fixer: Repairs failing test code.
        validator: Static checks and auto-fix.
        runner: Executes test files.
        on_progress: Receives an update at every phase transition.
        retry_delay: Base backoff for retried backend calls.
    """

    def __init__(
        self,
        analyzer: SourceAnalyzer,
        writer: TestWriter,
        fixer: TestFixer,
        validator: Optional[QualityAssuranceValidator] = None,
        runner: Optional[TestRunner] = None,
        on_progress: Optional[ProgressCallback] = None,
        retry_delay: float = 1.0,
    ):
        self.analyzer = analyzer
        self.writer = writer
        self.fixer = fixer
        self.validator = validator or QualityAssuranceValidator()
        self.runner = runner or TestRunner()
        self.on_progress = on_progress or noop_progress
        self.retry_delay = retry_delay

    def _emit(self, phase: ProgressPhase, file: str, message: str,
              current: Optional[int] = None, total: Optional[int] = None) -> None:
        self.on_progress(ProgressUpdate(phase, file, message, current, total))

    async def _call_backend(
        self,
        factory: Callable[[], Awaitable[T]],
        options: GenerationOptions,
        metrics: PipelineMetrics,
        state: PipelineState,
        phase: ProgressPhase,
    ) -> T:
        async def attempt() -> T:
            metrics.add_llm_call()
            return await factory()

        def on_retry(number: int, error: BaseException) -> None:
            state.errors.append(PipelineError(
                agent=PHASE_AGENTS[phase],
                phase=phase.value,
                message=f"Retry {number}: {get_error_message(error)}",
                recoverable=True,
            ))

        return await with_retry(
            attempt,
            max_retries=options.provider_retries,
            base_delay=self.retry_delay,
            on_retry=on_retry,
        )

    def _validate(
        self,
        state: PipelineState,
        options: GenerationOptions,
        test_file: str,
        metrics: PipelineMetrics,
    ) -> QualityReport:
        with PhaseTimer(metrics, ProgressPhase.VALIDATING):
            report = self.validator.validate(
                state.test_code,
                state.source_file,
                state.dependencies,
                options.framework,
                auto_fix=options.auto_fix,
                test_file=test_file,
            )
            if report.fixed_code is not None and options.accept_fixes:
                state.test_code = report.fixed_code
                fixes_applied = report.fixes_applied
                report = self.validator.validate(
                    state.test_code,
                    state.source_file,
                    state.dependencies,
                    options.framework,
                    test_file=test_file,
                )
                report.fixes_applied = fixes_applied
        state.validation_result = report
        return report

    async def generate(
        self, source_file: str, options: Optional[GenerationOptions] = None
    ) -> GenerationResult:
        """Generate (and optionally heal) tests for ``source_file``.

        Args:
            source_file: File to generate tests for.
            options: Generation settings; defaults when None.

        Returns:
            GenerationResult for the file. The test file is written to
            ``<output_dir or source dir>/<basename><suffix><ext>``.

        Raises:
            SmartTestError: When a phase fails non-recoverably, or a
                recoverable backend failure outlives its retries. The error
                is also appended to the pipeline state before propagating.
        """
        options = options or GenerationOptions()
        metrics = PipelineMetrics()
        state = PipelineState(
            source_file=str(Path(source_file).resolve()),
            fix_attempts=FixHistory(max_retries=options.max_retries),
        )
        test_file = get_test_file_path(state.source_file, options.output_dir, options.test_suffix)
        file = state.source_file

        try:
            self._emit(state.phase, file, "Analyzing source file")
            with PhaseTimer(metrics, state.phase):
                analysis = await asyncio.to_thread(self.analyzer.analyze, file)
            state.source_code = analysis.source_code
            state.language = analysis.language
            state.imports = analysis.imports
            state.exports = analysis.exports
            state.dependencies = analysis.dependencies

            state.phase = ProgressPhase.GENERATING
            self._emit(state.phase, file, "Generating tests")
            with PhaseTimer(metrics, state.phase):
                generated = await self._call_backend(
                    lambda: self.writer.write(analysis, options.framework, test_file, options.timeout),
                    options, metrics, state, state.phase,
                )
            state.test_code = generated.test_code
            state.test_count = generated.test_count
            state.edge_cases = generated.edge_cases

            state.phase = ProgressPhase.VALIDATING
            self._emit(state.phase, file, "Validating generated tests")
            report = self._validate(state, options, test_file, metrics)

            healing_ran = False
            if options.self_healing and not report.is_valid:
                healing_ran = True
                await self._heal(state, options, test_file, metrics)

            state.phase = ProgressPhase.COMPLETE
            await write_text_file_async(test_file, state.test_code)
        except Exception as e:
            error = to_smart_test_error(e)
            state.errors.append(PipelineError(
                agent=PHASE_AGENTS.get(state.phase, 'orchestrator'),
                phase=state.phase.value,
                message=error.message,
                recoverable=error.recoverable,
            ))
            self._emit(ProgressPhase.ERROR, file, error.message)
            raise

        run_result = state.test_run_result
        final_report = state.validation_result or report
        success = run_result.success if healing_ran and run_result is not None else True
        if success:
            metrics.files_completed = 1
        else:
            metrics.files_failed = 1

        self._emit(
            ProgressPhase.COMPLETE,
            file,
            f"Wrote {test_file}" if success else
            f"Tests still failing after {state.fix_attempts.current_attempt} fix attempt(s)",
        )

        return GenerationResult(
            source_file=file,
            test_file=test_file,
            test_code=state.test_code,
            success=success,
            test_count=state.test_count,
            edge_cases=state.edge_cases,
            validation_passed=final_report.is_valid,
            quality_score=final_report.score,
            healing_attempts=state.fix_attempts.current_attempt,
            tests_ran=run_result is not None,
            remaining_failures=run_result.failed if run_result is not None and not success else 0,
            errors=list(state.errors),
            metrics=metrics,
        )

    async def _heal(
        self,
        state: PipelineState,
        options: GenerationOptions,
        test_file: str,
        metrics: PipelineMetrics,
    ) -> None:
        """Run and fix until a run passes or the fix budget is spent."""
        history = state.fix_attempts
        file = state.source_file
        total_runs = history.max_retries + 1

        while True:
            run_number = history.current_attempt + 1
            self._emit(ProgressPhase.RUNNING, file,
                       f"Running tests (run {run_number}/{total_runs})", run_number, total_runs)
            state.phase = ProgressPhase.RUNNING
            await write_text_file_async(test_file, state.test_code)
            with PhaseTimer(metrics, ProgressPhase.RUNNING):
                result = await self.runner.run(
                    test_file, options.framework, timeout=options.test_timeout, verbose=options.verbose
                )
            state.test_run_result = result
            if options.verbose:
                logger.info(format_healing_progress(history, result, verbose=True))

            if result.success:
                return

            if not history.has_retries_remaining():
                logger.warning(
                    "Self-healing exhausted for %s after %d attempt(s); %d test(s) failing",
                    file, history.current_attempt, result.failed,
                )
                return

            state.phase = ProgressPhase.FIXING
            self._emit(ProgressPhase.FIXING, file,
                       f"Fixing {len(result.failures)} failing test(s)",
                       history.current_attempt + 1, history.max_retries)
            try:
                with PhaseTimer(metrics, ProgressPhase.FIXING):
                    fix_output = await self._call_backend(
                        lambda: self.fixer.fix(
                            state.test_code,
                            state.source_code,
                            file,
                            result.failures,
                            history,
                            options.framework,
                            options.timeout,
                        ),
                        options, metrics, state, ProgressPhase.FIXING,
                    )
            except SmartTestError as e:
                if not e.recoverable:
                    raise
                history.record_attempt(result.failures, error=e.to_agent_error())
                state.errors.append(PipelineError(
                    agent='fixer',
                    phase=ProgressPhase.FIXING.value,
                    message=e.message,
                    recoverable=True,
                ))
                continue

            history.record_attempt(result.failures, fix_output.fixes)
            state.test_code = fix_output.fixed_code
            state.phase = ProgressPhase.VALIDATING
            self._emit(ProgressPhase.VALIDATING, file, "Re-validating fixed tests")
            self._validate(state, options, test_file, metrics)
