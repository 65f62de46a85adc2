"""Data models for test execution results and the self-healing fix history."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class TestFramework(str, Enum):
    __test__ = False

    VITEST = 'vitest'
    JEST = 'jest'
    MOCHA = 'mocha'

    @classmethod
    def from_value(cls, value: 'str | TestFramework') -> 'TestFramework':
        """Look up a framework by name, raising ValueError for unknown names."""
        if isinstance(value, TestFramework):
            return value
        try:
            return cls(value.lower())
        except ValueError:
            supported = ', '.join(f.value for f in cls)
            raise ValueError(
                f"Unsupported test framework: {value}. Supported: {supported}"
            ) from None


@dataclass
class TestFailure:
    """A single failing test extracted from runner output.

    Attributes:
        test_name: Full test title as printed by the runner.
        error_message: First assertion or error message line.
        expected: Expected value, when the runner printed one.
        actual: Received value, when the runner printed one.
        stack_trace: Up to five stack frames.
        line: Line number of the first frame that carried one.
    """

    __test__ = False

    test_name: str
    error_message: str
    expected: Optional[str] = None
    actual: Optional[str] = None
    stack_trace: Optional[str] = None
    line: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TestRunOutput:
    """Normalized result of running one test file.

    When a summary line was parsed, passed + failed + skipped == total_tests.
    """

    __test__ = False

    success: bool
    total_tests: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    failures: List[TestFailure] = field(default_factory=list)
    duration: float = 0.0
    raw_output: str = ''
    timed_out: bool = False

    def to_dict(self, include_output: bool = False) -> dict:
        data = asdict(self)
        if not include_output:
            data.pop('raw_output')
        return data


@dataclass
class FixDescription:
    test_name: str
    issue: str
    fix: str
    confidence: float = 0.5


@dataclass
class FailureAnalysis:
    """Classification of a failure used to steer the fix prompt."""

    test_name: str
    error_type: str  # mock, type, async, import, test_logic, source_logic
    root_cause: str
    suggested_fix: str
    confidence: float = 0.5


@dataclass
class HealingAttempt:
    """One fix attempt in the self-healing loop.

    A failed attempt carries ``error`` instead of ``fixes``.
    """

    attempt: int
    failures: List[TestFailure] = field(default_factory=list)
    fixes: List[FixDescription] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class FixHistory:
    """Accumulated fix attempts for one file.

    ``current_attempt`` never exceeds ``max_retries`` and attempts are only
    ever appended.
    """

    max_retries: int = 3
    attempts: List[HealingAttempt] = field(default_factory=list)
    current_attempt: int = 0

    def has_retries_remaining(self) -> bool:
        return self.current_attempt < self.max_retries

    def remaining_retries(self) -> int:
        return max(0, self.max_retries - self.current_attempt)

    def record_attempt(
        self,
        failures: List[TestFailure],
        fixes: Optional[List[FixDescription]] = None,
        error: Optional[Dict[str, Any]] = None,
    ) -> HealingAttempt:
        """Append an attempt and advance the counter.

        Raises:
            RuntimeError: If no retries remain.
        """
        if not self.has_retries_remaining():
            raise RuntimeError(
                f"Cannot record attempt {self.current_attempt + 1}: "
                f"max_retries is {self.max_retries}"
            )
        self.current_attempt += 1
        attempt = HealingAttempt(
            attempt=self.current_attempt,
            failures=list(failures),
            fixes=list(fixes or []),
            error=error,
        )
        self.attempts.append(attempt)
        return attempt

    def previous_fixes(self) -> List[FixDescription]:
        """All fixes from earlier attempts, oldest first."""
        return [fix for attempt in self.attempts for fix in attempt.fixes]
