"""Error taxonomy and async helpers for timeouts and retries.

Every failure the pipeline knows how to describe is a SmartTestError carrying
a result code and a ``recoverable`` flag. Recoverable errors (backend hiccups,
timeouts, failed generations) may be retried or recorded and skipped;
non-recoverable ones abort the file being processed.
"""

import asyncio
import logging
import random
from enum import IntEnum
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ExitCode(IntEnum):
    """Process result codes reported by the command-line front end."""

    SUCCESS = 0
    INVALID_ARGS = 1
    FILE_NOT_FOUND = 2
    PROVIDER_ERROR = 3
    GENERATION_FAILED = 4
    VALIDATION_FAILED = 5
    TEST_RUN_FAILED = 6
    SELF_HEAL_EXHAUSTED = 7


class SmartTestError(Exception):
    """Base class for all errors raised by smarttest.

    Attributes:
        message: Human-readable description.
        code: ExitCode to report when this error ends the process.
        recoverable: Whether retrying or skipping the failing step is sensible.
        details: Optional structured context for logs and reports.
    """

    def __init__(
        self,
        message: str,
        code: ExitCode = ExitCode.GENERATION_FAILED,
        recoverable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.recoverable = recoverable
        self.details = details or {}

    def to_agent_error(self) -> Dict[str, Any]:
        """Serialize to the dictionary shape stored in fix histories."""
        return {
            'code': self.code.name,
            'message': self.message,
            'recoverable': self.recoverable,
            'details': dict(self.details),
        }


class InvalidArgsError(SmartTestError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ExitCode.INVALID_ARGS, False, details)


class SourceFileNotFoundError(SmartTestError):
    def __init__(self, file_path: str):
        super().__init__(
            f"File not found: {file_path}",
            ExitCode.FILE_NOT_FOUND,
            False,
            {'file_path': file_path},
        )
        self.file_path = file_path


class ProviderError(SmartTestError):
    """A text-generation backend call failed."""

    def __init__(
        self,
        message: str,
        provider_name: str,
        recoverable: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = {'provider': provider_name}
        merged.update(details or {})
        super().__init__(
            f"[{provider_name}] {message}",
            ExitCode.PROVIDER_ERROR,
            recoverable,
            merged,
        )
        self.provider_name = provider_name


class ProviderNotAvailableError(ProviderError):
    def __init__(self, provider_name: str, reason: Optional[str] = None):
        message = f"Provider {provider_name} is not available"
        if reason:
            message += f": {reason}"
        super().__init__(message, provider_name, recoverable=False)


class GenerationError(SmartTestError):
    def __init__(
        self,
        message: str,
        source_file: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = {'source_file': source_file}
        merged.update(details or {})
        super().__init__(message, ExitCode.GENERATION_FAILED, True, merged)
        self.source_file = source_file


class ValidationError(SmartTestError):
    def __init__(self, message: str, issues: Optional[List[str]] = None):
        super().__init__(
            message, ExitCode.VALIDATION_FAILED, True, {'issues': issues or []}
        )
        self.issues = issues or []


class TestRunError(SmartTestError):
    __test__ = False

    def __init__(self, message: str, failure_count: int = 0):
        super().__init__(
            message,
            ExitCode.TEST_RUN_FAILED,
            True,
            {'failure_count': failure_count},
        )
        self.failure_count = failure_count


class SelfHealingExhaustedError(SmartTestError):
    """All fix attempts were consumed and tests still fail."""

    def __init__(self, attempts: int, remaining_failures: int):
        super().__init__(
            f"Self-healing exhausted after {attempts} attempts. "
            f"{remaining_failures} test(s) still failing.",
            ExitCode.SELF_HEAL_EXHAUSTED,
            False,
            {'attempts': attempts, 'remaining_failures': remaining_failures},
        )
        self.attempts = attempts
        self.remaining_failures = remaining_failures


class ParseError(SmartTestError):
    def __init__(self, message: str, file_path: Optional[str] = None):
        details = {'file_path': file_path} if file_path else {}
        super().__init__(message, ExitCode.GENERATION_FAILED, False, details)
        self.file_path = file_path


class OperationTimeoutError(SmartTestError):
    def __init__(self, operation: str, timeout: float):
        super().__init__(
            f"Operation '{operation}' timed out after {timeout:g}s",
            ExitCode.PROVIDER_ERROR,
            True,
            {'operation': operation, 'timeout': timeout},
        )
        self.operation = operation
        self.timeout = timeout


def get_error_message(error: BaseException) -> str:
    if isinstance(error, SmartTestError):
        return error.message
    return str(error) or type(error).__name__


def to_smart_test_error(error: BaseException) -> SmartTestError:
    """Wrap an arbitrary exception so callers can rely on code/recoverable."""
    if isinstance(error, SmartTestError):
        return error
    if isinstance(error, FileNotFoundError):
        return SourceFileNotFoundError(str(error.filename or error))
    return SmartTestError(
        get_error_message(error),
        ExitCode.GENERATION_FAILED,
        False,
        {'original_type': type(error).__name__},
    )


def get_exit_code(error: BaseException) -> ExitCode:
    if isinstance(error, SmartTestError):
        return error.code
    return ExitCode.GENERATION_FAILED


def format_error(error: BaseException, verbose: bool = False) -> str:
    """Render an error for terminal output."""
    if not isinstance(error, SmartTestError):
        return f"Error: {get_error_message(error)}"

    lines = [f"Error [{error.code.name}]: {error.message}"]
    if verbose and error.details:
        for key, value in error.details.items():
            lines.append(f"  {key}: {value}")
    if error.recoverable:
        lines.append("  (This error may be resolved by retrying)")
    return "\n".join(lines)


def assert_args(condition: bool, message: str) -> None:
    if not condition:
        raise InvalidArgsError(message)


async def with_timeout(
    awaitable: Awaitable[T], timeout: float, operation: str
) -> T:
    """Await ``awaitable`` for at most ``timeout`` seconds.

    Raises:
        OperationTimeoutError: If the deadline passes first. The awaited task
            is cancelled.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise OperationTimeoutError(operation, timeout) from e


def _is_recoverable(error: BaseException) -> bool:
    return isinstance(error, SmartTestError) and error.recoverable


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> T:
    """Call ``operation`` until it succeeds or the retry budget is spent.

    The delay before retry ``n`` (0-indexed) is ``base_delay * 2**n`` plus up
    to 10% random jitter, capped at ``max_delay``. By default only recoverable
    SmartTestErrors are retried; anything else propagates immediately.

    Args:
        operation: Zero-argument coroutine factory. Called once per attempt.
        max_retries: Retries after the first attempt (total attempts is
            ``max_retries + 1``).
        base_delay: Initial backoff in seconds.
        max_delay: Upper bound for a single backoff.
        should_retry: Predicate deciding whether an error is retryable.
        on_retry: Called with (attempt number starting at 1, error) before
            each backoff.

    Returns:
        The operation's result.
    """
    predicate = should_retry or _is_recoverable
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_retries or not predicate(e):
                raise
            delay = min(base_delay * (2 ** attempt), max_delay)
            delay += random.uniform(0, delay * 0.1)
            attempt += 1
            logger.warning(
                "Attempt %d failed (%s); retrying in %.2fs",
                attempt, get_error_message(e), delay,
            )
            if on_retry is not None:
                on_retry(attempt, e)
            await asyncio.sleep(delay)
