"""Parsers turning raw test-runner output into TestRunOutput records.

Each framework has its own pure parsing function; OUTPUT_PARSERS maps a
TestFramework to it. Parsers never run anything: they only read text.

All parsers share the same count rules:

- when failures were extracted but the summary reported none failed,
  ``failed`` becomes the number of extracted failures;
- when a summary line was found, counts are reconciled so that
  passed + failed + skipped == total_tests (unaccounted tests such as todo
  or pending are counted as skipped);
- without a summary, the total is the sum of the counts found.
"""

import re
from typing import Callable, Dict, List, Optional, Tuple

from ..models.run_result import TestFailure, TestFramework, TestRunOutput


MAX_STACK_FRAMES = 5

_ANSI_RE = re.compile(r'\x1b\[[0-9;]*[A-Za-z]')
_COUNT_RE = re.compile(r'(\d+)\s+(failed|passed|skipped|todo|pending|total)\b')
_ERROR_RE = re.compile(r'\b((?:[A-Z]\w*)?Error)(?:\s*\[[^\]]*\])?:\s*(.+)')
_EXPECTED_RE = re.compile(r'^\s*Expected(?: value)?:\s*(.+)$', re.MULTILINE)
_ACTUAL_RE = re.compile(r'^\s*(?:Received|Actual)(?: value)?:\s*(.+)$', re.MULTILINE)
_CHAI_RE = re.compile(
    r'expected (.+?) to (?:be|equal|deeply equal|strictly equal|deep equal) (.+?)(?:\s+//.*)?$',
    re.MULTILINE,
)
_FRAME_LINE_RE = re.compile(r':(\d+):\d+\)?\s*$')

ParserFn = Callable[[str], TestRunOutput]


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub('', text)


def _is_frame(line: str) -> bool:
    stripped = line.strip()
    return stripped.startswith('at ') or stripped.startswith('❯ ')


def extract_failure_details(test_name: str, block: str) -> TestFailure:
    """Reduce one failure block to a TestFailure.

    Args:
        test_name: Test title the block belongs to.
        block: Text printed by the runner for this failure.

    Returns:
        TestFailure with the error message, expected/actual values when the
        runner printed labelled ones, at most five stack frames and the line
        number of the first frame carrying one.
    """
    lines = [line.rstrip() for line in block.splitlines()]

    error_message = ''
    match = _ERROR_RE.search(block)
    if match:
        error_message = f"{match.group(1)}: {match.group(2).strip()}"
    else:
        for line in lines:
            stripped = line.strip().lstrip('→').strip()
            if stripped and not _is_frame(line):
                error_message = stripped
                break

    expected = actual = None
    expected_match = _EXPECTED_RE.search(block)
    actual_match = _ACTUAL_RE.search(block)
    if expected_match:
        expected = expected_match.group(1).strip()
    if actual_match:
        actual = actual_match.group(1).strip()
    if expected is None and actual is None:
        chai = _CHAI_RE.search(block)
        if chai:
            actual, expected = chai.group(1).strip(), chai.group(2).strip()

    frames = [line.strip() for line in lines if _is_frame(line)][:MAX_STACK_FRAMES]
    line_number: Optional[int] = None
    for frame in frames:
        frame_match = _FRAME_LINE_RE.search(frame)
        if frame_match:
            line_number = int(frame_match.group(1))
            break

    return TestFailure(
        test_name=test_name.strip(),
        error_message=error_message or 'Test failed',
        expected=expected,
        actual=actual,
        stack_trace='\n'.join(frames) or None,
        line=line_number,
    )


def _read_counts(summary: str) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for number, label in _COUNT_RE.findall(summary):
        counts[label] = counts.get(label, 0) + int(number)
    return counts


def _build_result(
    output: str,
    failures: List[TestFailure],
    summary_found: bool,
    passed: int = 0,
    failed: int = 0,
    skipped: int = 0,
    total: int = 0,
) -> TestRunOutput:
    if failures and failed == 0:
        failed = len(failures)

    counted = passed + failed + skipped
    if summary_found:
        if total < counted:
            total = counted
        elif total > counted:
            skipped += total - counted
    else:
        total = counted

    return TestRunOutput(
        success=failed == 0 and not failures,
        total_tests=total,
        passed=passed,
        failed=failed,
        skipped=skipped,
        failures=failures,
        raw_output=output,
    )


def _split_blocks(text: str, header: 're.Pattern[str]') -> List[Tuple[str, str]]:
    """Split ``text`` at header lines; returns (header group 1, body) pairs."""
    matches = list(header.finditer(text))
    blocks = []
    for index, match in enumerate(matches):
        end = matches[index + 1].start() if index + 1 < len(matches) else len(text)
        blocks.append((match.group(1), text[match.end():end]))
    return blocks


_JEST_SUMMARY_RE = re.compile(r'^\s*Tests:\s*(.+)$', re.MULTILINE)
_JEST_BLOCK_RE = re.compile(r'^\s*●\s+(.+)$', re.MULTILINE)
_JEST_TAIL_RE = re.compile(r'^\s*(?:Test Suites:|Tests:|Snapshots:|Time:)', re.MULTILINE)


def parse_jest_output(output: str) -> TestRunOutput:
    text = strip_ansi(output)

    summary = _JEST_SUMMARY_RE.search(text)
    counts = _read_counts(summary.group(1)) if summary else {}

    tail = _JEST_TAIL_RE.search(text)
    failure_text = text[:tail.start()] if tail else text
    failures = []
    for name, body in _split_blocks(failure_text, _JEST_BLOCK_RE):
        if name.strip().startswith('Console'):
            continue
        failures.append(extract_failure_details(name, body))

    return _build_result(
        output,
        failures,
        summary_found=summary is not None,
        passed=counts.get('passed', 0),
        failed=counts.get('failed', 0),
        skipped=counts.get('skipped', 0) + counts.get('todo', 0),
        total=counts.get('total', 0),
    )


_VITEST_SUMMARY_RE = re.compile(r'^\s*Tests\s+(?!Files)(.+)$', re.MULTILINE)
_VITEST_TOTAL_RE = re.compile(r'\((\d+)\)')
_VITEST_FAILED_SECTION_RE = re.compile(r'Failed Tests?\s+\d+')
_VITEST_SECTION_END_RE = re.compile(r'^\s*Test Files\s', re.MULTILINE)
_VITEST_FAIL_HEADER_RE = re.compile(r'^\s*FAIL\s+(.+)$', re.MULTILINE)
_VITEST_SEPARATOR_RE = re.compile(r'^\s*⎯+.*$', re.MULTILINE)
_VITEST_CROSS_RE = re.compile(r'^\s*[×✗✕]\s+(.+?)(?:\s+\d+(?:\.\d+)?\s*m?s)?$', re.MULTILINE)


def parse_vitest_output(output: str) -> TestRunOutput:
    text = strip_ansi(output)

    summary = _VITEST_SUMMARY_RE.search(text)
    counts: Dict[str, int] = {}
    total = 0
    if summary:
        counts = _read_counts(summary.group(1))
        total_match = _VITEST_TOTAL_RE.search(summary.group(1))
        if total_match:
            total = int(total_match.group(1))

    failures: List[TestFailure] = []
    seen = set()
    section = _VITEST_FAILED_SECTION_RE.search(text)
    if section:
        end = _VITEST_SECTION_END_RE.search(text, section.end())
        section_text = text[section.end():end.start() if end else len(text)]
        for name, body in _split_blocks(section_text, _VITEST_FAIL_HEADER_RE):
            body = _VITEST_SEPARATOR_RE.split(body)[0]
            name = name.strip()
            if name in seen:
                continue
            seen.add(name)
            failures.append(extract_failure_details(name, body))
    else:
        lines = text.splitlines()
        for index, line in enumerate(lines):
            match = _VITEST_CROSS_RE.match(line)
            if not match:
                continue
            name = match.group(1).strip()
            if name in seen:
                continue
            seen.add(name)
            detail = []
            for following in lines[index + 1:]:
                if not following.strip().startswith('→'):
                    break
                detail.append(following)
            failures.append(extract_failure_details(name, '\n'.join(detail)))

    return _build_result(
        output,
        failures,
        summary_found=summary is not None,
        passed=counts.get('passed', 0),
        failed=counts.get('failed', 0),
        skipped=counts.get('skipped', 0) + counts.get('todo', 0),
        total=total,
    )


_MOCHA_PASSING_RE = re.compile(r'^\s*(\d+)\s+passing\b', re.MULTILINE)
_MOCHA_FAILING_RE = re.compile(r'^\s*(\d+)\s+failing\b', re.MULTILINE)
_MOCHA_PENDING_RE = re.compile(r'^\s*(\d+)\s+pending\b', re.MULTILINE)
_MOCHA_BLOCK_RE = re.compile(r'^\s*\d+\)\s+', re.MULTILINE)


def _mocha_diff(block: str) -> Tuple[Optional[str], Optional[str]]:
    """Read mocha's '+ expected - actual' diff, if present."""
    marker = block.find('+ expected - actual')
    if marker == -1:
        return None, None
    expected: List[str] = []
    actual: List[str] = []
    for line in block[marker:].splitlines()[1:]:
        stripped = line.strip()
        if _is_frame(line):
            break
        if stripped.startswith('+'):
            expected.append(stripped[1:])
        elif stripped.startswith('-'):
            actual.append(stripped[1:])
    return ('\n'.join(expected) or None), ('\n'.join(actual) or None)


def parse_mocha_output(output: str) -> TestRunOutput:
    text = strip_ansi(output)

    passing = _MOCHA_PASSING_RE.search(text)
    failing = _MOCHA_FAILING_RE.search(text)
    pending = _MOCHA_PENDING_RE.search(text)
    summary_found = bool(passing or failing or pending)

    failures: List[TestFailure] = []
    if failing:
        # Only the report after "N failing" holds failure details; numbered
        # lines before it are the progress listing.
        report = text[failing.end():]
        for block in _MOCHA_BLOCK_RE.split(report)[1:]:
            lines = block.splitlines()
            title: List[str] = []
            rest_index = len(lines)
            for index, line in enumerate(lines):
                title.append(line.strip())
                if line.rstrip().endswith(':'):
                    rest_index = index + 1
                    break
            name = ' '.join(part for part in title if part).rstrip(':').strip()
            body = '\n'.join(lines[rest_index:])
            failure = extract_failure_details(name, body)
            if failure.expected is None and failure.actual is None:
                failure.expected, failure.actual = _mocha_diff(body)
            failures.append(failure)

    passed = int(passing.group(1)) if passing else 0
    failed = int(failing.group(1)) if failing else 0
    skipped = int(pending.group(1)) if pending else 0
    return _build_result(
        output,
        failures,
        summary_found=summary_found,
        passed=passed,
        failed=failed,
        skipped=skipped,
        total=passed + failed + skipped,
    )


_GENERIC_COUNT_RE = re.compile(r'(\d+)\s+(passed|passing|failed|failing|skipped|pending)\b', re.IGNORECASE)
_GENERIC_FAILURE_RE = re.compile(r'^\s*(?:[×✗✕]|FAIL\b|not ok\b(?:\s+\d+)?)\s*-?\s*(.+)$', re.MULTILINE)


def parse_generic_output(output: str) -> TestRunOutput:
    """Best-effort parse for output no framework pattern recognized."""
    text = strip_ansi(output)

    counts: Dict[str, int] = {}
    for number, label in _GENERIC_COUNT_RE.findall(text):
        key = {'passing': 'passed', 'failing': 'failed', 'pending': 'skipped'}.get(label.lower(), label.lower())
        counts[key] = max(counts.get(key, 0), int(number))

    failures = []
    lines = text.splitlines()
    for index, line in enumerate(lines):
        match = _GENERIC_FAILURE_RE.match(line)
        if match:
            following = '\n'.join(lines[index + 1:index + 6])
            failures.append(extract_failure_details(match.group(1), following))

    return _build_result(
        output,
        failures,
        summary_found=False,
        passed=counts.get('passed', 0),
        failed=counts.get('failed', 0),
        skipped=counts.get('skipped', 0),
    )


OUTPUT_PARSERS: Dict[TestFramework, ParserFn] = {
    TestFramework.VITEST: parse_vitest_output,
    TestFramework.JEST: parse_jest_output,
    TestFramework.MOCHA: parse_mocha_output,
}


def parse_test_output(output: str, framework: TestFramework) -> TestRunOutput:
    """Parse ``output`` with the framework's parser.

    Falls back to the generic scan when the framework parser recognized
    neither a summary nor any failure.
    """
    result = OUTPUT_PARSERS[framework](output)
    if result.total_tests == 0 and not result.failures:
        return parse_generic_output(output)
    return result
