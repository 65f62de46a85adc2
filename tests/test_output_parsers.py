"""
Tests for the vitest, jest and mocha output parsers.
"""

import sys
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from smarttest.models.run_result import TestFramework
from smarttest.runner.output_parsers import (
    MAX_STACK_FRAMES,
    extract_failure_details,
    parse_generic_output,
    parse_jest_output,
    parse_mocha_output,
    parse_test_output,
    parse_vitest_output,
    strip_ansi,
)


JEST_OUTPUT = """\
 FAIL  src/math.test.ts
  math
    ✓ adds numbers (2 ms)
    ✕ divides numbers (3 ms)
    ✓ subtracts numbers (1 ms)

  ● math › divides numbers

    expect(received).toBe(expected) // Object.is equality

    Expected: 2
    Received: 3

      10 |   it('divides numbers', () => {
    > 11 |     expect(divide(6, 2)).toBe(2);
         |                          ^

      at Object.<anonymous> (src/math.test.ts:11:26)

Test Suites: 1 failed, 1 total
Tests:       1 failed, 2 passed, 3 total
Snapshots:   0 total
Time:        1.204 s
"""

VITEST_OUTPUT = """\
 ❯ src/math.test.ts (3 tests | 1 failed) 5ms
   × math > divides numbers 3ms
     → expected 3 to be 2 // Object.is equality

⎯⎯⎯⎯⎯⎯⎯ Failed Tests 1 ⎯⎯⎯⎯⎯⎯⎯

 FAIL  src/math.test.ts > math > divides numbers
AssertionError: expected 3 to be 2 // Object.is equality

- Expected
+ Received

- 2
+ 3

 ❯ src/math.test.ts:11:26
      9|   it('divides numbers', () => {
     11|     expect(divide(6, 2)).toBe(2);

⎯⎯⎯⎯⎯⎯⎯⎯⎯⎯⎯⎯⎯⎯⎯⎯⎯[1/1]⎯

 Test Files  1 failed (1)
      Tests  1 failed | 2 passed (3)
   Start at  10:00:00
   Duration  1.10s
"""

MOCHA_OUTPUT = """\

  math
    ✔ adds numbers
    1) divides numbers
    - skips later


  1 passing (8ms)
  1 pending
  1 failing

  1) math
       divides numbers:

      AssertionError: expected 3 to equal 2
      + expected - actual

      -3
      +2

      at Context.<anonymous> (test/math.spec.js:11:30)
      at process.processImmediate (node:internal/timers:476:21)

"""


class TestJestParser:
    """Test parsing of jest output."""

    def test_counts_from_summary(self):
        """Test the counts of a run with one failure among three tests."""
        result = parse_jest_output(JEST_OUTPUT)

        assert result.passed == 2
        assert result.failed == 1
        assert result.skipped == 0
        assert result.total_tests == 3
        assert len(result.failures) == 1
        assert not result.success

    def test_failure_details(self):
        """Test that the failure block is reduced to its parts."""
        failure = parse_jest_output(JEST_OUTPUT).failures[0]

        assert failure.test_name == 'math › divides numbers'
        assert failure.expected == '2'
        assert failure.actual == '3'
        assert failure.line == 11
        assert failure.stack_trace == 'at Object.<anonymous> (src/math.test.ts:11:26)'

    def test_passing_run(self):
        output = "Test Suites: 1 passed, 1 total\nTests:       4 passed, 4 total\n"

        result = parse_jest_output(output)

        assert result.success
        assert result.total_tests == 4
        assert result.failures == []

    def test_todo_counts_as_skipped(self):
        output = "Tests:       1 skipped, 2 todo, 3 passed, 6 total\n"

        result = parse_jest_output(output)

        assert result.skipped == 3
        assert result.passed + result.failed + result.skipped == result.total_tests

    def test_console_blocks_are_not_failures(self):
        output = (
            "  ● Console\n\n    console.log\n      hello\n\n"
            "Tests:       1 passed, 1 total\n"
        )

        result = parse_jest_output(output)

        assert result.failures == []
        assert result.success

    def test_ansi_codes_are_ignored(self):
        output = "\x1b[1mTests:\x1b[22m       \x1b[31m1 failed\x1b[39m, 1 total\n"

        result = parse_jest_output(output)

        assert result.failed == 1
        assert result.total_tests == 1


class TestVitestParser:
    """Test parsing of vitest output."""

    def test_counts_from_summary(self):
        result = parse_vitest_output(VITEST_OUTPUT)

        assert result.passed == 2
        assert result.failed == 1
        assert result.total_tests == 3
        assert not result.success

    def test_failed_tests_section(self):
        """Test that details come from the 'Failed Tests' section."""
        result = parse_vitest_output(VITEST_OUTPUT)

        assert len(result.failures) == 1
        failure = result.failures[0]
        assert failure.test_name == 'src/math.test.ts > math > divides numbers'
        assert failure.error_message.startswith('AssertionError: expected 3 to be 2')
        assert failure.expected == '2'
        assert failure.actual == '3'
        assert failure.line == 11

    def test_inline_failures_without_section(self):
        """Test the fallback on '×' lines followed by '→' details."""
        output = (
            " ❯ src/a.test.ts (2 tests | 1 failed)\n"
            "   × adds 2ms\n"
            "     → expected 1 to be 2\n"
            "   ✓ subtracts 1ms\n"
            "      Tests  1 failed | 1 passed (2)\n"
        )

        result = parse_vitest_output(output)

        assert [f.test_name for f in result.failures] == ['adds']
        assert result.failures[0].error_message == 'expected 1 to be 2'
        assert result.failures[0].expected == '2'
        assert result.total_tests == 2

    def test_skipped_tests_fill_total(self):
        output = "      Tests  3 passed | 1 skipped (5)\n"

        result = parse_vitest_output(output)

        assert result.total_tests == 5
        assert result.skipped == 2
        assert result.success


class TestMochaParser:
    """Test parsing of mocha output."""

    def test_counts(self):
        result = parse_mocha_output(MOCHA_OUTPUT)

        assert result.passed == 1
        assert result.failed == 1
        assert result.skipped == 1
        assert result.total_tests == 3

    def test_failure_details(self):
        """Test that only the report after 'N failing' yields failures."""
        result = parse_mocha_output(MOCHA_OUTPUT)

        assert len(result.failures) == 1
        failure = result.failures[0]
        assert failure.test_name == 'math divides numbers'
        assert failure.error_message == 'AssertionError: expected 3 to equal 2'
        assert failure.expected == '2'
        assert failure.actual == '3'
        assert failure.line == 11
        assert len(failure.stack_trace.splitlines()) == 2

    def test_diff_supplies_expected_and_actual(self):
        output = (
            "  0 passing\n  1 failing\n\n"
            "  1) config loads:\n"
            "     AssertionError: values differ\n"
            "      + expected - actual\n\n"
            "      -foo\n"
            "      +bar\n"
        )

        failure = parse_mocha_output(output).failures[0]

        assert failure.test_name == 'config loads'
        assert failure.expected == 'bar'
        assert failure.actual == 'foo'

    def test_all_passing(self):
        result = parse_mocha_output("  5 passing (20ms)\n")

        assert result.success
        assert result.total_tests == 5


class TestFailureDetails:
    """Test reduction of a single failure block."""

    def test_plain_error(self):
        failure = extract_failure_details('loads', "Error: boom\n    at load (src/load.ts:4:9)\n")

        assert failure.error_message == 'Error: boom'
        assert failure.line == 4

    def test_error_with_code(self):
        failure = extract_failure_details('t', "TypeError [ERR_INVALID_ARG]: bad input\n")

        assert failure.error_message == 'TypeError: bad input'

    def test_stack_is_capped(self):
        frames = '\n'.join(f"    at fn{i} (src/file.ts:{i + 1}:1)" for i in range(8))

        failure = extract_failure_details('deep', f"Error: deep\n{frames}\n")

        assert len(failure.stack_trace.splitlines()) == MAX_STACK_FRAMES
        assert failure.line == 1

    def test_empty_block(self):
        failure = extract_failure_details('  empty  ', '')

        assert failure.test_name == 'empty'
        assert failure.error_message == 'Test failed'
        assert failure.stack_trace is None


class TestGenericAndDispatch:
    """Test the generic fallback and framework dispatch."""

    def test_generic_tap_style(self):
        output = "ok 1 - adds\nnot ok 2 - divides\n  Error: boom\n# 1 passed 1 failed\n"

        result = parse_generic_output(output)

        assert result.passed == 1
        assert result.failed == 1
        assert result.total_tests == 2
        assert result.failures[0].test_name == 'divides'
        assert result.failures[0].error_message == 'Error: boom'

    def test_dispatch_uses_framework_parser(self):
        result = parse_test_output(JEST_OUTPUT, TestFramework.JEST)

        assert result.total_tests == 3

    def test_unrecognized_output_falls_back(self):
        result = parse_test_output("✗ broken thing\n", TestFramework.JEST)

        assert result.failed == 1
        assert result.failures[0].test_name == 'broken thing'
        assert not result.success

    def test_failures_without_summary_count_as_failed(self):
        output = "  ● suite › case\n\n    Error: nope\n"

        result = parse_jest_output(output)

        assert result.failed == 1
        assert result.total_tests == 1

    @pytest.mark.parametrize('output,framework', [
        (JEST_OUTPUT, TestFramework.JEST),
        (VITEST_OUTPUT, TestFramework.VITEST),
        (MOCHA_OUTPUT, TestFramework.MOCHA),
    ])
    def test_counts_are_consistent(self, output, framework):
        result = parse_test_output(output, framework)

        assert result.passed + result.failed + result.skipped == result.total_tests
        assert result.success == (result.failed == 0)
        assert result.raw_output == output

    def test_strip_ansi(self):
        assert strip_ansi("\x1b[32mok\x1b[0m") == 'ok'
