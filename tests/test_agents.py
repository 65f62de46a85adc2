"""
Tests for the pipeline collaborators: source analysis, writing and fixing tests.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from smarttest.errors import (
    InvalidArgsError,
    OperationTimeoutError,
    ParseError,
    SourceFileNotFoundError,
)
from smarttest.models.dependency import EXTERNAL, RESOLVED
from smarttest.models.run_result import FixDescription, FixHistory, TestFailure, TestFramework
from smarttest.pipeline.agents import (
    MAX_ANALYZED_FAILURES,
    SourceAnalyzer,
    TestFixer,
    TestWriter,
    analyze_failure,
    infer_error_type,
    summarize_test_code,
)
from smarttest.providers.base_provider import BaseProvider

PROJECT_ROOT = Path(__file__).parent.parent
PROJECT_SRC = PROJECT_ROOT / "test-samples" / "project" / "src"

GENERATED = """```typescript
import { describe, it, expect, vi } from 'vitest';
import { formatSum } from './format.js';

vi.mock('chalk');

describe('formatSum', () => {
  it('formats a sum', () => {
    expect(formatSum(1, 2)).toBe('1 + 2 = 3');
  });

  it('handles negative numbers', () => {
    expect(formatSum(-1, -2)).toBe('-1 + -2 = -3');
  });

  test("returns text when options are empty", () => {
    expect(formatSum(0, 0, {})).toBe('0 + 0 = 0');
  });
});
```"""


class FakeProvider(BaseProvider):
    """Provider returning canned replies and recording prompts."""

    name = 'fake'

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def is_available(self):
        return True

    async def generate(self, prompt, options=None):
        self.calls.append((prompt, options))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class TestSummarizeTestCode:
    """Test counting of generated test cases."""

    def test_counts_tests_edge_cases_and_mocks(self):
        summary = summarize_test_code(GENERATED)

        assert summary.test_count == 3
        assert summary.edge_cases == ['handles negative numbers', 'returns text when options are empty']
        assert summary.mocks == ['chalk']

    def test_empty_code(self):
        summary = summarize_test_code('')

        assert summary.test_count == 0
        assert summary.edge_cases == []


class TestFailureClassification:
    """Test heuristic failure classification."""

    @pytest.mark.parametrize('message,expected', [
        ("Error: Cannot find module './math' imported from math.test.ts", 'import'),
        ("TypeError: axios.get.mockResolvedValue is not a function", 'mock'),
        ("TypeError: Cannot read properties of undefined (reading 'id')", 'type'),
        ("Error: Test timed out in 5000ms.", 'async'),
        ("AssertionError: expected 2 to be 3", 'test_logic'),
        ("Error: boom", 'source_logic'),
    ])
    def test_infer_error_type(self, message, expected):
        assert infer_error_type(TestFailure('t', message)) == expected

    def test_expected_value_means_test_logic(self):
        failure = TestFailure('t', 'values differ', expected='3', actual='2')

        assert infer_error_type(failure) == 'test_logic'

    def test_analysis_uses_first_line(self):
        analysis = analyze_failure(TestFailure('math > adds', 'Error: boom\n  more detail'))

        assert analysis.root_cause == 'Error: boom'
        assert analysis.error_type == 'source_logic'
        assert analysis.test_name == 'math > adds'


class TestSourceAnalyzer:
    """Test analysis of real source files."""

    def test_analyzes_file_with_dependencies(self):
        analysis = SourceAnalyzer().analyze(str(PROJECT_SRC / "report.ts"))

        assert analysis.language == 'typescript'
        assert [e.name for e in analysis.exports] == ['buildReport']
        assert analysis.function_signatures[0].is_async
        assert 'slugify(title)' in analysis.source_code

        paths = [Path(d.path).name for d in analysis.dependencies]
        assert paths == ['format.ts', 'format.ts', 'index.ts']
        assert all(d.resolution == RESOLVED for d in analysis.dependencies)
        assert analysis.circular_dependencies == []

    def test_external_dependencies(self):
        analysis = SourceAnalyzer().analyze(str(PROJECT_SRC / "format.ts"))

        external = [d for d in analysis.dependencies if d.is_external]
        assert [d.path for d in external] == ['chalk']
        assert external[0].resolution == EXTERNAL

    def test_cycles_are_reported(self):
        analysis = SourceAnalyzer().analyze(str(PROJECT_ROOT / "test-samples" / "circular" / "a.ts"))

        assert len(analysis.circular_dependencies) == 1
        assert len(analysis.circular_dependencies[0]) == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceFileNotFoundError):
            SourceAnalyzer().analyze(str(tmp_path / "nope.ts"))

    def test_unsupported_extension(self, tmp_path):
        source = tmp_path / "script.py"
        source.write_text("print('hi')\n")

        with pytest.raises(InvalidArgsError):
            SourceAnalyzer().analyze(str(source))


class TestTestWriter:
    """Test generation through a provider."""

    @pytest.mark.asyncio
    async def test_write_extracts_code(self):
        provider = FakeProvider([GENERATED])
        analysis = SourceAnalyzer().analyze(str(PROJECT_SRC / "format.ts"))

        generated = await TestWriter(provider).write(
            analysis, TestFramework.VITEST, str(PROJECT_SRC / "format.test.ts"), timeout=5.0
        )

        assert generated.test_code.startswith("import { describe")
        assert generated.test_count == 3
        prompt, options = provider.calls[0]
        assert "Import it in the test as: './format.js'" in prompt
        assert options.temperature == 0.7
        assert options.timeout == 5.0
        assert options.system_prompt

    @pytest.mark.asyncio
    async def test_reply_without_code(self):
        provider = FakeProvider(["Sorry, I can't."])
        analysis = SourceAnalyzer().analyze(str(PROJECT_SRC / "math.ts"))

        with pytest.raises(ParseError) as exc_info:
            await TestWriter(provider).write(analysis, TestFramework.VITEST, str(PROJECT_SRC / "m.test.ts"))

        assert exc_info.value.recoverable is False
        assert exc_info.value.details['file_path'].endswith('math.ts')

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self):
        class SlowProvider(FakeProvider):
            async def generate(self, prompt, options=None):
                await asyncio.sleep(5)

        analysis = SourceAnalyzer().analyze(str(PROJECT_SRC / "math.ts"))

        with pytest.raises(OperationTimeoutError):
            await TestWriter(SlowProvider([])).write(
                analysis, TestFramework.VITEST, str(PROJECT_SRC / "m.test.ts"), timeout=0.05
            )


class TestTestFixer:
    """Test repairs through a provider."""

    @pytest.mark.asyncio
    async def test_fix_describes_analyzed_failures(self):
        provider = FakeProvider(["```ts\nit('fixed', () => {});\n```"])
        history = FixHistory(max_retries=3)
        history.record_attempt([], [FixDescription('old', 'earlier issue', 'earlier fix')])
        failures = [TestFailure(f"t{i}", "AssertionError: expected 1 to be 2") for i in range(5)]

        output = await TestFixer(provider).fix(
            "it('broken', () => {});", "export const x = 1;", "x.ts",
            failures, history, TestFramework.JEST, timeout=5.0,
        )

        assert output.fixed_code == "it('fixed', () => {});\n"
        assert len(output.analyses) == MAX_ANALYZED_FAILURES
        assert [f.test_name for f in output.fixes] == ['t0', 't1', 't2']
        assert output.fixes[0].fix == output.analyses[0].suggested_fix

        prompt, options = provider.calls[0]
        assert "(attempt 2 of 3)" in prompt
        assert "- old: earlier issue -> earlier fix" in prompt
        assert "### t4" in prompt
        assert options.temperature == 0.5

    @pytest.mark.asyncio
    async def test_reply_without_code(self):
        provider = FakeProvider(["no idea"])

        with pytest.raises(ParseError) as exc_info:
            await TestFixer(provider).fix(
                "", "", "x.ts", [TestFailure('t', 'Error')], FixHistory(), TestFramework.VITEST,
            )

        assert exc_info.value.recoverable is False
        assert exc_info.value.details['file_path'] == 'x.ts'
