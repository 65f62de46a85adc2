"""
Prompt builder for test generation and repair.

Prompts carry the source under test, the shapes of its dependencies and the
conventions of the target framework; fix prompts add the structured failures
and the fixes already tried.
"""

from typing import List

from ..models.dependency import DependencyInfo, FunctionSignature
from ..models.pipeline import AnalysisOutput
from ..models.run_result import FailureAnalysis, FixDescription, TestFailure, TestFramework
from ..utils.file_utils import to_import_path


class PromptBuilder:
    """
    Builder for generation and fix prompts.

    Parameters
    ----------
    max_dependencies : int, optional
        Dependencies described in a prompt. Defaults to 15.
    max_source_chars : int, optional
        Source code longer than this is truncated. Defaults to 20000.
    """

    FRAMEWORK_CONVENTIONS = {
        TestFramework.VITEST: (
            "Import describe, it, expect, vi and beforeEach from 'vitest'. "
            "Register module mocks with vi.mock('<path>') at the top level and "
            "reset them with vi.clearAllMocks() in beforeEach."
        ),
        TestFramework.JEST: (
            "Use the jest globals (or import them from '@jest/globals'). "
            "Register module mocks with jest.mock('<path>') at the top level and "
            "reset them with jest.clearAllMocks() in beforeEach."
        ),
        TestFramework.MOCHA: (
            "Use mocha's describe/it with chai's expect. Use sinon for stubs and "
            "restore them in afterEach."
        ),
    }

    WRITER_SYSTEM_PROMPT = (
        "You are an expert test engineer. You write complete, runnable unit "
        "test files for TypeScript and JavaScript code. Reply with a single "
        "fenced code block containing the whole test file."
    )

    FIXER_SYSTEM_PROMPT = (
        "You are an expert test engineer repairing failing unit tests. Change "
        "the tests, never the source under test. Reply with a single fenced "
        "code block containing the whole corrected test file."
    )

    def __init__(self, max_dependencies: int = 15, max_source_chars: int = 20000):
        self.max_dependencies = max_dependencies
        self.max_source_chars = max_source_chars

    def _source_section(self, source_code: str) -> str:
        if len(source_code) > self.max_source_chars:
            return source_code[:self.max_source_chars] + "\n// ... (truncated)"
        return source_code

    @staticmethod
    def _format_signature(signature: FunctionSignature) -> str:
        params = ', '.join(
            f"{p.name}{'?' if p.is_optional else ''}: {p.type}" for p in signature.params
        )
        prefix = 'async ' if signature.is_async else ''
        return f"{prefix}{signature.name}({params}): {signature.return_type}"

    def _format_dependencies(self, dependencies: List[DependencyInfo], test_file: str) -> str:
        lines = []
        for dep in dependencies[:self.max_dependencies]:
            if dep.is_external:
                names = ', '.join(sig.name for sig in dep.function_signatures) or '(side effects only)'
                lines.append(f"- {dep.path} (package): {names}")
                continue
            if dep.is_placeholder:
                lines.append(f"- {to_import_path(dep.path, test_file)} ({dep.resolution}, no details)")
                continue
            lines.append(f"- {to_import_path(dep.path, test_file)}")
            for signature in dep.function_signatures:
                lines.append(f"    {self._format_signature(signature)}")
            for type_info in dep.types[:5]:
                lines.append(f"    {type_info.kind} {type_info.name}")
        return '\n'.join(lines) if lines else '(none)'

    def build_generation_prompt(
        self,
        analysis: AnalysisOutput,
        framework: TestFramework,
        test_file: str,
    ) -> str:
        """
        Build the prompt asking for a new test file.

        Parameters
        ----------
        analysis : AnalysisOutput
            Analyzed source file and its dependencies.
        framework : TestFramework
            Framework the tests must use.
        test_file : str
            Path the test will be written to; import paths are relative to it.

        Returns
        -------
        str
            The complete prompt.
        """
        exports = ', '.join(e.name for e in analysis.exports) or '(none)'
        signatures = '\n'.join(
            f"- {self._format_signature(s)}" for s in analysis.function_signatures
        ) or '(none)'
        import_path = to_import_path(analysis.source_file, test_file)

        return f"""Write a {framework.value} test file for the {analysis.language} module below.

## Module
Path: {analysis.source_file}
Import it in the test as: '{import_path}'
Exports: {exports}

Functions:
{signatures}

Dependencies (mock every package and every local module with functions):
{self._format_dependencies(analysis.dependencies, test_file)}

## Source
```{analysis.language}
{self._source_section(analysis.source_code)}
```

## Requirements
- {self.FRAMEWORK_CONVENTIONS[framework]}
- Relative imports must end in '.js' (ESM).
- Cover normal behaviour, edge cases (empty, null/undefined, boundaries) and error paths.
- Await every promise assertion (.resolves/.rejects).
- No console output, no .only or .skip.
"""

    def build_fix_prompt(
        self,
        test_code: str,
        source_code: str,
        failures: List[TestFailure],
        analyses: List[FailureAnalysis],
        previous_fixes: List[FixDescription],
        framework: TestFramework,
        attempt: int,
        max_retries: int,
    ) -> str:
        """Build the prompt asking for a corrected test file."""
        failure_lines = []
        for failure in failures:
            failure_lines.append(f"### {failure.test_name}")
            failure_lines.append(f"Error: {failure.error_message}")
            if failure.expected is not None:
                failure_lines.append(f"Expected: {failure.expected}")
            if failure.actual is not None:
                failure_lines.append(f"Received: {failure.actual}")
            if failure.stack_trace:
                failure_lines.append(f"Stack:\n{failure.stack_trace}")

        analysis_lines = [
            f"- {a.test_name}: {a.error_type} ({a.root_cause}). Try: {a.suggested_fix}"
            for a in analyses
        ]
        history_lines = [
            f"- {fix.test_name}: {fix.issue} -> {fix.fix}" for fix in previous_fixes
        ]

        return f"""Fix the failing {framework.value} tests (attempt {attempt} of {max_retries}).

## Failures
{chr(10).join(failure_lines) or '(none parsed)'}

## Diagnosis
{chr(10).join(analysis_lines) or '(none)'}

## Fixes already tried (do not repeat them)
{chr(10).join(history_lines) or '(none)'}

## Current test file
```typescript
{test_code}
```

## Source under test
```typescript
{self._source_section(source_code)}
```

Keep passing tests unchanged. {self.FRAMEWORK_CONVENTIONS[framework]}
"""
