"""Static quality validation and mechanical auto-fixing of generated tests."""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from ..models.dependency import RESOLVED, DependencyInfo
from ..models.quality import ImportIssue, LintError, MockIssue, QualityReport
from ..models.run_result import TestFramework
from ..utils.file_utils import (
    has_module_suffix,
    is_external_import,
    resolve_local_import,
    strip_source_extension,
    to_import_path,
)
from .structure_checker import check_structure

logger = logging.getLogger(__name__)

TESTING_UTILITIES = {
    'vitest',
    'jest',
    '@jest/globals',
    'mocha',
    'chai',
    'sinon',
    'expect',
    '@testing-library/react',
    '@testing-library/jest-dom',
    '@testing-library/user-event',
}

# Score penalties
SYNTAX_ERROR_PENALTY = 15
WARNING_PENALTY = 3
IMPORT_ERROR_PENALTY = 10
MISSING_MOCK_PENALTY = 8
MOCK_ISSUE_PENALTY = 3


@dataclass(frozen=True)
class LintRule:
    rule_id: str
    pattern: 're.Pattern[str]'
    message: str
    severity: str
    fixable: bool


LINT_RULES = [
    LintRule('no-explicit-any', re.compile(r':\s*any\b'),
             "Avoid explicit 'any' types in tests", 'warning', False),
    LintRule('no-console', re.compile(r'\bconsole\.(?:log|warn|error)\s*\('),
             "Remove console statements from tests", 'warning', True),
    LintRule('no-focused-tests', re.compile(r'\b(?:it|test|describe|context)\.(?:only|skip)\s*\('),
             "Focused or skipped test left in suite", 'warning', True),
]

_IMPORT_STATEMENT_RE = re.compile(
    r'^[ \t]*import\s+(?:type\s+)?(?:[\w$*{}\s,]+?\s+from\s+)?([\'"])([^\'"]+)\1;?[ \t]*$',
    re.MULTILINE,
)
_MOCK_RE = re.compile(r'\b(?:vi|jest)\.(?:mock|doMock)\s*\(\s*[\'"`]([^\'"`]+)[\'"`]')
_EXPECT_RE = re.compile(r'\bexpect\s*\(')
_ASYNC_MATCHER_RE = re.compile(r'\s*\.(?:rejects|resolves)\b')
_CONSOLE_LINE_RE = re.compile(r'^[ \t]*console\.(?:log|warn|error)\s*\(.*\);?[ \t]*(?:\n|$)', re.MULTILINE)
_FOCUS_RE = re.compile(r'\b(it|test|describe|context)\.(?:only|skip)\s*\(')
_TEST_CASE_RE = re.compile(r'\b(?:it|test)\s*\(')


def is_testing_utility(module: str) -> bool:
    return module in TESTING_UTILITIES or module.startswith('@testing-library/')


def _line_col(code: str, offset: int) -> Tuple[int, int]:
    line = code.count('\n', 0, offset) + 1
    return line, offset - (code.rfind('\n', 0, offset) + 1) + 1


def _closing_paren(code: str, open_index: int) -> int:
    depth = 0
    for index in range(open_index, len(code)):
        if code[index] == '(':
            depth += 1
        elif code[index] == ')':
            depth -= 1
            if depth == 0:
                return index
    return -1


def _unawaited_async_expects(code: str) -> List[int]:
    """Offsets of expect(...).rejects/.resolves chains with no await or return."""
    offsets = []
    for match in _EXPECT_RE.finditer(code):
        close = _closing_paren(code, match.end() - 1)
        if close == -1 or not _ASYNC_MATCHER_RE.match(code, close + 1):
            continue
        preceding = code[max(0, match.start() - 20):match.start()]
        if 'await' in preceding or 'return' in preceding:
            continue
        offsets.append(match.start())
    return offsets


class QualityAssuranceValidator:
    """Checks generated test code before it is executed.

    Four passes run over the code: a structure scan, rule checks, import
    validation and mock completeness. Optional auto-fix applies the
    mechanical fixes; the original code is never discarded, the fixed
    version is returned alongside it.
    """

    def validate(
        self,
        test_code: str,
        source_file: str,
        dependencies: List[DependencyInfo],
        framework: TestFramework = TestFramework.VITEST,
        auto_fix: bool = False,
        test_file: Optional[str] = None,
    ) -> QualityReport:
        """Validate ``test_code`` written for ``source_file``.

        Args:
            test_code: Generated test source.
            source_file: File under test.
            dependencies: Resolved dependencies of the source file.
            framework: Framework the tests target; selects the mock API.
            auto_fix: Apply mechanical fixes and return the fixed code.
            test_file: Where the test will be written. Relative imports are
                resolved from here; defaults to a sibling of ``source_file``.

        Returns:
            QualityReport describing ``test_code`` as given. ``fixed_code``
            is set only when auto-fix changed something.
        """
        base_file = test_file or source_file
        lint_errors = check_structure(test_code) + self._check_rules(test_code)
        import_errors = self._check_imports(test_code, base_file)
        mock_issues = self._check_mocks(test_code, base_file, dependencies, framework)

        fixed_code = None
        fixes_applied: List[str] = []
        if auto_fix:
            fixed, fixes_applied = self._apply_fixes(test_code, import_errors, mock_issues, framework)
            if fixed != test_code:
                fixed_code = fixed

        return QualityReport(
            score=self._score(lint_errors, import_errors, mock_issues),
            lint_errors=lint_errors,
            import_errors=import_errors,
            mock_issues=mock_issues,
            suggestions=self._suggestions(test_code, import_errors, mock_issues),
            fixed_code=fixed_code,
            fixes_applied=fixes_applied,
        )

    def _check_rules(self, code: str) -> List[LintError]:
        errors = []
        for rule in LINT_RULES:
            for match in rule.pattern.finditer(code):
                line, column = _line_col(code, match.start())
                errors.append(LintError(line, column, rule.message, rule.rule_id, rule.severity, rule.fixable))
        for offset in _unawaited_async_expects(code):
            line, column = _line_col(code, offset)
            errors.append(LintError(
                line, column,
                "Async assertions (.rejects/.resolves) must be awaited",
                'require-await', 'error', True,
            ))
        return errors

    def _check_imports(self, code: str, base_file: str) -> List[ImportIssue]:
        issues = []
        seen: Set[str] = set()
        for match in _IMPORT_STATEMENT_RE.finditer(code):
            path = match.group(2)
            if is_external_import(path) or path in seen:
                continue
            seen.add(path)
            if resolve_local_import(path, base_file) is None:
                issues.append(ImportIssue(path, f"Cannot resolve import '{path}'"))
            elif not has_module_suffix(path):
                issues.append(ImportIssue(path, "Missing .js extension for ESM compatibility", path + '.js'))
        return issues

    def _mock_key(self, module: str, base_file: str) -> str:
        if is_external_import(module):
            return module
        resolved = resolve_local_import(module, base_file)
        if resolved is None:
            resolved = Path(base_file).resolve().parent / module
        return strip_source_extension(str(Path(os.path.normpath(resolved)).resolve()))

    def _required_mocks(
        self, dependencies: List[DependencyInfo], base_file: str
    ) -> Dict[str, Tuple[str, List[str]]]:
        """Mock key -> (specifier to mock, function names) for each dependency needing a mock."""
        required: Dict[str, Tuple[str, List[str]]] = {}
        for dep in dependencies:
            names = [sig.name for sig in dep.function_signatures]
            if dep.is_external:
                # Type-only and side-effect imports have nothing to replace
                if is_testing_utility(dep.path) or not names:
                    continue
                required.setdefault(dep.path, (dep.path, names))
            elif dep.resolution == RESOLVED and names:
                key = strip_source_extension(str(Path(dep.path).resolve()))
                required.setdefault(key, (to_import_path(dep.path, base_file), names))
        return required

    def _check_mocks(
        self,
        code: str,
        base_file: str,
        dependencies: List[DependencyInfo],
        framework: TestFramework,
    ) -> List[MockIssue]:
        if framework == TestFramework.MOCHA:
            # Mocha has no module mock registry
            return []

        mock_fn = 'jest.mock' if framework == TestFramework.JEST else 'vi.mock'
        mocked = {self._mock_key(m, base_file): m for m in _MOCK_RE.findall(code)}
        required = self._required_mocks(dependencies, base_file)

        issues = []
        for key, (specifier, names) in required.items():
            if key not in mocked:
                issues.append(MockIssue(
                    mock_path=specifier,
                    function_name=', '.join(names[:5]),
                    issue='missing',
                    suggestion=f"{mock_fn}('{specifier}')",
                ))
        for key, module in mocked.items():
            if key not in required and not is_testing_utility(module):
                issues.append(MockIssue(
                    mock_path=module,
                    function_name='*',
                    issue='unmatched',
                    suggestion="Mock does not match any dependency of the source file",
                ))
        return issues

    def _apply_fixes(
        self,
        code: str,
        import_errors: List[ImportIssue],
        mock_issues: List[MockIssue],
        framework: TestFramework,
    ) -> Tuple[str, List[str]]:
        fixes: List[str] = []

        for issue in import_errors:
            if not issue.is_suffix_only:
                continue
            pattern = re.compile(r'((?:from|import)\s+)([\'"])' + re.escape(issue.import_path) + r'\2')
            code, count = pattern.subn(lambda m: f"{m.group(1)}{m.group(2)}{issue.suggestion}{m.group(2)}", code)
            if count:
                fixes.append(f"Added .js extension to import '{issue.import_path}'")

        missing = [issue for issue in mock_issues if issue.issue == 'missing']
        if missing:
            mock_fn = 'jest.mock' if framework == TestFramework.JEST else 'vi.mock'
            block = ''.join(f"{mock_fn}('{issue.mock_path}');\n" for issue in missing)
            imports = list(_IMPORT_STATEMENT_RE.finditer(code))
            if imports:
                insert_at = imports[-1].end()
                code = code[:insert_at] + '\n\n' + block.rstrip('\n') + code[insert_at:]
            else:
                code = block + '\n' + code
            for issue in missing:
                fixes.append(f"Added mock for '{issue.mock_path}'")

        code, count = _CONSOLE_LINE_RE.subn('', code)
        if count:
            fixes.append(f"Removed {count} console statement(s)")

        code, count = _FOCUS_RE.subn(lambda m: m.group(1) + '(', code)
        if count:
            fixes.append(f"Removed {count} .only/.skip modifier(s)")

        offsets = _unawaited_async_expects(code)
        for offset in reversed(offsets):
            code = code[:offset] + 'await ' + code[offset:]
        if offsets:
            fixes.append(f"Awaited {len(offsets)} async assertion(s)")

        return code, fixes

    @staticmethod
    def _score(
        lint_errors: List[LintError],
        import_errors: List[ImportIssue],
        mock_issues: List[MockIssue],
    ) -> float:
        score = 100.0
        for error in lint_errors:
            score -= SYNTAX_ERROR_PENALTY if error.severity == 'error' else WARNING_PENALTY
        score -= IMPORT_ERROR_PENALTY * len(import_errors)
        for issue in mock_issues:
            score -= MISSING_MOCK_PENALTY if issue.issue == 'missing' else MOCK_ISSUE_PENALTY
        return max(0.0, min(100.0, score))

    @staticmethod
    def _suggestions(
        code: str,
        import_errors: List[ImportIssue],
        mock_issues: List[MockIssue],
    ) -> List[str]:
        suggestions = []
        missing = [issue.mock_path for issue in mock_issues if issue.issue == 'missing']
        if missing:
            suggestions.append(f"Add mock registrations for: {', '.join(missing)}")
        if import_errors:
            suggestions.append("Fix unresolved or suffix-less relative imports")
        if not _TEST_CASE_RE.search(code):
            suggestions.append("No test cases found; add it() or test() blocks")
        elif 'expect(' not in code and 'assert' not in code:
            suggestions.append("Tests contain no assertions")
        if 'describe(' not in code:
            suggestions.append("Group related tests in describe blocks")
        if _MOCK_RE.search(code) and 'beforeEach' not in code:
            suggestions.append("Reset mocks between tests in a beforeEach hook")
        return suggestions


def format_report(report: QualityReport) -> str:
    """Render a QualityReport as plain text."""
    status = 'PASSED' if report.is_valid else 'FAILED'
    lines = [f"Quality score: {report.score:.0f}/100 ({status})"]

    if report.lint_errors:
        lines.append("Lint:")
        for error in report.lint_errors:
            lines.append(f"  {error.line}:{error.column} {error.severity} {error.message} [{error.rule_id}]")
    if report.import_errors:
        lines.append("Imports:")
        for issue in report.import_errors:
            hint = f" (use '{issue.suggestion}')" if issue.suggestion else ''
            lines.append(f"  {issue.import_path}: {issue.message}{hint}")
    if report.mock_issues:
        lines.append("Mocks:")
        for issue in report.mock_issues:
            lines.append(f"  {issue.mock_path} [{issue.issue}] {issue.function_name}")
    if report.fixes_applied:
        lines.append("Fixes applied:")
        lines.extend(f"  - {fix}" for fix in report.fixes_applied)
    if report.suggestions:
        lines.append("Suggestions:")
        lines.extend(f"  - {s}" for s in report.suggestions)
    return '\n'.join(lines)
