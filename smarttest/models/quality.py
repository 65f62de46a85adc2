"""QualityReport data model for static validation of generated test code."""

from dataclasses import dataclass, field, asdict
from typing import List, Optional


@dataclass
class LintError:
    line: int
    column: int
    message: str
    rule_id: str
    severity: str = 'error'  # 'error' or 'warning'
    fixable: bool = False


@dataclass
class ImportIssue:
    import_path: str
    message: str
    suggestion: Optional[str] = None

    @property
    def is_suffix_only(self) -> bool:
        """True when appending '.js' is the whole fix."""
        return self.suggestion is not None and self.suggestion == self.import_path + '.js'


@dataclass
class MockIssue:
    mock_path: str
    function_name: str
    issue: str  # 'missing' or 'unmatched'
    suggestion: Optional[str] = None


@dataclass
class QualityReport:
    """Outcome of validating one generated test file.

    ``is_valid`` is derived from the issue lists and cannot be set directly:
    the code is valid when it has no error-severity lint errors, no import
    errors and no missing mocks.

    Attributes:
        score: 0-100 summary of the defects found.
        lint_errors: Structure and rule violations.
        import_errors: Unresolvable or suffix-less relative imports.
        mock_issues: Missing or unmatched mock registrations.
        suggestions: Human-readable improvement hints.
        fixed_code: Auto-fixed code, present only when auto-fix changed it.
        fixes_applied: One description per mechanical fix.
    """

    score: float
    lint_errors: List[LintError] = field(default_factory=list)
    import_errors: List[ImportIssue] = field(default_factory=list)
    mock_issues: List[MockIssue] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    fixed_code: Optional[str] = None
    fixes_applied: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        if any(err.severity == 'error' for err in self.lint_errors):
            return False
        if self.import_errors:
            return False
        return not any(issue.issue == 'missing' for issue in self.mock_issues)

    def to_dict(self) -> dict:
        data = asdict(self)
        data['is_valid'] = self.is_valid
        return data
