"""Pipeline collaborators: source analysis, test writing and test fixing."""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ..analysis.dependency_resolver import DependencyResolver
from ..errors import InvalidArgsError, ParseError, SourceFileNotFoundError, with_timeout
from ..models.pipeline import AnalysisOutput
from ..models.run_result import (
    FailureAnalysis,
    FixDescription,
    FixHistory,
    TestFailure,
    TestFramework,
)
from ..parsers.base_parser import BaseParser
from ..parsers.typescript_parser import TypeScriptParser
from ..providers.base_provider import BaseProvider, GenerateOptions
from ..providers.prompt_builder import PromptBuilder
from ..providers.response_parser import ResponseParser
from ..utils.file_utils import read_text_file

logger = logging.getLogger(__name__)

# Failures classified per fix attempt
MAX_ANALYZED_FAILURES = 3

_TEST_NAME_RE = re.compile(r'\b(?:it|test)\s*\(\s*([\'"`])(.+?)\1')
_MOCK_CALL_RE = re.compile(r'\b(?:vi|jest)\.mock\s*\(\s*[\'"`]([^\'"`]+)[\'"`]')
_EDGE_CASE_RE = re.compile(
    r'\b(edge|empty|null|undefined|invalid|error|throw|boundary|zero|negative|'
    r'large|max|min|missing|overflow|limit)',
    re.IGNORECASE,
)


@dataclass
class GeneratedTests:
    test_code: str
    test_count: int
    edge_cases: List[str] = field(default_factory=list)
    mocks: List[str] = field(default_factory=list)


@dataclass
class FixOutput:
    fixed_code: str
    fixes: List[FixDescription] = field(default_factory=list)
    analyses: List[FailureAnalysis] = field(default_factory=list)


def summarize_test_code(test_code: str) -> GeneratedTests:
    """Count test cases and collect edge-case test names and mocked modules."""
    names = [match.group(2) for match in _TEST_NAME_RE.finditer(test_code)]
    return GeneratedTests(
        test_code=test_code,
        test_count=len(names),
        edge_cases=[name for name in names if _EDGE_CASE_RE.search(name)],
        mocks=_MOCK_CALL_RE.findall(test_code),
    )


_SUGGESTED_FIXES = {
    'import': "Correct the import path or add the '.js' suffix",
    'mock': "Register or configure the mock before the module under test is used",
    'type': "Pass values of the expected type or guard against undefined",
    'async': "Await the promise or return it from the test",
    'test_logic': "Align the expected value with the documented behaviour",
    'source_logic': "Adjust the assertion to the actual behaviour of the source",
}

_CONFIDENCE = {
    'import': 0.8,
    'mock': 0.7,
    'type': 0.6,
    'async': 0.6,
    'test_logic': 0.5,
    'source_logic': 0.3,
}


def infer_error_type(failure: TestFailure) -> str:
    """Classify a failure from its message text."""
    text = f"{failure.error_message} {failure.stack_trace or ''}".lower()
    if any(k in text for k in ('cannot find module', 'failed to resolve import', 'does not provide an export')):
        return 'import'
    if any(k in text for k in ('mock', 'spy', 'tohavebeencalled', 'is not a function')):
        return 'mock'
    if any(k in text for k in ('typeerror', 'cannot read propert', 'is not defined')):
        return 'type'
    if any(k in text for k in ('timeout', 'timed out', 'promise', 'async', 'resolves', 'rejects')):
        return 'async'
    if failure.expected is not None or failure.actual is not None or 'expected' in text:
        return 'test_logic'
    return 'source_logic'


def analyze_failure(failure: TestFailure) -> FailureAnalysis:
    error_type = infer_error_type(failure)
    root_cause = failure.error_message.splitlines()[0][:200] if failure.error_message else 'unknown'
    return FailureAnalysis(
        test_name=failure.test_name,
        error_type=error_type,
        root_cause=root_cause,
        suggested_fix=_SUGGESTED_FIXES[error_type],
        confidence=_CONFIDENCE[error_type],
    )


class SourceAnalyzer:
    """Analyzes a source file and resolves its dependencies.

    A fresh DependencyResolver is created per call, so concurrent analyses
    never share resolution state.
    """

    def __init__(self, parser: Optional[BaseParser] = None, max_depth: int = 10):
        self.parser = parser or TypeScriptParser()
        self.max_depth = max_depth

    def analyze(self, source_file: str) -> AnalysisOutput:
        """
        Raises:
            SourceFileNotFoundError: If the file does not exist.
            InvalidArgsError: If the file type is not supported.
        """
        path = Path(source_file).resolve()
        if not path.is_file():
            raise SourceFileNotFoundError(source_file)
        try:
            structure = self.parser.parse_file(str(path))
        except ValueError as e:
            raise InvalidArgsError(str(e)) from e

        resolver = DependencyResolver(self.parser, self.max_depth)
        resolution = resolver.resolve_dependencies(structure.imports, str(path))
        logger.debug(
            "Resolved %d dependencies of %s (%d local, %d external)",
            len(resolution.dependencies), path, resolution.resolved_count, resolution.external_count,
        )

        return AnalysisOutput(
            source_file=str(path),
            source_code=read_text_file(str(path)),
            language=structure.language,
            imports=structure.imports,
            exports=structure.exports,
            function_signatures=structure.function_signatures,
            dependencies=resolution.dependencies,
            circular_dependencies=resolution.circular_dependencies,
        )


class TestWriter:
    """Generates a test file with one backend call."""

    __test__ = False

    def __init__(
        self,
        provider: BaseProvider,
        prompt_builder: Optional[PromptBuilder] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ):
        self.provider = provider
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def write(
        self,
        analysis: AnalysisOutput,
        framework: TestFramework,
        test_file: str,
        timeout: float = 120.0,
    ) -> GeneratedTests:
        """
        Raises:
            ParseError: If the reply contains no code block. Not retried.
            ProviderError: If the backend call fails.
            OperationTimeoutError: If the call exceeds ``timeout``.
        """
        prompt = self.prompt_builder.build_generation_prompt(analysis, framework, test_file)
        options = GenerateOptions(
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=timeout,
            system_prompt=PromptBuilder.WRITER_SYSTEM_PROMPT,
        )
        response = await with_timeout(
            self.provider.generate(prompt, options), timeout, f"{self.provider.name}.generate"
        )
        try:
            code = ResponseParser.extract_code_block(response)
        except ParseError as e:
            raise ParseError(e.message, analysis.source_file) from e
        return summarize_test_code(code)


class TestFixer:
    """Repairs failing tests with one backend call per attempt.

    Failures are classified locally first; the classification and every
    earlier fix go into the prompt so the backend does not repeat itself.
    """

    __test__ = False

    def __init__(
        self,
        provider: BaseProvider,
        prompt_builder: Optional[PromptBuilder] = None,
        temperature: float = 0.5,
        max_tokens: int = 4096,
    ):
        self.provider = provider
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def fix(
        self,
        test_code: str,
        source_code: str,
        source_file: str,
        failures: List[TestFailure],
        history: FixHistory,
        framework: TestFramework,
        timeout: float = 120.0,
    ) -> FixOutput:
        analyses = [analyze_failure(f) for f in failures[:MAX_ANALYZED_FAILURES]]
        prompt = self.prompt_builder.build_fix_prompt(
            test_code=test_code,
            source_code=source_code,
            failures=failures,
            analyses=analyses,
            previous_fixes=history.previous_fixes(),
            framework=framework,
            attempt=history.current_attempt + 1,
            max_retries=history.max_retries,
        )
        options = GenerateOptions(
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=timeout,
            system_prompt=PromptBuilder.FIXER_SYSTEM_PROMPT,
        )
        response = await with_timeout(
            self.provider.generate(prompt, options), timeout, f"{self.provider.name}.generate"
        )
        try:
            fixed_code = ResponseParser.extract_code_block(response)
        except ParseError as e:
            raise ParseError(e.message, source_file) from e

        fixes = [
            FixDescription(
                test_name=a.test_name,
                issue=a.root_cause,
                fix=a.suggested_fix,
                confidence=a.confidence,
            )
            for a in analyses
        ]
        return FixOutput(fixed_code=fixed_code, fixes=fixes, analyses=analyses)
