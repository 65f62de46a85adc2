"""Project configuration loaded from .smarttest.json and environment variables."""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import InvalidArgsError
from ..models.pipeline import GenerationOptions
from ..models.run_result import TestFramework

logger = logging.getLogger(__name__)

CONFIG_FILENAME = '.smarttest.json'

# Environment variable -> config field
ENV_OVERRIDES = {
    'SMARTTEST_FRAMEWORK': 'framework',
    'SMARTTEST_MAX_RETRIES': 'max_retries',
    'SMARTTEST_TIMEOUT': 'timeout',
    'SMARTTEST_TEST_TIMEOUT': 'test_timeout',
    'SMARTTEST_OUTPUT_DIR': 'output_dir',
    'SMARTTEST_MODEL': 'model',
}


@dataclass
class SmartTestConfig:
    """Project-level settings.

    Attributes:
        framework: Default test framework.
        output_dir: Directory for generated tests (None = next to the source).
        test_suffix: Suffix inserted before the extension of test files.
        max_retries: Upper bound on self-healing fix attempts.
        timeout: Seconds per backend call (120 s).
        test_timeout: Seconds per test run (60 s).
        provider_retries: Retries for recoverable backend errors.
        model: Claude model used for generation.
        max_tokens: Token budget per backend call.
        parallel: Files processed concurrently in batch mode.
        include: fnmatch patterns restricting which files are scanned.
        exclude: fnmatch patterns excluded from scanning.
    """

    framework: str = TestFramework.VITEST.value
    output_dir: Optional[str] = None
    test_suffix: str = '.test'
    max_retries: int = 3
    timeout: float = 120.0
    test_timeout: float = 60.0
    provider_retries: int = 2
    model: str = 'claude-sonnet-4-20250514'
    max_tokens: int = 4096
    parallel: int = 1
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        try:
            TestFramework.from_value(self.framework)
        except ValueError as e:
            raise InvalidArgsError(str(e)) from e
        if self.max_retries < 0:
            raise InvalidArgsError("max_retries must be >= 0")
        if self.timeout <= 0 or self.test_timeout <= 0:
            raise InvalidArgsError("timeouts must be positive")
        if self.parallel < 1:
            raise InvalidArgsError("parallel must be >= 1")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SmartTestConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ', '.join(sorted(unknown)))
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_generation_options(self, **overrides: Any) -> GenerationOptions:
        options = GenerationOptions(
            framework=TestFramework.from_value(self.framework),
            output_dir=self.output_dir,
            test_suffix=self.test_suffix,
            max_retries=self.max_retries,
            timeout=self.timeout,
            test_timeout=self.test_timeout,
            provider_retries=self.provider_retries,
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(options, key, value)
        return options


def _coerce(name: str, raw: str) -> Any:
    target = next(f for f in fields(SmartTestConfig) if f.name == name)
    try:
        if target.type in (int, 'int'):
            return int(raw)
        if target.type in (float, 'float'):
            return float(raw)
    except ValueError:
        raise InvalidArgsError(f"Invalid value for {name}: {raw!r}") from None
    return raw


def load_config(base_path: str = '.', environ: Optional[Dict[str, str]] = None) -> SmartTestConfig:
    """Load configuration for the project rooted at ``base_path``.

    Values from ``.smarttest.json`` are applied first, then SMARTTEST_*
    environment variables.

    Raises:
        InvalidArgsError: If the file is not valid JSON or a value is invalid.
    """
    env = os.environ if environ is None else environ
    data: Dict[str, Any] = {}

    config_path = Path(base_path) / CONFIG_FILENAME
    if config_path.is_file():
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidArgsError(f"Invalid JSON in {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise InvalidArgsError(f"{config_path} must contain a JSON object")
        logger.debug("Loaded config from %s", config_path)

    for var, name in ENV_OVERRIDES.items():
        if env.get(var):
            data[name] = _coerce(name, env[var])

    return SmartTestConfig.from_dict(data)
