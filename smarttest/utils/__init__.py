"""Utility modules for path handling and configuration."""

from .config import SmartTestConfig, load_config
from .file_utils import (
    detect_language,
    get_test_file_path,
    is_external_import,
    is_test_file,
    resolve_local_import,
)

__all__ = [
    "SmartTestConfig",
    "detect_language",
    "get_test_file_path",
    "is_external_import",
    "is_test_file",
    "load_config",
    "resolve_local_import",
]
