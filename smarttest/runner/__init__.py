"""Test execution and runner output parsing."""

from .output_parsers import OUTPUT_PARSERS, parse_test_output
from .test_runner import TestRunner, build_test_command, run_tests

__all__ = ['OUTPUT_PARSERS', 'TestRunner', 'build_test_command', 'parse_test_output', 'run_tests']
