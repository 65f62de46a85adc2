"""Per-file generation pipeline and its collaborators."""

from .agents import SourceAnalyzer, TestFixer, TestWriter
from .orchestrator import Orchestrator

__all__ = ['Orchestrator', 'SourceAnalyzer', 'TestFixer', 'TestWriter']
