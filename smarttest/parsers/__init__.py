"""Source analyzers producing ModuleStructure records."""

from .base_parser import BaseParser
from .typescript_parser import TypeScriptParser

__all__ = ['BaseParser', 'TypeScriptParser']
