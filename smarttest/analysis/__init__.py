"""Dependency resolution and codebase scanning."""

from .codebase_scanner import CodebaseScanner
from .dependency_resolver import DependencyResolver, topological_sort

__all__ = ['CodebaseScanner', 'DependencyResolver', 'topological_sort']
