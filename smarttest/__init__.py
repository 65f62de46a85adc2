"""SmartTest package.

This package generates, validates, runs and repairs test suites for
TypeScript/JavaScript codebases:
- Dependency resolution and safe processing order across a codebase
- Test generation through a pluggable text-generation backend
- Static quality checks with mechanical auto-fixes
- Test execution for vitest, jest and mocha with a bounded self-healing loop
"""

__version__ = "0.3.0"
