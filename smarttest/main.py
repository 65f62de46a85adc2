"""Command-line interface for smarttest.

Subcommands:

- generate: write (and optionally run and repair) tests for one source file
- scan: report untested files under a directory in processing order
- batch: generate tests for every untested file under a directory
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from . import __version__
from .analysis.codebase_scanner import CodebaseScanner, format_batch_result, format_scan_result
from .errors import ExitCode, SmartTestError, assert_args, format_error
from .models.pipeline import GenerationOptions, GenerationResult, ProgressUpdate
from .models.run_result import TestFramework
from .parsers.typescript_parser import TypeScriptParser
from .pipeline.agents import SourceAnalyzer, TestFixer, TestWriter
from .pipeline.orchestrator import Orchestrator
from .providers.claude_client import ClaudeClient
from .runner.test_runner import TestRunner
from .utils.config import SmartTestConfig, load_config


def create_orchestrator(config: SmartTestConfig, verbose: bool = False) -> Orchestrator:
    """Create an Orchestrator wired to the Claude backend.

    Args:
        config: Loaded project configuration.
        verbose: Print phase transitions to stderr.

    Returns:
        Orchestrator: Configured orchestrator instance.
    """
    provider = ClaudeClient(model=config.model, timeout=config.timeout)
    return Orchestrator(
        analyzer=SourceAnalyzer(TypeScriptParser()),
        writer=TestWriter(provider, max_tokens=config.max_tokens),
        fixer=TestFixer(provider, max_tokens=config.max_tokens),
        runner=TestRunner(timeout=config.test_timeout),
        on_progress=print_progress if verbose else None,
    )


def print_progress(update: ProgressUpdate) -> None:
    counter = f" [{update.current}/{update.total}]" if update.current is not None else ""
    print(f"[{update.phase.value}]{counter} {update.file}: {update.message}", file=sys.stderr)


def build_options(args: argparse.Namespace, config: SmartTestConfig) -> GenerationOptions:
    """Merge command-line flags over the loaded configuration."""
    assert_args(
        args.fix or not args.run,
        "--run requires --fix: generated tests are only run to drive the repair loop",
    )
    return config.to_generation_options(
        framework=TestFramework.from_value(args.framework) if args.framework else None,
        output_dir=args.output_dir,
        run=args.run or args.fix,
        fix=args.fix,
        max_retries=args.max_retries,
        timeout=args.timeout,
        verbose=args.verbose,
    )


def format_generation_summary(result: GenerationResult) -> str:
    lines = [
        f"Source:     {result.source_file}",
        f"Test file:  {result.test_file}",
        f"Tests:      {result.test_count} ({len(result.edge_cases)} edge case(s))",
        f"Validation: {'passed' if result.validation_passed else 'failed'} "
        f"(score {result.quality_score:.0f}/100)",
    ]
    if result.tests_ran:
        status = "passing" if result.success else f"{result.remaining_failures} failing"
        lines.append(f"Test run:   {status} after {result.healing_attempts} fix attempt(s)")
    lines.append(
        f"Duration:   {result.metrics.total_duration:.1f}s, "
        f"{result.metrics.llm_calls} backend call(s)"
    )
    for error in result.errors:
        lines.append(f"  ! {error.agent}/{error.phase}: {error.message}")
    return '\n'.join(lines)


def _report_error(error: Exception, verbose: bool) -> int:
    print(format_error(error, verbose), file=sys.stderr)
    if verbose:
        import traceback

        traceback.print_exc(file=sys.stderr)
    if isinstance(error, SmartTestError):
        return int(error.code)
    return int(ExitCode.GENERATION_FAILED)


def cmd_generate(args: argparse.Namespace, config: SmartTestConfig) -> int:
    """Handle the generate subcommand.

    Args:
        args: Parsed command-line arguments.
        config: Loaded project configuration.

    Returns:
        ExitCode value of the generation result.
    """
    try:
        options = build_options(args, config)
        orchestrator = create_orchestrator(config, args.verbose)
        result = asyncio.run(orchestrator.generate(args.source, options))

        if args.format == "json":
            print(json.dumps(result.to_dict(), indent=2))
        else:
            print(format_generation_summary(result))

        return int(result.exit_code)

    except Exception as e:
        return _report_error(e, args.verbose)


def cmd_scan(args: argparse.Namespace, config: SmartTestConfig) -> int:
    """Handle the scan subcommand."""
    try:
        scanner = CodebaseScanner(TypeScriptParser())
        analysis = scanner.analyze(
            args.directory,
            include=config.include or None,
            exclude=config.exclude or None,
        )

        if args.format == "json":
            data = analysis.scan.to_dict()
            data["processing_order"] = analysis.processing_order
            data["circular_dependencies"] = analysis.graph.circular_dependencies
            print(json.dumps(data, indent=2))
        else:
            print(format_scan_result(analysis.scan))
            if analysis.graph.circular_dependencies:
                print("")
                print("Circular dependencies:")
                for cycle in analysis.graph.circular_dependencies:
                    print("  " + " -> ".join(cycle + cycle[:1]))

        return 0

    except Exception as e:
        return _report_error(e, args.verbose)


def cmd_batch(args: argparse.Namespace, config: SmartTestConfig) -> int:
    """Handle the batch subcommand.

    Untested files are processed leaves-first so that a module's
    dependencies get their tests before the module itself.

    Returns:
        0 when every file succeeded, otherwise GENERATION_FAILED.
    """
    try:
        options = build_options(args, config)
        orchestrator = create_orchestrator(config, args.verbose)
        scanner = CodebaseScanner(
            TypeScriptParser(),
            on_progress=print_progress if args.verbose else None,
        )
        analysis = scanner.analyze(
            args.directory,
            include=config.include or None,
            exclude=config.exclude or None,
        )
        files = analysis.processing_order
        if args.limit is not None:
            files = files[:args.limit]

        if not files:
            print("No untested files found")
            return 0

        parallel = args.parallel or config.parallel
        result = asyncio.run(scanner.process(
            files,
            lambda file: orchestrator.generate(file, options),
            parallel=parallel,
            stop_on_error=args.stop_on_error,
        ))

        if args.format == "json":
            print(json.dumps(result.to_dict(), indent=2))
        else:
            print(format_batch_result(result))

        return 0 if result.failed_count == 0 else int(ExitCode.GENERATION_FAILED)

    except Exception as e:
        return _report_error(e, args.verbose)


def _add_generation_arguments(subparser: argparse.ArgumentParser) -> None:
    subparser.add_argument(
        "--framework",
        choices=[f.value for f in TestFramework],
        default=None,
        help="Test framework (default: from config, else vitest)",
    )
    subparser.add_argument(
        "--output-dir", default=None, help="Directory for generated test files"
    )
    subparser.add_argument(
        "--run", action="store_true", help="Run the generated tests (requires --fix)"
    )
    subparser.add_argument(
        "--fix",
        action="store_true",
        help="Repair failing tests in a bounded loop (implies --run)",
    )
    subparser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Maximum fix attempts (default: 3)",
    )
    subparser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds allowed per backend call (default: 120)",
    )


def main(argv: list | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv).

    Returns:
        Exit code (see ExitCode).
    """
    parser = argparse.ArgumentParser(
        prog="smarttest",
        description="Generate, run and repair unit tests for TypeScript and JavaScript code",
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Generate command
    generate_parser = subparsers.add_parser(
        "generate", help="Generate tests for a single source file"
    )
    generate_parser.add_argument("source", help="Source file to test")
    _add_generation_arguments(generate_parser)
    generate_parser.add_argument(
        "--format",
        choices=["json", "summary"],
        default="summary",
        help="Output format (default: summary)",
    )
    generate_parser.add_argument(
        "--verbose", action="store_true", help="Enable verbose output"
    )

    # Scan command
    scan_parser = subparsers.add_parser(
        "scan", help="List untested source files in processing order"
    )
    scan_parser.add_argument("directory", help="Directory to scan")
    scan_parser.add_argument(
        "--format",
        choices=["json", "summary"],
        default="summary",
        help="Output format (default: summary)",
    )
    scan_parser.add_argument(
        "--verbose", action="store_true", help="Enable verbose output"
    )

    # Batch command
    batch_parser = subparsers.add_parser(
        "batch", help="Generate tests for every untested file in a directory"
    )
    batch_parser.add_argument("directory", help="Directory to process")
    _add_generation_arguments(batch_parser)
    batch_parser.add_argument(
        "--parallel",
        type=int,
        default=None,
        help="Files processed concurrently (default: from config, else 1)",
    )
    batch_parser.add_argument(
        "--stop-on-error",
        action="store_true",
        help="Stop after the first failed file",
    )
    batch_parser.add_argument(
        "--limit", type=int, default=None, help="Process at most this many files"
    )
    batch_parser.add_argument(
        "--format",
        choices=["json", "summary"],
        default="summary",
        help="Output format (default: summary)",
    )
    batch_parser.add_argument(
        "--verbose", action="store_true", help="Enable verbose output"
    )

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return int(ExitCode.INVALID_ARGS)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_config(str(Path.cwd()))
    except SmartTestError as e:
        print(format_error(e, args.verbose), file=sys.stderr)
        return int(e.code)

    if args.command == "generate":
        return cmd_generate(args, config)
    elif args.command == "scan":
        return cmd_scan(args, config)
    elif args.command == "batch":
        return cmd_batch(args, config)

    return int(ExitCode.INVALID_ARGS)


if __name__ == "__main__":
    sys.exit(main())
