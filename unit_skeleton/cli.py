"""Command-line interface for unit-skeleton."""

import argparse
import logging
import sys
from pathlib import Path

from unit_skeleton.analyzer import analyze_file
from unit_skeleton.assembler.test_generator import generate_test_file
from unit_skeleton.assembler.writer import test_path_for, write_generated
from unit_skeleton.engine.sandbox import MaterializationError
from unit_skeleton.engine.structure import ParseError

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Configure logging to stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="unit-skeleton",
        description="Generate a pytest skeleton with inferred mocks for a Python class",
    )
    parser.add_argument(
        "source",
        help="Python file defining the class (test_<name>.py maps to <name>.py)",
    )
    parser.add_argument(
        "--spec",
        "-s",
        action="store_true",
        help="Write the test to test_<name>.py beside the source instead of stdout",
    )
    parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Overwrite an existing test file without asking",
    )
    parser.add_argument(
        "--method",
        "-m",
        help="Only generate the test for this method or accessor",
    )
    parser.add_argument(
        "--class",
        "-c",
        dest="class_name",
        help="Class to analyze when the module defines several",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the inferred mock plan as JSON instead of a test",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log every analyzed expression to stderr",
    )
    return parser


def parse_args(args: list[str]) -> argparse.Namespace:
    """Parse command-line arguments."""
    return create_parser().parse_args(args)


def resolve_source(source: str) -> Path:
    """Map a test module argument back to the module it tests."""
    path = Path(source)
    if path.name.startswith("test_") and path.suffix == ".py":
        original = path.with_name(path.name[len("test_") :])
        logger.info(f"{path} is a test module, using {original}")
        return original
    return path


def run_cli(args: list[str]) -> int:
    """Run the CLI with the given arguments.

    Args:
        args: Command-line arguments (without program name)

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    try:
        parsed = parse_args(args)
    except SystemExit as e:
        return e.code if e.code else 1

    setup_logging(parsed.verbose)

    source = resolve_source(parsed.source)
    if source.suffix != ".py" or not source.is_file():
        print(f"Error: {source} is not a Python file", file=sys.stderr)
        return 1

    try:
        analysis = analyze_file(source, class_name=parsed.class_name)
    except (ParseError, MaterializationError) as e:
        location = f":{e.lineno}" if e.lineno else ""
        print(f"Error: {source}{location}: {e}", file=sys.stderr)
        return 1

    for warning in analysis.all_warnings():
        logger.info(warning)

    if parsed.json:
        print(analysis.to_json())
        return 0

    try:
        content = generate_test_file(analysis, method=parsed.method)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not parsed.spec:
        print(content, end="")
        return 0

    output = test_path_for(source)
    if write_generated(content, output, force=parsed.force):
        print(f"Test written to: {output}", file=sys.stderr)
    else:
        print(f"Not overwriting {output}", file=sys.stderr)
    return 0


def main():
    """Entry point for the CLI."""
    exit_code = run_cli(sys.argv[1:])
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
