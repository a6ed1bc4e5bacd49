"""
MPP CLI Entrypoint.

This module provides the command-line interface for the MPP parser. It parses
source files or inline strings and prints the result, maintains JSON snapshot
files for a corpus of sample programs, and launches the interactive shell.

Features:
    - Read source from `.mpp`, `.pl` or `.pm` files or inline strings.
    - Print the AST as S-expressions or JSON, or the raw tokens or lexemes.
    - List only the Error nodes with their positions.
    - Regenerate or check `<name>.json` snapshots for every `*.mpp` in a directory.
    - Launch the REPL when run without arguments.

Example usage:
    mpp script.mpp
    mpp -s 'my $x = 1 + 2;' --format json
    mpp --snapshot tests/corpus --check
    mpp --repl --verbose

Functions:
    run_mpp(source, is_string=False, output_format="sexpr", errors_only=False) -> list[ASTNode]:
        Parses one source and prints it in the requested format.

    run_snapshots(directory, check=False) -> int:
        Writes or compares snapshot files, returning the number of mismatches.

    main() -> None:
        Parses CLI arguments and invokes the appropriate action.
"""

import argparse
import glob
import json
import logging
import os
import sys
from collections.abc import Iterable

from mpp.mpp_ast import ASTNode, Error
from mpp.mpp_lexemes import LexemeStream
from mpp.mpp_lexer import CharacterStream, Lexer
from mpp.mpp_parser import parse
from mpp.mpp_printer import format_program

logger = logging.getLogger(__name__)

SOURCE_SUFFIXES = (".mpp", ".pl", ".pm")
OUTPUT_FORMATS = ("sexpr", "json", "tokens", "lexemes")


def to_json(nodes: list[ASTNode]) -> str:
    return json.dumps([node.to_dict() for node in nodes], indent=2) + "\n"


def run_mpp(
    source: str,
    is_string: bool = False,
    output_format: str = "sexpr",
    errors_only: bool = False,
) -> list[ASTNode]:
    """
    Run the MPP pipeline on one source and print the result.

    Args:
        source (str): MPP source code or a path to a source file.
        is_string (bool): If True, treats `source` as raw code instead of a file path.
        output_format (str): One of 'sexpr', 'json', 'tokens' or 'lexemes'.
        errors_only (bool): If True, print only the Error nodes with their positions.

    Returns:
        list[ASTNode]: The parsed statements (empty for 'tokens' and 'lexemes').

    Raises:
        ValueError: If `is_string` is False and the file suffix is not supported,
            or if `output_format` is unknown.
    """
    if not is_string and not source.endswith(SOURCE_SUFFIXES):
        raise ValueError("Only .mpp, .pl and .pm files are supported.")
    if output_format not in OUTPUT_FORMATS:
        raise ValueError(f"Unknown output format: {output_format}")
    if not is_string:
        # The file object is an iterable of lines, which the scanner pulls lazily.
        with open(source, encoding="utf-8") as f:
            return _emit(f, output_format, errors_only)
    return _emit(source, output_format, errors_only)


def _emit(
    source: str | Iterable[str], output_format: str, errors_only: bool
) -> list[ASTNode]:
    if output_format == "tokens":
        for tok in Lexer(CharacterStream(source)):
            print(f"{tok.line}:{tok.col}\t{tok.type}\t{tok.value!r}")
        return []
    if output_format == "lexemes":
        for lexeme in LexemeStream(Lexer(CharacterStream(source))):
            print(f"{lexeme.line}:{lexeme.col}\t{lexeme.category}\t{lexeme.value!r}")
        return []

    nodes = parse(source)
    logger.debug("parsed %d statements", len(nodes))

    if errors_only:
        for node in nodes:
            for child in node.walk():
                if isinstance(child, Error):
                    print(f"{child.line}:{child.col}: {child.error_kind}: {child.message}")
    elif output_format == "json":
        print(to_json(nodes), end="")
    else:
        print(format_program(nodes))
    return nodes


def run_snapshots(directory: str, check: bool = False) -> int:
    """
    Regenerate or verify JSON snapshots for every `*.mpp` file in `directory`.

    Args:
        directory (str): Folder holding the corpus inputs.
        check (bool): Compare with the existing `<name>.json` instead of writing it.

    Returns:
        int: Number of missing or mismatching snapshots (always 0 when writing).
    """
    mismatches = 0
    for path in sorted(glob.glob(os.path.join(directory, "*.mpp"))):
        with open(path, encoding="utf-8") as f:
            rendered = to_json(parse(f))
        expected_path = os.path.splitext(path)[0] + ".json"
        name = os.path.basename(path)

        if not check:
            with open(expected_path, "w", encoding="utf-8") as f:
                f.write(rendered)
            print(f"[wrote] {os.path.basename(expected_path)}")
            continue

        if not os.path.exists(expected_path):
            print(f"[missing] {name}")
            mismatches += 1
            continue
        with open(expected_path, encoding="utf-8") as f:
            if f.read() == rendered:
                print(f"[ok] {name}")
            else:
                print(f"[mismatch] {name}")
                mismatches += 1
    return mismatches


def main() -> None:
    """
    Entry point for the MPP CLI.

    Parses command-line arguments and dispatches to the appropriate mode:
    - Launches the REPL if no arguments are passed or `--repl` is specified.
    - Regenerates or checks snapshots with `--snapshot DIR [--check]`.
    - Otherwise, parses the source and prints it.

    Supported flags:
        - `-s`, `--string`: Interpret source as a raw string instead of a file path.
        - `-f`, `--format`: Output format ('sexpr', 'json', 'tokens', 'lexemes').
        - `--errors-only`: Print only Error nodes with their positions.
        - `--snapshot DIR`: Write `<name>.json` next to every `*.mpp` in DIR.
        - `--check`: With `--snapshot`, compare instead of writing; exit 1 on mismatch.
        - `--repl`: Launch the interactive REPL.
        - `-v`, `--verbose`: Debug logging, and lexeme listing in the REPL.
    """
    if len(sys.argv) == 1:
        # No args passed: open REPL instead
        from mpp.mpp_repl import start_repl

        start_repl()
        return
    parser = argparse.ArgumentParser(prog="mpp")
    parser.add_argument("source", nargs="?", help="Filename or raw source (with -s)")
    parser.add_argument(
        "-s", "--string", action="store_true", help="Interpret source as literal string"
    )
    parser.add_argument(
        "-f",
        "--format",
        dest="output_format",
        choices=OUTPUT_FORMATS,
        default="sexpr",
        help="Output format (default: sexpr)",
    )
    parser.add_argument(
        "--errors-only", action="store_true", help="Only list Error nodes"
    )
    parser.add_argument(
        "--snapshot", metavar="DIR", help="Regenerate JSON snapshots for DIR/*.mpp"
    )
    parser.add_argument(
        "--check", action="store_true", help="Compare snapshots instead of writing"
    )
    parser.add_argument(
        "--repl", action="store_true", help="Launch interactive REPL"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if args.snapshot:
        if run_snapshots(args.snapshot, check=args.check):
            sys.exit(1)
        return

    if args.repl or args.source is None:
        from mpp.mpp_repl import start_repl

        start_repl(verbose=args.verbose)
        return

    try:
        run_mpp(
            source=args.source,
            is_string=args.string,
            output_format=args.output_format,
            errors_only=args.errors_only,
        )
    except OSError as e:
        print(f"[error] >>> {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__" and not any("pytest" in arg for arg in sys.argv):
    main()
