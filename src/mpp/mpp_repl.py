"""
MPP interactive shell.

Reads source a line at a time, keeps reading while braces are unbalanced, and
prints every parsed statement as an S-expression (or as JSON in `.json` mode).

Commands:
    .help     list the commands
    .json     toggle JSON output
    .tokens   toggle printing the classified lexemes before the tree
    .exit     leave the shell (also `.quit`, Ctrl-D or Ctrl-C)
"""

import io
import json
import traceback

from mpp.mpp_lexemes import LexemeStream
from mpp.mpp_lexer import CharacterStream, Lexer
from mpp.mpp_parser import Parser
from mpp.mpp_printer import format_node

HELP = """\
.help     show this message
.json     toggle JSON output
.tokens   toggle lexeme listing
.exit     leave the shell (also .quit)"""


def print_traceback() -> None:
    buf = io.StringIO()
    traceback.print_exc(file=buf)
    print("[error] >>>")
    print(buf.getvalue())


def read_source() -> str:
    """Reads one input unit, continuing with `... ` prompts while braces are open."""
    src_lines: list[str] = []
    brace_count = 0
    while True:
        prompt = ">>> " if not src_lines else "... "
        line = input(prompt)
        src_lines.append(line)
        brace_count += line.count("{") - line.count("}")
        if brace_count <= 0:
            break
    return "\n".join(src_lines).strip()


def show_lexemes(src: str) -> None:
    for lexeme in LexemeStream(Lexer(CharacterStream(src))):
        print(f"[lexeme] {lexeme.line}:{lexeme.col} {lexeme.category} {lexeme.value!r}")


def start_repl(verbose: bool = False) -> None:
    """
    Runs the interactive loop until `.exit`, `.quit`, EOF or Ctrl-C.

    Args:
        verbose (bool): Start with the lexeme listing switched on.
    """
    print("MPP REPL. Type .help for commands, .exit or .quit to leave.")
    show_tokens = verbose
    as_json = False

    while True:
        try:
            src = read_source()
            if not src or src.startswith("#"):
                continue
            if src in (".exit", ".quit"):
                print("Exiting MPP REPL.")
                return
            if src == ".help":
                print(HELP)
                continue
            if src == ".json":
                as_json = not as_json
                print(f"[mode] >>> JSON output {'ON' if as_json else 'OFF'}")
                continue
            if src == ".tokens":
                show_tokens = not show_tokens
                print(f"[mode] >>> Lexeme listing {'ON' if show_tokens else 'OFF'}")
                continue

            try:
                if show_tokens:
                    show_lexemes(src)
                for node in Parser.from_source(src):
                    if as_json:
                        print(json.dumps(node.to_dict(), indent=2))
                    else:
                        print(format_node(node))
            except Exception:
                print_traceback()

        except (KeyboardInterrupt, EOFError):
            print("\nExiting MPP REPL.")
            break


__all__ = ["print_traceback", "read_source", "start_repl"]
