"""
Lexical analyzer for the MPP Perl-like language.

This module turns raw source characters into a forward-only stream of tokens:

Classes:
    CharacterStream: Pull-based character reader with line/column tracking.
    Token: A single token with type, value, source location and optional payload.
    Lexer: Converts a CharacterStream into tokens, one `next_token()` call at a time.

Features:
    - Skips whitespace, `#` comments, POD blocks and everything after `__END__`
    - Longest-match recognition of operators and delimiters
    - Recognizes:
        * Identifiers and reserved words (including `Foo::Bar` qualified names)
        * Sigil variables (`$x`, `@list`, `%map`, `&code`, `$Foo::bar`, `$#list`)
        * Numbers (integer, float, exponent, hex/binary/octal)
        * Strings (escape sequences kept verbatim)
        * Quote-word lists (`qw(...)`) split into words at scan time
        * Regex literals (`/.../flags`, `m{...}`, `qr/.../`)
        * Postfix dereference sigils (`->@*`, `->@[...]`)

Scan errors never raise. An unterminated literal or an unknown character is
returned as an ``ERROR`` token carrying a ``message``, and scanning resumes on
the following line (or character) so later tokens stay available.

Example:
    >>> lexer = Lexer(CharacterStream("my $x = 42;"))
    >>> lexer.next_token()
    Token(KEYWORD, my)

Exports:
    - CharacterStream
    - Token
    - Lexer
    - token_hashmap
    - unterminated
"""

import logging
from collections.abc import Iterable, Iterator
from typing import Any

from mpp.mpp_constants import (
    MAX_OPERATOR_LENGTH,
    PAIRED_DELIMITERS,
    REGEX_QUOTE_DELIMITERS,
    RESERVED_WORDS,
    VALUE_KEYWORDS,
    VALUE_TOKEN_TYPES,
    token_hashmap,
)

logger = logging.getLogger(__name__)

# Consumed characters are dropped from the look-ahead buffer past this size.
_COMPACT_THRESHOLD = 4096

# A string source is fed to the buffer in slices of this size.
_CHUNK_SIZE = 8192

_SPECIAL_SCALARS = "@!$/\\&0"


def unterminated(what: str, missing: str) -> str:
    return f"Unterminated {what} (missing {missing})"


class CharacterStream:
    """
    A pull-based character reader with line and column tracking.

    The source may be a complete string or any iterable of text chunks, such as
    an open file object. Chunks are pulled only when a `peek` or `next` call
    needs them, so inputs larger than memory can be scanned.

    Attributes:
        position (int): Absolute index of the next unread character.
        line (int): Current line number (1-indexed).
        column (int): Current column number (1-indexed).
    """

    def __init__(
        self,
        source: str | Iterable[str],
        position: int = 0,
        line: int = 1,
        column: int = 1,
    ):
        """
        Initializes the character stream.

        Args:
            source (str | Iterable[str]): Source text, or an iterable of text chunks.
            position (int, optional): Starting position index. Defaults to 0.
            line (int, optional): Starting line number. Defaults to 1.
            column (int, optional): Starting column number. Defaults to 1.
        """
        if isinstance(source, str):
            self._chunks: Iterator[str] = (
                source[i : i + _CHUNK_SIZE] for i in range(0, len(source), _CHUNK_SIZE)
            )
        else:
            self._chunks = iter(source)
        self._buffer = ""
        self._base = 0
        self._exhausted = False
        self.line = line
        self.column = column
        self.position = 0
        if position:
            # Skip a prefix without tracking its lines.
            self._fill(position)
            self._buffer = self._buffer[position:]
            self._base = position
            self.position = position

    def _fill(self, upto: int) -> bool:
        """Pulls chunks until the buffer holds index ``upto`` (buffer-relative)."""
        while len(self._buffer) <= upto and not self._exhausted:
            try:
                chunk = next(self._chunks)
            except StopIteration:
                self._exhausted = True
                break
            self._buffer += chunk
        return upto < len(self._buffer)

    def next(self) -> str:
        """
        Consumes and returns the next character in the stream.

        Returns:
            str: The next character.

        Raises:
            EOFError: If reading past the end of the source.
        """
        index = self.position - self._base
        if not self._fill(index):
            raise EOFError(
                f"CharacterStreamError: Attempted to read past end of source at position=<{self.position}>, line=<{self.line}>"
            )
        char = self._buffer[index]
        if char == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.position += 1
        if index >= _COMPACT_THRESHOLD:
            self._buffer = self._buffer[index + 1 :]
            self._base = self.position
        return char

    def peek(self, offset: int = 0) -> str:
        """
        Returns the character at the given offset without advancing.

        Args:
            offset (int, optional): Number of characters to look ahead. Defaults to 0.

        Returns:
            str: The character at the offset, or an empty string if out of bounds.
        """
        index = self.position - self._base + offset
        if index < 0 or not self._fill(index):
            return ""
        return self._buffer[index]

    def current(self) -> str | None:
        """Returns the current character, or None at end of input."""
        char = self.peek()
        return char if char else None

    def end_of_file(self) -> bool:
        """Checks whether every character has been consumed."""
        return self.peek() == ""


class Token:
    """Represents a single lexical token.

    Attributes:
        type (str): Token type (e.g. 'IDENTIFIER', 'VARIABLE', 'OPERATOR', 'EOF').
        value (str): The token text. Strings hold the text between the quotes,
            variables include their sigil.
        line (int): The 1-based line number where the token starts.
        col (int): The 1-based column number where the token starts.
        words (tuple[str, ...] | None): Pre-split words of a QWLIST token.
        flags (str | None): Trailing flag letters of a REGEX token.
        quote (str | None): Opening quote character of a STRING token.
        message (str | None): Human-readable description of an ERROR token.
    """

    def __init__(
        self,
        type_: str,
        value: str,
        line: int = 0,
        col: int = 0,
        *,
        words: tuple[str, ...] | None = None,
        flags: str | None = None,
        quote: str | None = None,
        message: str | None = None,
    ):
        self.type = type_
        self.value = value
        self.line = line
        self.col = col
        self.words = words
        self.flags = flags
        self.quote = quote
        self.message = message

    def __repr__(self) -> str:
        return f"Token({self.type}, {self.value})"

    def __eq__(self, other: Any) -> bool:
        return (
            isinstance(other, Token)
            and self.type == other.type
            and self.value == other.value
            and self.line == other.line
            and self.col == other.col
            and self.words == other.words
            and self.flags == other.flags
        )

    def __hash__(self) -> int:
        return hash((self.type, self.value, self.line, self.col))


class Lexer:
    """Lexical analyzer for the MPP language.

    The Lexer pulls characters from a CharacterStream and produces one Token per
    `next_token()` call. It remembers the last token it produced, which decides
    whether `/` divides or opens a regex and whether `%`/`&` are operators or
    sigils.

    Attributes:
        stream (CharacterStream): The source stream to tokenize.
        last (Token | None): The most recently produced token.
    """

    def __init__(self, stream: CharacterStream) -> None:
        self.stream = stream
        self.last: Token | None = None
        self.finished = False

    def __iter__(self) -> Iterator[Token]:
        """Yields tokens until (and excluding) EOF."""
        while True:
            tok = self.next_token()
            if tok.type == "EOF":
                return
            yield tok

    def peek(self, offset: int = 0) -> str:
        return self.stream.peek(offset)

    def advance(self) -> str:
        return self.stream.next()

    def looking_at(self, text: str, offset: int = 0) -> bool:
        """Checks whether ``text`` appears verbatim at the current position."""
        return all(self.peek(offset + i) == ch for i, ch in enumerate(text))

    def value_expected(self) -> bool:
        """True when the previous token cannot end an operand."""
        last = self.last
        if last is None:
            return True
        if last.type == "KEYWORD":
            return last.value not in VALUE_KEYWORDS
        return last.type not in VALUE_TOKEN_TYPES

    def skip_whitespace(self) -> None:
        """Skips whitespace, comments, POD blocks and the `__END__` trailer."""
        while not self.stream.end_of_file():
            ch = self.peek()
            if ch in " \t\r\n":
                self.advance()
            elif ch == "#":
                self.skip_comment()
            elif self.stream.column == 1 and ch == "=" and self.peek(1).isalpha():
                self.skip_pod()
            elif self.stream.column == 1 and (
                self.looking_at("__END__") or self.looking_at("__DATA__")
            ):
                self.finished = True
                return
            else:
                break

    def skip_comment(self) -> None:
        """Advances through the stream until the end of a comment line."""
        while not self.stream.end_of_file() and self.peek() != "\n":
            self.advance()

    def skip_pod(self) -> None:
        """Skips a POD block up to and including its `=cut` line."""
        while not self.stream.end_of_file():
            at_cut = self.stream.column == 1 and self.looking_at("=cut")
            self.skip_comment()
            if not self.stream.end_of_file():
                self.advance()
            if at_cut:
                return

    def skip_line(self) -> str:
        """Consumes the rest of the current line, returning it without the newline."""
        text = ""
        while not self.stream.end_of_file() and self.peek() != "\n":
            text += self.advance()
        return text

    def match_operator(self) -> Token | None:
        """Attempts to match the longest operator or delimiter at the current position.

        Returns:
            Token | None: A Token if a match is found, otherwise None.
        """
        line, col = self.stream.line, self.stream.column
        max_token = None
        match_len = 0
        candidate = ""

        for i in range(MAX_OPERATOR_LENGTH):
            ch = self.peek(i)
            if ch == "":
                break
            candidate += ch
            if candidate in token_hashmap:
                max_token = candidate
                match_len = i + 1

        if max_token:
            for _ in range(match_len):
                self.advance()
            return Token(token_hashmap[max_token], max_token, line, col)

        return None

    def error(self, value: str, message: str, line: int, col: int) -> Token:
        logger.debug("scan error at %d:%d: %s", line, col, message)
        return Token("ERROR", value, line, col, message=message)

    def next_token(self) -> Token:
        """Consumes and returns the next Token from the stream.

        Returns:
            Token: The next token, or an EOF token once the input is exhausted.
        """
        tok = self._scan()
        if tok.type != "EOF":
            self.last = tok
        return tok

    def _scan(self) -> Token:
        if not self.finished:
            self.skip_whitespace()

        if self.finished or self.stream.end_of_file():
            return Token("EOF", "EOF", self.stream.line, self.stream.column)

        ch = self.peek()
        line, col = self.stream.line, self.stream.column

        # 1. Identifier, reserved word or quote-like operator
        if ch.isalpha() or ch == "_":
            return self.scan_word(line, col)

        # 2. Number
        if ch.isdigit():
            return self.scan_number(line, col)

        # 3. String
        if ch in ('"', "'"):
            return self.scan_string(line, col)

        # 4. Sigil variable or postfix dereference sigil
        if ch in "$@" or (ch in "%&" and self.value_expected()):
            tok = self.scan_sigil(line, col)
            if tok is not None:
                return tok

        # 5. Regex literal
        if ch == "/" and self.value_expected():
            self.advance()
            return self.scan_regex("/", line, col)

        # 6. Compound or symbolic operator
        token = self.match_operator()
        if token:
            return token

        # 7. Unknown character
        bad = self.advance()
        return self.error(bad, f"Unexpected character '{bad}'", line, col)

    def read_identifier(self) -> str:
        """Reads an identifier body, absorbing `::` package separators."""
        ident = ""
        while not self.stream.end_of_file():
            ch = self.peek()
            if ch.isalnum() or ch == "_":
                ident += self.advance()
            elif (
                ch == ":"
                and self.peek(1) == ":"
                and (self.peek(2).isalnum() or self.peek(2) == "_")
            ):
                ident += self.advance() + self.advance()
            else:
                break
        return ident

    def scan_word(self, line: int, col: int) -> Token:
        ident = self.read_identifier()

        if ident == "qw" and not (self.last is not None and self.last.value == "->"):
            offset = 0
            while self.peek(offset) in (" ", "\t"):
                offset += 1
            delim = self.peek(offset)
            if delim and not (delim.isalnum() or delim in "_=,;)" or delim.isspace()):
                for _ in range(offset + 1):
                    self.advance()
                return self.scan_quote_words(delim, line, col)

        after_arrow = self.last is not None and self.last.value == "->"
        if (
            ident in ("m", "qr")
            and not after_arrow
            and self.peek()
            and self.peek() in REGEX_QUOTE_DELIMITERS
        ):
            delim = self.advance()
            return self.scan_regex(delim, line, col)

        if ident == "x" and not self.value_expected():
            if self.peek() == "=" and self.peek(1) not in ("=", "~", ">"):
                self.advance()
                return Token("OPERATOR", "x=", line, col)

        if ident in RESERVED_WORDS and not self.fat_comma_follows():
            return Token("KEYWORD", ident, line, col)
        return Token("IDENTIFIER", ident, line, col)

    def fat_comma_follows(self) -> bool:
        """True if optional blanks and then `=>` follow (auto-quoted bareword)."""
        offset = 0
        while self.peek(offset) in (" ", "\t"):
            offset += 1
        return self.looking_at("=>", offset)

    def scan_number(self, line: int, col: int) -> Token:
        num = ""
        if self.peek() == "0" and self.peek(1) in "xXbBoO":
            digits = {
                "x": "0123456789abcdefABCDEF_",
                "b": "01_",
                "o": "01234567_",
            }[self.peek(1).lower()]
            if self.peek(2) and self.peek(2) in digits:
                num += self.advance() + self.advance()
                while self.peek() and self.peek() in digits:
                    num += self.advance()
                return Token("NUMBER", num, line, col)

        while self.peek().isdigit() or self.peek() == "_":
            num += self.advance()
        if self.peek() == "." and self.peek(1).isdigit():
            num += self.advance()
            while self.peek().isdigit() or self.peek() == "_":
                num += self.advance()
        if self.peek() in ("e", "E") and (
            self.peek(1).isdigit()
            or (self.peek(1) in ("+", "-") and self.peek(2).isdigit())
        ):
            num += self.advance()
            if self.peek() in ("+", "-"):
                num += self.advance()
            while self.peek().isdigit():
                num += self.advance()
        return Token("NUMBER", num, line, col)

    def find_closing(self, close: str, start: int, open_: str | None = None) -> int:
        """
        Looks ahead (without consuming) for an unescaped closing delimiter.

        Args:
            close (str): The closing delimiter character.
            start (int): Offset from the current position where the body starts.
            open_ (str | None): Opening character for nesting-aware paired delimiters.

        Returns:
            int: Offset of the closing delimiter, or -1 if input ends first.
        """
        depth = 0
        offset = start
        while True:
            ch = self.peek(offset)
            if ch == "":
                return -1
            if ch == "\\":
                offset += 2
                continue
            if open_ is not None and ch == open_:
                depth += 1
            elif ch == close:
                if depth == 0:
                    return offset
                depth -= 1
            offset += 1

    def scan_string(self, line: int, col: int) -> Token:
        quote = self.peek()
        end = self.find_closing(quote, 1)
        if end == -1:
            text = self.skip_line()
            return self.error(
                text,
                unterminated("string literal", f"closing {quote}"),
                line,
                col,
            )
        self.advance()
        val = ""
        for _ in range(end - 1):
            val += self.advance()
        self.advance()
        return Token("STRING", val, line, col, quote=quote)

    def scan_quote_words(self, delim: str, line: int, col: int) -> Token:
        """Scans a `qw` body; the opening delimiter has been consumed."""
        close = PAIRED_DELIMITERS.get(delim, delim)
        opener = delim if delim in PAIRED_DELIMITERS else None
        end = self.find_closing(close, 0, opener)
        if end == -1:
            text = "qw" + delim + self.skip_line()
            return self.error(
                text,
                unterminated("quote-word list", f"closing '{close}'"),
                line,
                col,
            )
        body = ""
        for _ in range(end):
            body += self.advance()
        self.advance()
        words = tuple(body.split())
        return Token("QWLIST", " ".join(words), line, col, words=words)

    def scan_regex(self, delim: str, line: int, col: int) -> Token:
        """Scans a regex body; the opening delimiter has been consumed.

        Escapes are kept verbatim; only an escaped delimiter or an escaped
        backslash is prevented from ending the pattern.
        """
        close = PAIRED_DELIMITERS.get(delim, delim)
        opener = delim if delim in PAIRED_DELIMITERS else None
        end = self.find_closing(close, 0, opener)
        if end == -1:
            text = delim + self.skip_line()
            return self.error(
                text,
                unterminated("regex literal", f"closing '{close}'"),
                line,
                col,
            )
        pattern = ""
        for _ in range(end):
            pattern += self.advance()
        self.advance()
        flags = ""
        while self.peek().isalpha():
            flags += self.advance()
        return Token("REGEX", pattern, line, col, flags=flags)

    def scan_sigil(self, line: int, col: int) -> Token | None:
        """Scans a sigil variable or a postfix-dereference sigil.

        Returns:
            Token | None: None when `%` or `&` is not followed by a variable
            name, so the caller can treat it as an operator instead.
        """
        sigil = self.peek()
        nxt = self.peek(1)

        if sigil == "$" and nxt == "#":
            after = self.peek(2)
            if after == "{":
                self.advance()
                self.advance()
                return Token("POSTFIX_DEREF_SIGIL", "$#", line, col)
            if after.isalpha() or after == "_" or after == "$":
                self.advance()
                self.advance()
                prefix = "$#"
                if self.peek() == "$":
                    prefix += self.advance()
                return Token("VARIABLE", prefix + self.read_identifier(), line, col)

        if nxt in ("*", "[", "{"):
            if sigil in "%&" and nxt != "{" and self.last is not None:
                if self.last.value != "->":
                    return None
            self.advance()
            return Token("POSTFIX_DEREF_SIGIL", sigil, line, col)

        if nxt.isalpha() or nxt == "_":
            self.advance()
            return Token("VARIABLE", sigil + self.read_identifier(), line, col)

        if nxt == "$" and (self.peek(2).isalpha() or self.peek(2) == "_"):
            self.advance()
            self.advance()
            return Token("VARIABLE", sigil + "$" + self.read_identifier(), line, col)

        if sigil == "$" and nxt.isdigit():
            name = self.advance()
            while self.peek().isdigit():
                name += self.advance()
            return Token("VARIABLE", name, line, col)

        if sigil == "$" and nxt and nxt in _SPECIAL_SCALARS:
            return Token("VARIABLE", self.advance() + self.advance(), line, col)

        if sigil in "%&":
            return None

        bad = self.advance()
        return self.error(bad, f"Unexpected character '{bad}'", line, col)


__all__ = ["CharacterStream", "Lexer", "Token", "token_hashmap", "unterminated"]
