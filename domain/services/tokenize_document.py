from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from domain.errors import ParseError

TokenKind = Literal[
    "ident",
    "at_id",
    "string",
    "number",
    "color",
    "lbrace",
    "rbrace",
    "colon",
    "semicolon",
    "comma",
    "lparen",
    "rparen",
    "equals",
    "arrow",
    "newline",
    "blank",
    "comment",
    "eof",
]

PUNCTUATION: dict[str, TokenKind] = {
    "{": "lbrace",
    "}": "rbrace",
    ":": "colon",
    ";": "semicolon",
    ",": "comma",
    "(": "lparen",
    ")": "rparen",
    "=": "equals",
}

_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER_RE = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)(ms|px)?")
_WORD_RE = re.compile(r"[0-9A-Za-z_]+")
_HEX_DIGITS = set("0123456789abcdefABCDEF")
_ESCAPES = {"n": "\n", "t": "\t", '"': '"', "\\": "\\"}


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    line: int
    col: int
    start: int
    end: int
    value: object = None
    own_line: bool = False


class _Lexer:
    def __init__(self, source: str, value_mode: bool = False) -> None:
        self.source = source
        self.value_mode = value_mode
        self.pos = 0
        self.line = 1
        self.line_start = 0
        self.tokens: list[Token] = []

    @property
    def col(self) -> int:
        return self.pos - self.line_start + 1

    def error(self, message: str, line: int | None = None, col: int | None = None) -> ParseError:
        return ParseError(line or self.line, col or self.col, message)

    def emit(self, kind: TokenKind, start: int, value: object = None, own_line: bool = False) -> None:
        self.tokens.append(
            Token(
                kind=kind,
                text=self.source[start : self.pos],
                line=self.line,
                col=start - self.line_start + 1,
                start=start,
                end=self.pos,
                value=value,
                own_line=own_line,
            )
        )

    def at_line_start(self) -> bool:
        return not self.source[self.line_start : self.pos].strip()

    def run(self) -> list[Token]:
        source = self.source
        while self.pos < len(source):
            if self.pos == self.line_start and self._blank_line():
                continue
            char = source[self.pos]
            if char in " \t\r":
                self.pos += 1
            elif char == "\n":
                start = self.pos
                self.pos += 1
                self.emit("newline", start)
                self.line += 1
                self.line_start = self.pos
            elif char == "#":
                self._hash()
            elif char == '"':
                self._string()
            elif char == "@":
                self._at_id()
            elif char == "-" and source.startswith("->", self.pos):
                start = self.pos
                self.pos += 2
                self.emit("arrow", start)
            elif char.isdigit() or (char in "-." and _NUMBER_RE.match(source, self.pos)):
                self._number()
            elif char.isalpha() or char == "_":
                match = _IDENT_RE.match(source, self.pos)
                start = self.pos
                self.pos = match.end() if match else self.pos + 1
                self.emit("ident", start)
            elif char in PUNCTUATION:
                start = self.pos
                self.pos += 1
                self.emit(PUNCTUATION[char], start)
            else:
                raise self.error(f"unexpected character '{char}'")
        self.tokens.append(
            Token("eof", "", self.line, self.col, len(source), len(source))
        )
        return self.tokens

    def _blank_line(self) -> bool:
        end = self.source.find("\n", self.pos)
        if end < 0 or self.source[self.pos : end].strip():
            return False
        start = self.pos
        self.pos = end
        self.emit("blank", start)
        self.pos = end + 1
        self.line += 1
        self.line_start = self.pos
        return True

    def _hash(self) -> None:
        start = self.pos
        own_line = not self.value_mode and self.at_line_start()
        following = self.source[self.pos + 1 : self.pos + 2]
        if not own_line and following in _HEX_DIGITS:
            word = _WORD_RE.match(self.source, self.pos + 1)
            digits = word.group(0) if word else ""
            if any(ch not in _HEX_DIGITS for ch in digits):
                raise self.error(f"invalid hex color '#{digits}'")
            if len(digits) not in (3, 4, 6, 8):
                raise self.error(
                    f"hex color '#{digits}' must have 3, 4, 6 or 8 digits, got {len(digits)}"
                )
            self.pos += 1 + len(digits)
            self.emit("color", start, value="#" + digits)
            return
        end = self.source.find("\n", self.pos)
        self.pos = len(self.source) if end < 0 else end
        self.emit("comment", start, value=self.source[start : self.pos].rstrip(), own_line=own_line)

    def _string(self) -> None:
        start = self.pos
        line, col = self.line, self.col
        self.pos += 1
        chars: list[str] = []
        while True:
            if self.pos >= len(self.source) or self.source[self.pos] == "\n":
                raise self.error("unterminated string", line, col)
            char = self.source[self.pos]
            if char == '"':
                self.pos += 1
                break
            if char == "\\" and self.pos + 1 < len(self.source):
                escaped = self.source[self.pos + 1]
                chars.append(_ESCAPES.get(escaped, escaped))
                self.pos += 2
                continue
            chars.append(char)
            self.pos += 1
        self.emit("string", start, value="".join(chars))

    def _at_id(self) -> None:
        start = self.pos
        match = _IDENT_RE.match(self.source, self.pos + 1)
        if not match:
            raise self.error("expected identifier after '@'")
        self.pos = match.end()
        self.emit("at_id", start, value=match.group(0))

    def _number(self) -> None:
        start = self.pos
        match = _NUMBER_RE.match(self.source, self.pos)
        if not match:
            raise self.error(f"unexpected character '{self.source[self.pos]}'")
        self.pos = match.end()
        if self.pos < len(self.source) and (
            self.source[self.pos].isalnum() or self.source[self.pos] == "_"
        ):
            raise self.error(f"invalid number '{self.source[start : self.pos + 1]}'", col=start - self.line_start + 1)
        unit = match.group(1)
        literal = self.source[start : self.pos - len(unit or "")]
        self.emit("number", start, value=(float(literal), unit))


def tokenize(source: str) -> list[Token]:
    return _Lexer(source).run()


def tokenize_value(source: str) -> list[Token]:
    # A detached value has no line context; a leading "#" is a color.
    return _Lexer(source, value_mode=True).run()


def escape_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return '"' + escaped.replace("\n", "\\n").replace("\t", "\\t") + '"'
