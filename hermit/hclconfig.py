"""Reading and writing the small HCL subset used by Hermit configuration files.

Attributes become dictionary entries. Blocks become :class:`Block` values:
an unlabelled block is stored as a single :class:`Block`, while labelled or
repeated blocks are stored as a list of them.
"""

from __future__ import annotations

import math
import re
import textwrap
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_\-.]*")

_TOKEN_RE = re.compile(
    r"""
     (?P<ws>[ \t\r\n]+)
    |(?P<comment>(?:\#|//)[^\n]*|/\*.*?\*/)
    |(?P<heredoc><<-?(?P<marker>[A-Za-z_][A-Za-z0-9_]*)[ \t]*\n)
    |(?P<number>-?(?:0[xX][0-9a-fA-F]+|0[oO][0-7]+|0[bB][01]+|\d+(?:\.\d+)?(?:[eE][+-]?\d+)?))
    |(?P<string>"(?:[^"\\\n]|\\.)*")
    |(?P<ident>[A-Za-z_][A-Za-z0-9_\-.]*)
    |(?P<punct>[{}\[\]=,:])
    """,
    re.VERBOSE | re.DOTALL,
)
_KINDS = ("ws", "comment", "heredoc", "number", "string", "ident", "punct")

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\", "/": "/"}
_QUOTES = {'"': '\\"', "\\": "\\\\", "\n": "\\n", "\t": "\\t", "\r": "\\r"}


class HCLError(ValueError):
    """The text is not valid HCL, or the data cannot be written as HCL."""

    def __init__(self, message: str, line: int | None = None, column: int | None = None):
        self.message = message
        self.line = line
        self.column = column
        if line is not None:
            message = f"{line}:{column}: {message}"
        super().__init__(message)


class Block(dict):
    """The body of a block; ``labels`` holds the labels written after its name."""

    def __init__(self, body: Mapping[str, Any] | None = None, labels: tuple[str, ...] | list[str] = ()):
        super().__init__(body or {})
        self.labels = tuple(labels)

    def __repr__(self) -> str:
        return f"Block({dict.__repr__(self)}, labels={self.labels!r})"


@dataclass(frozen=True)
class _Token:
    kind: str
    value: str
    offset: int


def _position(text: str, offset: int) -> tuple[int, int]:
    line = text.count("\n", 0, offset) + 1
    column = offset - text.rfind("\n", 0, offset)
    return line, column


def _error(text: str, offset: int, message: str) -> HCLError:
    line, column = _position(text, offset)
    return HCLError(message, line, column)


def _unquote(text: str, raw: str, offset: int) -> str:
    out: list[str] = []
    i = 1
    end = len(raw) - 1
    while i < end:
        c = raw[i]
        if c != "\\":
            out.append(c)
            i += 1
            continue
        escape = raw[i + 1]
        if escape in _ESCAPES:
            out.append(_ESCAPES[escape])
            i += 2
        elif escape in "uU":
            width = 4 if escape == "u" else 8
            digits = raw[i + 2:i + 2 + width]
            if len(digits) != width or not re.fullmatch(r"[0-9a-fA-F]+", digits):
                raise _error(text, offset + i, f"invalid \\{escape} escape")
            try:
                out.append(chr(int(digits, 16)))
            except ValueError as exc:
                raise _error(text, offset + i, f"invalid code point {digits}") from exc
            i += 2 + width
        else:
            raise _error(text, offset + i, f"unknown escape \\{escape}")
    return "".join(out)


def _read_heredoc(text: str, match: re.Match[str]) -> tuple[str, int]:
    strip = match.group(0).startswith("<<-")
    marker = match.group("marker")
    start = match.end()
    index = start
    while True:
        newline = text.find("\n", index)
        end = len(text) if newline == -1 else newline
        if text[index:end].strip() == marker:
            body = text[start:index]
            return (textwrap.dedent(body) if strip else body), end
        if newline == -1:
            raise _error(text, match.start(), f"unterminated heredoc {marker}")
        index = newline + 1


def _tokenize(text: str) -> Iterator[_Token]:
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            if text[pos] == '"':
                message = "unterminated string"
            elif text.startswith("/*", pos):
                message = "unterminated comment"
            else:
                message = f"unexpected character {text[pos]!r}"
            raise _error(text, pos, message)
        kind = next(k for k in _KINDS if match.group(k) is not None)
        if kind in ("ws", "comment"):
            pos = match.end()
        elif kind == "heredoc":
            value, end = _read_heredoc(text, match)
            yield _Token("string", value, match.start())
            pos = end
        elif kind == "string":
            yield _Token("string", _unquote(text, match.group(0), pos), pos)
            pos = match.end()
        else:
            yield _Token(kind, match.group(0), pos)
            pos = match.end()
    yield _Token("eof", "", len(text))


def _parse_number(text: str, token: _Token) -> int | float:
    raw = token.value
    digits = raw.lstrip("-")
    try:
        if re.fullmatch(r"\d+", digits):
            # A leading zero means octal, as in file modes such as 0755.
            base = 8 if len(digits) > 1 and digits.startswith("0") else 10
            value = int(digits, base)
            return -value if raw.startswith("-") else value
        if re.fullmatch(r"0[xXoObB][0-9a-fA-F]+", digits):
            return int(raw, 0)
        return float(raw)
    except ValueError as exc:
        raise _error(text, token.offset, f"invalid number {raw}") from exc


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = list(_tokenize(text))
        self.pos = 0

    def peek(self) -> _Token:
        return self.tokens[self.pos]

    def take(self) -> _Token:
        token = self.tokens[self.pos]
        if token.kind != "eof":
            self.pos += 1
        return token

    def is_punct(self, char: str) -> bool:
        token = self.peek()
        return token.kind == "punct" and token.value == char

    def fail(self, token: _Token, message: str) -> HCLError:
        return _error(self.text, token.offset, message)

    def expect(self, char: str) -> None:
        token = self.take()
        if token.kind != "punct" or token.value != char:
            raise self.fail(token, f"expected {char!r} but found {self.describe(token)}")

    @staticmethod
    def describe(token: _Token) -> str:
        if token.kind == "eof":
            return "end of input"
        if token.kind == "string":
            return "a string"
        return repr(token.value)

    def parse_body(self, closing: bool) -> dict[str, Any]:
        body: dict[str, Any] = {}
        while True:
            token = self.peek()
            if token.kind == "eof":
                if closing:
                    raise self.fail(token, "unexpected end of input, expected '}'")
                return body
            if token.kind == "punct" and token.value == "}":
                if not closing:
                    raise self.fail(token, "unexpected '}'")
                self.take()
                return body
            if token.kind != "ident":
                raise self.fail(token, f"expected attribute or block name but found {self.describe(token)}")
            name = self.take().value
            if self.is_punct("="):
                self.take()
                if name in body:
                    raise self.fail(token, f"duplicate attribute {name!r}")
                body[name] = self.parse_value()
                continue
            labels: list[str] = []
            while self.peek().kind in ("string", "ident"):
                labels.append(self.take().value)
            self.expect("{")
            block = Block(self.parse_body(True), labels=labels)
            self.add_block(body, name, block, token)

    def add_block(self, body: dict[str, Any], name: str, block: Block, token: _Token) -> None:
        if name not in body:
            body[name] = [block] if block.labels else block
            return
        existing = body[name]
        if isinstance(existing, Block):
            body[name] = [existing, block]
        elif isinstance(existing, list) and existing and all(isinstance(b, Block) for b in existing):
            existing.append(block)
        else:
            raise self.fail(token, f"block {name!r} conflicts with an attribute of the same name")

    def parse_value(self) -> Any:
        token = self.take()
        if token.kind == "string":
            return token.value
        if token.kind == "number":
            return _parse_number(self.text, token)
        if token.kind == "ident":
            if token.value == "true":
                return True
            if token.value == "false":
                return False
            if token.value == "null":
                return None
            raise self.fail(token, f"unexpected identifier {token.value!r} in value")
        if token.kind == "punct" and token.value == "[":
            return self.parse_list()
        if token.kind == "punct" and token.value == "{":
            return self.parse_map()
        raise self.fail(token, f"expected a value but found {self.describe(token)}")

    def parse_list(self) -> list[Any]:
        items: list[Any] = []
        while not self.is_punct("]"):
            items.append(self.parse_value())
            if self.is_punct(","):
                self.take()
            elif not self.is_punct("]"):
                token = self.peek()
                raise self.fail(token, f"expected ',' or ']' but found {self.describe(token)}")
        self.take()
        return items

    def parse_map(self) -> dict[str, Any]:
        entries: dict[str, Any] = {}
        while not self.is_punct("}"):
            token = self.take()
            if token.kind not in ("string", "ident"):
                raise self.fail(token, f"expected map key but found {self.describe(token)}")
            separator = self.take()
            if separator.kind != "punct" or separator.value not in ("=", ":"):
                raise self.fail(separator, f"expected '=' or ':' but found {self.describe(separator)}")
            if token.value in entries:
                raise self.fail(token, f"duplicate map key {token.value!r}")
            entries[token.value] = self.parse_value()
            if self.is_punct(","):
                self.take()
        self.take()
        return entries


def loads(text: str) -> dict[str, Any]:
    """Parse HCL text into a dictionary."""
    return _Parser(text).parse_body(False)


def _quote(value: str) -> str:
    out = ['"']
    for c in value:
        if c in _QUOTES:
            out.append(_QUOTES[c])
        elif ord(c) < 0x20 or c == "\x7f":
            out.append(f"\\u{ord(c):04x}")
        else:
            out.append(c)
    out.append('"')
    return "".join(out)


def _check_name(name: Any) -> str:
    if not isinstance(name, str) or not _IDENT.fullmatch(name):
        raise HCLError(f"invalid attribute or block name {name!r}")
    return name


def _format_value(value: Any, indent: int) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise HCLError(f"cannot encode non-finite number {value!r}")
        return repr(value)
    if isinstance(value, str):
        return _quote(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_format_value(item, indent) for item in value) + "]"
    if isinstance(value, Mapping):
        if not value:
            return "{}"
        pad = "  " * (indent + 1)
        lines = []
        for key, item in value.items():
            if not isinstance(key, str):
                raise HCLError(f"map keys must be strings, not {type(key).__name__}")
            lines.append(f"{pad}{_quote(key)}: {_format_value(item, indent + 1)},")
        return "{\n" + "\n".join(lines) + "\n" + "  " * indent + "}"
    raise HCLError(f"cannot encode value of type {type(value).__name__}")


def _dump_block(name: str, block: Block, indent: int, lines: list[str]) -> None:
    pad = "  " * indent
    header = " ".join([name, *(_quote(_check_label(label)) for label in block.labels)])
    if not block:
        lines.append(f"{pad}{header} {{}}")
        return
    lines.append(f"{pad}{header} {{")
    _dump_body(block, indent + 1, lines)
    lines.append(f"{pad}}}")


def _check_label(label: Any) -> str:
    if not isinstance(label, str):
        raise HCLError(f"block labels must be strings, not {type(label).__name__}")
    return label


def _dump_body(body: Mapping[str, Any], indent: int, lines: list[str]) -> None:
    pad = "  " * indent
    for key, value in body.items():
        name = _check_name(key)
        if isinstance(value, Block):
            _dump_block(name, value, indent, lines)
        elif isinstance(value, list) and value and all(isinstance(b, Block) for b in value):
            for block in value:
                _dump_block(name, block, indent, lines)
        else:
            lines.append(f"{pad}{name} = {_format_value(value, indent)}")


def dumps(data: Mapping[str, Any]) -> str:
    """Render a dictionary as HCL text; :class:`Block` values become blocks."""
    if not isinstance(data, Mapping):
        raise HCLError(f"top level must be a mapping, not {type(data).__name__}")
    lines: list[str] = []
    _dump_body(data, 0, lines)
    return "\n".join(lines) + "\n" if lines else ""