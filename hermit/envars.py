"""Environment variable operations that can be applied and later reverted."""

from __future__ import annotations

import dataclasses
import datetime
import json
import posixpath
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Sequence

Envars = dict[str, str]
MappingFunc = Callable[[str], str]

_REVERT_PREFIX = "_HERMIT_OLD_"
_SHELL_SPECIAL = set("*#$@!?-0123456789")
_ALNUM = re.compile(r"[A-Za-z0-9_]*")

_FNV_OFFSET = 0xCBF29CE484222325
_FNV_PRIME = 0x100000001B3
_MASK64 = 0xFFFFFFFFFFFFFFFF


def _shell_name(s: str) -> tuple[str, int]:
    if s[0] == "{":
        if len(s) > 2 and s[1] in _SHELL_SPECIAL and s[2] == "}":
            return s[1], 3
        end = s.find("}", 1)
        if end == -1:
            return "", 1
        if end == 1:
            return "", 2
        return s[1:end], end + 1
    if s[0] in _SHELL_SPECIAL:
        return s[0], 1
    match = _ALNUM.match(s)
    return match.group(), match.end()


def _expand_once(s: str, mapping: MappingFunc) -> str:
    """Replace $var and ${var} in ``s`` once, using shell-style name rules."""
    out: list[str] = []
    start = 0
    pos = 0
    while pos < len(s):
        if s[pos] == "$" and pos + 1 < len(s):
            out.append(s[start:pos])
            name, width = _shell_name(s[pos + 1:])
            if not name and width == 0:
                out.append("$")
            elif name:
                out.append(mapping(name))
            pos += width
            start = pos + 1
        pos += 1
    return "".join(out) + s[start:]


_QUOTE_SPECIAL = "\\'\"`${[|&;<>()*?!"
_QUOTE_EXTRA = " \t\n"


def _shell_quote(word: str) -> str:
    if not word:
        return "''"
    if not any(c in _QUOTE_EXTRA for c in word):
        escaped = []
        for index, c in enumerate(word):
            if c in _QUOTE_SPECIAL or (index == 0 and c == "~"):
                escaped.append("\\")
            escaped.append(c)
        return "".join(escaped)
    parts = word.split("'")
    return "\\'".join(f"'{part}'" if part else "" for part in parts)


class Transform:
    """Low-level transformation layered over an existing environment."""

    def __init__(self, env_root: str, seed: Mapping[str, str]):
        self.env_root = env_root
        self.seed: Envars = dict(seed)
        self.dest: Envars = {}

    def changed(self, undo: bool = False) -> Envars:
        """The changed variables; with ``undo`` the revert state is kept."""
        if undo:
            return dict(self.dest)
        return {
            k: v
            for k, v in self.dest.items()
            if v and not k.startswith(_REVERT_PREFIX)
        }

    def combined(self) -> Envars:
        """A copy of the seed with the changes applied; empty values are removed."""
        out = dict(self.seed)
        self.to(out)
        return out

    def to(self, env: dict[str, str]) -> None:
        """Apply the changes to ``env`` in place."""
        for key, value in self.dest.items():
            if value == "":
                env.pop(key, None)
            else:
                env[key] = value

    def _get(self, key: str) -> str | None:
        if key == "$":
            return "$"
        if key in self.dest:
            return self.dest[key]
        return self.seed.get(key)

    def _set(self, key: str, value: str) -> None:
        self.dest[key] = self._expand(value)

    def _unset(self, key: str) -> None:
        self.dest[key] = ""

    def _expand(self, value: str) -> str:
        return _expand_once(value, lambda name: self._get(name) or "")


class Op(ABC):
    """An operation on a single environment variable."""

    name: str

    @property
    def envar(self) -> str:
        return self.name

    @abstractmethod
    def apply(self, transform: Transform) -> None:
        """Apply the change to ``transform``."""

    @abstractmethod
    def revert(self, transform: Transform) -> None:
        """Undo what :meth:`apply` did."""


def _split_and_drop(envar: str, value: str) -> list[str]:
    drop = set(value.split(":"))
    return [elem for elem in envar.split(":") if elem not in drop]


def _revert_key(transform: Transform, op: Op) -> str:
    chunks = [transform.env_root, type(op).__name__]
    for field in dataclasses.fields(op):
        chunks.append(field.name.capitalize())
        chunks.append(getattr(op, field.name))
    h = _FNV_OFFSET
    for chunk in chunks:
        for byte in chunk.encode() + b"\0":
            h = ((h ^ byte) * _FNV_PRIME) & _MASK64
    return f"{_REVERT_PREFIX}{op.envar}_{h:016X}"


@dataclass(frozen=True)
class Append(Op):
    """Ensure an element is at the end of a colon separated list."""

    name: str
    value: str = ""

    def __str__(self) -> str:
        return f'{self.name}="${{{self.name}}}:{_shell_quote(self.value)}"'

    def apply(self, transform: Transform) -> None:
        out = _split_and_drop(transform._get(self.name) or "", self.value)
        out.append(self.value)
        transform._set(self.name, ":".join(out))

    def revert(self, transform: Transform) -> None:
        out = _split_and_drop(transform._get(self.name) or "", self.value)
        transform._set(self.name, ":".join(out))


@dataclass(frozen=True)
class Prepend(Op):
    """Ensure an element is at the start of a colon separated list."""

    name: str
    value: str = ""

    def __str__(self) -> str:
        return f"{self.name}={_shell_quote(self.value)}:${{{self.name}}}"

    def apply(self, transform: Transform) -> None:
        prepend = transform._expand(self.value)
        out = _split_and_drop(transform._get(self.name) or "", prepend)
        transform._set(self.name, ":".join([prepend, *out]))

    def revert(self, transform: Transform) -> None:
        prepend = transform._expand(self.value)
        out = _split_and_drop(transform._get(self.name) or "", prepend)
        transform._set(self.name, ":".join(out))


@dataclass(frozen=True)
class Prefix(Op):
    """Ensure a variable's value starts with a prefix."""

    name: str
    prefix: str = ""

    def __str__(self) -> str:
        return f"{self.name}={_shell_quote(self.prefix)}${{{self.name}}}"

    def apply(self, transform: Transform) -> None:
        prefix = transform._expand(self.prefix)
        value = transform._get(self.name)
        if value is not None and not value.startswith(prefix):
            transform._set(self.name, prefix + value)

    def revert(self, transform: Transform) -> None:
        prefix = transform._expand(self.prefix)
        value = transform._get(self.name)
        if value is not None and value.startswith(prefix):
            transform._set(self.name, value[len(prefix):])


@dataclass(frozen=True)
class Set(Op):
    """Set a variable, remembering its previous value."""

    name: str
    value: str = ""

    def __str__(self) -> str:
        return f'{self.name}="{_shell_quote(self.value)}"'

    def apply(self, transform: Transform) -> None:
        value = transform._get(self.name)
        if value is not None:
            old = _revert_key(transform, self)
            if transform._get(old) is None:
                transform._set(old, value)
        transform._set(self.name, self.value)

    def revert(self, transform: Transform) -> None:
        old = _revert_key(transform, self)
        current = transform._get(self.name)
        if current is not None and current != transform._expand(self.value):
            transform._unset(old)
            return
        transform._unset(self.name)
        previous = transform._get(old)
        if previous is not None:
            transform._set(self.name, previous)
            transform._unset(old)


@dataclass(frozen=True)
class Unset(Op):
    """Unset a variable, remembering its previous value."""

    name: str

    def __str__(self) -> str:
        return "unset " + self.name

    def apply(self, transform: Transform) -> None:
        value = transform._get(self.name)
        if value is not None:
            transform._set(_revert_key(transform, self), value)
        transform._unset(self.name)

    def revert(self, transform: Transform) -> None:
        old = _revert_key(transform, self)
        if transform._get(self.name):
            transform._unset(old)
            return
        transform._unset(self.name)
        previous = transform._get(old)
        if previous is not None:
            transform._set(self.name, previous)
            transform._unset(old)


@dataclass(frozen=True)
class Force(Op):
    """Set or unset a variable without keeping its previous value."""

    name: str
    value: str = ""

    def __str__(self) -> str:
        return f'{self.name}="{_shell_quote(self.value)}"'

    def apply(self, transform: Transform) -> None:
        transform._set(self.name, self.value)

    def revert(self, transform: Transform) -> None:
        transform._unset(self.name)


_OP_KEYS: dict[type, str] = {
    Append: "a",
    Prepend: "p",
    Set: "s",
    Unset: "u",
    Force: "f",
    Prefix: "P",
}
_KEY_OPS = {key: cls for cls, key in _OP_KEYS.items()}
_JSON_FIELDS = {"name": "n", "value": "v", "prefix": "p"}


def parse(lines: Iterable[str]) -> Envars:
    """Parse KEY=VALUE strings into a mapping."""
    env: Envars = {}
    for line in lines:
        key, sep, value = line.partition("=")
        if not sep:
            raise ValueError(f"invalid environment entry {line!r}")
        env[key] = value
    return env


def to_system(env: Mapping[str, str]) -> list[str]:
    """Render a mapping as sorted KEY=VALUE strings."""
    return sorted(f"{k}={v}" for k, v in env.items())


def apply(env: Mapping[str, str], env_root: str, ops: Iterable[Op]) -> Transform:
    """Apply ``ops`` on top of ``env``; ``env`` itself is not modified."""
    transform = Transform(env_root, env)
    for op in ops:
        op.apply(transform)
    return transform


def revert(env: Mapping[str, str], env_root: str, ops: Sequence[Op]) -> Transform:
    """Build a Transform that undoes ``ops``, in reverse order."""
    transform = Transform(env_root, env)
    for op in reversed(ops):
        op.revert(transform)
    return transform


def infer(lines: Iterable[str]) -> list[Op]:
    """Guess operations from KEY=VALUE strings: append, prepend, set or unset."""
    ops: list[Op] = []
    for line in lines:
        key, sep, value = line.partition("=")
        if not sep:
            raise ValueError(f"invalid environment entry {line!r}")
        if value.startswith(f"${{{key}}}:") or value.startswith(f"${key}:"):
            ops.append(Append(key, value[value.index(":") + 1:]))
        elif value.endswith(f":${{{key}}}") or value.endswith(f":${key}"):
            ops.append(Prepend(key, value[: value.rindex(":")]))
        elif value == "":
            ops.append(Unset(key))
        else:
            ops.append(Set(key, value))
    return ops


def marshal_ops(ops: Iterable[Op]) -> str:
    """Encode operations as JSON."""
    encoded = []
    for op in ops:
        key = _OP_KEYS.get(type(op))
        if key is None:
            raise TypeError(f"unsupported op type {type(op).__name__}")
        body = {
            _JSON_FIELDS[f.name]: getattr(op, f.name) for f in dataclasses.fields(op)
        }
        encoded.append({key: body})
    return json.dumps(encoded, separators=(",", ":"))


def unmarshal_ops(data: str | bytes) -> list[Op]:
    """Decode operations produced by :func:`marshal_ops`."""
    encoded = json.loads(data)
    if encoded is None:
        return []
    if not isinstance(encoded, list):
        raise ValueError("expected a JSON list of envar ops")
    ops: list[Op] = []
    for entry in encoded:
        if not isinstance(entry, dict):
            raise ValueError("expected a JSON object for envar op")
        key, body = next(reversed(entry.items()), ("", None))
        cls = _KEY_OPS.get(key)
        if cls is None:
            raise ValueError(f"unsupported envar op key {key!r}")
        if not isinstance(body, dict):
            raise ValueError(f"invalid body for envar op {key!r}")
        kwargs = {}
        for field in dataclasses.fields(cls):
            value = body.get(_JSON_FIELDS[field.name], "")
            if value is None:
                value = ""
            if not isinstance(value, str):
                raise ValueError(f"field {field.name!r} of envar op must be a string")
            kwargs[field.name] = value
        ops.append(cls(**kwargs))
    return ops


def expand_no_escape(s: str, mapping: MappingFunc) -> str:
    """Expand repeatedly until stable, leaving "$$" untouched."""
    last = None
    while last != s:
        last = s
        s = _expand_once(s, mapping)
    return s


def expand(s: str, mapping: MappingFunc) -> str:
    """Expand repeatedly until stable, then turn "$$" into "$"."""
    return expand_no_escape(s, mapping).replace("$$", "$")


def mapping(env: str, home: str, os_name: str, arch: str, xarch: str = "") -> MappingFunc:
    """A mapping for :func:`expand` that knows the Hermit variables."""

    def lookup(key: str) -> str:
        today = datetime.date.today()
        if key in ("HERMIT_ENV", "env"):
            return env
        if key == "HERMIT_BIN":
            return posixpath.normpath(posixpath.join(env, "bin"))
        if key == "os":
            return os_name
        if key == "arch":
            return arch
        if key == "xarch":
            return xarch or arch
        if key == "HOME":
            return home
        if key == "YYYY":
            return f"{today.year:04d}"
        if key == "MM":
            return f"{today.month:02d}"
        if key == "DD":
            return f"{today.day:02d}"
        if key == "$":
            return "$$"
        return ""

    return lookup