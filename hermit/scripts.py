"""Locating Hermit environments and checking their bootstrap scripts."""

from __future__ import annotations

import hashlib
import os
from typing import Iterable

# Exit status for "a requirement was not met", as used by the command line.
EXIT_REQUIREMENT_NOT_MET = 82

# Scripts checked by verify_scripts, in order.
VERIFIED_SCRIPTS = ("activate-hermit", "activate-hermit.fish", "hermit")

# Fish support was added later, so older environments may lack this script.
_OPTIONAL_SCRIPTS = frozenset({"activate-hermit.fish"})

_MAX_LINK_DEPTH = 255


class ScriptVerificationError(Exception):
    """An environment script is missing or has an unknown checksum."""


class MissingScriptError(ScriptVerificationError, FileNotFoundError):
    """A required script is missing, so the directory is not a Hermit environment."""

    exit_code = EXIT_REQUIREMENT_NOT_MET

    def __init__(self, message: str, path: str):
        super().__init__(message)
        self.path = path


class NotHermitLinkError(Exception):
    """A binary is not a symlink into a Hermit environment's bin directory."""


def tidy_sha256_db(text: str) -> list[str]:
    """The SHA-256 digests listed one per line in ``text``.

    Surrounding whitespace is stripped; blank lines, comments starting with
    "#" and lines that are not 64 characters long are dropped.
    """
    digests = []
    for raw in text.split("\n"):
        line = raw.strip()
        if len(line) == 64 and not line.startswith("#"):
            digests.append(line)
    return digests


def _resolve_symlinks(path: str) -> list[str]:
    """The chain of paths from ``path`` following each symlink in turn."""
    chain = [path]
    current = path
    while os.path.islink(current):
        if len(chain) > _MAX_LINK_DEPTH:
            raise OSError(f"too many levels of symbolic links: {path}")
        target = os.readlink(current)
        if not os.path.isabs(target):
            target = os.path.join(os.path.dirname(current), target)
        current = os.path.normpath(target)
        chain.append(current)
    return chain


def env_dir_from_proxy_link(executable: str | os.PathLike[str]) -> str:
    """The environment directory that a proxy symlink to ``bin/hermit`` belongs to."""
    links = _resolve_symlinks(os.fspath(executable))
    last = os.path.realpath(links[-1], strict=True)
    if os.path.basename(last) != "hermit":
        raise NotHermitLinkError(f"binary is not a Hermit symlink: {links[0]}")
    last = os.path.dirname(last)
    if os.path.basename(last) != "bin":
        raise NotHermitLinkError(f"Hermit not in a bin directory: {links[0]}")
    return os.path.dirname(last)


def find_env_dir(binary: str | os.PathLike[str]) -> str:
    """The highest priority active environment.

    An environment adjacent to ``binary`` wins; otherwise $HERMIT_ENV is used.
    If neither is found the error from the symlink lookup is raised.
    """
    try:
        return env_dir_from_proxy_link(binary)
    except (NotHermitLinkError, OSError):
        env_dir = os.environ.get("HERMIT_ENV", "")
        if env_dir:
            return env_dir
        raise


def is_env_a_git_repo(env: str | os.PathLike[str]) -> bool:
    """Whether the environment directory holds a ``.git`` entry."""
    return os.path.exists(os.path.join(os.fspath(env), ".git"))


def _sha256_file(path: str) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_scripts(
    bin_dir: str | os.PathLike[str],
    env_dir: str | os.PathLike[str],
    script_sums: Iterable[str],
) -> None:
    """Check that the environment's scripts all have a known SHA-256 checksum.

    Raises MissingScriptError if a required script is absent and
    ScriptVerificationError if a checksum is not among ``script_sums``.
    """
    bin_dir = os.fspath(bin_dir)
    env_dir = os.fspath(env_dir)
    known = set(script_sums)
    for name in VERIFIED_SCRIPTS:
        path = os.path.join(bin_dir, name)
        try:
            digest = _sha256_file(path)
        except FileNotFoundError as exc:
            if name in _OPTIONAL_SCRIPTS:
                continue
            raise MissingScriptError(
                f"{path} is missing, not a Hermit environment?: {exc.strerror}", path
            ) from exc
        if digest not in known:
            raise ScriptVerificationError(
                f"{path} has an unknown SHA256 signature ({digest}); verify that you "
                f"trust this environment and run 'hermit init {env_dir}'"
            )