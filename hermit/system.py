"""Locations of the user's home, cache and Hermit state directories."""

from __future__ import annotations

import os
import sys


def user_home_dir() -> str:
    """The current user's home directory."""
    variable = "USERPROFILE" if sys.platform == "win32" else "HOME"
    home = os.environ.get(variable, "")
    if home:
        return home
    home = os.environ.get("HERMIT_USER_HOME", "")
    if home:
        return home
    try:
        import pwd
    except ImportError as exc:
        raise OSError("could not determine the user's home directory") from exc
    try:
        return pwd.getpwuid(os.getuid()).pw_dir
    except KeyError as exc:
        raise OSError("could not determine the user's home directory") from exc


def user_cache_dir() -> str:
    """The user's local cache directory."""
    if sys.platform == "win32":
        local = os.environ.get("LocalAppData", "")
        if not local:
            raise OSError("%LocalAppData% is not defined")
        return local
    if sys.platform in ("darwin", "ios"):
        return user_home_dir() + "/Library/Caches"
    xdg = os.environ.get("XDG_CACHE_HOME", "")
    if xdg:
        return xdg
    return user_home_dir() + "/.cache"


def user_state_dir() -> str:
    """Hermit's state directory: $HERMIT_STATE_DIR or "hermit" in the cache dir."""
    explicit = os.environ.get("HERMIT_STATE_DIR", "")
    if explicit:
        return explicit
    return os.path.join(user_cache_dir(), "hermit")