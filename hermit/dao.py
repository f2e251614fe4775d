"""Per-package metadata kept as small files in the state directory."""

from __future__ import annotations

import datetime
import os
from dataclasses import dataclass
from typing import TextIO


@dataclass
class PackageInfo:
    """Stored information about a package."""

    etag: str = ""
    update_checked_at: datetime.datetime | None = None


class DAO:
    """Access to package metadata stored under ``<state_dir>/metadata``."""

    def __init__(self, state_dir: str | os.PathLike[str]):
        self.state_dir = os.fspath(state_dir)
        self.metadata_dir = os.path.join(self.state_dir, "metadata")
        os.makedirs(self.metadata_dir, mode=0o700, exist_ok=True)

    def dump(self, stream: TextIO) -> None:
        """Write the database contents to ``stream``; the file store has none to write."""
        return None

    def get_package(self, pkg_ref: str) -> PackageInfo | None:
        """Stored information for a package, or None if there is none."""
        path = self._metadata_path(pkg_ref)
        try:
            with open(path, "rb") as fh:
                stat = os.fstat(fh.fileno())
                etag = fh.read().decode()
        except FileNotFoundError:
            return None
        return PackageInfo(
            etag=etag,
            update_checked_at=datetime.datetime.fromtimestamp(stat.st_mtime),
        )

    def update_package(self, pkg_ref: str, pkg: PackageInfo) -> None:
        """Record the package's ETag; the check time becomes now."""
        fd = os.open(
            self._metadata_path(pkg_ref), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600
        )
        with os.fdopen(fd, "wb") as fh:
            fh.write(pkg.etag.encode())

    def delete_package(self, pkg_ref: str) -> None:
        """Remove a package's record; raises FileNotFoundError if absent."""
        os.remove(self._metadata_path(pkg_ref))

    def _metadata_path(self, pkg_ref: str) -> str:
        return os.path.join(self.metadata_dir, pkg_ref + ".etag")