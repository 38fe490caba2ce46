"""
Release ledger.

A release tag counts as processed once a zero-byte marker file named
``{tag}.release`` exists in the repository's storage directory. Markers are
only ever created, never updated or removed.

Tags may contain ``/`` (``cli/v1.0.0``); such releases are stored in nested
directories below the storage directory.
"""

import os
from pathlib import Path

from gitgrope.constants import RELEASE_MARKER_SUFFIX
from gitgrope.exceptions import LedgerError
from gitgrope.log_utils import logger


def _sanitize_tag(tag: str) -> str:
    """
    Validate a release tag for use as a relative path below the storage directory.

    Returns the tag unchanged when it is safe.

    Raises:
        LedgerError: If the tag is empty, absolute, contains a NUL byte, or has an empty, ``.`` or ``..`` segment.
    """
    if not tag or "\x00" in tag or os.path.isabs(tag):
        raise LedgerError(f"unsafe release tag: {tag!r}")

    segments = [tag]
    for separator in (os.sep, os.altsep, "/"):
        if separator:
            segments = [part for s in segments for part in s.split(separator)]
    if any(segment.strip() in {"", ".", ".."} for segment in segments):
        raise LedgerError(f"unsafe release tag: {tag!r}")
    return tag


def _is_within_base(real_base_dir: str, candidate: str) -> bool:
    try:
        return os.path.commonpath([real_base_dir, candidate]) == real_base_dir
    except ValueError:
        return False


class ReleaseLedger:
    """Filesystem-backed record of fully processed release tags."""

    def __init__(self, release_dir: Path):
        self.release_dir = Path(release_dir)

    def _resolve(self, relative: str) -> Path:
        path = self.release_dir / relative
        real_base = os.path.realpath(self.release_dir)
        if not _is_within_base(real_base, os.path.realpath(path)):
            raise LedgerError(
                f"unsafe release tag: {relative!r}",
                path=str(path),
                details="resolves outside the release directory",
            )
        return path

    def marker_path(self, tag: str) -> Path:
        return self._resolve(f"{_sanitize_tag(tag)}{RELEASE_MARKER_SUFFIX}")

    def release_path(self, tag: str) -> Path:
        return self._resolve(_sanitize_tag(tag))

    def is_processed(self, tag: str) -> bool:
        return self.marker_path(tag).exists()

    def prepare(self, tag: str) -> Path:
        """
        Create the local directory that receives the release's assets.

        Returns:
            Path: The release directory.

        Raises:
            LedgerError: If the directory cannot be created.
        """
        path = self.release_path(tag)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LedgerError(
                "error creating download destination", path=str(path), details=str(e)
            ) from e
        return path

    def record(self, tag: str) -> Path:
        """
        Write the marker for a fully processed release.

        The marker is created exclusively; if it already exists (another cycle
        recorded the same tag) a warning is logged and the existing marker stands.

        Returns:
            Path: The marker path.

        Raises:
            LedgerError: If the marker cannot be written.
        """
        path = self.marker_path(tag)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LedgerError(
                "error saving release info", path=str(path), details=str(e)
            ) from e
        try:
            with open(path, "xb"):
                pass
        except FileExistsError:
            logger.warning(f"Release marker {path} already exists")
        except OSError as e:
            raise LedgerError(
                "error saving release info", path=str(path), details=str(e)
            ) from e
        return path
