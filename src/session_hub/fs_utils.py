"""Filesystem helpers: containment checks, crash-safe moves and file walking."""

import errno
import logging
import os
import shutil
from pathlib import Path

from .errors import OutOfBoundsPath

logger = logging.getLogger(__name__)


def path_exists(target: Path) -> bool:
    return os.path.lexists(target)


def ensure_dir(directory: Path) -> None:
    Path(directory).mkdir(parents=True, exist_ok=True)


def normalize_relative_path(relative_path) -> str:
    """Return a relative path in forward-slash form regardless of host separator."""
    return "/".join(Path(relative_path).parts)


def is_path_inside_root(root, candidate) -> bool:
    """True if candidate is root itself or nested below it.

    The trailing separator keeps a sibling such as ``root-secret`` from
    matching ``root``.
    """
    resolved_root = os.path.abspath(root)
    resolved_candidate = os.path.abspath(candidate)
    root_with_sep = resolved_root if resolved_root.endswith(os.sep) else resolved_root + os.sep
    return resolved_candidate == resolved_root or resolved_candidate.startswith(root_with_sep)


def resolve_within_root(root, relative_input, label: str = "path") -> Path:
    """Resolve relative_input against root, refusing anything outside root."""
    if not isinstance(relative_input, str) or not relative_input.strip():
        raise OutOfBoundsPath(f"{label} is missing")

    resolved_root = os.path.abspath(root)
    resolved_candidate = os.path.abspath(os.path.join(resolved_root, relative_input))
    if not is_path_inside_root(resolved_root, resolved_candidate):
        raise OutOfBoundsPath(f"{label} escapes allowed root")

    return Path(resolved_candidate)


def move_path(source: Path, destination: Path) -> None:
    """Move a file, falling back to copy + delete across devices.

    On success the source is gone and the destination holds its bytes.
    """
    try:
        os.rename(source, destination)
        return
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise

    logger.debug("Cross-device move %s -> %s, copying", source, destination)
    try:
        shutil.copy2(source, destination)
    except OSError:
        _discard_partial_copy(destination)
        raise
    os.unlink(source)


def _discard_partial_copy(destination: Path) -> None:
    try:
        os.unlink(destination)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error("Failed to remove partial copy %s: %s", destination, e)


def walk_files(root: Path) -> list[Path]:
    """Recursively list files under root.

    A missing root, or a directory that vanishes mid-walk, contributes
    nothing. Any other access error propagates.
    """
    files: list[Path] = []
    pending = [Path(root)]

    while pending:
        current = pending.pop()
        try:
            with os.scandir(current) as entries:
                for entry in entries:
                    if entry.is_dir(follow_symlinks=False):
                        pending.append(Path(entry.path))
                    elif entry.is_file(follow_symlinks=False):
                        files.append(Path(entry.path))
        except FileNotFoundError:
            continue

    return sorted(files)
