"""Filesystem helpers for scratch directories and tree sizes."""

from __future__ import annotations

import os
import shutil
import stat
import sys
import tempfile
from pathlib import Path

from container_diff.utils.hashing import sanitize_name
from container_diff.utils.logging import get_logger

logger = get_logger("fs")


def make_temp_dir(name: str) -> Path:
    """Create a fresh scratch directory named after an image identifier."""
    return Path(tempfile.mkdtemp(prefix=f"{sanitize_name(name)}-", suffix=".container-diff"))


def _make_writable(func, path, exc_info) -> None:  # noqa: ANN001
    """rmtree error hook: grant owner write access and retry once."""
    parent = os.path.dirname(path)
    os.chmod(parent, os.stat(parent).st_mode | stat.S_IRWXU)
    if not os.path.islink(path) and os.path.isdir(path):
        os.chmod(path, os.stat(path).st_mode | stat.S_IRWXU)
    func(path)


def remove_tree(path: Path | str) -> None:
    """Recursively remove a directory tree, ignoring restrictive permissions."""
    path = Path(path)
    if not path.exists() and not path.is_symlink():
        return
    logger.info(f"Removing image filesystem directory {path} from system")
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_make_writable)
    else:
        shutil.rmtree(path, onerror=_make_writable)


def directory_size(path: Path | str) -> int:
    """Total size of everything below a directory, without following symlinks."""
    total = 0
    for root, dirs, files in os.walk(path):
        for name in dirs + files:
            st = os.lstat(os.path.join(root, name))
            if not stat.S_ISDIR(st.st_mode):
                total += st.st_size
    return total


def path_size(path: Path | str) -> int:
    """Size of a file, symlink or directory tree."""
    st = os.lstat(path)
    if stat.S_ISDIR(st.st_mode):
        return directory_size(path)
    return st.st_size
