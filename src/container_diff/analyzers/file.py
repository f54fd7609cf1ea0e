"""Filesystem analyzer."""

from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import TYPE_CHECKING, NamedTuple

from container_diff.models.results import (
    FileAnalyzeResult,
    FileDiff,
    FileDiffResult,
    FileEntry,
    FileEntryDiff,
)
from container_diff.utils.hashing import hash_file
from container_diff.utils.logging import get_logger

if TYPE_CHECKING:
    from container_diff.core.image import Image

logger = get_logger("analyzers.file")


class FileNode(NamedTuple):
    """What the file analyzer records about one path."""

    kind: str
    size: int
    digest: str | None = None
    target: str | None = None


def _key(root: str, path: str) -> str:
    return "/" + os.path.relpath(path, root).replace(os.sep, "/")


def _digest(path: str) -> str | None:
    try:
        return hash_file(path)
    except OSError as e:
        logger.warning(f"Cannot hash {path}: {e}")
        return None


def snapshot(root: Path | str) -> dict[str, FileNode]:
    """Record every path below a filesystem root.

    Symlinks are recorded, never followed. A directory's size is the sum of
    everything below it.

    Args:
        root: Root of a materialized image filesystem

    Returns:
        Mapping of absolute-style path (``/etc/passwd``) to its node
    """
    root = os.fspath(root)
    nodes: dict[str, FileNode] = {}
    dir_totals: dict[str, int] = {}

    # Bottom-up so every directory's total is known before its parent is visited
    for dirpath, dirnames, filenames in os.walk(root, topdown=False):
        total = 0
        for name in dirnames + filenames:
            full = os.path.join(dirpath, name)
            st = os.lstat(full)
            if stat.S_ISDIR(st.st_mode):
                node = FileNode("dir", dir_totals.pop(full, 0))
            elif stat.S_ISLNK(st.st_mode):
                node = FileNode("symlink", st.st_size, target=os.readlink(full))
            elif stat.S_ISREG(st.st_mode):
                node = FileNode("file", st.st_size, digest=_digest(full))
            else:
                node = FileNode("other", st.st_size)
            nodes[_key(root, full)] = node
            total += node.size
        dir_totals[dirpath] = total

    return nodes


def is_modified(before: FileNode, after: FileNode) -> bool:
    """Check whether a path present in both trees changed."""
    if before.kind != after.kind:
        return True
    if before.kind == "dir":
        # Changes below a directory are reported on the children themselves
        return False
    return before.size != after.size or before.digest != after.digest or before.target != after.target


def diff_snapshots(nodes1: dict[str, FileNode], nodes2: dict[str, FileNode]) -> FileDiff:
    """Compare two snapshots."""
    adds = [FileEntry(name=path, size=node.size) for path, node in nodes2.items() if path not in nodes1]
    dels = [FileEntry(name=path, size=node.size) for path, node in nodes1.items() if path not in nodes2]
    mods = [
        FileEntryDiff(name=path, size1=node.size, size2=nodes2[path].size)
        for path, node in nodes1.items()
        if path in nodes2 and is_modified(node, nodes2[path])
    ]
    return FileDiff(adds=adds, dels=dels, mods=mods)


class FileAnalyzer:
    """Compares image filesystems path by path."""

    @property
    def name(self) -> str:
        return "file"

    @property
    def description(self) -> str:
        return "Files added, deleted or modified between images"

    def diff(self, image1: "Image", image2: "Image") -> FileDiffResult:
        logger.info(f"Diffing filesystems of {image1.source} and {image2.source}")
        diff = diff_snapshots(snapshot(image1.fs_path), snapshot(image2.fs_path))
        return FileDiffResult(image1=image1.source, image2=image2.source, diff_type="File", diff=diff)

    def analyze(self, image: "Image") -> FileAnalyzeResult:
        entries = [FileEntry(name=path, size=node.size) for path, node in snapshot(image.fs_path).items()]
        return FileAnalyzeResult(image=image.source, analyze_type="File", analysis=entries)
