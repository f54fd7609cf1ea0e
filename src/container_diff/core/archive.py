"""Streaming tar layer extraction with whiteout support.

A layer is applied on top of whatever earlier layers already materialized
under the destination directory. Whiteout markers delete entries coming from
those earlier layers:

* ``.wh.<name>`` removes ``<name>`` from the same directory
* ``.wh..wh..opq`` removes everything below its directory

Entries written by the layer being applied are never removed by that layer's
own whiteouts, whatever their position in the stream.
"""

from __future__ import annotations

import os
import posixpath
import shutil
import stat
import tarfile
from pathlib import Path
from typing import BinaryIO

from container_diff.utils.errors import ArchiveError
from container_diff.utils.logging import get_logger

logger = get_logger("archive")

WHITEOUT_PREFIX = ".wh."
OPAQUE_WHITEOUT = ".wh..wh..opq"

_COPY_CHUNK = 1024 * 1024
_MAX_LINK_HOPS = 40


def normalize_member_name(name: str) -> str:
    """Normalize a tar member name to a path relative to the layer root.

    Returns an empty string for the root itself.

    Raises:
        ArchiveError: If the name contains a ``..`` component
    """
    parts = [part for part in name.replace("\\", "/").split("/") if part not in ("", ".")]
    if ".." in parts:
        raise ArchiveError(f"Refusing to extract {name}: path escapes the image root", member=name)
    return "/".join(parts)


def is_whiteout(name: str) -> bool:
    """Check whether a member name is a whiteout marker."""
    return posixpath.basename(name).startswith(WHITEOUT_PREFIX)


def _is_real_dir(path: str) -> bool:
    return os.path.isdir(path) and not os.path.islink(path)


def _remove_path(path: str) -> None:
    if _is_real_dir(path):
        shutil.rmtree(path)
    else:
        os.unlink(path)


class _LayerWriter:
    """Applies the members of one layer to a destination tree."""

    def __init__(self, dest: Path) -> None:
        self.root = os.path.realpath(dest)
        self.written: set[str] = set()
        self.dir_meta: list[tuple[str, int, float]] = []
        self.count = 0

    def resolve(self, rel: str) -> str:
        """Absolute path for a relative entry, with its parent resolved inside the root."""
        parent, base = posixpath.split(rel)
        return os.path.join(self._resolve_dir(parent, rel), base)

    def _resolve_dir(self, rel_dir: str, member: str) -> str:
        """Follow symlinks along a directory path the way the image would see them.

        Absolute link targets are taken relative to the image root, never the
        host filesystem.

        Raises:
            ArchiveError: If a ``..`` climbs above the root or links loop
        """
        pending = rel_dir.split("/")
        resolved: list[str] = []
        hops = 0
        while pending:
            part = pending.pop(0)
            if part in ("", "."):
                continue
            if part == "..":
                if not resolved:
                    raise ArchiveError(
                        f"Refusing to extract {member}: parent resolves outside the image root", member=member
                    )
                resolved.pop()
                continue
            candidate = os.path.join(self.root, *resolved, part)
            if not os.path.islink(candidate):
                resolved.append(part)
                continue
            hops += 1
            if hops > _MAX_LINK_HOPS:
                raise ArchiveError(f"Refusing to extract {member}: too many levels of symbolic links", member=member)
            target = os.readlink(candidate)
            if target.startswith("/"):
                resolved = []
            pending = target.split("/") + pending
        return os.path.join(self.root, *resolved)

    def _has_written_below(self, rel: str) -> bool:
        prefix = rel + "/"
        return any(path.startswith(prefix) for path in self.written)

    def remove_lower(self, rel: str) -> None:
        """Remove an entry that came from an earlier layer, sparing this layer's writes."""
        path = self.resolve(rel)
        if not os.path.lexists(path):
            return
        if rel in self.written or self._has_written_below(rel):
            if _is_real_dir(path):
                for child in os.listdir(path):
                    self.remove_lower(posixpath.join(rel, child))
            return
        logger.debug(f"Whiteout removes /{rel}")
        _remove_path(path)

    def whiteout(self, rel: str) -> None:
        parent, base = posixpath.split(rel)
        if base == OPAQUE_WHITEOUT:
            directory = self._resolve_dir(parent, rel)
            if _is_real_dir(directory):
                for child in os.listdir(directory):
                    self.remove_lower(posixpath.join(parent, child) if parent else child)
            return

        name = base[len(WHITEOUT_PREFIX):]
        if name in ("", ".", ".."):
            raise ArchiveError(f"Whiteout marker {rel} names no entry", member=rel)
        target = posixpath.join(parent, name)
        if target in self.written:
            return
        self.remove_lower(target)

    def _prepare(self, path: str, is_dir: bool) -> None:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        if not os.path.lexists(path):
            return
        if is_dir and _is_real_dir(path):
            return
        _remove_path(path)

    def write(self, tar: tarfile.TarFile, member: tarfile.TarInfo, rel: str) -> None:
        path = self.resolve(rel)

        if member.isdir():
            self._prepare(path, is_dir=True)
            os.makedirs(path, exist_ok=True)
            mode = (member.mode & 0o7777) | stat.S_IRWXU
            os.chmod(path, mode)
            self.dir_meta.append((path, mode, member.mtime))
        elif member.isreg():
            self._prepare(path, is_dir=False)
            source = tar.extractfile(member)
            with open(path, "wb") as out:
                if source is not None:
                    shutil.copyfileobj(source, out, _COPY_CHUNK)
            os.chmod(path, member.mode & 0o7777)
            os.utime(path, (member.mtime, member.mtime))
        elif member.issym():
            self._prepare(path, is_dir=False)
            os.symlink(member.linkname, path)
            if os.utime in os.supports_follow_symlinks:
                os.utime(path, (member.mtime, member.mtime), follow_symlinks=False)
        elif member.islnk():
            link_rel = normalize_member_name(member.linkname)
            link_source = self.resolve(link_rel) if link_rel else self.root
            if not os.path.lexists(link_source):
                raise ArchiveError(f"Hard link {rel} points to missing entry {member.linkname}", member=rel)
            self._prepare(path, is_dir=False)
            os.link(link_source, path, follow_symlinks=False)
        else:
            logger.debug(f"Skipping special file /{rel} (type {member.type!r})")
            return

        self.written.add(rel)
        self.count += 1

    def finish(self) -> None:
        # Children change directory mtimes, so directory metadata goes last
        for path, mode, mtime in reversed(self.dir_meta):
            os.chmod(path, mode)
            os.utime(path, (mtime, mtime))


def unpack_tar(fileobj: BinaryIO, dest: Path | str) -> int:
    """Apply an uncompressed tar layer stream onto a destination directory.

    The stream is read once, front to back; it does not need to be seekable.

    Args:
        fileobj: Readable stream of an uncompressed tar archive
        dest: Directory the layer is applied to (created if missing)

    Returns:
        Number of entries materialized

    Raises:
        ArchiveError: If the stream is malformed, unsafe, or cannot be written
    """
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    writer = _LayerWriter(dest)

    try:
        with tarfile.open(fileobj=fileobj, mode="r|") as tar:
            for member in tar:
                rel = normalize_member_name(member.name)
                if not rel:
                    continue
                if is_whiteout(rel):
                    writer.whiteout(rel)
                    continue
                writer.write(tar, member, rel)
        writer.finish()
    except tarfile.TarError as e:
        raise ArchiveError(f"Malformed layer archive: {e}") from e
    except OSError as e:
        raise ArchiveError(f"Failed to write layer entry {e.filename or ''}: {e.strerror or e}".strip()) from e

    return writer.count
