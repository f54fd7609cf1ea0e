"""Unit tests for layer archive application."""

import io
import os
import stat

import pytest

from container_diff.core.archive import is_whiteout, normalize_member_name, unpack_tar
from container_diff.utils.errors import ArchiveError


def apply(tar_factory, dest, *layers):
    for members in layers:
        unpack_tar(io.BytesIO(tar_factory(members)), dest)


class TestNormalizeMemberName:
    """Tests for member name normalization."""

    def test_strips_leading_dot_and_slashes(self):
        assert normalize_member_name("./etc/passwd") == "etc/passwd"
        assert normalize_member_name("/usr//bin/") == "usr/bin"

    def test_root_is_empty(self):
        assert normalize_member_name("./") == ""

    def test_parent_reference_rejected(self):
        with pytest.raises(ArchiveError):
            normalize_member_name("etc/../../outside")

    def test_is_whiteout(self):
        assert is_whiteout("etc/.wh.passwd")
        assert is_whiteout("opt/.wh..wh..opq")
        assert not is_whiteout("etc/passwd.wh.")


class TestUnpackTar:
    """Tests for applying a single layer."""

    def test_regular_files_and_dirs(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        data = tar_factory(
            [
                ("dir", "etc"),
                ("file", "etc/hostname", b"box\n", 0o600),
                ("file", "usr/bin/tool", b"#!/bin/sh\n", 0o755),
            ]
        )
        count = unpack_tar(io.BytesIO(data), dest)

        assert count == 3
        assert (dest / "etc/hostname").read_bytes() == b"box\n"
        assert stat.S_IMODE(os.stat(dest / "etc/hostname").st_mode) == 0o600
        assert os.access(dest / "usr/bin/tool", os.X_OK)

    def test_mtime_preserved(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        unpack_tar(io.BytesIO(tar_factory([("dir", "etc"), ("file", "etc/a", b"a")], mtime=1_500_000_000)), dest)
        assert int(os.stat(dest / "etc/a").st_mtime) == 1_500_000_000
        assert int(os.stat(dest / "etc").st_mtime) == 1_500_000_000

    def test_symlink_not_followed(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        apply(tar_factory, dest, [("symlink", "etc/localtime", "/usr/share/zoneinfo/UTC")])
        link = dest / "etc/localtime"
        assert link.is_symlink()
        assert os.readlink(link) == "/usr/share/zoneinfo/UTC"

    def test_hardlink(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        apply(tar_factory, dest, [("file", "bin/a", b"data"), ("hardlink", "bin/b", "bin/a")])
        assert (dest / "bin/b").read_bytes() == b"data"
        assert os.stat(dest / "bin/a").st_ino == os.stat(dest / "bin/b").st_ino

    def test_hardlink_to_missing_target(self, tar_factory, tmp_path):
        with pytest.raises(ArchiveError):
            apply(tar_factory, tmp_path / "fs", [("hardlink", "bin/b", "bin/missing")])

    def test_special_files_skipped(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        count = unpack_tar(io.BytesIO(tar_factory([("fifo", "run/pipe"), ("file", "run/x", b"")])), dest)
        assert count == 1
        assert not (dest / "run/pipe").exists()

    def test_path_traversal_rejected(self, tar_factory, tmp_path):
        with pytest.raises(ArchiveError):
            apply(tar_factory, tmp_path / "fs", [("file", "../escape", b"x")])
        assert not (tmp_path / "escape").exists()

    def test_absolute_symlink_stays_inside_root(self, tar_factory, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        dest = tmp_path / "fs"
        apply(tar_factory, dest, [("symlink", "evil", str(outside))], [("file", "evil/payload", b"x")])
        assert not (outside / "payload").exists()
        assert (dest / str(outside).lstrip("/") / "payload").read_bytes() == b"x"

    def test_relative_symlink_escape_rejected(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        apply(tar_factory, dest, [("symlink", "evil", "../outside")])
        with pytest.raises(ArchiveError):
            apply(tar_factory, dest, [("file", "evil/payload", b"x")])
        assert not (tmp_path / "outside").exists()

    def test_symlink_loop_rejected(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        apply(tar_factory, dest, [("symlink", "a", "b"), ("symlink", "b", "a")])
        with pytest.raises(ArchiveError):
            apply(tar_factory, dest, [("file", "a/x", b"x")])

    def test_malformed_stream(self, tmp_path):
        with pytest.raises(ArchiveError):
            unpack_tar(io.BytesIO(b"not a tar archive at all" * 40), tmp_path / "fs")


class TestLayering:
    """Tests for applying layers on top of each other."""

    def test_later_layer_overwrites(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        apply(tar_factory, dest, [("file", "etc/a", b"old")], [("file", "etc/a", b"new!")])
        assert (dest / "etc/a").read_bytes() == b"new!"

    def test_file_replaces_directory(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        apply(tar_factory, dest, [("file", "opt/x/inner", b"1")], [("file", "opt/x", b"2")])
        assert (dest / "opt/x").is_file()

    def test_whiteout_removes_lower_entry(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        apply(
            tar_factory,
            dest,
            [("file", "etc/a", b"a"), ("file", "etc/b", b"b")],
            [("file", "etc/.wh.a", b"")],
        )
        assert not (dest / "etc/a").exists()
        assert (dest / "etc/b").exists()
        assert not (dest / "etc/.wh.a").exists()

    def test_whiteout_removes_directory_tree(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        apply(tar_factory, dest, [("file", "var/cache/x/y", b"1")], [("file", "var/.wh.cache", b"")])
        assert not (dest / "var/cache").exists()
        assert (dest / "var").is_dir()

    def test_whiteout_of_missing_path_is_ignored(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        apply(tar_factory, dest, [("file", "etc/a", b"a")], [("file", "etc/.wh.nothing", b"")])
        assert (dest / "etc/a").exists()

    def test_whiteout_does_not_remove_same_layer_write(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        apply(
            tar_factory,
            dest,
            [("file", "etc/a", b"lower")],
            [("file", "etc/a", b"upper"), ("file", "etc/.wh.a", b"")],
        )
        assert (dest / "etc/a").read_bytes() == b"upper"

    def test_opaque_whiteout_clears_lower_children(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        apply(
            tar_factory,
            dest,
            [("file", "opt/app/old1", b"1"), ("file", "opt/app/sub/old2", b"2")],
            [("dir", "opt/app"), ("file", "opt/app/.wh..wh..opq", b""), ("file", "opt/app/new", b"n")],
        )
        assert sorted(os.listdir(dest / "opt/app")) == ["new"]

    def test_opaque_whiteout_keeps_entries_written_before_it(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        apply(
            tar_factory,
            dest,
            [("file", "opt/app/old", b"1")],
            [("file", "opt/app/new", b"n"), ("file", "opt/app/.wh..wh..opq", b"")],
        )
        assert sorted(os.listdir(dest / "opt/app")) == ["new"]

    def test_write_below_absolute_directory_link(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        apply(
            tar_factory,
            dest,
            [("dir", "run"), ("symlink", "var/run", "/run")],
            [("file", "var/run/app.pid", b"42\n")],
        )
        assert (dest / "var/run").is_symlink()
        assert (dest / "run/app.pid").read_bytes() == b"42\n"

    def test_whiteout_below_absolute_directory_link(self, tar_factory, tmp_path):
        dest = tmp_path / "fs"
        apply(
            tar_factory,
            dest,
            [("file", "run/app.pid", b"42\n"), ("file", "run/keep", b""), ("symlink", "var/run", "/run")],
            [("file", "var/run/.wh.app.pid", b"")],
        )
        assert not (dest / "run/app.pid").exists()
        assert (dest / "run/keep").exists()

    @pytest.mark.parametrize("marker", [".wh.", "etc/.wh."])
    def test_whiteout_without_name_rejected(self, tar_factory, tmp_path, marker):
        dest = tmp_path / "fs"
        apply(tar_factory, dest, [("file", "etc/a", b"a")])
        with pytest.raises(ArchiveError):
            apply(tar_factory, dest, [("file", marker, b"")])
        assert (dest / "etc/a").read_bytes() == b"a"
