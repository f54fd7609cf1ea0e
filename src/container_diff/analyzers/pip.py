"""pip package analyzer."""

from __future__ import annotations

import re
from email.parser import HeaderParser
from pathlib import Path
from typing import TYPE_CHECKING

from container_diff.analyzers.package import PackageAnalyzer
from container_diff.models.results import PackageInfo
from container_diff.utils.errors import UnsupportedAnalyzerError
from container_diff.utils.fs import path_size
from container_diff.utils.logging import get_logger

if TYPE_CHECKING:
    from container_diff.core.image import Image

logger = get_logger("analyzers.pip")

_SITE_DIRS = ("site-packages", "dist-packages")
_METADATA_DIR = re.compile(r"^(?P<name>.+?)-(?P<version>[^-]+?)(?:-py[^-]*)?\.(?:dist|egg)-info$")


def find_package_dirs(root: Path) -> list[Path]:
    """Find Python site directories below an image root.

    Looks for ``lib/python*/{site,dist}-packages`` under any prefix, e.g.
    ``/usr/lib/python3/dist-packages`` or ``/usr/local/lib/python3.12/site-packages``.
    """
    found = set()
    for lib in root.glob("**/lib"):
        if lib.is_symlink() or not lib.is_dir():
            continue
        for python_dir in lib.glob("python*"):
            if python_dir.is_symlink():
                continue
            for site in _SITE_DIRS:
                candidate = python_dir / site
                if candidate.is_dir() and not candidate.is_symlink():
                    found.add(candidate)
    return sorted(found)


def read_metadata(meta_dir: Path) -> tuple[str, str] | None:
    """Read name and version from a dist-info/egg-info entry.

    egg-info may be a single PKG-INFO style file instead of a directory.
    """
    if meta_dir.is_dir():
        candidates = [meta_dir / "METADATA", meta_dir / "PKG-INFO"]
    else:
        candidates = [meta_dir]

    for meta_file in candidates:
        if not meta_file.is_file():
            continue
        headers = HeaderParser().parsestr(meta_file.read_text(encoding="utf-8", errors="replace"))
        name, version = headers.get("Name"), headers.get("Version")
        if name and version:
            return name, version

    match = _METADATA_DIR.match(meta_dir.name)
    if match:
        return match.group("name"), match.group("version")
    return None


def _installed_size(meta_dir: Path, site: Path) -> int:
    size = path_size(meta_dir)
    top_level = meta_dir / "top_level.txt"
    if not top_level.is_file():
        return size
    for line in top_level.read_text(encoding="utf-8", errors="replace").splitlines():
        module = line.strip()
        if not module:
            continue
        for candidate in (site / module, site / f"{module}.py"):
            if candidate.exists() or candidate.is_symlink():
                size += path_size(candidate)
                break
    return size


class PipAnalyzer(PackageAnalyzer):
    """Python distributions installed in site-packages or dist-packages."""

    name = "pip"
    display_name = "Pip"
    description = "Python packages installed with pip"

    def get_packages(self, image: "Image") -> dict[str, PackageInfo]:
        sites = find_package_dirs(Path(image.fs_path))
        if not sites:
            raise UnsupportedAnalyzerError(self.name, image.source, "no Python site-packages directory")

        packages: dict[str, PackageInfo] = {}
        for site in sites:
            for meta_dir in sorted(site.iterdir()):
                if not meta_dir.name.endswith((".dist-info", ".egg-info")):
                    continue
                info = read_metadata(meta_dir)
                if info is None:
                    logger.debug(f"Skipping unreadable package metadata {meta_dir}")
                    continue
                name, version = info
                packages[name] = PackageInfo(version=version, size=_installed_size(meta_dir, site))
        return packages
