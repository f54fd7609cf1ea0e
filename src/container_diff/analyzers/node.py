"""npm package analyzer."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING

from container_diff.analyzers.package import PackageAnalyzer
from container_diff.models.results import PackageInfo
from container_diff.utils.errors import UnsupportedAnalyzerError
from container_diff.utils.fs import directory_size
from container_diff.utils.logging import get_logger

if TYPE_CHECKING:
    from container_diff.core.image import Image

logger = get_logger("analyzers.node")


def find_package_jsons(root: Path) -> list[Path]:
    """Find ``package.json`` files of packages installed in any node_modules."""
    found = []
    for dirpath, dirnames, _ in os.walk(root):
        if os.path.basename(dirpath) != "node_modules":
            continue
        for name in dirnames:
            package_dir = Path(dirpath) / name
            if name.startswith("@"):
                candidates = [p for p in package_dir.iterdir() if p.is_dir() and not p.is_symlink()]
            elif name.startswith("."):
                continue
            else:
                candidates = [package_dir]
            for candidate in candidates:
                manifest = candidate / "package.json"
                if manifest.is_file():
                    found.append(manifest)
    return found


def _depth(path: Path, root: Path) -> int:
    return len(path.relative_to(root).parts)


class NodeAnalyzer(PackageAnalyzer):
    """Packages found in node_modules directories."""

    name = "node"
    display_name = "Node"
    description = "Node.js packages installed with npm"

    def get_packages(self, image: "Image") -> dict[str, PackageInfo]:
        root = Path(image.fs_path)
        manifests = find_package_jsons(root)
        if not manifests and not any(root.glob("**/node_modules")):
            raise UnsupportedAnalyzerError(self.name, image.source, "no node_modules directory")

        # Shallowest install of a name wins; ties broken by path
        manifests.sort(key=lambda p: (_depth(p, root), str(p)))

        packages: dict[str, PackageInfo] = {}
        for manifest in manifests:
            try:
                data = json.loads(manifest.read_text(encoding="utf-8"))
            except (ValueError, UnicodeDecodeError) as e:
                logger.debug(f"Skipping unreadable {manifest}: {e}")
                continue
            if not isinstance(data, dict):
                continue
            name, version = data.get("name"), data.get("version")
            if not isinstance(name, str) or not isinstance(version, str) or name in packages:
                continue
            packages[name] = PackageInfo(version=version, size=directory_size(manifest.parent))
        return packages
