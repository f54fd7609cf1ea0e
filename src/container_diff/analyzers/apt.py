"""apt/dpkg package analyzer."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from container_diff.analyzers.package import PackageAnalyzer
from container_diff.models.results import PackageInfo
from container_diff.utils.errors import UnsupportedAnalyzerError
from container_diff.utils.logging import get_logger

if TYPE_CHECKING:
    from container_diff.core.image import Image

logger = get_logger("analyzers.apt")

DPKG_STATUS = Path("var/lib/dpkg/status")
DPKG_STATUS_DIR = Path("var/lib/dpkg/status.d")


def iter_stanzas(text: str) -> Iterator[dict[str, str]]:
    """Split a dpkg control file into field mappings.

    Continuation lines are folded into the previous field.
    """
    fields: dict[str, str] = {}
    last: str | None = None
    for line in text.splitlines():
        if not line.strip():
            if fields:
                yield fields
            fields, last = {}, None
            continue
        if line[0] in " \t":
            if last is not None:
                fields[last] += "\n" + line.strip()
            continue
        key, sep, value = line.partition(":")
        if not sep:
            continue
        last = key.strip()
        fields[last] = value.strip()
    if fields:
        yield fields


def _is_installed(fields: dict[str, str]) -> bool:
    # Distroless status.d entries carry no Status field
    status = fields.get("Status")
    if status is None:
        return True
    words = status.split()
    return bool(words) and words[-1] == "installed"


def parse_dpkg_status(text: str) -> dict[str, PackageInfo]:
    """Parse a dpkg status database.

    Args:
        text: Contents of ``var/lib/dpkg/status``

    Returns:
        Installed packages keyed by name; sizes in bytes
    """
    packages: dict[str, PackageInfo] = {}
    for fields in iter_stanzas(text):
        name = fields.get("Package")
        if not name or not _is_installed(fields):
            continue
        try:
            size = int(fields.get("Installed-Size", "0") or 0) * 1024
        except ValueError:
            logger.debug(f"Ignoring malformed Installed-Size for {name}: {fields.get('Installed-Size')}")
            size = 0
        packages[name] = PackageInfo(version=fields.get("Version", ""), size=size)
    return packages


class AptAnalyzer(PackageAnalyzer):
    """Packages recorded in the dpkg status database."""

    name = "apt"
    display_name = "Apt"
    description = "Debian packages installed with apt/dpkg"

    def get_packages(self, image: "Image") -> dict[str, PackageInfo]:
        root = Path(image.fs_path)
        status = root / DPKG_STATUS
        status_dir = root / DPKG_STATUS_DIR

        if not status.is_file() and not status_dir.is_dir():
            raise UnsupportedAnalyzerError(self.name, image.source, f"no dpkg database at /{DPKG_STATUS}")

        packages: dict[str, PackageInfo] = {}
        if status.is_file():
            packages.update(parse_dpkg_status(status.read_text(encoding="utf-8", errors="replace")))
        if status_dir.is_dir():
            for entry in sorted(status_dir.iterdir()):
                if entry.is_file():
                    packages.update(parse_dpkg_status(entry.read_text(encoding="utf-8", errors="replace")))
        return packages
