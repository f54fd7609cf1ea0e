"""Shared logic for package-manager analyzers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from container_diff.models.results import (
    PackageAnalyzeResult,
    PackageDiff,
    PackageDiffEntry,
    PackageDiffResult,
    PackageEntry,
    PackageInfo,
)
from container_diff.utils.logging import get_logger

if TYPE_CHECKING:
    from container_diff.core.image import Image

logger = get_logger("analyzers.package")


def diff_packages(packages1: dict[str, PackageInfo], packages2: dict[str, PackageInfo]) -> PackageDiff:
    """Compare two package maps keyed by package name.

    A package present in both maps with another version or size is reported
    once, as changed, with both infos.
    """
    only1 = [
        PackageEntry(name=name, version=info.version, size=info.size)
        for name, info in packages1.items()
        if name not in packages2
    ]
    only2 = [
        PackageEntry(name=name, version=info.version, size=info.size)
        for name, info in packages2.items()
        if name not in packages1
    ]
    changed = [
        PackageDiffEntry(name=name, info1=info, info2=packages2[name])
        for name, info in packages1.items()
        if name in packages2 and info != packages2[name]
    ]
    return PackageDiff(packages1=only1, packages2=only2, info_diff=changed)


class PackageAnalyzer(ABC):
    """Base class for analyzers that read one package manager's database.

    Subclasses set ``name``/``display_name`` and implement ``get_packages``.
    """

    name = "package"
    display_name = "Package"
    description = "Installed packages"

    @abstractmethod
    def get_packages(self, image: "Image") -> dict[str, PackageInfo]:
        """Read the installed packages of an image.

        Raises:
            UnsupportedAnalyzerError: If the image has no database for this manager
        """
        ...

    def diff(self, image1: "Image", image2: "Image") -> PackageDiffResult:
        packages1 = self.get_packages(image1)
        packages2 = self.get_packages(image2)
        logger.debug(f"{self.name}: {len(packages1)} packages in {image1.source}, {len(packages2)} in {image2.source}")
        return PackageDiffResult(
            image1=image1.source,
            image2=image2.source,
            diff_type=self.display_name,
            diff=diff_packages(packages1, packages2),
        )

    def analyze(self, image: "Image") -> PackageAnalyzeResult:
        packages = self.get_packages(image)
        return PackageAnalyzeResult(
            image=image.source,
            analyze_type=self.display_name,
            analysis=[PackageEntry(name=name, version=info.version, size=info.size) for name, info in packages.items()],
        )
