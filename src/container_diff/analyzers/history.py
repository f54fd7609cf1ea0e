"""Build history analyzer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from container_diff.models.results import (
    HistoryAnalyzeResult,
    HistoryChange,
    HistoryDiff,
    HistoryDiffResult,
    HistoryLine,
)

if TYPE_CHECKING:
    from container_diff.core.image import Image


def align_history(history1: Sequence[str], history2: Sequence[str]) -> list[HistoryLine]:
    """Align two command sequences along their longest common subsequence.

    Commands only in the first sequence are deletions, commands only in the
    second are additions. Inside a gap between two common commands the
    deletions come before the additions.

    Example:
        >>> [(l.change.value, l.created_by) for l in align_history(["x", "y", "z"], ["x", "w", "z"])]
        [('unchanged', 'x'), ('deleted', 'y'), ('added', 'w'), ('unchanged', 'z')]
    """
    n, m = len(history1), len(history2)
    # lcs[i][j] is the LCS length of history1[i:] and history2[j:]
    lcs = [[0] * (m + 1) for _ in range(n + 1)]
    for i in range(n - 1, -1, -1):
        for j in range(m - 1, -1, -1):
            if history1[i] == history2[j]:
                lcs[i][j] = lcs[i + 1][j + 1] + 1
            else:
                lcs[i][j] = max(lcs[i + 1][j], lcs[i][j + 1])

    lines: list[HistoryLine] = []
    deleted: list[HistoryLine] = []
    added: list[HistoryLine] = []

    def flush() -> None:
        lines.extend(deleted)
        lines.extend(added)
        deleted.clear()
        added.clear()

    i = j = 0
    while i < n and j < m:
        if history1[i] == history2[j]:
            flush()
            lines.append(HistoryLine(change=HistoryChange.UNCHANGED, created_by=history1[i]))
            i += 1
            j += 1
        elif lcs[i + 1][j] >= lcs[i][j + 1]:
            deleted.append(HistoryLine(change=HistoryChange.DELETED, created_by=history1[i]))
            i += 1
        else:
            added.append(HistoryLine(change=HistoryChange.ADDED, created_by=history2[j]))
            j += 1

    deleted.extend(HistoryLine(change=HistoryChange.DELETED, created_by=cmd) for cmd in history1[i:])
    added.extend(HistoryLine(change=HistoryChange.ADDED, created_by=cmd) for cmd in history2[j:])
    flush()
    return lines


def _commands(image: "Image") -> list[str]:
    return [item.created_by for item in image.config.history]


class HistoryAnalyzer:
    """Compares the build histories recorded in image configs."""

    @property
    def name(self) -> str:
        return "history"

    @property
    def description(self) -> str:
        return "Build steps added or removed between images"

    def diff(self, image1: "Image", image2: "Image") -> HistoryDiffResult:
        lines = align_history(_commands(image1), _commands(image2))
        return HistoryDiffResult(
            image1=image1.source,
            image2=image2.source,
            diff_type="History",
            diff=HistoryDiff(lines=lines),
        )

    def analyze(self, image: "Image") -> HistoryAnalyzeResult:
        return HistoryAnalyzeResult(image=image.source, analyze_type="History", analysis=_commands(image))
