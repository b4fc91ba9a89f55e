"""Line and character level diffs between two snapshot contents."""

from __future__ import annotations

import re
from difflib import SequenceMatcher
from typing import TYPE_CHECKING

from kotoori.schemas.history import DiffChange, DiffResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from kotoori.schemas.history import DiffGranularity

_LINE_RE = re.compile(r"[^\n]*\n|[^\n]+")


def split_lines(text: str) -> list[str]:
    """Split text into lines, keeping each line's trailing newline."""
    return _LINE_RE.findall(text)


def _tokens(text: str, granularity: DiffGranularity) -> Sequence[str]:
    if granularity == "lines":
        return split_lines(text)
    if granularity == "chars":
        return text
    raise ValueError(f"Unknown diff granularity: {granularity!r}")


def compute_diff(old: str, new: str, granularity: DiffGranularity = "lines") -> DiffResult:
    """Compute the ordered hunks that turn *old* into *new*.

    Counts are in lines or characters depending on *granularity*. When a
    region is replaced, its removed hunk precedes its added hunk. Identical
    inputs always yield identical hunks.
    """
    a = _tokens(old, granularity)
    b = _tokens(new, granularity)
    matcher = SequenceMatcher(None, a, b, autojunk=False)

    changes: list[DiffChange] = []
    added = 0
    removed = 0
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            changes.append(DiffChange(kind="unchanged", value="".join(a[i1:i2]), count=i2 - i1))
            continue
        if tag in ("delete", "replace"):
            changes.append(DiffChange(kind="removed", value="".join(a[i1:i2]), count=i2 - i1))
            removed += i2 - i1
        if tag in ("insert", "replace"):
            changes.append(DiffChange(kind="added", value="".join(b[j1:j2]), count=j2 - j1))
            added += j2 - j1
    return DiffResult(added=added, removed=removed, changes=changes)


def full_addition(content: str, granularity: DiffGranularity = "lines") -> DiffResult:
    """The diff of a first snapshot: everything it contains is new."""
    count = len(_tokens(content, granularity))
    if count == 0:
        return DiffResult()
    return DiffResult(
        added=count,
        removed=0,
        changes=[DiffChange(kind="added", value=content, count=count)],
    )
