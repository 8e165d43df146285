from __future__ import annotations

import difflib
from collections import Counter


def token_diff(before: list[str], after: list[str]) -> tuple[list[str], list[str]]:
    """Return (added, removed) tokens, counting duplicates, in their line order."""
    before_left = Counter(before)
    after_left = Counter(after)

    added: list[str] = []
    for tok in after:
        if before_left[tok]:
            before_left[tok] -= 1
        else:
            added.append(tok)

    removed: list[str] = []
    for tok in before:
        if after_left[tok]:
            after_left[tok] -= 1
        else:
            removed.append(tok)

    return added, removed


def unified_diff(path: str, before: str, after: str) -> str:
    return "".join(
        difflib.unified_diff(
            before.splitlines(keepends=True),
            after.splitlines(keepends=True),
            fromfile=f"a/{path}",
            tofile=f"b/{path}",
        )
    )
