"""Cheap token estimates for budgeting and audit records."""

from __future__ import annotations


def estimate_tokens(text: str) -> int:
    """Estimate the token count of *text*.

    Basic heuristic: ~4 characters per token for English text. Providers
    count exactly on their side; this only sizes budgets and audit entries.
    """
    if not text.strip():
        return 0
    return max(1, len(text) // 4)
