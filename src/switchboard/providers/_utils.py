"""Shared utilities for provider dialects."""

from __future__ import annotations

from collections.abc import Mapping
from fnmatch import fnmatchcase
from typing import Any


def model_allowed(model: str, allow_list: tuple[str, ...]) -> bool:
    """Match *model* against exact names and glob patterns (case-sensitive)."""
    return any(fnmatchcase(model, pattern) for pattern in allow_list)


def translate_params(
    params: Mapping[str, Any], aliases: Mapping[str, str]
) -> dict[str, Any]:
    """Rename generic parameter names to provider-native ones.

    Keys without an alias pass through unchanged; ``None`` values are dropped.
    """
    translated: dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        translated[aliases.get(key, key)] = value
    return translated


def merge_params(*layers: Mapping[str, Any]) -> dict[str, Any]:
    """Merge parameter layers left to right; later layers win."""
    merged: dict[str, Any] = {}
    for layer in layers:
        merged.update(layer)
    return merged
