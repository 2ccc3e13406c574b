"""Dotted field-path helpers for nested subject state.

``"stats.power"`` and ``"inventory[0].name"`` address nested dict keys; bracket
indices are treated as plain keys, so intermediate containers are always dicts.
"""

import re
from typing import Any

_BRACKET_INDEX = re.compile(r"\[(\d+)\]")


def to_segments(path: str | None) -> list[str]:
    if not path:
        return []
    normalized = _BRACKET_INDEX.sub(r".\1", path)
    return [token.strip() for token in normalized.split(".") if token.strip()]


def set_by_path(root: dict[str, Any], path: str | None, value: Any) -> None:
    """
    Assign ``value`` at ``path``, creating intermediate dicts as needed.

    A non-dict value found on the way is replaced by a new dict.

    :param root: State dict, mutated in place
    :type root: dict[str, Any]
    :param path: Dotted field path
    :type path: str | None
    :param value: Value to assign
    :type value: Any
    """
    segments = to_segments(path)
    if not segments:
        return
    current = root
    for key in segments[:-1]:
        child = current.get(key)
        if not isinstance(child, dict):
            child = {}
            current[key] = child
        current = child
    current[segments[-1]] = value


def remove_by_path(root: dict[str, Any], path: str | None) -> None:
    """
    Delete the leaf at ``path``. Missing or non-dict intermediates make this a no-op.

    :param root: State dict, mutated in place
    :type root: dict[str, Any]
    :param path: Dotted field path
    :type path: str | None
    """
    segments = to_segments(path)
    if not segments:
        return
    current: Any = root
    for key in segments[:-1]:
        current = current.get(key)
        if not isinstance(current, dict):
            return
    current.pop(segments[-1], None)


def flatten_state(state: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Map every leaf of ``state`` to its dotted path. Empty dicts count as leaves."""
    flat: dict[str, Any] = {}
    for key, value in state.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict) and value:
            flat.update(flatten_state(value, path))
        else:
            flat[path] = value
    return flat
