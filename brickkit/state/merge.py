from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from brickkit.errors import BusinessError
from brickkit.state.types import MergeStrategy


def _deep_merge(base: dict[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        previous = merged.get(key)
        if isinstance(previous, Mapping) and isinstance(value, Mapping):
            merged[key] = _deep_merge(dict(previous), value)
        else:
            merged[key] = value
    return merged


def merge_state(
    previous: Mapping[str, Any],
    update: Mapping[str, Any],
    strategy: MergeStrategy,
) -> dict[str, Any]:
    """Return the next state; neither argument is modified or aliased.

    `deep` merges nested mappings key by key; lists and scalars in `update`
    replace the previous value outright.
    """

    if strategy == "replace":
        return copy.deepcopy(dict(update))
    if strategy == "shallow":
        return {**copy.deepcopy(dict(previous)), **copy.deepcopy(dict(update))}
    if strategy == "deep":
        return _deep_merge(copy.deepcopy(dict(previous)), copy.deepcopy(dict(update)))
    raise BusinessError(f"Unknown merge strategy: {strategy}")
