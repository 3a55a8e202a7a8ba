"""Read-only feature queries used by ``unitflow feature list|current|get``."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from unitflow.errors import NotFoundError
from unitflow.features.collector import collect_features
from unitflow.migrations.state import StateStore
from unitflow.remote.client import RemoteTarget


async def current_features(
    target: RemoteTarget, features_dir: str | Path | None = None
) -> list[dict[str, Any]]:
    """Deployed feature instances.

    With ``features_dir`` only instances also available locally are
    returned, annotated with their local ``path``.
    """
    state = await StateStore(target).read_feature_state()
    if state is None:
        return []

    local = {}
    if features_dir is not None:
        local = {f.name: f for f in collect_features(features_dir)}

    result = []
    for instance in state.instances:
        entry = instance.to_dict()
        if features_dir is not None:
            if instance.name not in local:
                continue
            entry["path"] = str(local[instance.name].path)
        result.append(entry)
    return result


async def get_feature(target: RemoteTarget, name: str | None = None) -> dict[str, Any] | None:
    """One deployed instance, or the whole feature state when ``name`` is omitted.

    Returns ``None`` when the instance has no feature state yet.
    """
    state = await StateStore(target).read_feature_state()
    if state is None:
        return None
    if name is None:
        return state.to_dict()
    instance = state.get(name)
    if instance is None:
        raise NotFoundError(f"Feature {name} is not deployed")
    return instance.to_dict()
