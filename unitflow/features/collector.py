"""Feature collector — discover feature definitions in a features directory."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from unitflow.errors import NotFoundError
from unitflow.migrations.collector import SKIP_NAMES, collation_key
from unitflow.migrations.hooks import load_module
from unitflow.models.units import FeatureDefinition

logger = logging.getLogger(__name__)

FEATURE_FILE = "feature.py"

# Descriptor functions picked off feature.py
_HOOKS = ("before_deploy", "finish", "remove")


def collect_features(directory: str | Path) -> list[FeatureDefinition]:
    """Return the features under ``directory`` in collation order.

    A feature is a sub-directory containing ``feature.py``; other
    sub-directories are ignored.

    Raises:
        NotFoundError: If the directory does not exist.
    """
    root = Path(directory)
    if not root.is_dir():
        raise NotFoundError(f"Features directory does not exist: {root}")

    features = []
    for entry in sorted(root.iterdir(), key=lambda p: collation_key(p.name)):
        if not entry.is_dir() or entry.name in SKIP_NAMES or entry.name.startswith("."):
            continue
        descriptor = entry / FEATURE_FILE
        if not descriptor.is_file():
            continue
        features.append(load_feature(descriptor))
    return features


def find_feature(directory: str | Path, name: str) -> FeatureDefinition:
    for feature in collect_features(directory):
        if feature.name == name:
            return feature
    raise NotFoundError(f"Cannot find feature {name} in {directory}")


def load_feature(descriptor: str | Path) -> FeatureDefinition:
    """Build a :class:`FeatureDefinition` from a ``feature.py`` file."""
    path = Path(descriptor).resolve()
    module = load_module(path)

    hooks: dict[str, Any] = {}
    for hook in _HOOKS:
        value = getattr(module, hook, None)
        if value is not None and not callable(value):
            logger.warning("Ignoring %s in %s: not callable", hook, path)
            value = None
        hooks[hook] = value

    return FeatureDefinition(
        name=getattr(module, "name", None) or path.parent.name,
        path=path.parent,
        requires=list(getattr(module, "requires", []) or []),
        default_vars=dict(getattr(module, "default_vars", {}) or {}),
        secret_vars=list(getattr(module, "secret_vars", []) or []),
        questions=getattr(module, "questions", None),
        exclude_migrations=list(getattr(module, "exclude_migrations", []) or []),
        exclude_artifacts=list(getattr(module, "exclude_artifacts", []) or []),
        **hooks,
    )
