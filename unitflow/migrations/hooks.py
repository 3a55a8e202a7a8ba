"""Lifecycle hooks — dynamic loading of project-supplied Python modules.

A migrations directory may contain ``setup.py`` defining any of the hook
functions below. Hooks (and unit scripts) may be plain functions or
coroutine functions; :func:`resolve` awaits whatever they return.
"""

from __future__ import annotations

import hashlib
import importlib.util
import inspect
import logging
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from types import ModuleType
from typing import Any, Callable

from unitflow.migrations.collector import SETUP_FILE

logger = logging.getLogger(__name__)


async def resolve(value: Any) -> Any:
    """Await ``value`` if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


def load_module(path: str | Path) -> ModuleType:
    """Import a Python file by path under a private, path-derived module name."""
    resolved = Path(path).resolve()
    digest = hashlib.sha1(str(resolved).encode()).hexdigest()[:12]
    name = f"unitflow_dynamic_{resolved.stem.replace('-', '_')}_{digest}"

    spec = importlib.util.spec_from_file_location(name, resolved)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load module from {resolved}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(name, None)
        raise
    return module


@dataclass
class LifecycleHooks:
    """Optional project callbacks invoked at fixed points of a run."""

    init: Callable[..., Any] | None = None
    should_bootstrap: Callable[..., Any] | None = None
    on_bootstrap: Callable[..., Any] | None = None
    before_all: Callable[..., Any] | None = None
    before_each: Callable[..., Any] | None = None
    after_each: Callable[..., Any] | None = None
    after_all: Callable[..., Any] | None = None
    on_failure: Callable[..., Any] | None = None

    @classmethod
    def from_module(cls, module: Any) -> "LifecycleHooks":
        """Pick the hook callables off a module (or any object).

        Attributes that exist but are not callable are ignored with a warning.
        """
        found: dict[str, Callable[..., Any]] = {}
        for f in fields(cls):
            value = getattr(module, f.name, None)
            if value is None:
                continue
            if not callable(value):
                logger.warning("Ignoring lifecycle hook %s: not callable", f.name)
                continue
            found[f.name] = value
        return cls(**found)

    def has(self, name: str) -> bool:
        return getattr(self, name) is not None

    async def call(self, name: str, *args: Any, default: Any = None) -> Any:
        """Invoke hook ``name`` if present, else return ``default``."""
        hook = getattr(self, name)
        if hook is None:
            return default
        logger.debug("Calling lifecycle function %s", name)
        return await resolve(hook(*args))


def load_lifecycle_hooks(directory: str | Path) -> LifecycleHooks:
    """Load ``setup.py`` from a migrations directory; absent means no hooks."""
    setup_path = Path(directory) / SETUP_FILE
    if not setup_path.is_file():
        return LifecycleHooks()
    return LifecycleHooks.from_module(load_module(setup_path))
