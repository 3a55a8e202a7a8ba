"""Adapter for scripts written against the env-first helper convention.

Older scripts call ``helpers.site_archive_import(env, path)``, passing an
environment object first. :class:`LegacyHelpers` accepts and ignores that
argument and forwards to the bound :class:`~unitflow.migrations.helpers.Helpers`.
Nothing else in unitflow uses this convention.
"""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from unitflow.migrations.helpers import Helpers

# Helpers that take an ignored environment as their first positional argument
ENV_FIRST_METHODS = frozenset(
    {
        "execute_job",
        "wait_for_job",
        "site_archive_import",
        "site_archive_export",
        "site_archive_import_text",
        "site_archive_export_text",
        "upload_artifacts",
        "delete_artifacts",
        "reload_code_version",
        "sync_artifacts",
        "migrate",
        "get_state",
        "save_vars",
        "get_feature_state",
        "update_feature_state",
        "ensure_data_api_permissions",
        "ensure_webdav_permissions",
    }
)


def _drop_env(method: Callable[..., Any]) -> Callable[..., Any]:
    @functools.wraps(method)
    def wrapper(_env: Any = None, *args: Any, **kwargs: Any) -> Any:
        return method(*args, **kwargs)

    return wrapper


class LegacyHelpers:
    """Env-first view over a bound :class:`Helpers`."""

    def __init__(self, helpers: Helpers):
        self._helpers = helpers
        self.CONFIG = {
            "MIGRATIONS_DIR": str(helpers.config.migrations_dir),
            "FEATURES_DIR": str(helpers.config.features_dir),
            "VARS": helpers.config.vars,
        }

    @property
    def target(self):
        return self._helpers.target

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._helpers, name)
        if name in ENV_FIRST_METHODS:
            return _drop_env(attr)
        return attr
