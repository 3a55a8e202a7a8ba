"""Bootstrap protocol — provision unitflow metadata and stamp the calling client.

Bootstrap imports a fixed archive (preferences + attribute definitions),
re-reads state, records the client ID at the current schema version and
writes everything back in one request. Running it again is safe: the same
documents are re-imported and applied units/instances are never touched.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from unitflow.errors import BootstrapPermissionError, RemoteAccessError, VersionSkewError
from unitflow.migrations.metadata import (
    FEATURES_METADATA,
    MIGRATIONS_METADATA,
    PREFERENCES_TEMPLATE,
)
from unitflow.migrations.state import StateStore
from unitflow.models.state import FeatureState, IdentityRegistration, MigrationState
from unitflow.remote.client import FORBIDDEN, RemoteTarget
from unitflow.remote.jobs import site_archive_import
from unitflow.utils.archive import create_archive_from_text_map

if TYPE_CHECKING:
    from unitflow.migrations.helpers import ScriptArguments
    from unitflow.migrations.hooks import LifecycleHooks

logger = logging.getLogger(__name__)

MIGRATIONS_SCHEMA_VERSION = 7
FEATURES_SCHEMA_VERSION = 3

MIGRATIONS_ARCHIVE = "unitflow-bootstrap"
FEATURES_ARCHIVE = "unitflow-features-bootstrap"


def _requires(
    identity: str,
    version: int | None,
    identities: dict[str, IdentityRegistration],
    expected: int,
) -> bool:
    if not version or version < expected:
        return True
    registration = identities.get(identity)
    return registration is None or registration.schema_version < expected


def is_migration_bootstrap_required(identity: str, state: MigrationState | None) -> bool:
    """True when the state is absent, outdated, or ``identity`` is not stamped."""
    if state is None:
        return True
    return _requires(
        identity, state.schema_version, state.registered_identities, MIGRATIONS_SCHEMA_VERSION
    )


def is_feature_bootstrap_required(identity: str, state: FeatureState | None) -> bool:
    if state is None:
        return True
    return _requires(
        identity, state.schema_version, state.registered_identities, FEATURES_SCHEMA_VERSION
    )


def check_version_skew(version: int | None, expected: int) -> None:
    """Refuse to work against a schema newer than this engine."""
    if version is not None and version > expected:
        raise VersionSkewError(
            f"Instance is using unitflow schema version {version}, newer than the "
            f"installed version {expected}; upgrade required"
        )


async def _import_metadata(
    target: RemoteTarget,
    identity: str,
    files: dict[str, str],
    archive_name: str,
) -> None:
    archive = create_archive_from_text_map(files, archive_name)
    try:
        await site_archive_import(target, archive, archive_name=archive_name)
    except RemoteAccessError as e:
        if e.status == FORBIDDEN:
            raise BootstrapPermissionError(
                f"Got status 403: At minimum your client ID ({identity}) needs data API "
                "access for jobs and WebDAV write access to /impex"
            ) from e
        raise

    logger.warning(
        "Permission provisioning is not performed; ensure your client ID has the "
        "necessary data API permissions configured"
    )


async def bootstrap_migrations(
    target: RemoteTarget,
    identity: str,
    hooks: LifecycleHooks | None = None,
    args: ScriptArguments | None = None,
) -> MigrationState:
    """Bootstrap or upgrade migration metadata and record ``identity``.

    The ``on_bootstrap`` hook receives the freshly read state and may change
    ``state.variables`` before the final write.
    """
    files = {
        "preferences.xml": PREFERENCES_TEMPLATE.format(preference_id="unitflowDataVersion"),
        "meta/system-objecttype-extensions.xml": MIGRATIONS_METADATA,
    }
    await _import_metadata(target, identity, files, MIGRATIONS_ARCHIVE)

    store = StateStore(target)
    state = await store.read()
    if state is None:
        raise RemoteAccessError("Failed to read instance state after bootstrap import")

    state.registered_identities[identity] = IdentityRegistration(
        schema_version=MIGRATIONS_SCHEMA_VERSION
    )

    if hooks is not None and hooks.has("on_bootstrap"):
        logger.info("Calling project on_bootstrap...")
        await hooks.call("on_bootstrap", args, state)

    logger.debug("Recording %s in metadata", identity)
    state.schema_version = MIGRATIONS_SCHEMA_VERSION
    await store.write_bootstrap(state)
    return state


async def bootstrap_features(target: RemoteTarget, identity: str) -> FeatureState:
    """Bootstrap or upgrade feature metadata and record ``identity``."""
    logger.info("Bootstrapping features for %s...", identity)
    files = {
        "preferences.xml": PREFERENCES_TEMPLATE.format(preference_id="unitflowFeaturesVersion"),
        "meta/features.xml": FEATURES_METADATA,
    }
    await _import_metadata(target, identity, files, FEATURES_ARCHIVE)

    store = StateStore(target)
    state = await store.read_feature_state()
    if state is None:
        raise RemoteAccessError("Failed to read feature state after bootstrap import")

    state.registered_identities[identity] = IdentityRegistration(
        schema_version=FEATURES_SCHEMA_VERSION
    )
    state.schema_version = FEATURES_SCHEMA_VERSION

    logger.debug("Recording %s in metadata", identity)
    await store.write_feature_bootstrap(state)
    return state
