"""Tests for the bootstrap protocol and version gating."""

import asyncio

import pytest

from unitflow.errors import BootstrapPermissionError, VersionSkewError
from unitflow.migrations.bootstrap import (
    FEATURES_SCHEMA_VERSION,
    MIGRATIONS_SCHEMA_VERSION,
    bootstrap_features,
    bootstrap_migrations,
    check_version_skew,
    is_feature_bootstrap_required,
    is_migration_bootstrap_required,
)
from unitflow.migrations.hooks import LifecycleHooks
from unitflow.models.state import FeatureState, IdentityRegistration, MigrationState


def _state(version, clients):
    return MigrationState(
        schema_version=version,
        registered_identities={c: IdentityRegistration(v) for c, v in clients.items()},
    )


# --- Requirement matrix ---


def test_bootstrap_required_when_state_absent():
    assert is_migration_bootstrap_required("me", None)
    assert is_feature_bootstrap_required("me", None)


def test_bootstrap_required_when_version_unset_or_old():
    assert is_migration_bootstrap_required("me", _state(None, {"me": 7}))
    assert is_migration_bootstrap_required("me", _state(6, {"me": 7}))


def test_bootstrap_required_for_unregistered_or_stale_identity():
    assert is_migration_bootstrap_required("me", _state(7, {"other": 7}))
    assert is_migration_bootstrap_required("me", _state(7, {"me": 6}))


def test_bootstrap_not_required_when_current():
    assert not is_migration_bootstrap_required("me", _state(7, {"me": 7}))
    feature_state = FeatureState(
        schema_version=3, registered_identities={"me": IdentityRegistration(3)}
    )
    assert not is_feature_bootstrap_required("me", feature_state)


def test_version_skew():
    check_version_skew(None, MIGRATIONS_SCHEMA_VERSION)
    check_version_skew(MIGRATIONS_SCHEMA_VERSION, MIGRATIONS_SCHEMA_VERSION)
    with pytest.raises(VersionSkewError):
        check_version_skew(MIGRATIONS_SCHEMA_VERSION + 1, MIGRATIONS_SCHEMA_VERSION)


# --- Protocol ---


def test_bootstrap_migrations_stamps_identity(remote):
    async def run_test():
        async with remote.target() as target:
            return await bootstrap_migrations(target, "test-client")

    state = asyncio.run(run_test())
    assert state.schema_version == MIGRATIONS_SCHEMA_VERSION
    assert remote.imported == ["unitflow-bootstrap"]
    assert remote.preferences["c_unitflowDataVersion"] == MIGRATIONS_SCHEMA_VERSION
    assert '"test-client"' in remote.preferences["c_unitflowBootstrappedClientIDs"]
    # Uploaded archive is cleaned up
    assert "Impex/src/instance/unitflow-bootstrap.zip" not in remote.files


def test_bootstrap_is_idempotent_and_keeps_applied_units(remote):
    remote.provision(applied=["0001-a.py"], clients=("other-client",))

    async def run_test():
        async with remote.target() as target:
            await bootstrap_migrations(target, "test-client")
            return await bootstrap_migrations(target, "test-client")

    state = asyncio.run(run_test())
    assert state.applied_units == ["0001-a.py"]
    assert set(state.registered_identities) == {"other-client", "test-client"}


def test_on_bootstrap_may_set_variables(remote):
    def on_bootstrap(args, state):
        state.variables["seeded"] = True

    async def run_test():
        async with remote.target() as target:
            await bootstrap_migrations(
                target, "test-client", hooks=LifecycleHooks(on_bootstrap=on_bootstrap)
            )

    asyncio.run(run_test())
    assert '"seeded": true' in remote.preferences["c_unitflowVars"]


def test_bootstrap_forbidden_import_raises_permission_error(remote):
    remote.forbid("PUT", "Impex/src/instance/unitflow-bootstrap.zip")

    async def run_test():
        async with remote.target() as target:
            await bootstrap_migrations(target, "test-client")

    with pytest.raises(BootstrapPermissionError) as exc:
        asyncio.run(run_test())
    assert isinstance(exc.value, PermissionError)
    assert "test-client" in str(exc.value)
    assert "/impex" in str(exc.value)


def test_bootstrap_features(remote):
    async def run_test():
        async with remote.target() as target:
            return await bootstrap_features(target, "test-client")

    state = asyncio.run(run_test())
    assert state.schema_version == FEATURES_SCHEMA_VERSION
    assert remote.features_provisioned
    assert remote.preferences["c_unitflowFeaturesVersion"] == FEATURES_SCHEMA_VERSION
    assert state.instances == []
