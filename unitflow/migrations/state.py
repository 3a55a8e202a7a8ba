"""State store adapter — read and write unitflow state on the remote instance.

Migration state lives in custom attributes of the ``unitflow`` preference
group. Feature instances are ``UnitflowFeature`` custom objects keyed by
feature name. A 403 or 404 on read means "not provisioned or not visible
to this client", which callers treat as "bootstrap required".
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from unitflow.errors import RemoteAccessError
from unitflow.models.state import (
    FeatureInstance,
    FeatureState,
    IdentityRegistration,
    MigrationState,
)
from unitflow.remote.client import FORBIDDEN, NOT_FOUND, RemoteTarget, fault_message

logger = logging.getLogger(__name__)

PREFERENCE_GROUP = "unitflow"
INSTANCE_TYPE = "development"
PREFERENCES_PATH = f"/global_preferences/preference_groups/{PREFERENCE_GROUP}/{INSTANCE_TYPE}"

FEATURE_OBJECT_TYPE = "UnitflowFeature"

ATTR_DATA_VERSION = "c_unitflowDataVersion"
ATTR_MIGRATIONS = "c_unitflowMigrations"
ATTR_CLIENTS = "c_unitflowBootstrappedClientIDs"
ATTR_VARS = "c_unitflowVars"
ATTR_FEATURES_VERSION = "c_unitflowFeaturesVersion"
ATTR_FEATURES_CLIENTS = "c_unitflowFeaturesBootstrappedClientIDs"

REDACTED = "*****"


class StateStore:
    """Reads and writes the migration and feature records of one instance."""

    def __init__(self, target: RemoteTarget):
        self.target = target

    # ------------------------------------------------------------------
    # Migration state
    # ------------------------------------------------------------------

    async def read(self) -> MigrationState | None:
        """Read the migration state, or ``None`` if bootstrap is required."""
        resp = await self.target.data_request("GET", PREFERENCES_PATH)
        if resp.status_code == FORBIDDEN:
            logger.warning("No access to global_preferences; will attempt to update during bootstrap")
            return None
        if resp.status_code == NOT_FOUND:
            logger.debug("No global_preferences found; update required")
            return None
        if resp.status_code != 200:
            raise RemoteAccessError(
                fault_message(resp, "Failed to read instance state"), status=resp.status_code
            )

        raw = resp.json()
        migrations = raw.get(ATTR_MIGRATIONS) or ""
        return MigrationState(
            schema_version=_int_or_none(raw.get(ATTR_DATA_VERSION)),
            applied_units=[m for m in migrations.split(",") if m],
            registered_identities=_parse_identities(raw.get(ATTR_CLIENTS)),
            variables=_loads_mapping(raw.get(ATTR_VARS)),
        )

    async def write_applied_units(self, units: list[str]) -> None:
        """Replace the applied-unit list. Callers merge before writing."""
        resp = await self.target.data_request(
            "PATCH", PREFERENCES_PATH, json={ATTR_MIGRATIONS: ",".join(units)}
        )
        if resp.status_code == FORBIDDEN:
            raise RemoteAccessError(
                "Permissions error; ensure global_preferences access is configured for your "
                "client ID (run with --force-bootstrap to force a bootstrap upgrade)",
                status=FORBIDDEN,
            )
        if resp.status_code == NOT_FOUND:
            raise RemoteAccessError("Unable to set migrations", status=NOT_FOUND)
        _check(resp, "Failed to update migrations")

    async def write_variables(self, variables: dict[str, Any]) -> None:
        resp = await self.target.data_request(
            "PATCH", PREFERENCES_PATH, json={ATTR_VARS: json.dumps(variables, indent=2)}
        )
        _check(resp, "Failed to update instance vars")

    async def write_bootstrap(self, state: MigrationState) -> None:
        """Persist schema version, identity registry and variables in one write."""
        resp = await self.target.data_request(
            "PATCH",
            PREFERENCES_PATH,
            json={
                ATTR_DATA_VERSION: state.schema_version,
                ATTR_CLIENTS: _dump_identities(state.registered_identities),
                ATTR_VARS: json.dumps(state.variables, indent=2),
            },
        )
        _check(resp, "Failed to record bootstrap state")

    # ------------------------------------------------------------------
    # Feature state
    # ------------------------------------------------------------------

    async def read_feature_state(self) -> FeatureState | None:
        """Read feature schema state and all deployed feature instances."""
        resp = await self.target.data_request("GET", PREFERENCES_PATH)
        if resp.status_code in (FORBIDDEN, NOT_FOUND):
            logger.warning("No access to features; Bootstrap required")
            return None
        if resp.status_code != 200:
            raise RemoteAccessError(
                fault_message(resp, "Failed to read feature state"), status=resp.status_code
            )

        raw = resp.json()
        state = FeatureState(
            schema_version=_int_or_none(raw.get(ATTR_FEATURES_VERSION)),
            registered_identities=_parse_identities(raw.get(ATTR_FEATURES_CLIENTS)),
        )

        resp = await self.target.data_request(
            "POST",
            f"/custom_objects_search/{FEATURE_OBJECT_TYPE}",
            json={"query": {"match_all_query": {}}, "select": "(**)", "count": 200},
        )
        if resp.status_code in (FORBIDDEN, NOT_FOUND):
            logger.warning("No access to features; Bootstrap required")
            return None
        if resp.status_code != 200:
            raise RemoteAccessError(
                fault_message(resp, "Failed to search features"), status=resp.status_code
            )

        result = resp.json()
        if result.get("count", 0) > 0:
            state.instances = [_instance_from_object(hit) for hit in result.get("hits", [])]
        return state

    async def write_feature_instance(
        self,
        name: str,
        variables: dict[str, Any],
        secret_names: list[str] | None,
        persist_secrets: bool,
    ) -> None:
        """Create or update a feature instance record with secrets redacted."""
        plain, secret = redact_secrets(variables, secret_names or [], persist_secrets)
        path = f"/custom_objects/{FEATURE_OBJECT_TYPE}/{name}"
        body = {
            "c_vars": json.dumps(plain, indent=2),
            "c_secretVars": json.dumps(secret, indent=2),
        }

        probe = await self.target.data_request("GET", path)
        if probe.status_code == NOT_FOUND:
            resp = await self.target.data_request("PUT", path, json=body)
        elif probe.status_code == 200:
            resp = await self.target.data_request("PATCH", path, json=body)
        else:
            raise RemoteAccessError(
                fault_message(probe, f"Unable to read feature {name}"), status=probe.status_code
            )
        _check(resp, f"Unable to save feature {name}")

    async def write_feature_bootstrap(self, state: FeatureState) -> None:
        resp = await self.target.data_request(
            "PATCH",
            PREFERENCES_PATH,
            json={
                ATTR_FEATURES_VERSION: state.schema_version,
                ATTR_FEATURES_CLIENTS: _dump_identities(state.registered_identities),
            },
        )
        _check(resp, "Failed to record feature bootstrap state")

    async def delete_feature_instance(self, name: str) -> None:
        resp = await self.target.data_request(
            "DELETE", f"/custom_objects/{FEATURE_OBJECT_TYPE}/{name}"
        )
        if resp.status_code == NOT_FOUND:
            logger.debug("Feature %s already deleted", name)
            return
        _check(resp, f"Unable to delete feature {name}")


def redact_secrets(
    variables: dict[str, Any],
    secret_names: list[str],
    persist_secrets: bool,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split variables into the plain record and the secret record.

    With ``persist_secrets`` a secret moves to the secret record and the
    plain record keeps a redaction marker; otherwise the secret is dropped
    from both.
    """
    plain = dict(variables)
    secret: dict[str, Any] = {}
    for key in secret_names:
        if key not in plain:
            continue
        if persist_secrets:
            secret[key] = plain[key]
            plain[key] = REDACTED
        else:
            del plain[key]
    return plain, secret


def _check(resp, default: str) -> None:
    if resp.status_code not in (200, 201, 204):
        raise RemoteAccessError(fault_message(resp, default), status=resp.status_code)


def _int_or_none(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _loads_mapping(text: Any) -> dict[str, Any]:
    """Parse a JSON text attribute; malformed or missing text yields ``{}``."""
    if not text:
        return {}
    try:
        value = json.loads(text)
    except (TypeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}


def _parse_identities(text: Any) -> dict[str, IdentityRegistration]:
    return {
        client_id: IdentityRegistration(schema_version=_int_or_none(entry.get("version")) or 0)
        for client_id, entry in _loads_mapping(text).items()
        if isinstance(entry, dict)
    }


def _dump_identities(identities: dict[str, IdentityRegistration]) -> str:
    return json.dumps(
        {client_id: {"version": reg.schema_version} for client_id, reg in identities.items()},
        indent=2,
    )


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def _instance_from_object(obj: dict[str, Any]) -> FeatureInstance:
    # Secret record overlays the plain one; a redaction marker is never a value
    variables = {
        k: v for k, v in _loads_mapping(obj.get("c_vars")).items() if v != REDACTED
    }
    variables.update(_loads_mapping(obj.get("c_secretVars")))
    return FeatureInstance(
        name=obj.get("key_value_string", ""),
        variables=variables,
        created_at=_parse_datetime(obj.get("creation_date")),
        last_modified_at=_parse_datetime(obj.get("last_modified")),
    )
