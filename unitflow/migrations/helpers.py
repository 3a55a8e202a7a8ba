"""Script arguments and the helper facade handed to units and hooks.

Every unit script and lifecycle hook receives a :class:`ScriptArguments`
bundle. ``args.helpers`` is bound to the current target, so helpers never
take an instance/environment argument; scripts written for the older
``helpers.fn(env, ...)`` convention use ``args.helpers.legacy`` instead.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Mapping

from unitflow.log import SCRIPT_LOGGER
from unitflow.migrations.environment import LegacyEnvironment
from unitflow.migrations.state import StateStore
from unitflow.models.state import FeatureState, MigrationState
from unitflow.remote import code, jobs
from unitflow.remote.client import RemoteTarget
from unitflow.utils.archive import create_archive_from_text_map, extract_archive_to_text_map

if TYPE_CHECKING:
    from unitflow.migrations.legacy import LegacyHelpers
    from unitflow.models.units import RunSummary

logger = logging.getLogger(__name__)


@dataclass
class HelperConfig:
    """Directories and variables of the current run."""

    migrations_dir: Path
    features_dir: Path
    vars: dict[str, Any]


class Helpers:
    """Remote operations pre-bound to one target."""

    def __init__(
        self,
        target: RemoteTarget,
        identity: str = "",
        migrations_dir: str | Path | None = None,
        features_dir: str | Path | None = None,
        vars: dict[str, Any] | None = None,
        short_code: str | None = None,
    ) -> None:
        self.target = target
        self.identity = identity or target.client_id
        self.short_code = short_code
        self.config = HelperConfig(
            migrations_dir=Path(migrations_dir or "./migrations").resolve(),
            features_dir=Path(features_dir or "./features").resolve(),
            vars=vars if vars is not None else {},
        )
        self._store = StateStore(target)

    @property
    def legacy(self) -> LegacyHelpers:
        from unitflow.migrations.legacy import LegacyHelpers

        return LegacyHelpers(self)

    # -- jobs and archives ---------------------------------------------------

    async def execute_job(self, job_id: str, parameters: list[dict[str, str]] | None = None):
        return await jobs.execute_job(self.target, job_id, parameters=parameters)

    async def wait_for_job(self, job_id: str, execution_id: str):
        return await jobs.wait_for_job(self.target, job_id, execution_id)

    async def site_archive_import(self, source: str | Path | bytes, archive_name: str | None = None):
        return await jobs.site_archive_import(self.target, source, archive_name=archive_name)

    async def site_archive_export(self, data_units: dict[str, Any], archive_name: str | None = None) -> bytes:
        return await jobs.site_archive_export(self.target, data_units, archive_name=archive_name)

    async def site_archive_import_text(
        self, files: Mapping[str, str], archive_name: str | None = None
    ):
        """Zip ``{path: text}`` in memory and import it."""
        name = archive_name or f"text-import-{int(time.time() * 1000)}"
        archive = create_archive_from_text_map(files, name)
        return await jobs.site_archive_import(self.target, archive, archive_name=name)

    async def site_archive_export_text(self, data_units: dict[str, Any]) -> dict[str, str]:
        data = await jobs.site_archive_export(self.target, data_units)
        return extract_archive_to_text_map(data)

    # -- code artifacts ------------------------------------------------------

    def find_artifacts(self, directory: str | Path) -> list[code.ArtifactMapping]:
        return code.find_artifacts(directory)

    async def upload_artifacts(self, artifacts: list[code.ArtifactMapping]) -> None:
        await code.upload_artifacts(self.target, artifacts)

    async def delete_artifacts(self, artifacts: list[code.ArtifactMapping]) -> None:
        await code.delete_artifacts(self.target, artifacts)

    async def reload_code_version(self) -> None:
        await code.reload_code_version(self.target)

    async def sync_artifacts(self, artifacts: list[code.ArtifactMapping], reload: bool = False) -> None:
        await code.upload_artifacts(self.target, artifacts)
        if reload:
            await code.reload_code_version(self.target)

    # -- state ---------------------------------------------------------------

    async def migrate(self, directory: str | Path, **options: Any) -> RunSummary:
        """Run a nested reconciliation against another migrations directory."""
        from unitflow.migrations.engine import reconcile
        from unitflow.models.units import RunOptions

        return await reconcile(self.target, self.identity, directory, RunOptions(**options))

    async def get_state(self) -> MigrationState | None:
        return await self._store.read()

    async def save_vars(self, variables: dict[str, Any]) -> None:
        """Persist instance variables (``MigrationState.variables``)."""
        await self._store.write_variables(variables)

    async def get_feature_state(self) -> FeatureState | None:
        return await self._store.read_feature_state()

    async def update_feature_state(
        self,
        name: str,
        variables: dict[str, Any],
        secret_vars: list[str] | None = None,
        save_secrets: bool = True,
    ) -> None:
        await self._store.write_feature_instance(name, variables, secret_vars, save_secrets)

    # -- permissions (not provisioned by unitflow) ---------------------------

    async def ensure_data_api_permissions(
        self, resources: Any = None, test: Callable[[], Any] | None = None
    ) -> None:
        logger.warning(
            "ensure_data_api_permissions is not implemented; ensure your client ID has the "
            "necessary data API permissions"
        )
        if test is not None:
            from unitflow.migrations.hooks import resolve

            try:
                await resolve(test())
            except Exception as e:
                logger.warning("Permission test failed: %s. Ensure permissions are configured.", e)

    async def ensure_webdav_permissions(self, resources: Any = None) -> None:
        logger.warning(
            "ensure_webdav_permissions is not implemented; ensure your client ID has WebDAV "
            "permissions configured"
        )

    # -- utilities -----------------------------------------------------------

    @staticmethod
    async def sleep(seconds: float) -> None:
        await asyncio.sleep(seconds)


@dataclass
class ScriptArguments:
    """The bundle every unit script and lifecycle hook receives."""

    target: RemoteTarget
    logger: logging.Logger
    helpers: Helpers
    vars: dict[str, Any]
    env: LegacyEnvironment

    def with_vars(self, vars: dict[str, Any]) -> "ScriptArguments":
        return dataclasses.replace(self, vars=vars)


def build_script_arguments(
    target: RemoteTarget,
    identity: str = "",
    vars: dict[str, Any] | None = None,
    migrations_dir: str | Path | None = None,
    features_dir: str | Path | None = None,
    short_code: str | None = None,
) -> ScriptArguments:
    vars = vars if vars is not None else {}
    helpers = Helpers(
        target,
        identity=identity,
        migrations_dir=migrations_dir,
        features_dir=features_dir,
        vars=vars,
        short_code=short_code,
    )
    return ScriptArguments(
        target=target,
        logger=logging.getLogger(SCRIPT_LOGGER),
        helpers=helpers,
        vars=vars,
        env=LegacyEnvironment(target, short_code=short_code),
    )
