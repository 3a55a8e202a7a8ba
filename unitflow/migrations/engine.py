"""Reconciliation engine — bring a remote instance up to date with a catalog.

A run collects the local catalog, reads the remote state, bootstraps when
needed, and applies every pending unit strictly in catalog order. After
each unit the applied list is re-read, merged and written back so a run
killed half-way resumes where it stopped.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import httpx

from unitflow.errors import (
    BootstrapRequiredError,
    InvalidUnitError,
    RemoteAccessError,
    UnitExecutionError,
    UnitflowError,
)
from unitflow.log import PACKAGE_LOGGER, RunLogHandler
from unitflow.migrations.bootstrap import (
    MIGRATIONS_SCHEMA_VERSION,
    bootstrap_migrations,
    check_version_skew,
    is_migration_bootstrap_required,
)
from unitflow.migrations.collector import collect_units, load_unit
from unitflow.migrations.helpers import ScriptArguments, build_script_arguments
from unitflow.migrations.hooks import LifecycleHooks, load_lifecycle_hooks, load_module, resolve
from unitflow.migrations.state import StateStore
from unitflow.models.state import MigrationState
from unitflow.models.units import ChangeUnit, RunOptions, RunSummary
from unitflow.remote.client import RemoteTarget
from unitflow.remote.jobs import site_archive_import

logger = logging.getLogger(__name__)

RUN_LOG_DIR = "Impex/log/unitflow"
SCRIPT_ENTRY_POINT = "migrate"


def merge_applied(remote: list[str], local: list[str]) -> list[str]:
    """Union of two applied lists, remote order first, without duplicates."""
    merged: list[str] = []
    seen: set[str] = set()
    for unit_id in [*remote, *local]:
        if unit_id not in seen:
            seen.add(unit_id)
            merged.append(unit_id)
    return merged


async def reconcile(
    target: RemoteTarget,
    identity: str,
    directory: str | Path,
    options: RunOptions | None = None,
) -> RunSummary:
    """Apply every pending unit of ``directory`` to ``target``.

    Args:
        target: The remote instance.
        identity: Client identity used for the bootstrap version gate.
        directory: The migrations (catalog) directory.
        options: Run options; defaults apply and persist everything.

    Returns:
        A :class:`RunSummary` of what was pending, ran, skipped or recovered.

    Raises:
        VersionSkewError: The remote schema is newer than this engine.
        BootstrapRequiredError: Bootstrap needed but ``allow_bootstrap`` is off.
        InvalidUnitError: A script unit has no callable ``migrate``.
        UnitExecutionError: A unit failed and no ``on_failure`` hook recovered it.
    """
    options = options or RunOptions()
    directory = Path(directory)
    summary = RunSummary(dry_run=options.dry_run)
    started = time.monotonic()

    args = build_script_arguments(
        target,
        identity=identity,
        vars=options.vars,
        migrations_dir=directory,
        short_code=options.short_code,
    )

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    previous_level = package_logger.level
    if package_logger.getEffectiveLevel() > logging.INFO:
        package_logger.setLevel(logging.INFO)
    run_log = RunLogHandler()
    package_logger.addHandler(run_log)

    try:
        await _run(target, identity, directory, options, args, summary)
    finally:
        package_logger.removeHandler(run_log)
        package_logger.setLevel(previous_level)
        summary.duration_ms = int((time.monotonic() - started) * 1000)
        await _write_run_log(target, run_log)

    return summary


async def _run(
    target: RemoteTarget,
    identity: str,
    directory: Path,
    options: RunOptions,
    args: ScriptArguments,
    summary: RunSummary,
) -> None:
    hooks = load_lifecycle_hooks(directory)
    await hooks.call("init", args)

    catalog = collect_units(directory, options.exclude)
    logger.debug("Collected %d units from %s", len(catalog), directory)

    store = StateStore(target)
    state = await _prepare_state(target, identity, store, hooks, args, options, summary)

    applied = list(state.applied_units)
    done = set(applied)
    pending = [unit_id for unit_id in catalog if options.scoped(unit_id) not in done]

    await hooks.call("before_all", args, pending, options.apply, options.dry_run)
    summary.pending = list(pending)

    if pending:
        logger.info("%d migrations required: %s", len(pending), ", ".join(pending))
    else:
        logger.info(
            "No migrations required. Instance is up to date (last: %s)",
            state.last_applied or "none",
        )

    for unit_id in pending:
        unit = load_unit(directory, unit_id, read_notes=options.show_notes)
        entry = None
        if not unit.is_archive:
            module = load_module(unit.path)
            entry = getattr(module, SCRIPT_ENTRY_POINT, None)
            notes = getattr(module, "notes", None)
            if options.show_notes and notes:
                unit = ChangeUnit(id=unit.id, kind=unit.kind, path=unit.path, notes=str(notes))

        if options.show_notes and unit.notes:
            logger.info("Notes for %s:\n%s", unit_id, unit.notes.strip())

        if options.dry_run:
            logger.info("Would run %s (dry run)", unit_id)
            continue

        if not unit.is_archive and not callable(entry):
            raise InvalidUnitError(
                f"Script {unit_id} does not define a callable {SCRIPT_ENTRY_POINT}(args)"
            )

        unit_started = time.monotonic()
        should_run = await hooks.call("before_each", args, unit_id, options.apply, default=True)
        if should_run is False:
            logger.warning("Skipping %s (before_each returned False)", unit_id)
            summary.skipped.append(unit_id)
        else:
            logger.info("Running migration %s...", unit_id)
            await _execute_unit(target, unit, entry, args, hooks, summary)

        applied = await _commit(store, applied, options.scoped(unit_id), options.apply)
        await hooks.call("after_each", args, unit_id, options.apply)

        summary.ran.append(unit_id)
        logger.info(
            "Finished %s in %dms", unit_id, int((time.monotonic() - unit_started) * 1000)
        )

    summary.applied_units = applied
    if not options.dry_run:
        await hooks.call("after_all", args, summary.ran, options.apply)
    if pending:
        logger.info("Migrations complete (%d ran)", len(summary.ran))


async def _prepare_state(
    target: RemoteTarget,
    identity: str,
    store: StateStore,
    hooks: LifecycleHooks,
    args: ScriptArguments,
    options: RunOptions,
    summary: RunSummary,
) -> MigrationState:
    state = await store.read()
    if state is not None:
        check_version_skew(state.schema_version, MIGRATIONS_SCHEMA_VERSION)

    required = is_migration_bootstrap_required(identity, state)
    if not required and hooks.has("should_bootstrap"):
        try:
            required = bool(await hooks.call("should_bootstrap", args, state))
        except Exception as e:
            logger.warning("should_bootstrap failed (%s); bootstrapping", e)
            required = True

    if required and not options.allow_bootstrap:
        raise BootstrapRequiredError(
            "Bootstrap or upgrade required but not allowed; run with bootstrap enabled"
        )

    if required or options.force_bootstrap:
        logger.warning("Bootstrapping unitflow metadata for %s...", identity)
        await bootstrap_migrations(target, identity, hooks, args)
        summary.bootstrapped = True
        state = await store.read()
        if state is None:
            raise RemoteAccessError("Unable to read instance state after bootstrap")

    return state


async def _execute_unit(
    target: RemoteTarget,
    unit: ChangeUnit,
    entry: Callable[..., Any] | None,
    args: ScriptArguments,
    hooks: LifecycleHooks,
    summary: RunSummary,
) -> None:
    try:
        if unit.is_archive:
            await site_archive_import(target, unit.path)
        else:
            await resolve(entry(args))
    except Exception as e:
        error = UnitExecutionError(unit.id, str(e) or type(e).__name__)
        if not hooks.has("on_failure"):
            raise error from e
        error.__cause__ = e
        logger.error("Migration %s failed: %s", unit.id, e)
        await hooks.call("on_failure", args, unit.id, error)
        logger.warning("on_failure handled %s; continuing", unit.id)
        summary.recovered.append(unit.id)


async def _commit(store: StateStore, applied: list[str], unit_id: str, apply: bool) -> list[str]:
    local = merge_applied(applied, [unit_id])
    if not apply:
        return local

    # Re-read so concurrent writers are not clobbered
    remote = await store.read()
    merged = merge_applied(remote.applied_units if remote else [], local)
    await store.write_applied_units(merged)
    logger.debug("Recorded %s as applied", unit_id)
    return merged


async def _write_run_log(target: RemoteTarget, handler: RunLogHandler) -> None:
    if not handler.lines:
        return
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    path = f"{RUN_LOG_DIR}/migration-{stamp}.log"
    try:
        resp = await target.webdav_request("PUT", path, content=handler.text().encode("utf-8"))
    except (httpx.HTTPError, UnitflowError) as e:
        logger.debug("Unable to write run log %s: %s", path, e)
        return
    if not resp.is_success:
        logger.debug("Unable to write run log %s (status %d)", path, resp.status_code)
