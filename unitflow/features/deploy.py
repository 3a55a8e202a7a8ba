"""Feature deployment — deploy, redeploy and remove features on an instance.

Deploying a feature runs its ``migrations/`` sub-catalog through the
reconciliation engine, syncs its code artifacts and records the merged
variables as a feature instance on the remote.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from unitflow.errors import NotFoundError, RemoteAccessError
from unitflow.features.collector import collect_features, find_feature
from unitflow.features.questions import ClickPrompter, Prompter, unanswered
from unitflow.migrations.bootstrap import (
    FEATURES_SCHEMA_VERSION,
    bootstrap_features,
    check_version_skew,
    is_feature_bootstrap_required,
)
from unitflow.migrations.engine import reconcile
from unitflow.migrations.helpers import build_script_arguments
from unitflow.migrations.hooks import resolve
from unitflow.migrations.state import StateStore
from unitflow.models.state import FeatureState
from unitflow.models.units import FeatureDefinition, RunOptions
from unitflow.remote import code
from unitflow.remote.client import RemoteTarget

logger = logging.getLogger(__name__)


class FeatureHelpers:
    """Feature operations bound to one target, for use inside feature hooks."""

    def __init__(
        self,
        target: RemoteTarget,
        identity: str,
        features_dir: Path,
        short_code: str | None = None,
        prompter: Prompter | None = None,
    ):
        self.target = target
        self.identity = identity
        self.features_dir = features_dir
        self.short_code = short_code
        self.prompter = prompter

    async def deploy_feature(
        self, name: str, vars: dict[str, Any] | None = None, save_secrets: bool = True
    ) -> dict[str, Any]:
        return await deploy_feature(
            self.target,
            self.identity,
            name,
            self.features_dir,
            vars=vars,
            save_secrets=save_secrets,
            short_code=self.short_code,
            prompter=self.prompter,
        )

    async def remove_feature(self, name: str, vars: dict[str, Any] | None = None) -> None:
        await remove_feature(self.target, name, self.features_dir, vars=vars, short_code=self.short_code)

    async def update_feature_state(
        self,
        name: str,
        vars: dict[str, Any],
        secret_vars: list[str] | None = None,
        save_secrets: bool = True,
    ) -> None:
        await StateStore(self.target).write_feature_instance(name, vars, secret_vars, save_secrets)

    def collect_features(self) -> list[FeatureDefinition]:
        return collect_features(self.features_dir)


@dataclass
class FeatureContext:
    """Second argument of the ``questions``, ``finish`` and ``remove`` hooks."""

    feature_helpers: FeatureHelpers
    features_dir: Path
    save_secrets: bool
    instance_state: FeatureState | None


async def _ensure_feature_state(target: RemoteTarget, identity: str) -> FeatureState:
    store = StateStore(target)
    state = await store.read_feature_state()
    if state is not None:
        check_version_skew(state.schema_version, FEATURES_SCHEMA_VERSION)
    if is_feature_bootstrap_required(identity, state):
        await bootstrap_features(target, identity)
        state = await store.read_feature_state()
    if state is None:
        raise RemoteAccessError("Unable to read feature state after bootstrap")
    return state


async def deploy_feature(
    target: RemoteTarget,
    identity: str,
    name: str,
    features_dir: str | Path,
    vars: dict[str, Any] | None = None,
    save_secrets: bool = True,
    short_code: str | None = None,
    prompter: Prompter | None = None,
) -> dict[str, Any]:
    """Deploy (or redeploy) feature ``name`` and return its merged variables.

    Variables are merged defaults < stored instance variables < ``vars``;
    answers to questions fill in whatever is still missing.

    Raises:
        NotFoundError: If the feature does not exist locally.
    """
    features_dir = Path(features_dir).resolve()
    feature = find_feature(features_dir, name)
    logger.info("Deploying feature %s...", feature.name)

    args = build_script_arguments(
        target,
        identity=identity,
        vars=dict(vars or {}),
        migrations_dir=feature.migrations_dir,
        features_dir=features_dir,
        short_code=short_code,
    )
    if feature.before_deploy is not None:
        await resolve(feature.before_deploy(args))

    state = await _ensure_feature_state(target, identity)
    instance = state.get(feature.name)
    merged = {
        **feature.default_vars,
        **(instance.variables if instance else {}),
        **(vars or {}),
    }

    helpers = FeatureHelpers(target, identity, features_dir, short_code, prompter)
    ctx = FeatureContext(
        feature_helpers=helpers,
        features_dir=features_dir,
        save_secrets=save_secrets,
        instance_state=state,
    )
    args = args.with_vars(merged)

    questions = feature.questions
    if callable(questions):
        questions = await resolve(questions(args, ctx))
        # The producer may have deployed other features
        ctx.instance_state = await StateStore(target).read_feature_state() or ctx.instance_state

    missing = unanswered(list(questions or []), merged)
    if missing:
        prompter = prompter or ClickPrompter()
        if prompter.available():
            merged.update(prompter.ask(missing, merged))
        else:
            logger.warning(
                "Feature %s has unanswered questions (%s) but no interactive terminal; continuing",
                feature.name,
                ", ".join(q["name"] for q in missing),
            )

    if feature.migrations_dir.is_dir():
        await reconcile(
            target,
            identity,
            feature.migrations_dir,
            RunOptions(
                exclude=feature.exclude_migrations,
                vars=merged,
                short_code=short_code,
                scope=feature.name,
            ),
        )

    artifacts = [
        a for a in code.find_artifacts(feature.path) if a.name not in feature.exclude_artifacts
    ]
    if artifacts:
        logger.info("Syncing code artifacts: %s", ", ".join(a.name for a in artifacts))
        await code.upload_artifacts(target, artifacts)
        await code.reload_code_version(target)

    if feature.finish is not None:
        await resolve(feature.finish(args, ctx))

    await StateStore(target).write_feature_instance(
        feature.name, merged, feature.secret_vars, save_secrets
    )
    logger.info("Feature %s deployed", feature.name)
    return merged


async def update_features(
    target: RemoteTarget,
    identity: str,
    features_dir: str | Path,
    vars: dict[str, Any] | None = None,
    save_secrets: bool = True,
    short_code: str | None = None,
    prompter: Prompter | None = None,
) -> list[str]:
    """Redeploy every feature that is both deployed and available locally.

    Returns the names of the redeployed features.
    """
    state = await StateStore(target).read_feature_state()
    if state is None:
        logger.warning("Feature state not available; bootstrap features first")
        return []

    local = {feature.name for feature in collect_features(features_dir)}
    redeployed = []
    for instance in state.instances:
        if instance.name not in local:
            logger.debug("Skipping %s: not available locally", instance.name)
            continue
        await deploy_feature(
            target,
            identity,
            instance.name,
            features_dir,
            vars=vars,
            save_secrets=save_secrets,
            short_code=short_code,
            prompter=prompter,
        )
        redeployed.append(instance.name)
    return redeployed


async def remove_feature(
    target: RemoteTarget,
    name: str,
    features_dir: str | Path,
    vars: dict[str, Any] | None = None,
    short_code: str | None = None,
) -> None:
    """Run the feature's ``remove`` hook, then delete its instance record.

    An exception from the hook aborts before anything is deleted.

    Raises:
        NotFoundError: The feature is not available locally or not deployed.
    """
    store = StateStore(target)
    state = await store.read_feature_state()
    if state is None:
        logger.warning("Feature state not available; nothing to remove")
        return

    features_dir = Path(features_dir).resolve()
    feature = find_feature(features_dir, name)
    instance = state.get(feature.name)
    if instance is None:
        raise NotFoundError(f"Feature {name} is not deployed")

    merged = {**feature.default_vars, **instance.variables, **(vars or {})}
    if feature.remove is not None:
        args = build_script_arguments(
            target,
            vars=merged,
            migrations_dir=feature.migrations_dir,
            features_dir=features_dir,
            short_code=short_code,
        )
        ctx = FeatureContext(
            feature_helpers=FeatureHelpers(target, target.client_id, features_dir, short_code),
            features_dir=features_dir,
            save_secrets=True,
            instance_state=state,
        )
        logger.info("Running remove for %s...", feature.name)
        await resolve(feature.remove(args, ctx))

    await store.delete_feature_instance(feature.name)
    logger.info("Feature %s removed", feature.name)
