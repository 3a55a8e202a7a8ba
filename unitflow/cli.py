"""unitflow CLI — the main entry point for migrations and feature deployment."""

import asyncio
import json
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from unitflow import __version__
from unitflow.errors import UnitflowError
from unitflow.log import configure_logging

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option("--server", "-s", "hostname", default=None, help="Instance hostname")
@click.option("--client-id", default=None, help="API client ID")
@click.option("--client-secret", default=None, help="API client secret")
@click.option("--access-token", default=None, help="Use this access token instead of client credentials")
@click.option("--code-version", default=None, help="Code version for artifact uploads")
@click.option("--short-code", default=None, help="SCAPI short code")
@click.option("--config", "config_path", default=None, help="Config file (default: ./unitflow.yaml)")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def main(ctx, hostname, client_id, client_secret, access_token, code_version, short_code, config_path, verbose):
    """unitflow — apply change-units and deploy features to a remote instance.

    Target settings come from unitflow.yaml, UNITFLOW_* environment
    variables and the options above, later sources winning.
    """
    configure_logging(verbose)
    ctx.obj = {
        "config_path": config_path,
        "overrides": {
            "hostname": hostname,
            "client_id": client_id,
            "client_secret": client_secret,
            "access_token": access_token,
            "code_version": code_version,
            "short_code": short_code,
        },
    }


# ── Helpers ──────────────────────────────────────────────────────────


def vars_options(f):
    f = click.option("--var", "-D", "pairs", multiple=True, help="Variable as key=value (repeatable)")(f)
    f = click.option("--vars-json", default=None, help="Variables as a JSON object")(f)
    f = click.option("--vars-file", default=None, help="Variables file (JSON or YAML)")(f)
    return f


def _load_vars(vars_file, vars_json, pairs) -> dict:
    from unitflow.config import parse_vars

    try:
        return parse_vars(vars_file, vars_json, pairs)
    except (ValueError, OSError) as e:
        raise click.BadParameter(str(e)) from e


def _load_config(ctx):
    from unitflow.config import load_target_config

    try:
        config = load_target_config(ctx.obj["config_path"], **ctx.obj["overrides"])
    except FileNotFoundError as e:
        raise click.ClickException(str(e)) from e
    if not config.hostname:
        raise click.ClickException("No server configured (--server or UNITFLOW_HOSTNAME)")
    if not config.client_id:
        raise click.ClickException("No client ID configured (--client-id or UNITFLOW_CLIENT_ID)")
    return config


def _execute(config, operation):
    """Run ``operation(target)`` against a fresh target and report unitflow errors."""
    from unitflow.remote.client import RemoteTarget

    async def runner():
        async with RemoteTarget(config) as target:
            return await operation(target)

    try:
        return asyncio.run(runner())
    except UnitflowError as e:
        raise click.ClickException(str(e)) from e


def _local_feature_names(features_dir: str) -> list[str]:
    from unitflow.features.collector import collect_features

    try:
        return [f.name for f in collect_features(features_dir)]
    except UnitflowError as e:
        raise click.ClickException(str(e)) from e


def _select_feature(features_dir: str) -> str:
    names = _local_feature_names(features_dir)
    if not names:
        raise click.ClickException(f"No features found in {features_dir}")
    return click.prompt("Feature", type=click.Choice(names))


# ── Migrations ───────────────────────────────────────────────────────


@main.command()
@click.option("--dir", "-d", "directory", default="./migrations", help="Migrations directory")
@click.option("--exclude", "-x", multiple=True, help="Regex of unit names to exclude (repeatable)")
@click.option("--apply/--no-apply", default=True, help="Record applied units on the instance")
@click.option("--dry-run", is_flag=True, help="Only report what would run")
@click.option("--force-bootstrap", is_flag=True, help="Bootstrap even if not required")
@click.option("--allow-bootstrap/--no-allow-bootstrap", default=True, help="Allow bootstrap when required")
@click.option("--show-notes/--no-show-notes", default=True, help="Show unit notes")
@vars_options
@click.pass_context
def run(ctx, directory, exclude, apply, dry_run, force_bootstrap, allow_bootstrap, show_notes, vars_file, vars_json, pairs):
    """Apply pending change-units from a migrations directory."""
    from unitflow.migrations.collector import SETUP_FILE
    from unitflow.migrations.engine import reconcile
    from unitflow.models.units import RunOptions

    path = Path(directory)
    if not path.is_dir():
        message = f"Migrations directory {directory} does not exist"
        if (Path.cwd() / SETUP_FILE).is_file():
            message += " (the current directory looks like a migrations directory; try --dir .)"
        raise click.ClickException(message)

    options = RunOptions(
        exclude=list(exclude),
        apply=apply,
        dry_run=dry_run,
        force_bootstrap=force_bootstrap,
        allow_bootstrap=allow_bootstrap,
        vars=_load_vars(vars_file, vars_json, pairs),
        show_notes=show_notes,
    )
    config = _load_config(ctx)
    options.short_code = config.short_code or None

    summary = _execute(config, lambda target: reconcile(target, config.client_id, path, options))
    console.print(Panel(summary.summary(), title="Migration Result"))


# ── Features ─────────────────────────────────────────────────────────


@main.group()
def feature():
    """Deploy and inspect features."""


@feature.command(name="list")
@click.option("--features-dir", "-f", default="./features", help="Features directory")
def list_features(features_dir: str):
    """List features available locally."""
    from unitflow.features.collector import collect_features

    try:
        features = collect_features(features_dir)
    except UnitflowError as e:
        raise click.ClickException(str(e)) from e

    if not features:
        console.print("[yellow]No features found.[/]")
        return

    table = Table(title=f"Features ({len(features)})")
    table.add_column("Name", style="cyan")
    table.add_column("Requires")
    table.add_column("Path", style="dim")
    for f in features:
        table.add_row(f.name, ", ".join(f.requires), str(f.path))
    console.print(table)


@feature.command()
@click.option("--features-dir", "-f", default=None, help="Only show features also available in this directory")
@click.pass_context
def current(ctx, features_dir):
    """List features deployed on the instance."""
    from unitflow.features.queries import current_features

    config = _load_config(ctx)
    instances = _execute(config, lambda target: current_features(target, features_dir))
    if not instances:
        console.print("[yellow]No features deployed.[/]")
        return

    table = Table(title=f"Deployed Features ({len(instances)})")
    table.add_column("Name", style="cyan")
    table.add_column("Created", style="dim")
    table.add_column("Modified", style="dim")
    for entry in instances:
        table.add_row(entry["name"], entry["created_at"] or "", entry["last_modified_at"] or "")
    console.print(table)


@feature.command()
@click.argument("name", required=False)
@click.pass_context
def get(ctx, name):
    """Print a deployed feature (or the whole feature state) as JSON."""
    from unitflow.features.queries import get_feature

    config = _load_config(ctx)
    result = _execute(config, lambda target: get_feature(target, name))
    if result is None:
        raise click.ClickException("Feature state not available; run 'unitflow feature bootstrap'")
    click.echo(json.dumps(result, indent=2))


@feature.command()
@click.argument("name", required=False)
@click.option("--features-dir", "-f", default="./features", help="Features directory")
@click.option("--save-secrets/--no-save-secrets", default=True, help="Persist secret variables")
@vars_options
@click.pass_context
def deploy(ctx, name, features_dir, save_secrets, vars_file, vars_json, pairs):
    """Deploy a feature (prompts for one when NAME is omitted)."""
    from unitflow.features.deploy import deploy_feature

    variables = _load_vars(vars_file, vars_json, pairs)
    name = name or _select_feature(features_dir)
    config = _load_config(ctx)

    _execute(
        config,
        lambda target: deploy_feature(
            target,
            config.client_id,
            name,
            features_dir,
            vars=variables,
            save_secrets=save_secrets,
            short_code=config.short_code or None,
        ),
    )
    console.print(f"\n[green]Deployed:[/] {name}")


@feature.command()
@click.argument("name", required=False)
@click.option("--features-dir", "-f", default="./features", help="Features directory")
@vars_options
@click.pass_context
def remove(ctx, name, features_dir, vars_file, vars_json, pairs):
    """Remove a deployed feature (prompts for one when NAME is omitted)."""
    from unitflow.features.deploy import remove_feature

    variables = _load_vars(vars_file, vars_json, pairs)
    name = name or _select_feature(features_dir)
    config = _load_config(ctx)

    _execute(
        config,
        lambda target: remove_feature(
            target, name, features_dir, vars=variables, short_code=config.short_code or None
        ),
    )
    console.print(f"\n[green]Removed:[/] {name}")


@feature.command()
@click.option("--features-dir", "-f", default="./features", help="Features directory")
@click.option("--save-secrets/--no-save-secrets", default=True, help="Persist secret variables")
@vars_options
@click.pass_context
def update(ctx, features_dir, save_secrets, vars_file, vars_json, pairs):
    """Redeploy every deployed feature that is available locally."""
    from unitflow.features.deploy import update_features

    variables = _load_vars(vars_file, vars_json, pairs)
    config = _load_config(ctx)

    redeployed = _execute(
        config,
        lambda target: update_features(
            target,
            config.client_id,
            features_dir,
            vars=variables,
            save_secrets=save_secrets,
            short_code=config.short_code or None,
        ),
    )
    if not redeployed:
        console.print("[yellow]No features redeployed.[/]")
        return
    for name in redeployed:
        console.print(f"  [green]v[/] {name}")


@feature.command()
@click.pass_context
def bootstrap(ctx):
    """Bootstrap (or upgrade) feature metadata on the instance."""
    from unitflow.migrations.bootstrap import bootstrap_features

    config = _load_config(ctx)
    _execute(config, lambda target: bootstrap_features(target, config.client_id))
    console.print(f"\n[green]Features bootstrapped for[/] {config.client_id}")


if __name__ == "__main__":
    main()
