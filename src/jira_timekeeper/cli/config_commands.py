"""``config`` command group."""

import json
import shutil
import sys
from pathlib import Path
from typing import Any, NoReturn

import click  # type: ignore[import-not-found]
from rich.console import Console  # type: ignore[import-not-found]
from rich.table import Table  # type: ignore[import-not-found]

from jira_timekeeper.core.config import ConfigManager, flatten
from jira_timekeeper.core.exceptions import ConfigurationError

console = Console()
error_console = Console(stderr=True)

SECRET_KEYS = {"jira.api_token"}
MASK = "********"


def get_config(ctx: click.Context) -> ConfigManager:
    """Load configuration from the path given with ``--config``, if any."""
    obj = ctx.find_object(dict) or {}
    config_path = obj.get("config_path")
    try:
        return ConfigManager(Path(config_path) if config_path else None)
    except ConfigurationError as e:
        fail(str(e))


def fail(message: str) -> NoReturn:
    error_console.print(f"[red]Error:[/red] {message}")
    sys.exit(1)


def masked(key: str, value: Any) -> Any:
    return MASK if key in SECRET_KEYS and value else value


def parse_value(raw: str) -> Any:
    """Convert a command line string to bool, None, int or float where it looks like one."""
    lowered = raw.lower()
    if lowered in ("true", "yes"):
        return True
    if lowered in ("false", "no"):
        return False
    if lowered in ("null", "none"):
        return None
    for convert in (int, float):
        try:
            return convert(raw)
        except ValueError:
            continue
    return raw


@click.group()  # type: ignore[misc]
def config() -> None:
    """View and change settings in ~/.jira-timekeeper/config.yml."""


@config.command("show")  # type: ignore[misc]
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")  # type: ignore[misc]
@click.pass_context  # type: ignore[misc]
def config_show(ctx: click.Context, as_json: bool) -> None:
    """Show every setting with the API token masked.

    Example:
        jira-timekeeper config show --json
    """
    config_mgr = get_config(ctx)
    settings = config_mgr.to_dict()
    jira = settings.get("jira") or {}
    jira["api_token"] = masked("jira.api_token", jira.get("api_token"))

    if as_json:
        click.echo(json.dumps(settings, indent=2))
        return

    table = Table(title="Jira Timekeeper Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for key, value in flatten(settings):
        table.add_row(key, "-" if value is None else str(value))

    console.print(table)
    console.print(f"\nConfig file: {config_mgr.config_path}")


@config.command("get")  # type: ignore[misc]
@click.argument("key")  # type: ignore[misc]
@click.pass_context  # type: ignore[misc]
def config_get(ctx: click.Context, key: str) -> None:
    """Print one setting.

    Example:
        jira-timekeeper config get cache.ttl.tasks
    """
    value = get_config(ctx).get(key)
    if value is None:
        fail(f"Configuration key '{key}' not found")

    if isinstance(value, dict):
        value = {k: masked(f"{key}.{k}", v) for k, v in value.items()}
        console.print(json.dumps(value, indent=2))
    else:
        console.print(str(masked(key, value)))


@config.command("set")  # type: ignore[misc]
@click.argument("key")  # type: ignore[misc]
@click.argument("value")  # type: ignore[misc]
@click.pass_context  # type: ignore[misc]
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Change one setting.

    Numbers, true/false and null are converted.

    Example:
        jira-timekeeper config set sync.max_concurrent_fetches 4
        jira-timekeeper config set advanced.log_level DEBUG
    """
    config_mgr = get_config(ctx)
    parsed = parse_value(value)
    try:
        config_mgr.set(key, parsed)
    except ConfigurationError as e:
        fail(str(e))
    console.print(f"[green]✓[/green] Set {key} = {masked(key, parsed)}")


@config.command("reset")  # type: ignore[misc]
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")  # type: ignore[misc]
@click.pass_context  # type: ignore[misc]
def config_reset(ctx: click.Context, yes: bool) -> None:
    """Restore defaults. Stored credentials are removed too.

    Example:
        jira-timekeeper config reset --yes
    """
    config_mgr = get_config(ctx)
    if not yes and not click.confirm("Reset all settings, including credentials?"):
        console.print("Cancelled")
        return

    shutil.copy(config_mgr.config_path, config_mgr.backup_path)
    config_mgr.reset()
    console.print(f"[green]✓[/green] Configuration reset (previous copy: {config_mgr.backup_path})")


@config.command("validate")  # type: ignore[misc]
@click.pass_context  # type: ignore[misc]
def config_validate(ctx: click.Context) -> None:
    """Check the file against the schema."""
    try:
        get_config(ctx).validate()
    except ConfigurationError as e:
        fail(str(e))
    console.print("[green]✓[/green] Configuration is valid")


@config.command("path")  # type: ignore[misc]
@click.pass_context  # type: ignore[misc]
def config_path(ctx: click.Context) -> None:
    """Print the config file location."""
    click.echo(str(get_config(ctx).config_path))
