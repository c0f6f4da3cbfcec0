"""Main CLI application."""

import asyncio
import sys
from datetime import date, datetime
from typing import Any, Awaitable, Optional, TypeVar

import click
from rich.console import Console

from jira_timekeeper import __version__
from jira_timekeeper.analysis.reports import ReportGenerator
from jira_timekeeper.analysis.stats import summarize_month
from jira_timekeeper.cli.config_commands import config, get_config
from jira_timekeeper.core.cache import CacheStore
from jira_timekeeper.core.config import ConfigManager
from jira_timekeeper.core.duration import format_minutes, parse_duration
from jira_timekeeper.core.exceptions import TimekeeperError
from jira_timekeeper.core.models import Credentials
from jira_timekeeper.core.storage import JSONFileStore
from jira_timekeeper.logging_setup import setup_logging
from jira_timekeeper.tracker.client import CACHE_PREFIX, CacheTTLs, TrackerClient
from jira_timekeeper.tracker.scheduler import RefreshScheduler
from jira_timekeeper.tracker.transport import HTTPTransport, Transport

console = Console()
error_console = Console(stderr=True)

T = TypeVar("T")


def build_transport(config_mgr: ConfigManager) -> Transport:
    """Create the HTTP transport described by the configuration."""
    return HTTPTransport(
        config_mgr.get_credentials(),
        timeout=config_mgr.get("sync.request_timeout", 30),
    )


def get_client(config_mgr: ConfigManager) -> TrackerClient:
    """Build a TrackerClient with a file-backed cache from the configuration."""
    store = JSONFileStore(config_mgr.cache_dir / "cache.json")
    ttls = config_mgr.cache_ttls()
    cache = CacheStore(store, default_ttl=ttls["default"])
    return TrackerClient(
        build_transport(config_mgr),
        cache,
        credentials=config_mgr.get_credentials(),
        ttls=CacheTTLs(
            user=ttls["user"],
            tasks=ttls["tasks"],
            worklogs=ttls["worklogs"],
            all_worklogs=ttls["worklogs"],
        ),
        max_concurrent_fetches=config_mgr.get("sync.max_concurrent_fetches", 1),
    )


def run_async(coro: Awaitable[T]) -> T:
    """Run a coroutine, turning tracker errors into a CLI error exit."""
    try:
        return asyncio.run(coro)  # type: ignore[arg-type]
    except TimekeeperError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def resolve_period(month: Optional[int], year: Optional[int]) -> tuple[int, int]:
    """Fill a missing month or year from today's date."""
    today = date.today()
    return month or today.month, year or today.year


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", help="Custom config file", type=click.Path())
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], verbose: bool, no_color: bool) -> None:
    """Jira Timekeeper - log work to Jira and track monthly progress.

    Tasks and worklogs are cached locally; use --refresh to bypass the cache.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path

    if no_color:
        console.no_color = True

    if verbose:
        setup_logging("DEBUG")
    elif ctx.invoked_subcommand is not None and ctx.invoked_subcommand != "config":
        setup_logging(get_config(ctx).get("advanced.log_level", "WARNING"))


cli.add_command(config)


@cli.command()
@click.option("--domain", prompt="Jira domain", help="Jira site URL (e.g. https://acme.atlassian.net)")
@click.option("--email", prompt="Account email", help="Jira account email")
@click.option(
    "--token", prompt="API token", hide_input=True, help="Jira API token"
)
@click.option("--no-test", is_flag=True, help="Skip the connection test")
@click.pass_context
def configure(
    ctx: click.Context, domain: str, email: str, token: str, no_test: bool
) -> None:
    """Store Jira credentials.

    Switching to different credentials clears every cached task and worklog.

    Example:
        jira-timekeeper configure --domain https://acme.atlassian.net --email me@acme.com
    """
    config_mgr = get_config(ctx)
    client = get_client(config_mgr)
    credentials = Credentials(email=email.strip(), api_token=token.strip(), domain=domain.strip())

    client.set_credentials(credentials)
    config_mgr.set_credentials(credentials)
    console.print(f"[green]✓[/green] Credentials saved for {credentials.email}")

    if no_test:
        return

    if asyncio.run(client.test_connection()):
        console.print("[green]✓[/green] Connected to Jira")
    else:
        error_console.print("[red]Error:[/red] Could not connect to Jira with these credentials")
        sys.exit(1)


@cli.command("test")
@click.pass_context
def test_connection(ctx: click.Context) -> None:
    """Test the connection to Jira.

    Example:
        jira-timekeeper test
    """
    client = get_client(get_config(ctx))

    if asyncio.run(client.test_connection()):
        user = run_async(client.get_current_user())
        console.print(f"[green]✓[/green] Connected as {user.display_name}")
    else:
        error_console.print("[red]Error:[/red] Connection to Jira failed")
        sys.exit(1)


@cli.command()
@click.option("-r", "--refresh", is_flag=True, help="Bypass the cache")
@click.pass_context
def tasks(ctx: click.Context, refresh: bool) -> None:
    """List tasks assigned to you.

    Example:
        jira-timekeeper tasks
        jira-timekeeper tasks --refresh
    """
    client = get_client(get_config(ctx))

    task_list = run_async(client.refresh_user_tasks() if refresh else client.get_user_tasks())
    ReportGenerator(console).tasks_report(
        task_list, client.last_refreshed(client.tasks_cache_key())
    )


@cli.command()
@click.option("-t", "--task", "task_key", help="Only this task")
@click.option("-m", "--month", type=click.IntRange(1, 12), help="Month (default: current)")
@click.option("-y", "--year", type=int, help="Year (default: current)")
@click.option("--all", "all_time", is_flag=True, help="Do not filter by month")
@click.option("-r", "--refresh", is_flag=True, help="Bypass the cache")
@click.pass_context
def worklogs(
    ctx: click.Context,
    task_key: Optional[str],
    month: Optional[int],
    year: Optional[int],
    all_time: bool,
    refresh: bool,
) -> None:
    """List your work logs.

    Example:
        jira-timekeeper worklogs
        jira-timekeeper worklogs --month 6 --year 2024
        jira-timekeeper worklogs --task PROJ-123 --refresh
    """
    client = get_client(get_config(ctx))
    report = ReportGenerator(console)

    if task_key:
        logs = run_async(
            client.refresh_task_worklogs(task_key)
            if refresh
            else client.get_task_worklogs(task_key)
        )
        report.worklogs_report(
            logs,
            title=f"Work Logs - {task_key}",
            last_refreshed=client.last_refreshed(client.task_worklogs_cache_key(task_key)),
        )
        return

    if all_time:
        period_month: Optional[int] = None
        period_year: Optional[int] = None
        title = "Work Logs - All Time"
    else:
        period_month, period_year = resolve_period(month, year)
        title = f"Work Logs - {period_month:02d}/{period_year}"

    logs = run_async(
        client.refresh_all_worklogs(period_month, period_year)
        if refresh
        else client.get_all_worklogs(period_month, period_year)
    )
    report.worklogs_report(
        logs,
        title=title,
        last_refreshed=client.last_refreshed(
            client.all_worklogs_cache_key(period_month, period_year)
        ),
    )


@cli.command("log")
@click.argument("task_key")
@click.argument("time_spent")
@click.option("-m", "--comment", default="", help="Work description")
@click.option(
    "-s",
    "--started",
    type=click.DateTime(formats=["%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M", "%Y-%m-%d"]),
    help="When the work started (default: now)",
)
@click.pass_context
def log_work(
    ctx: click.Context,
    task_key: str,
    time_spent: str,
    comment: str,
    started: Optional[datetime],
) -> None:
    """Log time on a task.

    TIME_SPENT uses Jira notation: w, d (8h), h, m.

    Example:
        jira-timekeeper log PROJ-123 "1h 30m" -m "Code review"
        jira-timekeeper log PROJ-123 2h --started "2024-06-03 09:00"
    """
    minutes = parse_duration(time_spent)
    if minutes <= 0:
        error_console.print(f"[red]Error:[/red] Invalid duration: {time_spent!r}")
        sys.exit(1)

    client = get_client(get_config(ctx))
    run_async(client.add_worklog(task_key, time_spent, comment, started))

    console.print(f"[green]✓[/green] Logged {format_minutes(minutes)} on {task_key}")
    url = client.get_task_url(task_key)
    if url:
        console.print(f"  {url}")


@cli.command()
@click.option("-m", "--month", type=click.IntRange(1, 12), help="Month (default: current)")
@click.option("-y", "--year", type=int, help="Year (default: current)")
@click.option("--target", type=float, help="Monthly target hours (default: from config)")
@click.option("-r", "--refresh", is_flag=True, help="Bypass the cache")
@click.pass_context
def stats(
    ctx: click.Context,
    month: Optional[int],
    year: Optional[int],
    target: Optional[float],
    refresh: bool,
) -> None:
    """Show monthly progress towards the hours target.

    Example:
        jira-timekeeper stats
        jira-timekeeper stats --month 6 --year 2024 --target 160
    """
    config_mgr = get_config(ctx)
    client = get_client(config_mgr)
    period_month, period_year = resolve_period(month, year)
    target_hours = target or config_mgr.get("stats.monthly_target_hours", 168)

    logs = run_async(
        client.refresh_all_worklogs(period_month, period_year)
        if refresh
        else client.get_all_worklogs(period_month, period_year)
    )
    summary = summarize_month(logs, period_month, period_year, target_hours)
    ReportGenerator(console).monthly_report(summary)


@cli.command()
@click.option("--interval", type=int, help="Seconds between checks (default: from config)")
@click.pass_context
def watch(ctx: click.Context, interval: Optional[int]) -> None:
    """Keep the cache fresh in the foreground until interrupted.

    Example:
        jira-timekeeper watch --interval 300
    """
    config_mgr = get_config(ctx)
    client = get_client(config_mgr)
    if client.credentials is None:
        error_console.print("[red]Error:[/red] Jira credentials not set. Run 'configure' first.")
        sys.exit(1)

    if config_mgr.get("advanced.log_level", "WARNING") == "WARNING":
        setup_logging("INFO")

    scheduler = RefreshScheduler(
        client,
        interval=interval or config_mgr.get("sync.refresh_interval", 300),
        tasks_max_age=config_mgr.get("sync.tasks_max_age", 1800),
        worklogs_max_age=config_mgr.get("sync.worklogs_max_age", 900),
    )

    async def run_forever() -> None:
        async with scheduler:
            await asyncio.Event().wait()

    console.print(f"Watching Jira every {scheduler.interval}s. Press Ctrl+C to stop.")
    try:
        asyncio.run(run_forever())
    except KeyboardInterrupt:
        console.print("Stopped")


@cli.group()
def cache() -> None:
    """Inspect or clear the local cache."""
    pass


@cache.command("status")
@click.pass_context
def cache_status(ctx: click.Context) -> None:
    """Show when each cached entry was last refreshed.

    Example:
        jira-timekeeper cache status
    """
    client = get_client(get_config(ctx))
    keys = sorted(client.cache.keys(CACHE_PREFIX))
    rows: list[tuple[str, Any]] = [(key, client.last_refreshed(key)) for key in keys]
    ReportGenerator(console).cache_status_report(rows)


@cache.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def cache_clear(ctx: click.Context, yes: bool) -> None:
    """Delete every cached entry.

    Example:
        jira-timekeeper cache clear --yes
    """
    client = get_client(get_config(ctx))

    if not yes and not click.confirm("Clear all cached Jira data?"):
        console.print("Cancelled")
        return

    client.cache.clear_all()
    console.print("[green]✓[/green] Cache cleared")


def main() -> None:
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
