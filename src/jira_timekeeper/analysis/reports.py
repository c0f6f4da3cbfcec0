"""Terminal reports for tasks, worklogs and monthly progress."""

import calendar
from datetime import datetime
from typing import Optional

from rich.console import Console  # type: ignore[import-not-found]
from rich.table import Table  # type: ignore[import-not-found]
from rich.text import Text  # type: ignore[import-not-found]

from jira_timekeeper.analysis.stats import MonthlySummary, group_by_task, total_minutes
from jira_timekeeper.core.duration import format_hours, format_minutes
from jira_timekeeper.core.models import Task, WorkLog


class ReportGenerator:
    """Render tracker data as rich tables."""

    def __init__(self, console: Optional[Console] = None):
        """Initialize report generator.

        Args:
            console: Rich console for output. Creates default if None.
        """
        self.console = console or Console()

    def tasks_report(self, tasks: list[Task], last_refreshed: Optional[datetime] = None) -> None:
        """Display assigned tasks.

        Args:
            tasks: Tasks to list
            last_refreshed: When the task list was fetched
        """
        if not tasks:
            self.console.print("[yellow]No tasks assigned[/yellow]")
            return

        table = Table(title="Assigned Tasks")
        table.add_column("Key", style="cyan", no_wrap=True)
        table.add_column("Summary", style="bold")
        table.add_column("Status", style="green")
        table.add_column("Updated", style="dim")

        for task in tasks:
            summary = task.summary[:60] + "..." if len(task.summary) > 60 else task.summary
            updated = task.last_updated[:10] if task.last_updated else "-"
            table.add_row(task.key, summary, task.status, updated)

        self.console.print(table)
        self._print_freshness(last_refreshed)

    def worklogs_report(
        self,
        worklogs: list[WorkLog],
        title: str = "Work Logs",
        last_refreshed: Optional[datetime] = None,
    ) -> None:
        """Display individual worklogs followed by a per-task summary.

        Args:
            worklogs: Worklogs to list
            title: Table title
            last_refreshed: When the worklogs were fetched
        """
        if not worklogs:
            self.console.print("[yellow]No work logs found for this period[/yellow]")
            return

        table = Table(title=title)
        table.add_column("Task", style="cyan", no_wrap=True)
        table.add_column("Time Spent", style="magenta", justify="right")
        table.add_column("Updated", style="dim")
        table.add_column("Comment")

        for worklog in worklogs:
            table.add_row(
                worklog.issue_key,
                worklog.time_spent,
                worklog.updated[:10],
                worklog.comment,
            )

        self.console.print(table)
        self.console.print()

        summary = Table(title="Task Time Summary")
        summary.add_column("Task", style="cyan")
        summary.add_column("Duration", style="magenta", justify="right")
        summary.add_column("Hours", style="green", justify="right")

        for key, entries in group_by_task(worklogs).items():
            minutes = total_minutes(entries)
            summary.add_row(key, format_minutes(minutes), format_hours(minutes))

        self.console.print(summary)
        self._print_freshness(last_refreshed)

    def monthly_report(self, summary: MonthlySummary) -> None:
        """Display progress towards the monthly target.

        Args:
            summary: Computed monthly summary
        """
        period = f"{calendar.month_name[summary.month]} {summary.year}"
        self.console.print(f"\n[bold cyan]Work Log Statistics - {period}[/bold cyan]\n")

        overview = Table(show_header=False, box=None, padding=(0, 2))
        overview.add_column(style="dim")
        overview.add_column(style="bold")

        overview.add_row("Total Time:", format_minutes(summary.total_minutes) or "0m")
        overview.add_row("Hours:", f"{summary.total_hours:.1f}h / {summary.target_hours:g}h")
        overview.add_row("Completion:", f"{summary.percentage:.1f}%")
        overview.add_row("Progress:", self._create_bar(summary.percentage))
        overview.add_row("Left to Target:", format_hours(summary.remaining_minutes))
        overview.add_row("Business Days Left:", str(summary.business_days_left))
        overview.add_row("Needed per Day:", format_hours(int(round(summary.daily_minutes_needed))))

        self.console.print(overview)
        self.console.print()

        if not summary.tasks:
            self.console.print("[yellow]No work logs found for this period[/yellow]")
            return

        tasks_table = Table(title="Time by Task")
        tasks_table.add_column("Task", style="cyan")
        tasks_table.add_column("Duration", style="magenta", justify="right")
        tasks_table.add_column("Entries", justify="right")
        tasks_table.add_column("% Target", style="green", justify="right")
        tasks_table.add_column("Bar", style="blue")

        for task in summary.tasks:
            tasks_table.add_row(
                task.issue_key,
                f"{format_minutes(task.minutes)} ({format_hours(task.minutes)})",
                str(task.entries),
                f"{task.percentage_of_target:.1f}%",
                self._create_bar(task.percentage_of_target),
            )

        self.console.print(tasks_table)

    def cache_status_report(self, rows: list[tuple[str, Optional[datetime]]]) -> None:
        """Display when cache keys were last refreshed.

        Args:
            rows: (key, last refreshed) pairs
        """
        if not rows:
            self.console.print("[yellow]Cache is empty[/yellow]")
            return

        table = Table(title="Cache Status")
        table.add_column("Key", style="cyan")
        table.add_column("Last Refreshed", style="magenta")
        table.add_column("Age", style="green", justify="right")

        now = datetime.now()
        for key, refreshed in rows:
            if refreshed is None:
                table.add_row(key, "-", "-")
                continue
            age_minutes = max(0, int((now - refreshed).total_seconds() // 60))
            table.add_row(
                key,
                refreshed.strftime("%Y-%m-%d %H:%M:%S"),
                format_minutes(age_minutes) or "<1m",
            )

        self.console.print(table)

    def _print_freshness(self, last_refreshed: Optional[datetime]) -> None:
        if last_refreshed is not None:
            self.console.print(
                f"[dim]Last refreshed: {last_refreshed.strftime('%Y-%m-%d %H:%M:%S')}[/dim]"
            )

    def _create_bar(self, percentage: float, width: int = 25) -> Text:
        """Create a visual bar for percentage display.

        Args:
            percentage: Percentage value (0-100, larger values fill the bar)
            width: Width of the bar in characters

        Returns:
            Rich Text object with colored bar
        """
        filled = min(width, int((percentage / 100) * width))
        empty = width - filled

        bar = Text()
        bar.append("█" * filled, style="blue")
        bar.append("░" * empty, style="dim")

        return bar
