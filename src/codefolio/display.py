"""Rich terminal display for codefolio."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from codefolio.contests import Contest

console = Console()

# Heatmap shade per level 0-4
_LEVEL_COLORS: tuple[str, ...] = ("grey23", "dark_green", "green4", "green3", "bright_green")
_HEAT_CELL = "■"

_DIFFICULTY_COLORS: dict[str, str] = {
    "Easy": "green",
    "Medium": "yellow",
    "Hard": "red",
}

_STATUS_ICONS: dict[str, str] = {
    "assigned": "⏳",
    "completed": "✅",
    "skipped": "⏭️",
}


def format_number(n: int) -> str:
    """Format large numbers: 421543 -> '421.5K', 1200 -> '1,200', 1234567 -> '1.2M'."""
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 10_000:
        return f"{n / 1_000:.1f}K"
    return f"{n:,}"


def _bar(current: int, total: int, width: int = 20) -> str:
    """Render a progress bar as text: [████████░░░░░░░░░░░░]."""
    if total <= 0:
        return "[" + "█" * width + "]"
    ratio = min(current / total, 1.0)
    filled = int(ratio * width)
    return "[" + "█" * filled + "░" * (width - filled) + "]"


def render_heatmap(weeks: list[list[dict]]) -> str:
    """Seven rows (Sunday first), one column per week, colored by level."""
    rows: list[str] = []
    for weekday in range(7):
        cells = []
        for week in weeks:
            day = week[weekday]
            if day.get("placeholder"):
                cells.append(" ")
            else:
                color = _LEVEL_COLORS[day.get("level", 0)]
                cells.append(f"[{color}]{_HEAT_CELL}[/]")
        rows.append("".join(cells))
    return "\n".join(rows)


def print_calendar(report: dict) -> None:
    """Print the contribution heatmap with streak stats."""
    stats = report.get("stats", {})
    lines: list[str] = [""]
    lines.append(render_heatmap(report.get("weeks", [])))
    lines.append("")
    lines.append(
        f"  Contributions: [bold]{format_number(stats.get('totalContributions', 0))}[/]  |  "
        f"Active days: {stats.get('activeDays', 0)}"
    )
    lines.append(
        f"  \U0001f525 Current streak: {stats.get('currentStreak', 0)} days  |  "
        f"Longest: {stats.get('longestStreak', 0)} days"
    )
    totals = report.get("platformTotals", {})
    if totals:
        lines.append("  " + "  ".join(f"{p}: {format_number(n)}" for p, n in totals.items()))
    if report.get("stale"):
        lines.append("")
        lines.append(f"  [yellow]Stale data: {', '.join(report.get('stale_platforms', []))}[/]")
    lines.append("")

    calendar = report.get("calendar", [])
    span = f"{calendar[0]['date']} to {calendar[-1]['date']}" if calendar else ""
    console.print(Panel(
        "\n".join(lines),
        title=f"[bold]Contributions {span}[/]",
        box=box.ROUNDED,
        border_style="green",
    ))


def print_score(report: dict) -> None:
    score = report.get("score", {})
    caps = {"problems": 400, "ratings": 300, "activity": 150, "consistency": 150}
    lines: list[str] = [""]
    lines.append(f"  [bold]Coding score: {score.get('total', 0)}[/] / 1000")
    lines.append("")
    for name, cap in caps.items():
        value = score.get(name, 0)
        lines.append(f"  {name.capitalize():<12s} {_bar(value, cap, width=15)} {value}/{cap}")
    lines.append("")
    console.print(Panel(
        "\n".join(lines),
        title="[bold]CODEFOLIO SCORE[/]",
        box=box.ROUNDED,
        border_style="cyan",
        width=56,
    ))


def print_sync_result(result: dict) -> None:
    """Print sync results summary."""
    lines: list[str] = [""]
    synced = result.get("synced", [])
    lines.append(f"  Synced:  {', '.join(synced) if synced else 'nothing'}")
    for failure in result.get("failed", []):
        lines.append(f"  [red]Failed:  {failure['platform']} ({failure['reason']})[/]")
    lines.append("")
    console.print(Panel(
        "\n".join(lines),
        title="[bold]Sync Complete[/]",
        box=box.ROUNDED,
        border_style="green" if result.get("ok") else "yellow",
        width=60,
    ))


def print_links(result: dict) -> None:
    table = Table(title="Linked Platforms", box=box.ROUNDED, header_style="bold")
    table.add_column("Platform", style="bold")
    table.add_column("Handle")
    for platform, handle in result.get("links", {}).items():
        table.add_row(platform, handle)
    console.print(table)


def print_leaderboard(result: dict) -> None:
    """Print a ranked leaderboard page, highlighting the current user."""
    entries = result.get("leaderboard", [])
    current = result.get("currentUser")
    pagination = result.get("pagination", {})
    if not entries:
        console.print("[grey50]No leaderboard entries yet.[/]")
        return

    table = Table(
        title=f"Leaderboard ({result.get('sortBy', 'codingScore')})",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold",
    )
    table.add_column("#", justify="right", width=4)
    table.add_column("User", min_width=12)
    table.add_column("Score", justify="right")
    table.add_column("Problems", justify="right")
    table.add_column("LC", justify="right")
    table.add_column("CF", justify="right")
    table.add_column("CC", justify="right")
    table.add_column("GitHub", justify="right")

    current_id = current["userId"] if current else None
    for entry in entries:
        rank = entry.get("rank", 0)
        rank_display = {1: "\U0001f947", 2: "\U0001f948", 3: "\U0001f949"}.get(rank, str(rank))
        style = "bold reverse" if entry.get("userId") == current_id else ""
        table.add_row(
            rank_display,
            entry.get("username", "?"),
            str(entry.get("codingScore", 0)),
            format_number(entry.get("totalProblems", 0)),
            str(entry.get("leetcodeRating", 0)),
            str(entry.get("codeforcesRating", 0)),
            str(entry.get("codechefRating", 0)),
            format_number(entry.get("githubContributions", 0)),
            style=style,
        )
    console.print(table)
    console.print(
        f"  Page {pagination.get('page', 1)}/{max(1, pagination.get('totalPages', 1))}"
        f"  ({pagination.get('totalUsers', 0)} users)"
    )
    if current:
        console.print(f"  Your rank: [bold]#{current['rank']}[/]  (top {100 - current['percentile']}%)")


def print_challenge(result: dict) -> None:
    """Print today's challenge with the challenge streak."""
    challenge = result.get("challenge", {})
    streak = result.get("streak", {})
    difficulty = challenge.get("difficulty", "")
    color = _DIFFICULTY_COLORS.get(difficulty, "white")
    status = challenge.get("status", "")

    lines: list[str] = [""]
    lines.append(f"  {_STATUS_ICONS.get(status, '')} [bold]{challenge.get('title', '')}[/]")
    lines.append(f"  [{color}]{difficulty}[/]  |  {challenge.get('topic', '')}  |  {challenge.get('platform', '')}")
    lines.append(f"  {challenge.get('url', '')}")
    lines.append("")
    lines.append(f"  Status: {status}" + (" (auto-verified)" if challenge.get("autoCompleted") else ""))
    lines.append(
        f"  \U0001f525 Streak: {streak.get('current', 0)} days  |  "
        f"Best: {streak.get('longest', 0)}  |  Solved: {streak.get('totalCompleted', 0)}"
    )
    lines.append("")
    console.print(Panel(
        "\n".join(lines),
        title=f"[bold]Daily Challenge {challenge.get('date', '')}[/]",
        box=box.ROUNDED,
        border_style=color,
        width=64,
    ))


def print_streak(streak: dict) -> None:
    table = Table(title="Challenge Streak", box=box.ROUNDED, header_style="bold")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Current Streak", f"{streak.get('current', 0)} days")
    table.add_row("Longest Streak", f"{streak.get('longest', 0)} days")
    table.add_row("Total Completed", str(streak.get("totalCompleted", 0)))
    table.add_row("Last Completed", streak.get("lastCompletedDate") or "-")
    console.print(table)


def print_topics(topics: dict) -> None:
    table = Table(title="Topics", box=box.ROUNDED, header_style="bold")
    table.add_column("Topic", min_width=20)
    table.add_column("Progress", min_width=18)
    for topic, progress in sorted(topics.items()):
        done, total = progress.get("completed", 0), progress.get("total", 0)
        table.add_row(topic, f"{_bar(done, total, width=10)} {done}/{total}")
    console.print(table)


def print_history(history: list[dict]) -> None:
    if not history:
        console.print("[grey50]No challenges yet.[/]")
        return
    table = Table(title="Challenge History", box=box.ROUNDED, header_style="bold")
    table.add_column("Date", width=12)
    table.add_column("", width=2)
    table.add_column("Problem", min_width=20)
    table.add_column("Difficulty")
    table.add_column("Topic")
    for item in history:
        color = _DIFFICULTY_COLORS.get(item.get("difficulty", ""), "white")
        table.add_row(
            item.get("date", ""),
            _STATUS_ICONS.get(item.get("status", ""), ""),
            item.get("title", ""),
            f"[{color}]{item.get('difficulty', '')}[/]",
            item.get("topic", ""),
        )
    console.print(table)


def print_contests(result: dict) -> None:
    contests = result.get("contests", [])
    if not contests:
        console.print("[grey50]No upcoming contests.[/]")
        return
    table = Table(title="Upcoming Contests", box=box.ROUNDED, header_style="bold")
    table.add_column("ID")
    table.add_column("Contest", min_width=20)
    table.add_column("Platform")
    table.add_column("Starts (UTC)")
    table.add_column("Length", justify="right")
    for contest in contests:
        table.add_row(
            contest["contestId"],
            contest["name"],
            contest["platform"],
            contest["startTime"].replace("T", " ")[:16],
            f"{contest.get('durationMinutes', 0)}m",
        )
    console.print(table)


def print_contest_calendar(result: dict) -> None:
    table = Table(
        title=f"Contests {result.get('year')}-{result.get('month', 0):02d}",
        box=box.ROUNDED,
        header_style="bold",
    )
    table.add_column("Date", width=12)
    table.add_column("Contests")
    for day, contests in result.get("days", {}).items():
        if contests:
            table.add_row(day, "\n".join(f"{c['name']} ({c['platform']})" for c in contests))
    console.print(table)


def print_reminders(reminders: list[dict]) -> None:
    if not reminders:
        console.print("[grey50]No reminders set.[/]")
        return
    table = Table(title="Contest Reminders", box=box.ROUNDED, header_style="bold")
    table.add_column("Contest")
    table.add_column("Remind at (UTC)")
    table.add_column("Fired", justify="center")
    for reminder in reminders:
        table.add_row(
            reminder["contestId"],
            reminder["reminderTime"].replace("T", " ")[:16],
            "✅" if reminder.get("fired") else "",
        )
    console.print(table)


def print_error(message: str) -> None:
    console.print(f"[red]{message}[/]")


class ConsoleNotifier:
    """Notifier that prints contest reminders to the terminal."""

    def notify(self, user_id: str, contest: Contest) -> None:
        console.print(Panel(
            f"\n  [bold]{contest.name}[/] on {contest.platform.value}\n"
            f"  Starts {contest.start_time.strftime('%Y-%m-%d %H:%M')} UTC\n"
            f"  {contest.url}\n",
            title=f"[bold]Reminder for {user_id}[/]",
            box=box.ROUNDED,
            border_style="magenta",
            width=60,
        ))
