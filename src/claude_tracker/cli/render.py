"""Rich rendering of account rows."""

from rich import box
from rich.table import Table
from rich.text import Text

from claude_tracker.display.state import AccountView, StatusKind, WindowView


BAR_WIDTH = 10
_BAR_EMPTY_COLOR = "color(238)"

# Upper bound of each band -> xterm-256 color, green through red
_UTILIZATION_COLORS = (
    (10, "color(22)"),
    (20, "color(28)"),
    (30, "color(34)"),
    (40, "color(100)"),
    (50, "color(142)"),
    (60, "color(178)"),
    (70, "color(172)"),
    (80, "color(166)"),
    (90, "color(160)"),
)
_UTILIZATION_MAX_COLOR = "color(124)"


def utilization_color(percent: int) -> str:
    for upper, color in _UTILIZATION_COLORS:
        if percent <= upper:
            return color
    return _UTILIZATION_MAX_COLOR


def filled_cells(percent: int) -> int:
    """Number of filled bar cells; any non-zero usage shows at least one."""
    if percent <= 0:
        return 0
    if percent >= 100:
        return BAR_WIDTH
    return min(max((percent * BAR_WIDTH + 50) // 100, 1), BAR_WIDTH)


def progress_bar(percent: int) -> Text:
    filled = filled_cells(percent)
    bar = Text("█" * filled, style=utilization_color(percent))
    bar.append("░" * (BAR_WIDTH - filled), style=_BAR_EMPTY_COLOR)
    return bar


def _window_cells(window: WindowView | None) -> tuple[Text, Text, Text]:
    if window is None:
        return (
            Text("--", style="dim"),
            Text("─" * BAR_WIDTH, style=_BAR_EMPTY_COLOR),
            Text("--", style="dim"),
        )
    color = utilization_color(window.percent)
    return (
        Text(f"{window.percent}%", style=color),
        progress_bar(window.percent),
        Text(window.countdown, style="grey70"),
    )


def status_cell(view: AccountView) -> Text:
    if view.error is not None:
        return Text(view.error, style="red")
    kind = view.status.kind
    if kind == StatusKind.LOGGED_IN:
        return Text(view.status_label, style="bold green")
    if kind == StatusKind.LIVE:
        return Text(view.status_label, style="grey70")
    if kind == StatusKind.STALE:
        return Text(view.status_label, style="yellow")
    return Text(view.status_label, style="dim")


def build_accounts_table(views: list[AccountView], title: str | None = "Claude Accounts") -> Table:
    """Build the accounts table shown by ``list`` and ``watch``."""
    table = Table(title=title, box=box.SIMPLE_HEAVY)
    table.add_column("#", justify="right")
    table.add_column("Account")
    table.add_column("5h", justify="right")
    table.add_column("", no_wrap=True)
    table.add_column("Resets")
    table.add_column("7d", justify="right")
    table.add_column("", no_wrap=True)
    table.add_column("Resets")
    table.add_column("Status")

    for view in views:
        percent = view.five_hour.percent if view.five_hour else 0
        color = utilization_color(percent) if view.five_hour else "dim"
        name = f"{view.name} *" if view.is_active else view.name
        name_style = f"bold {color}" if view.is_active else color
        table.add_row(
            Text(str(view.account_id), style=color),
            Text(name, style=name_style),
            *_window_cells(view.five_hour),
            *_window_cells(view.seven_day),
            status_cell(view),
        )

    return table
