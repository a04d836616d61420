"""Terminal rendering for rolloutctl.

Table output draws rollout state for people: one row per slot for
blue-green, canary next to baseline for canary. The json, yaml and raw
formats print the same wire dictionaries the state store saves, so they
can be piped into other tools.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import TYPE_CHECKING, Any

import yaml
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

if TYPE_CHECKING:
    from rolloutctl.deploy.models import BlueGreenState, CanaryState

console = Console()
error_console = Console(stderr=True)

STATUS_STYLES = {
    "active": "green",
    "running": "green",
    "completed": "green",
    "standby": "cyan",
    "paused": "yellow",
    "deploying": "yellow",
    "idle": "dim",
    "failed": "red",
    "rolled_back": "red",
}

# (style, marker) per notice kind
NOTICES = {
    "success": ("green", "✓"),
    "warning": ("yellow", "Warning:"),
}


class OutputFormat(str, Enum):
    """Supported output formats."""

    TABLE = "table"
    JSON = "json"
    YAML = "yaml"
    RAW = "raw"


class OutputFormatter:
    """Prints command results in the selected format."""

    def __init__(
        self,
        format: OutputFormat = OutputFormat.TABLE,
        color: bool = True,
        quiet: bool = False,
    ):
        self.format = format
        self.color = color
        self.quiet = quiet
        self._console = Console(force_terminal=color, no_color=not color)

    @property
    def machine_readable(self) -> bool:
        return self.format is not OutputFormat.TABLE

    def print(self, message: str, style: str | None = None) -> None:
        if not self.quiet:
            self._console.print(message, style=style)

    def print_error(self, message: str) -> None:
        """Errors go to stderr and ignore ``quiet``."""
        error_console.print(f"[red]Error:[/red] {message}")

    def print_success(self, message: str) -> None:
        self._notice("success", message)

    def print_warning(self, message: str) -> None:
        self._notice("warning", message)

    def _notice(self, kind: str, message: str) -> None:
        style, marker = NOTICES[kind]
        self.print(f"[{style}]{marker}[/{style}] {message}")

    def print_data(self, data: dict[str, Any], title: str | None = None) -> None:
        """Print a flat record such as a health result or the configuration."""
        if self.machine_readable:
            self._print_serialized(data)
            return

        table = Table(title=title, header_style="bold cyan")
        table.add_column("Field", style="dim")
        table.add_column("Value")
        for key, value in data.items():
            table.add_row(str(key), format_status(value))
        self._console.print(table)

    def print_blue_green(self, state: BlueGreenState, title: str) -> None:
        """Print both slots with their version, status and traffic share."""
        if self.machine_readable:
            self._print_serialized(state.to_dict())
            return

        last_switch = state.last_switch.isoformat() if state.last_switch else "never"
        table = Table(title=title, caption=f"Last switch: {last_switch}", header_style="bold cyan")
        for column in ("Slot", "Version", "Status", "Traffic"):
            table.add_column(column)
        for slot in type(state.active_environment):
            active = slot is state.active_environment
            table.add_row(
                f"[bold]{slot.value}[/bold]" if active else slot.value,
                state.version_of(slot) or "-",
                format_status(state.status_of(slot).value),
                "100%" if active else "0%",
            )
        self._console.print(table)

    def print_canary(self, state: CanaryState, title: str) -> None:
        """Print the canary beside its baseline, with the last metrics seen."""
        if self.machine_readable:
            self._print_serialized(state.to_dict())
            return

        m = state.metrics
        started = state.start_time.isoformat() if state.start_time else "-"
        table = Table(
            title=title,
            caption=f"Status: {format_status(state.status.value)}  Started: {started}",
            header_style="bold cyan",
        )
        table.add_column("")
        table.add_column("Canary")
        table.add_column("Baseline")
        table.add_row("Version", state.version or "-", state.baseline_version or "-")
        table.add_row("Traffic", f"{state.traffic_percentage}%", f"{100 - state.traffic_percentage}%")
        table.add_row("Error rate", f"{m.canary_error_rate:.2f}%", f"{m.baseline_error_rate:.2f}%")
        table.add_row(
            "Response time",
            f"{m.canary_response_time:.0f}ms",
            f"{m.baseline_response_time:.0f}ms",
        )
        self._console.print(table)

    def _print_serialized(self, data: dict[str, Any]) -> None:
        if self.format is OutputFormat.RAW:
            for key, value in _flatten(data):
                print(f"{key}: {value}")
            return

        if self.format is OutputFormat.YAML:
            text, lexer = yaml.safe_dump(data, sort_keys=False, allow_unicode=True), "yaml"
        else:
            text, lexer = json.dumps(data, indent=2, default=str), "json"

        if self.color:
            self._console.print(Syntax(text, lexer, theme="monokai"))
        else:
            print(text.rstrip("\n"))


def _flatten(data: dict[str, Any], prefix: str = "") -> list[tuple[str, Any]]:
    """Dotted ``key: value`` pairs for raw output."""
    pairs: list[tuple[str, Any]] = []
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            pairs.extend(_flatten(value, f"{name}."))
        else:
            pairs.append((name, value))
    return pairs


def format_status(value: Any) -> str:
    """Colour known slot/canary statuses for table output."""
    text = str(value)
    style = STATUS_STYLES.get(text)
    if style:
        return f"[{style}]{text}[/{style}]"
    return text


def format_duration(seconds: float) -> str:
    """Render a duration with the largest fitting unit, e.g. ``1.5m``."""
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60)):
        if seconds >= size:
            return f"{seconds / size:.1f}{unit}"
    return f"{seconds:.1f}s"
