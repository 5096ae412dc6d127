"""Rich-rendered diagnostics for a sync engine."""

from __future__ import annotations

import shutil
from io import StringIO
from typing import TYPE_CHECKING, Callable

from rich import box
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from .engine import SyncEngine


def render_rich(render_fn: Callable[[Console], None], styles: bool = True) -> str:
    """Render a Rich layout to an ANSI string without printing live."""

    terminal_size = shutil.get_terminal_size(fallback=(100, 24))
    # Clamp to a reasonable minimum so Rich does not choke on ultra-small widths.
    width = max(60, terminal_size.columns)

    console = Console(
        record=True,
        force_terminal=styles,
        color_system="auto" if styles else None,
        width=width,
        file=StringIO(),
    )
    render_fn(console)
    return console.export_text(clear=False, styles=styles)


def render_sync_report(engine: "SyncEngine", styles: bool = True) -> str:
    """Summarize metrics, pending queues and open conflicts."""

    metrics = engine.get_metrics()
    pending = engine.pending_counts()
    conflicts = engine.get_conflicts()

    def _render(console: Console) -> None:
        table = Table(title="Sync Metrics", show_header=False, box=box.SIMPLE)
        table.add_column("Metric", style="bold")
        table.add_column("Value")
        table.add_row("Total syncs", str(metrics.total_syncs))
        table.add_row("Successful", str(metrics.successful_syncs))
        table.add_row("Failed", str(metrics.failed_syncs))
        table.add_row("Conflicts resolved", str(metrics.conflicts_resolved))
        table.add_row("Data transferred", f"{metrics.data_transferred} bytes")
        table.add_row("Average duration", f"{metrics.average_sync_duration:.1f} ms")
        table.add_row(
            "Last sync",
            metrics.last_sync_time.isoformat() if metrics.last_sync_time else "(never)",
        )
        table.add_row("In progress", str(engine.sync_in_progress))
        console.print(table)

        if pending:
            queue_table = Table(title="Pending Patches", header_style="bold cyan")
            queue_table.add_column("Entity", style="green", no_wrap=True)
            queue_table.add_column("Priority", justify="right")
            queue_table.add_column("Patches", justify="right")
            for key, count in pending.items():
                entity_type = key.split(":", 1)[0]
                priority = engine.get_priority(entity_type)
                queue_table.add_row(key, str(priority.priority if priority else 0), str(count))
            console.print(queue_table)
        else:
            console.print("No pending patches.")

        if conflicts:
            conflict_table = Table(title="Open Conflicts", header_style="bold red")
            conflict_table.add_column("Entity", style="yellow", no_wrap=True)
            conflict_table.add_column("Local", justify="right")
            conflict_table.add_column("Remote", justify="right")
            conflict_table.add_column("Remote ops", justify="right")
            for conflict in conflicts:
                conflict_table.add_row(
                    conflict.key,
                    f"v{conflict.local_version}",
                    f"v{conflict.remote_version}",
                    str(len(conflict.remote_patch.operations)),
                )
            console.print(conflict_table)
        else:
            console.print("No open conflicts.")

    return render_rich(_render, styles=styles)


__all__ = ["render_rich", "render_sync_report"]
