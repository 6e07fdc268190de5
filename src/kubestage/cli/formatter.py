# src/kubestage/cli/formatter.py
from typing import List, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from kubestage.model.runtime import Model
from kubestage.reconcile.executor import ApplyReport

# Shared Rich console for every CLI screen
console = Console()


class KubeFormatter:
    """
    KubeFormatter: the visual side of the CLI.
    Renders assembled models, warnings and apply reports.
    """

    def show_manifests(self, model: Model, title: str):
        """Prints the whole model as one syntax-highlighted YAML stream."""
        syntax = Syntax(model.serialize().strip(), "yaml", theme="monokai", line_numbers=False)
        console.print(Panel(syntax, title=title, border_style="cyan"))

    def show_model_table(self, model: Model, title: str):
        table = Table(title=title, show_header=True, header_style="bold magenta")
        table.add_column("Template", style="dim")
        table.add_column("Kind")
        table.add_column("Name", style="cyan")
        table.add_column("Source", justify="center")

        for obj in model:
            source = "[yellow]override[/yellow]" if obj.overridden else "default"
            table.add_row(obj.template_key, obj.kind, obj.name, source)

        console.print(table)

    def show_warnings(self, warnings: List[str]):
        for warning in warnings:
            console.print(f"[bold yellow]⚠  {warning}[/bold yellow]")

    def print_apply_report(self, report: ApplyReport):
        """
        Builds the summary table shown at the end of an apply.
        """
        table = Table(title="KubeStage Apply Report", show_lines=True, header_style="bold magenta")
        table.add_column("Kind", style="white")
        table.add_column("Name", style="cyan")
        table.add_column("Action", style="bold")

        rows: List[Tuple[str, str, str]] = []
        rows += [(kind, name, "[green]created[/green]") for kind, name in report.created]
        rows += [(kind, name, "[yellow]patched[/yellow]") for kind, name in report.patched]
        rows += [(kind, name, "[dim]unchanged[/dim]") for kind, name in report.unchanged]
        rows += [(kind, name, "[red]deleted[/red]") for kind, name in report.deleted]
        for row in rows:
            table.add_row(*row)

        console.print(table)
        summary = report.summary()
        console.print(Panel(
            f"[bold white]Summary[/bold white]\n"
            f"════════════════════════════════════════\n"
            f"Created:    [green]{summary['created']}[/green]\n"
            f"Patched:    [yellow]{summary['patched']}[/yellow]\n"
            f"Unchanged:  {summary['unchanged']}\n"
            f"Deleted:    [red]{summary['deleted']}[/red]",
            border_style="dim"
        ))

    def print_error(self, error: Exception):
        console.print(f"[bold red]{type(error).__name__}:[/bold red] {error}")
