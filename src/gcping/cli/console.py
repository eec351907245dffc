"""
Console rendering for the gcping CLI, using the 'rich' library.
"""

from rich.console import Console
from rich.table import Table

from gcping.core.reconciler import Outcome, ReconcileReport
from gcping.providers.provider_types import DeploymentPlan, RegionSet

OUTCOME_STYLES = {
    Outcome.SUCCESS: "green",
    Outcome.FAILED: "bold red",
    Outcome.PENDING: "yellow",
}


class ConsoleReporter:
    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def regions(self, region_set: RegionSet) -> None:
        table = Table(title="Desired regions", header_style="bold magenta")
        table.add_column("Region", style="cyan")
        table.add_column("Zone")
        table.add_column("Location")
        for region in region_set:
            table.add_row(region.id, region.zone, region.display_name)
        self.console.print(table)

    def plan(self, plan: DeploymentPlan) -> None:
        if plan.is_empty:
            self.console.print("Infrastructure is converged, no operations planned.", style="green")
            return

        table = Table(title="Deployment plan", header_style="bold magenta")
        table.add_column("#", justify="right")
        table.add_column("Region", style="cyan")
        table.add_column("Operation")
        table.add_column("Address")
        for i, op in enumerate(plan, start=1):
            table.add_row(str(i), op.region, op.kind.value, op.address or "-")
        self.console.print(table)

    def report(self, report: ReconcileReport) -> None:
        """Per-region outcome table of a reconciliation run"""
        if not report.results:
            self.console.print("No regions to reconcile.", style="yellow")
            return

        table = Table(title="Reconciliation result", header_style="bold magenta", show_lines=True)
        table.add_column("Region", style="cyan")
        table.add_column("Outcome")
        table.add_column("Applied")
        table.add_column("Reason", overflow="fold")
        for result in report.results:
            style = OUTCOME_STYLES[result.outcome]
            applied = ", ".join(op.kind.value for op in result.applied) or "-"
            table.add_row(
                result.region,
                f"[{style}]{result.outcome.value}[/{style}]",
                applied,
                result.reason or "",
            )
        self.console.print(table)
        self.console.print(
            f"{len(report.succeeded)} succeeded, {len(report.failed)} failed, "
            f"{len(report.pending)} pending"
        )

    def probes(self, results: dict[str, bool]) -> None:
        if not results:
            self.console.print("No running regions to probe.", style="yellow")
            return

        table = Table(title="Ping probes", header_style="bold magenta")
        table.add_column("Region", style="cyan")
        table.add_column("Pong")
        for region_id in sorted(results):
            table.add_row(region_id, "[green]yes[/green]" if results[region_id] else "[red]no[/red]")
        self.console.print(table)
