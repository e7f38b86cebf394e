"""
Donor analysis: classify or transition each donor, then predict next actions.

For every donor: unclassified donors are placed into a journey stage, staged
donors get a transition check, then 2-3 next actions are predicted, stored on
the donor and reconciled into to-dos.

Usage:
    python analyze.py --org org_123 --donor 42
    python analyze.py --org org_123 --donors-file donors.txt --workers 10
    python analyze.py --org org_123 --donors-file donors.txt --json results.json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

load_dotenv(Path(__file__).parent / ".env")

from donor_journey.config import load_analysis_config
from donor_journey.db import check_connection
from donor_journey.errors import DonorJourneyError
from donor_journey.models.analysis import BatchAnalysisResult
from donor_journey.services import DonorAnalysisService, RepositoryDonorDataStore, TodoService
from donor_journey.utils.donor_loader import load_donor_ids
from donor_journey.utils.logger import PipelineLogger, PipelineRunContext

console = Console()


def display_results(batch: BatchAnalysisResult, verbose: bool = False) -> None:
    """Print the batch summary and per-donor table."""
    console.print()
    summary = (
        f"Organization: {batch.organization_id}\n"
        f"Donors analyzed: {len(batch.results)}\n"
        f"Successful: {batch.succeeded}\n"
        f"Failed: {batch.failed}\n"
        f"Stage changes: {sum(1 for r in batch.results if r.stage_changed)}"
    )
    console.print(Panel(summary, title="Analysis Summary", border_style="blue"))

    if not batch.results:
        return

    table = Table(title="Donor Results")
    table.add_column("Donor", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Stage")
    table.add_column("Actions", justify="right")
    table.add_column("Error")

    for result in batch.results:
        status = "[green]OK[/green]" if result.succeeded else "[red]ERROR[/red]"
        if result.stage_changed and result.previous_stage:
            stage = f"{result.previous_stage} -> [bold]{result.stage}[/bold]"
        elif result.stage_changed:
            stage = f"[bold]{result.stage}[/bold] (new)"
        else:
            stage = result.stage or ""
        error = result.error or ""
        table.add_row(
            result.donor_id,
            status,
            stage,
            str(len(result.actions)) if result.succeeded else "",
            error[:60] + "..." if len(error) > 60 else error,
        )
    console.print(table)

    if verbose:
        for result in batch.results:
            if not result.actions:
                continue
            console.print()
            console.print(f"[bold]Donor {result.donor_id}[/bold] ({result.stage})")
            for action in result.actions:
                console.print(f"  [cyan]{action.type}[/cyan] {action.description}")
                console.print(f"    [dim]{action.explanation}[/dim]")


async def run_analysis(args, config, pipeline_logger: PipelineLogger) -> BatchAnalysisResult:
    service = DonorAnalysisService.create(
        store=RepositoryDonorDataStore(),
        todo_materializer=TodoService(),
        config=config,
        pipeline_logger=pipeline_logger,
    )
    with PipelineRunContext(pipeline_logger, num_donors=len(args.donor_ids), organization_id=args.org) as ctx:
        batch = await service.analyze_donors(args.donor_ids, args.org, requesting_user_id=args.user)
        ctx.record(batch.succeeded, batch.failed, service.total_cost_usd)
    return batch


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Analyze donors against their organization's donor journey")
    parser.add_argument("--org", required=True, help="Organization id that owns the donors and journey")
    donors = parser.add_mutually_exclusive_group(required=True)
    donors.add_argument("--donor", action="append", help="Donor id to analyze (repeatable)")
    donors.add_argument("--donors-file", type=str, help="File with one donor id per line")
    parser.add_argument("--user", type=str, default=None, help="Requesting user id (recorded in logs)")
    parser.add_argument(
        "--workers", type=int, default=None, help="Donors analyzed concurrently (default: from config)"
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to analysis YAML config")
    parser.add_argument("--model", type=str, default=None, help="Force a model for every LLM task")
    parser.add_argument("--json", type=Path, default=None, help="Write the batch result to this JSON file")
    parser.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-file", default=None, help="Also log to logs/<file>")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show predicted actions per donor")
    args = parser.parse_args()

    pipeline_logger = PipelineLogger(log_level=args.log_level, log_file=args.log_file, phase="analyze")

    config = load_analysis_config(args.config)
    if args.workers is not None:
        config.max_concurrency = max(1, args.workers)
    if args.model:
        config.model = args.model

    args.donor_ids = args.donor if args.donor else load_donor_ids(args.donors_file)
    if not args.donor_ids:
        console.print("[yellow]No donors to analyze[/yellow]")
        return

    console.print(f"[bold]Donor Analysis[/bold] org={args.org} donors={len(args.donor_ids)}")

    if not check_connection():
        console.print("[red]CRM database unreachable (check DONOR_DB_* settings)[/red]")
        sys.exit(1)

    try:
        batch = asyncio.run(run_analysis(args, config, pipeline_logger))
    except DonorJourneyError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    display_results(batch, verbose=args.verbose)

    if args.json:
        args.json.write_text(json.dumps(batch.to_dict(), indent=2))
        console.print(f"Results written to {args.json}")

    summary = pipeline_logger.get_error_summary()
    if summary["total_warnings"] or summary["total_errors"]:
        console.print(
            f"[yellow]Logged warnings: {summary['total_warnings']}, errors: {summary['total_errors']} (see log)[/yellow]"
        )
    console.print(batch.message)
    if batch.failed:
        sys.exit(2)


if __name__ == "__main__":
    main()
