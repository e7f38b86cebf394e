"""
Donor journey generation: turn a free-text journey description into a stage graph.

Usage:
    python generate_journey.py --text-file journey.txt
    python generate_journey.py --text-file journey.txt --org org_123 --save
    python generate_journey.py --text "New donors get a welcome call..." --json graph.json
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
from donor_journey.errors import DonorJourneyError
from donor_journey.llm.llm_client import LLMTask, get_client_for_task
from donor_journey.models.journey import DonorJourneyGraph
from donor_journey.services import DonorJourneyService, RepositoryDonorDataStore
from donor_journey.utils.logger import PipelineLogger

console = Console()


def display_graph(graph: DonorJourneyGraph) -> None:
    console.print()
    console.print(
        Panel(
            f"Stages: {len(graph.nodes)}\nTransitions: {len(graph.edges)}",
            title="Donor Journey",
            border_style="blue",
        )
    )
    if graph.is_empty:
        return

    stages = Table(title="Stages")
    stages.add_column("ID", style="cyan")
    stages.add_column("Label", style="bold")
    stages.add_column("Description")
    stages.add_column("Actions", justify="right")
    for node in graph.nodes:
        stages.add_row(node.id, node.label, node.properties.description, str(len(node.properties.actions or [])))
    console.print(stages)

    transitions = Table(title="Transitions")
    transitions.add_column("ID", style="cyan")
    transitions.add_column("From")
    transitions.add_column("To")
    transitions.add_column("Trigger")
    for edge in graph.edges:
        transitions.add_row(
            edge.id,
            graph.get_stage(edge.source).label,
            graph.get_stage(edge.target).label,
            edge.label,
        )
    console.print(transitions)


async def run(args, service: DonorJourneyService, description: str) -> DonorJourneyGraph:
    if args.save:
        return await service.regenerate_for_organization(args.org, description, RepositoryDonorDataStore())
    return await service.process_journey(description)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Generate a donor journey graph from a text description")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", type=str, help="Journey description")
    source.add_argument("--text-file", type=Path, help="File containing the journey description")
    parser.add_argument("--org", type=str, default=None, help="Organization id (required with --save)")
    parser.add_argument("--save", action="store_true", help="Replace the organization's stored journey")
    parser.add_argument("--config", type=Path, default=None, help="Path to analysis YAML config")
    parser.add_argument("--model", type=str, default=None, help="Force a model")
    parser.add_argument("--json", type=Path, default=None, help="Write the graph to this JSON file")
    parser.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING or ERROR")
    args = parser.parse_args()

    if args.save and not args.org:
        parser.error("--save requires --org")

    pipeline_logger = PipelineLogger(log_level=args.log_level, phase="journey")
    config = load_analysis_config(args.config)
    model = args.model or config.model

    description = args.text if args.text is not None else args.text_file.read_text()
    service = DonorJourneyService(get_client_for_task(LLMTask.JOURNEY_GENERATION, model=model, logger=pipeline_logger))

    try:
        graph = asyncio.run(run(args, service, description))
    except DonorJourneyError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    display_graph(graph)

    if args.json:
        args.json.write_text(json.dumps(graph.to_dict(), indent=2))
        console.print(f"Graph written to {args.json}")
    if args.save:
        console.print(f"[green]Saved journey for organization {args.org}[/green]")


if __name__ == "__main__":
    main()
