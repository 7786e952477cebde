"""Command-line interface for the Graph-of-Thoughts research pipeline."""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from got_pipeline.models.context import STAGE_NAMES, Credentials
from got_pipeline.models.graph import GraphDocument, graph_document_schema

# Configure structlog for CLI
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

app = typer.Typer(
    name="got-pipeline",
    help="Graph-of-Thoughts research pipeline - staged hypothesis and evidence analysis",
    add_completion=False,
)
console = Console()


def parse_stage_range(value: str) -> list[int]:
    """Parse `"1-9"`, `"3"` or `"1,2,5-6"` into stage numbers.

    Raises:
        typer.BadParameter: On malformed input or stages outside 1..9.
    """
    stages: list[int] = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            if "-" in part:
                start, end = (int(p) for p in part.split("-", 1))
                stages.extend(range(start, end + 1))
            else:
                stages.append(int(part))
        except ValueError:
            raise typer.BadParameter(f"Invalid stage range: {value!r}")
    if not stages or any(s not in STAGE_NAMES for s in stages):
        raise typer.BadParameter(f"Stages must be between 1 and 9: {value!r}")
    return stages


@app.command()
def run(
    query: str = typer.Argument(..., help="Research question"),
    stages: str = typer.Option("1-9", "--stages", "-s", help="Stages to run, e.g. 1-4 or 1,2,5-9"),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write graph, stage results and report as JSON to this file",
    ),
    gemini_key: Optional[str] = typer.Option(None, "--gemini-key", envvar="GEMINI_API_KEY"),
    perplexity_key: Optional[str] = typer.Option(None, "--perplexity-key", envvar="PERPLEXITY_API_KEY"),
    openai_key: Optional[str] = typer.Option(None, "--openai-key", envvar="OPENAI_API_KEY"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Run pipeline stages for a research question."""
    from got_pipeline.pipeline.engine import create_engine

    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
    stage_numbers = parse_stage_range(stages)

    console.print(
        Panel.fit(
            "[bold blue]Graph-of-Thoughts Research Pipeline[/bold blue]\n"
            f"Stages: {', '.join(str(s) for s in stage_numbers)}",
            border_style="blue",
        )
    )
    console.print(f"\n[dim]Query:[/dim] {query}\n")

    engine = create_engine(
        Credentials(gemini=gemini_key, perplexity=perplexity_key, openai=openai_key)
    )
    try:
        for number in stage_numbers:
            console.print(f"[yellow]Stage {number}: {STAGE_NAMES[number]}...[/yellow]")
            result = engine.execute_stage(number, query)
            console.print(
                f"[green]  done[/green] [dim]{len(result.nodes)} nodes, "
                f"{len(result.edges)} edges, {result.metadata.api_calls} model calls[/dim]"
            )
    except Exception as e:
        console.print(f"\n[red]Error:[/red] {e}")
        if verbose:
            console.print_exception()
        sys.exit(1)
    finally:
        engine.scheduler.shutdown()

    _display_graph_summary(engine.get_graph_data())

    report = engine.get_final_report()
    if report:
        console.print(Panel(report, title="Final Report", border_style="green"))

    if output is not None:
        payload = {
            "research_context": engine.get_research_context().model_dump(mode="json"),
            "graph": engine.get_graph_data().to_document(),
            "stage_results": [r.model_dump(mode="json") for r in engine.get_stage_results()],
            "stage_contexts": [c.model_dump(mode="json") for c in engine.get_stage_contexts()],
            "final_report": report,
        }
        with open(output, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        console.print(f"\n[green]Results saved to:[/green] {output}")


def _load_graph_document(path: Path) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    # Accept a full `run --output` payload as well as a bare graph document
    if isinstance(data, dict) and isinstance(data.get("graph"), dict):
        return data["graph"]
    return data


@app.command()
def inspect(
    graph_path: Path = typer.Argument(
        ...,
        help="Path to a graph document or run output",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Summarize a saved graph document."""
    try:
        graph = GraphDocument.from_document(_load_graph_document(graph_path))
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    _display_graph_summary(graph)


@app.command()
def validate(
    graph_path: Path = typer.Argument(
        ...,
        help="Path to the graph document to validate",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Validate a graph document against the JSON schema."""
    import jsonschema

    try:
        document = _load_graph_document(graph_path)
        jsonschema.validate(document, graph_document_schema())

        console.print("[green]Validation successful![/green] Graph conforms to schema.")

    except jsonschema.ValidationError as e:
        console.print(f"[red]Validation failed:[/red] {e.message}")
        console.print(f"[dim]Path:[/dim] {' -> '.join(str(p) for p in e.absolute_path)}")
        sys.exit(1)

    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


@app.command()
def info() -> None:
    """Display system information and configuration."""
    from got_pipeline import __version__
    from got_pipeline.config.settings import get_settings
    from got_pipeline.llm.client import context_window, get_llm_settings

    settings = get_settings()
    llm_settings = get_llm_settings()

    console.print(
        Panel.fit(
            "[bold blue]Graph-of-Thoughts Research Pipeline[/bold blue]",
            border_style="blue",
        )
    )

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("LLM Model", llm_settings.model_name)
    table.add_row("Ollama URL", llm_settings.ollama_base_url)
    table.add_row(
        "Context Window",
        f"{context_window(llm_settings, settings.chunk_threshold_tokens)} tokens",
    )
    table.add_row("Workers", str(settings.scheduler_max_workers))
    table.add_row("Task Timeout", f"{settings.task_timeout_seconds}s")
    table.add_row("Chunk Threshold", f"{settings.chunk_threshold_tokens} tokens")
    table.add_row("Prune Floor", str(settings.prune_confidence_floor))
    table.add_row("Merge Threshold", str(settings.merge_similarity_threshold))
    table.add_row("High Impact", str(settings.high_impact_threshold))
    table.add_row("Strict Order", str(settings.strict_stage_order))

    console.print(table)


def _display_graph_summary(graph: GraphDocument) -> None:
    """Display node counts per type and graph metrics.

    Args:
        graph: The graph to summarize.
    """
    console.print("\n[bold]Graph Summary[/bold]")
    console.print("-" * 40)

    counts: dict[str, int] = {}
    for node in graph.nodes.values():
        counts[node.type.value] = counts.get(node.type.value, 0) + 1

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Count", justify="right")

    for node_type, count in sorted(counts.items()):
        table.add_row(f"{node_type} nodes", str(count))
    table.add_row("Edges", str(len(graph.edges)))
    table.add_row("Hyperedges", str(len(graph.hyperedges)))
    table.add_row("Last stage", str(graph.metadata.stage))

    console.print(table)

    metrics = graph.metadata.graph_metrics
    if metrics:
        console.print(
            f"\n[dim]Complexity {metrics.get('complexity', 0):.2f}, "
            f"density {metrics.get('density', 0):.3f}, "
            f"average confidence {metrics.get('average_confidence', 0):.2f}[/dim]"
        )


if __name__ == "__main__":
    app()
