"""
CLI for translate-canvas-ai.

Provides commands for translating canvas files directly, inspecting what
would be translated, validating translated canvases, and running the
request queue.
"""

from __future__ import annotations

import asyncio
import base64
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from translate_canvas_ai.canvas.models import LANGUAGE_NAMES, CanvasDocument
from translate_canvas_ai.config import Settings, create_default_config, load_config
from translate_canvas_ai.database import Database, Status
from translate_canvas_ai.errors import CanvasTranslationError
from translate_canvas_ai.validation.validator import ValidationReport

app = typer.Typer(
    name="translate-canvas",
    help="AI-powered translation of StoryChat canvases.",
    add_completion=False,
)

console = Console()

PIPELINE_STAGES = ("extract", "glossary", "translate", "merge", "validate")


def _display_config(settings: Settings, config_path: Path | None) -> None:
    """Display the configuration being used."""
    config_source = str(config_path) if config_path else "default (config.yaml or built-in)"

    config_table = Table(show_header=False, box=None, padding=(0, 2))
    config_table.add_column("Key", style="cyan")
    config_table.add_column("Value", style="green")

    config_table.add_row("Config file", config_source)
    config_table.add_row("Project", settings.project.name)
    config_table.add_row("", "")
    config_table.add_row("Translation Settings", "", style="bold cyan")
    config_table.add_row("  Model", settings.translation.default_model)
    if settings.translation.fallback_model:
        config_table.add_row("  Fallback", settings.translation.fallback_model, style="yellow")
    config_table.add_row("  Chunk size", str(settings.translation.chunk_size))
    config_table.add_row(
        "  OpenRouter API",
        "configured" if settings.translation.openrouter_api_key else "[red]not set[/red]",
    )

    console.print(
        Panel(config_table, title="[bold blue]translate-canvas-ai[/bold blue]", border_style="blue")
    )


def get_settings(config_path: Path | None = None) -> Settings:
    """Load settings from config file or defaults."""
    if config_path and config_path.exists():
        return load_config(config_path)
    return load_config()


def get_database(settings: Settings) -> Database:
    """Get database instance."""
    return Database(settings.paths.database_path, log_level=settings.logging.level)


def _load_document(path: Path) -> CanvasDocument:
    try:
        return CanvasDocument.from_file(path)
    except FileNotFoundError:
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(1) from None
    except CanvasTranslationError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1) from None


def _require_api_key(settings: Settings) -> None:
    if not settings.translation.openrouter_api_key:
        console.print("[red]OpenRouter API key not configured[/red]")
        console.print("Set OPENROUTER_API_KEY environment variable or add to config")
        raise typer.Exit(1)


def _print_report(report: ValidationReport) -> None:
    style = "green" if report.passed else "yellow"
    title = "✓ Validation passed" if report.passed else "⚠ Validation found issues"

    table = Table(show_header=False, box=None)
    table.add_column("", style="dim")
    table.add_column("")
    for key, value in report.stats.items():
        table.add_row(key, str(value))

    console.print(Panel(table, title=f"[{style}]{title}[/{style}]", border_style=style))

    for issue in report.errors:
        console.print(f"  [red]• {issue.message}[/red]")
        for item in issue.items[:10]:
            console.print(f"    [dim]{json.dumps(item, ensure_ascii=False)}[/dim]")
    for warning in report.warnings:
        console.print(f"  [yellow]• {warning}[/yellow]")


@app.command()
def translate(
    input_file: Path = typer.Argument(..., help="Canvas JSON file"),
    target: str = typer.Option(..., "--to", "-t", help="Target language: ko, ja or en"),
    output: Path | None = typer.Option(None, "--out", "-o", help="Output file"),
    report_file: Path | None = typer.Option(
        None, "--report", "-r", help="Write the validation report as JSON"
    ),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Translate a canvas file."""
    from translate_canvas_ai.llm import create_translation_provider
    from translate_canvas_ai.translation import CanvasTranslationPipeline, PipelineConfig

    settings = get_settings(config)
    _display_config(settings, config)
    _require_api_key(settings)

    document = _load_document(input_file)
    db = get_database(settings)

    def log_fallback(level: str, message: str, context: dict) -> None:
        db.log(level=level, stage="translate", message=message, context=context)

    provider = create_translation_provider(settings.translation, log_callback=log_fallback)
    pipeline = CanvasTranslationPipeline(provider, PipelineConfig.from_settings(settings), db=db)

    async def run_pipeline():
        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(complete_style="green", finished_style="green"),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=False,
        ) as progress:
            stage_task = progress.add_task("[cyan]Starting pipeline...", total=len(PIPELINE_STAGES))

            def on_progress(info) -> None:
                completed = PIPELINE_STAGES.index(info.stage) if info.stage in PIPELINE_STAGES else 0
                description = info.stage_display
                if info.current is not None and info.total:
                    description += f" ({info.current}/{info.total})"
                if info.detail:
                    description += f" [dim]{info.detail}[/dim]"
                progress.update(stage_task, completed=completed, description=f"[cyan]{description}")

            result = await pipeline.translate(document, target, progress_callback=on_progress)
            progress.update(stage_task, completed=len(PIPELINE_STAGES), description="[green]Complete!")
            return result

    try:
        result = asyncio.run(run_pipeline())
    except CanvasTranslationError as e:
        console.print(f"\n[red]Error: {e.message}[/red]")
        raise typer.Exit(1) from None

    out_path = output or settings.paths.output_dir / f"{input_file.stem}-{result.stats.target_lang}.json"
    result.document.write(out_path)

    console.print(
        f"\n[green]Translated {LANGUAGE_NAMES[result.stats.source_lang]} -> "
        f"{LANGUAGE_NAMES[result.stats.target_lang]}: "
        f"{result.stats.applied} nodes applied, {result.stats.skipped} skipped[/green]"
    )
    console.print(f"[green]Output saved to: {out_path}[/green]\n")
    _print_report(result.report)

    if report_file:
        report_file.parent.mkdir(parents=True, exist_ok=True)
        report_file.write_text(
            json.dumps(
                {"stats": result.stats.to_dict(), "validation": result.report.to_dict()},
                ensure_ascii=False,
                indent=2,
            ),
            encoding="utf-8",
        )
        console.print(f"[dim]Report written to {report_file}[/dim]")


@app.command()
def extract(
    input_file: Path = typer.Argument(..., help="Canvas JSON file"),
    as_json: bool = typer.Option(False, "--json", help="Print the full extraction as JSON"),
) -> None:
    """Show what would be sent for translation."""
    from translate_canvas_ai.extraction import CanvasExtractor

    document = _load_document(input_file)
    try:
        extraction = CanvasExtractor().extract(document)
    except CanvasTranslationError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1) from None

    if as_json:
        payload = {
            "batches": {
                name.value: items
                for name, items in extraction.batches.items()
            },
            "glossary": extraction.glossary.to_dict(),
            "context": extraction.context.to_dict(),
        }
        console.print_json(json.dumps(payload, ensure_ascii=False))
        return

    table = Table(title=f"Batches ({document.language})")
    table.add_column("Batch", style="cyan")
    table.add_column("Nodes", justify="right")
    for name, count in extraction.batch_summary().items():
        table.add_row(name, str(count))
    console.print(table)

    glossary = extraction.glossary
    glossary_table = Table(title="Glossary")
    glossary_table.add_column("Section", style="cyan")
    glossary_table.add_column("Terms", justify="right")
    for section in ("characters", "variables", "terms"):
        glossary_table.add_row(section, str(len(glossary.section(section))))
    glossary_table.add_row("language instructions", str(len(glossary.language_instructions)))
    console.print(glossary_table)

    if extraction.context.story_summary:
        console.print(
            Panel(extraction.context.story_summary, title="Story summary", border_style="dim")
        )


@app.command()
def validate(
    input_file: Path = typer.Argument(..., help="Translated canvas JSON file"),
    source: str = typer.Option(..., "--source", "-s", help="Language the canvas was translated from"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Validate a translated canvas."""
    from translate_canvas_ai.canvas.models import validate_language
    from translate_canvas_ai.validation import CanvasValidator

    settings = get_settings(config)
    document = _load_document(input_file)
    try:
        source_lang = validate_language(source)
    except CanvasTranslationError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1) from None

    validator = CanvasValidator(encoding=settings.validation.tokenizer_encoding)
    report = validator.validate(document, source_lang)
    _print_report(report)
    if not report.passed:
        raise typer.Exit(1)


@app.command()
def submit(
    input_file: Path = typer.Argument(..., help="Canvas JSON file"),
    target: str = typer.Option(..., "--to", "-t", help="Target language: ko, ja or en"),
    email: str = typer.Option(..., "--email", "-e", help="Requester e-mail address"),
    account: str | None = typer.Option(
        None, "--account", "-a", help="Account id to import the translation into"
    ),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Queue a canvas for translation."""
    from translate_canvas_ai.processor import build_processor

    settings = get_settings(config)
    db = get_database(settings)

    if not input_file.exists():
        console.print(f"[red]File not found: {input_file}[/red]")
        raise typer.Exit(1)
    payload = base64.b64encode(input_file.read_bytes()).decode("ascii")

    _require_api_key(settings)
    processor = build_processor(settings, db)
    try:
        request_id = processor.submit(payload, target, email, account_id=account)
    except CanvasTranslationError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1) from None

    console.print(f"[green]Queued request {request_id}[/green]")
    console.print("\nProcess the queue with:")
    console.print("  translate-canvas process")


@app.command()
def process(
    limit: int | None = typer.Option(
        None, "--limit", "-n", help="Max requests to process (default: from config)"
    ),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Process pending translation requests."""
    from translate_canvas_ai.processor import build_processor

    settings = get_settings(config)
    _display_config(settings, config)
    _require_api_key(settings)

    db = get_database(settings)
    processor = build_processor(settings, db)
    batch_limit = limit or settings.queue.batch_limit

    pending = db.fetch_pending(batch_limit)
    if not pending:
        console.print("[yellow]No pending requests[/yellow]")
        return

    console.print(f"\n[bold]Processing {len(pending)} request(s)[/bold]\n")

    async def process_all():
        with console.status("Processing queue..."):
            return await processor.process_pending(batch_limit)

    outcomes = asyncio.run(process_all())

    for outcome in outcomes:
        if outcome.status == Status.COMPLETED:
            flag = "" if outcome.report is None or outcome.report.passed else " [yellow](validation issues)[/yellow]"
            console.print(f"  [green]✓[/green] {outcome.request_id} -> {outcome.result_ref}{flag}")
        else:
            console.print(f"  [red]✗[/red] {outcome.request_id}: {outcome.error}")

    completed = sum(1 for o in outcomes if o.status == Status.COMPLETED)
    console.print(f"\n[bold green]Done![/bold green] {completed}/{len(outcomes)} completed")


@app.command()
def status(
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
    filter_status: str | None = typer.Option(None, "--status", "-s", help="Filter by status"),
    limit: int = typer.Option(50, "--limit", "-n", help="Max requests to show"),
) -> None:
    """Show translation requests."""
    settings = get_settings(config)
    db = get_database(settings)

    try:
        wanted = Status(filter_status.lower()) if filter_status else None
    except ValueError:
        console.print(f"[red]Invalid status: {filter_status}[/red]")
        raise typer.Exit(1) from None

    requests = db.get_requests(wanted, limit=limit)
    if not requests:
        console.print("[yellow]No requests in database[/yellow]")
        return

    table = Table(title="Translation Requests")
    table.add_column("ID", style="dim")
    table.add_column("Languages")
    table.add_column("Email", style="cyan")
    table.add_column("Status")
    table.add_column("Result")

    for request in requests:
        status_style = {
            Status.PENDING: "yellow",
            Status.PROCESSING: "blue",
            Status.COMPLETED: "green",
            Status.FAILED: "red",
        }.get(request.status, "white")

        table.add_row(
            request.request_id,
            f"{request.source_lang} -> {request.target_lang}",
            request.email[:40],
            f"[{status_style}]{request.status.value}[/{status_style}]",
            (request.result_ref or request.error or "")[:50],
        )

    console.print(table)


@app.command()
def logs(
    request_id: str | None = typer.Option(None, "--request", "-r", help="Filter by request"),
    level: str | None = typer.Option(None, "--level", "-l", help="Filter by level"),
    stage: str | None = typer.Option(None, "--stage", "-s", help="Filter by stage"),
    limit: int = typer.Option(50, "--limit", "-n", help="Max entries to show"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """View processing logs."""
    settings = get_settings(config)
    db = get_database(settings)

    entries = db.get_logs(request_id=request_id, level=level, stage=stage, limit=limit)
    if not entries:
        console.print("[yellow]No log entries found[/yellow]")
        return

    table = Table(title="Processing Logs")
    table.add_column("Time", style="dim")
    table.add_column("Level")
    table.add_column("Stage", style="cyan")
    table.add_column("Message")
    table.add_column("Request", style="dim")

    for entry in entries:
        lvl = entry["level"]
        level_style = {
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
        }.get(lvl, "white")

        timestamp = str(entry["created_at"])
        time_str = timestamp.split("T")[1][:8] if "T" in timestamp else timestamp[:19]

        table.add_row(
            time_str,
            f"[{level_style}]{lvl}[/{level_style}]",
            entry["stage"] or "",
            (entry["message"] or "")[:60],
            entry["request_id"] or "",
        )

    console.print(table)


@app.command()
def init(
    output_path: Path = typer.Option(
        Path("config.yaml"),
        "--output",
        "-o",
        help="Output path for config file",
    ),
) -> None:
    """Generate a default configuration file."""
    if output_path.exists():
        overwrite = typer.confirm(f"{output_path} already exists. Overwrite?")
        if not overwrite:
            raise typer.Abort()

    create_default_config(output_path)
    console.print(f"[green]Created config file: {output_path}[/green]")
    console.print("\nEdit the file and set your API keys, then run:")
    console.print("  translate-canvas translate canvas.json --to en --config config.yaml")


@app.command()
def stats(
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Show queue statistics."""
    settings = get_settings(config)
    db = get_database(settings)

    stats_data = db.get_statistics()

    console.print(
        Panel(
            f"""
Requests: {stats_data["total_requests"]}
  - Completed: {stats_data["completed_requests"]}
  - Processing: {stats_data["processing_requests"]}
  - Pending: {stats_data["pending_requests"]}
  - Failed: {stats_data["failed_requests"]}

Imported canvases: {stats_data["imported_canvases"]}
Logged errors: {stats_data["errors"]}
        """.strip(),
            title="Queue Statistics",
        )
    )


def main() -> None:
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
