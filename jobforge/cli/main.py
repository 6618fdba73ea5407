"""JobForge CLI - Main application entry point.

Commands:
    serve         Run the HTTP API with its worker pool
    process FILE  Run one document through the pipeline locally
    config show   Display the effective configuration
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import replace
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import typer

from jobforge.cli.console import ErrorRenderer, get_console, set_verbose_mode, tip
from jobforge.core.config import Config, load_config
from jobforge.core.exceptions import JobForgeError
from jobforge.core.logging import configure_logging, get_logger

logger = get_logger(__name__)

MASKED = "********"


def safe_cli_command(
    operation_name: str,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Wrap a command so errors render as panels and exit with code 1."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except typer.Exit:
                raise
            except JobForgeError as e:
                ErrorRenderer.render(e, context=f"While running {operation_name}")
                raise typer.Exit(code=1)
            except Exception as e:
                logger.exception(f"[{operation_name}] {type(e).__name__}")
                ErrorRenderer.render(e, context=f"While running {operation_name}")
                raise typer.Exit(code=1)

        return wrapper

    return decorator


app = typer.Typer(
    name="jobforge",
    help="Document-processing job orchestrator",
    add_completion=False,
)
config_app = typer.Typer(name="config", help="Configuration management")
app.add_typer(config_app, name="config")


class _State:
    """Options set by the main callback."""

    config_path: Optional[Path] = None


def _load(config_path: Optional[Path]) -> Config:
    config = load_config(config_path or _State.config_path)
    configure_logging(
        level=config.logging.level,
        log_file=Path(config.logging.file) if config.logging.file else None,
    )
    return config


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-V", help="Show version and exit"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to config.yaml"
    ),
) -> None:
    """JobForge - Document-processing job orchestrator."""
    set_verbose_mode(verbose)
    _State.config_path = config

    if version:
        from jobforge import __version__

        typer.echo(f"JobForge {__version__}")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


# =============================================================================
# serve
# =============================================================================


@app.command("serve")
@safe_cli_command("serve")
def serve_command(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", help="Concurrent pipeline workers"
    ),
) -> None:
    """Run the HTTP API and its worker pool."""
    from jobforge.api.main import run_server

    config = _load(None)
    if host is not None or port is not None:
        config = replace(
            config,
            api=replace(
                config.api,
                host=host if host is not None else config.api.host,
                port=port if port is not None else config.api.port,
            ),
        )
    if workers is not None:
        config = replace(config, worker=replace(config.worker, workers=workers))

    get_console().print(
        f"[bold cyan]JobForge[/bold cyan] listening on "
        f"http://{config.api.host}:{config.api.port} "
        f"({config.worker.workers} workers, {config.queue.backend} queue)"
    )
    if not config.notifier.callback_url:
        tip("Set JOBFORGE_CALLBACK_URL to notify the owner system")
    run_server(config)


# =============================================================================
# process
# =============================================================================


def _build_job_config(
    ocr: bool, keywords: bool, summary: bool, language: bool, index: bool, priority: int
) -> Dict[str, Any]:
    return {
        "extractText": True,
        "performOCR": ocr,
        "extractKeywords": keywords,
        "generateSummary": summary,
        "detectLanguage": language,
        "indexForSearch": index,
        "priority": priority,
    }


def _print_job(record: Dict[str, Any]) -> None:
    from rich.table import Table

    console = get_console()
    status = record["status"]
    color = {"completed": "green", "failed": "red", "cancelled": "yellow"}.get(
        status, "cyan"
    )
    table = Table(title=f"Job {record['jobId']}", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Document", record["documentId"])
    table.add_row("Status", f"[{color}]{status}[/{color}]")
    table.add_row("Progress", f"{record['progress']}%")
    table.add_row("Attempts", str(record["attempts"]))

    result = record.get("result") or {}
    if "language" in result:
        table.add_row("Language", str(result["language"]))
    if "keywords" in result:
        table.add_row("Keywords", ", ".join(result["keywords"]))
    if "summary" in result:
        table.add_row("Summary", str(result["summary"]))
    if record.get("error"):
        table.add_row("Error", record["error"]["message"])
    console.print(table)


@app.command("process")
@safe_cli_command("process")
def process_command(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Document to process"),
    ocr: bool = typer.Option(False, "--ocr/--no-ocr", help="Run OCR on images"),
    keywords: bool = typer.Option(True, "--keywords/--no-keywords"),
    summary: bool = typer.Option(True, "--summary/--no-summary"),
    language: bool = typer.Option(True, "--language/--no-language"),
    index: bool = typer.Option(True, "--index/--no-index"),
    priority: int = typer.Option(5, "--priority", min=1, max=10),
    as_json: bool = typer.Option(False, "--json", help="Print the job record as JSON"),
) -> None:
    """Run one document through the pipeline in this process and print the job."""
    from jobforge.core.jobs.factory import create_job_service
    from jobforge.core.pipeline.sources import InMemoryDocumentSource

    config = _load(None)
    config = replace(
        config,
        queue=replace(config.queue, backend="memory"),
        worker=replace(config.worker, workers=1, poll_interval_seconds=0.05),
    )

    # Job ids only allow letters, digits and _ . : -
    document_id = re.sub(r"[^A-Za-z0-9_.:-]", "_", file.name)
    source = InMemoryDocumentSource()
    source.add(document_id, file.read_bytes(), filename=file.name)

    service = create_job_service(config, document_source=source)
    try:
        submitted = service.submit(
            document_id,
            config=_build_job_config(ocr, keywords, summary, language, index, priority),
        )
        with get_console().status(f"Processing {file.name}..."):
            asyncio.run(service.drain())
    finally:
        service.close()

    record = service.get_status(submitted["jobId"])
    if as_json:
        get_console().print_json(json.dumps(record))
    else:
        _print_job(record)
    if record["status"] != "completed":
        raise typer.Exit(code=1)


# =============================================================================
# config show
# =============================================================================


def _masked_config(config: Config) -> Dict[str, Any]:
    data = config.to_dict()
    if data["notifier"].get("service_token"):
        data["notifier"]["service_token"] = MASKED
    return data


@config_app.command("show")
@safe_cli_command("config show")
def config_show_command(
    key: Optional[str] = typer.Option(
        None, "--key", "-k", help="Show specific key (dot notation)"
    ),
    format: str = typer.Option("yaml", "--format", "-f", help="Output format (yaml/json)"),
) -> None:
    """Show the effective configuration after file and environment overrides."""
    import yaml
    from rich.syntax import Syntax

    console = get_console()
    data: Any = _masked_config(_load(None))

    if key:
        for part in key.split("."):
            if not isinstance(data, dict) or part not in data:
                console.print(f"[yellow]Key not found: {key}[/yellow]")
                raise typer.Exit(code=1)
            data = data[part]
        if not isinstance(data, dict):
            console.print(f"[cyan]{key}:[/cyan] {data}")
            return

    if format == "json":
        console.print_json(json.dumps(data, default=list))
    else:
        text = yaml.safe_dump(json.loads(json.dumps(data, default=list)), sort_keys=False)
        console.print(Syntax(text, "yaml", theme="monokai"))


def cli_main() -> None:
    """Console-script entry point."""
    app()


if __name__ == "__main__":
    cli_main()
