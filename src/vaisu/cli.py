"""Vaisu CLI interface.

Commands:
- analyze: Analyze a text document and write a report
- check: Validate provider access (API key, LiteLLM, model listing)
- init: Initialize Vaisu configuration

Global options:
- --config/-c: Explicit YAML settings file
- --verbose/-v: Debug level, timestamped log lines
- --quiet/-q: Warnings and errors only
- --ci: JSON log lines
- --version: Print the version
"""

import asyncio
import json
from pathlib import Path
from typing import Annotated

import typer

from vaisu import __version__
from vaisu.config import VaisuConfig, create_default_config, load_config
from vaisu.utils.logging import configure_from_cli, get_logger

app = typer.Typer(
    name="vaisu",
    help="LLM-powered document analysis with resilient model calls",
    add_completion=False,
    no_args_is_help=True,
)

# Global state
_config: VaisuConfig | None = None
_logger = get_logger("vaisu.cli")


def version_callback(value: bool) -> None:
    """Eager --version handler."""
    if value:
        typer.echo(f"vaisu {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="YAML settings file (default: ./.vaisu/config.yaml or ./vaisu.yaml)",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Debug logging with timestamps and logger names",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Only log warnings and errors",
        ),
    ] = False,
    ci: Annotated[
        bool,
        typer.Option(
            "--ci",
            help="Enable CI mode with JSON log lines",
        ),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Print the version and exit",
        ),
    ] = False,
) -> None:
    """Vaisu - document analysis over OpenRouter-compatible models.

    Summarizes documents, extracts entities and relationships, scores
    document signals and recommends visualizations.
    """
    global _config

    configure_from_cli(verbose=verbose, quiet=quiet, ci=ci)

    try:
        _config = load_config(config_path=config)
        if _config.config_path:
            _logger.debug("Loaded config from: %s", _config.config_path)
    except FileNotFoundError as e:
        _logger.error(str(e))
        raise typer.Exit(1)
    except (ValueError, OSError) as e:
        _logger.error("Failed to load config: %s", e)
        raise typer.Exit(1)


def _get_config() -> VaisuConfig:
    return _config if _config is not None else VaisuConfig()


# =============================================================================
# check command
# =============================================================================


@app.command()
def check(
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Print the check results as JSON",
        ),
    ] = False,
) -> None:
    """Validate provider access.

    Checks that an API key is configured, LiteLLM is installed, the model
    listing is reachable and lists the configured models.

    Exit codes:
        0: All required checks passed
        1: One or more required checks failed
    """
    from vaisu.utils.preflight import PreflightChecker

    result = PreflightChecker(_get_config()).check_all()

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        raise typer.Exit(0 if result.success else 1)

    typer.echo("\nPreflight Check Results\n")
    for item in result.checks:
        status = "OK  " if item.passed else "FAIL"
        kind = "required" if item.required else "optional"
        typer.echo(f"  {status} {item.name} [{kind}]")
        typer.echo(f"       {item.message}")
    typer.echo()

    if result.errors:
        typer.echo("Preflight check FAILED")
        for error in result.errors:
            typer.echo(f"  - {error}")
        raise typer.Exit(1)

    if result.warnings:
        typer.echo("Preflight check passed with WARNINGS")
        for warning in result.warnings:
            typer.echo(f"  - {warning}")
    else:
        typer.echo("All preflight checks passed")


# =============================================================================
# analyze command
# =============================================================================


@app.command()
def analyze(
    file: Annotated[
        Path,
        typer.Argument(
            help="Text or markdown document to analyze",
            exists=True,
            dir_okay=False,
        ),
    ],
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Write the report to this file instead of stdout",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Write the analysis as JSON instead of a markdown report",
        ),
    ] = False,
) -> None:
    """Analyze a document.

    Runs the analysis pipeline (summaries, entities, signals, relationships,
    section summaries, visualization recommendations) and writes a markdown
    report or JSON.

    Exit codes:
        0: Analysis completed
        1: Configuration error or an essential stage failed
    """
    from vaisu.llm.client import create_client
    from vaisu.models import Document, ProgressEvent
    from vaisu.pipeline import AnalysisPipeline, EssentialStageError
    from vaisu.templates import ReportRenderer

    config = _get_config()

    try:
        document = Document.from_file(file)
    except (OSError, UnicodeDecodeError) as e:
        _logger.error("Failed to read %s: %s", file, e)
        raise typer.Exit(1)

    if not document.content.strip():
        _logger.error("Document is empty: %s", file)
        raise typer.Exit(1)

    try:
        client = create_client(config)
    except ValueError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    def show_progress(event: ProgressEvent) -> None:
        _logger.info("[%3d%%] %s", event.percent_complete, event.message)

    _logger.info(
        "Analyzing %s (%d words, %d sections)",
        file.name,
        document.metadata.word_count,
        len(document.sections),
    )
    pipeline = AnalysisPipeline(client, config.pipeline)

    try:
        result = asyncio.run(pipeline.analyze_document(document, on_progress=show_progress))
    except EssentialStageError as e:
        _logger.error("Analysis failed: %s", e)
        raise typer.Exit(1)

    if json_output:
        content = json.dumps(
            {"document": document.to_dict(), "analysis": result.to_dict()},
            indent=2,
        )
        if output:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(content + "\n", encoding="utf-8")
            _logger.info("Wrote analysis to %s", output)
        else:
            typer.echo(content)
        return

    renderer = ReportRenderer()
    try:
        if output:
            renderer.render_to_file(result, document, output)
        else:
            typer.echo(renderer.render(result, document))
    except ValueError as e:
        _logger.error("Rendering failed: %s", e)
        raise typer.Exit(1)


# =============================================================================
# init command
# =============================================================================


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            help="Replace an existing .vaisu/config.yaml",
        ),
    ] = False,
) -> None:
    """Initialize Vaisu configuration.

    Creates .vaisu/config.yaml with the default settings.
    """
    vaisu_dir = Path(".vaisu")
    config_file = vaisu_dir / "config.yaml"

    if config_file.exists() and not force:
        _logger.error("Config already exists: %s", config_file)
        _logger.info("Run again with --force to replace it")
        raise typer.Exit(1)

    vaisu_dir.mkdir(exist_ok=True)
    config_file.write_text(create_default_config(), encoding="utf-8")

    typer.echo(f"Created {config_file}")
    typer.echo("Set OPENROUTER_API_KEY, then run 'vaisu check' to verify access.")


if __name__ == "__main__":
    app()
