"""CLI entry point for the screenshot runner."""

from __future__ import annotations

import json
import logging
import sys
from functools import reduce
from operator import or_
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from screenshot_runner.executor.log_sink import BrowserLogSink
from screenshot_runner.models.config import (
    CONFIG_NAME,
    ComparisonMetric,
    ConfigError,
    LogLevel,
    PageErrorPolicy,
    ProjectConfigFile,
    RunConfig,
    RunnerMode,
    SaveMode,
    ScenarioConfig,
)
from screenshot_runner.models.run_result import RunResult
from screenshot_runner.orchestrator import ScreenshotRunner
from screenshot_runner.reporter.json_report import generate_json_report

console = Console()

LOG_LEVELS = {
    "info": LogLevel.INFO,
    "warn": LogLevel.WARN,
    "error": LogLevel.ERROR,
}

STATUS_STYLES = {
    "pass": "green",
    "captured": "blue",
    "fail": "red",
    "error": "red",
}


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def load_config(path: str, config: RunConfig) -> RunConfig:
    """Load and validate projects, exiting with status 1 on configuration errors."""
    try:
        config.load(path)
        config.validate_projects()
        config.resolve_watch()
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red]\n{escape(str(e))}")
        sys.exit(1)
    return config


def print_summary(result: RunResult) -> None:
    for project in result.projects:
        table = Table(title=f"{project.name} ({project.width}x{project.height})")
        table.add_column("#", justify="right")
        table.add_column("Event", style="bold")
        table.add_column("Status")
        table.add_column("Details")
        for s in project.scenarios:
            style = STATUS_STYLES.get(s.status, "white")
            table.add_row(str(s.index), escape(s.event), f"[{style}]{s.status.upper()}[/{style}]", escape(s.message))
        console.print(table)

    summary = Table(title="Results Summary")
    summary.add_column("Metric", style="bold")
    summary.add_column("Value")
    summary.add_row("Mode", result.mode)
    summary.add_row("Duration", f"{result.duration_seconds}s")
    summary.add_row("Total Scenarios", str(result.total))
    if result.mode == RunnerMode.CAPTURE.value:
        summary.add_row("Captured", f"[blue]{result.captured}[/blue]")
    else:
        summary.add_row("Passed", f"[green]{result.passed}[/green]")
        summary.add_row("Failed", f"[red]{result.failed}[/red]")
    summary.add_row("Errors", f"[red]{result.errors}[/red]")
    summary.add_row("Saved Files", str(len(result.saved_files)))
    console.print(summary)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Event-driven screenshot testing for WebXR applications"""
    setup_logging(verbose)


@cli.command()
@click.argument("path", default=".", type=click.Path())
@click.option("--watch", "-w", default=None, help="Event (or scene-ready file) to watch in a visible browser")
@click.option("--output", "-o", default=None, type=click.Path(), help="Output folder, references are overwritten if unset")
@click.option("--save", "-s", is_flag=True, help="Save all screenshots")
@click.option("--save-on-failure", is_flag=True, help="Save screenshots of failed scenarios only")
@click.option("--save-difference", is_flag=True, help="Save difference images of failed scenarios")
@click.option("--width", type=int, default=None, help="Override the viewport width")
@click.option("--height", type=int, default=None, help="Override the viewport height")
@click.option("--mode", type=click.Choice([m.value for m in RunnerMode]),
              default=RunnerMode.CAPTURE_AND_COMPARE.value, help="Run mode")
@click.option("--max-contexts", type=int, default=None, help="Maximum number of parallel browser contexts")
@click.option("--port", type=int, default=8080, help="Static server port")
@click.option("--headed", is_flag=True, help="Show the browser window")
@click.option("--log", "log_levels", multiple=True, type=click.Choice(list(LOG_LEVELS)),
              help="Browser log level forwarded to the output (repeatable)")
@click.option("--on-page-error", type=click.Choice([p.value for p in PageErrorPolicy]),
              default=PageErrorPolicy.CONTINUE.value, help="Behavior on uncaught page errors")
@click.option("--metric", type=click.Choice([m.value for m in ComparisonMetric]),
              default=ComparisonMetric.PIXEL_COUNT.value, help="Image comparison metric")
@click.option("--webxr-polyfill", type=click.Path(exists=True, dir_okay=False), default=None,
              help="WebXR polyfill script to inject")
@click.option("--channel", default=None, help="Browser channel, e.g. chrome")
@click.option("--report", default=None, type=click.Path(), help="Write a JSON report")
@click.option("--logs", default=None, type=click.Path(), help="Write the browser logs to a file")
def run(
    path: str,
    watch: str | None,
    output: str | None,
    save: bool,
    save_on_failure: bool,
    save_difference: bool,
    width: int | None,
    height: int | None,
    mode: str,
    max_contexts: int | None,
    port: int,
    headed: bool,
    log_levels: tuple[str, ...],
    on_page_error: str,
    metric: str,
    webxr_polyfill: str | None,
    channel: str | None,
    report: str | None,
    logs: str | None,
) -> None:
    """Capture screenshots and compare them against their references."""
    save_mode = SaveMode.NONE
    if save:
        save_mode |= SaveMode.ALL
    if save_on_failure:
        save_mode |= SaveMode.FAILURES
    if save_difference:
        save_mode |= SaveMode.DIFFERENCES

    config = RunConfig(
        output=Path(output) if output else None,
        save=save_mode,
        mode=RunnerMode(mode),
        metric=ComparisonMetric(metric),
        max_contexts=max_contexts,
        headless=not headed,
        browser_channel=channel,
        webxr_polyfill=Path(webxr_polyfill) if webxr_polyfill else None,
        port=port,
        watch=watch,
        on_page_error=PageErrorPolicy(on_page_error),
        width=width,
        height=height,
    )
    if log_levels:
        config.log = reduce(or_, (LOG_LEVELS[level] for level in log_levels))
    load_config(path, config)

    sink = BrowserLogSink(config.log)
    runner = ScreenshotRunner(config, log_sink=sink)
    try:
        success = runner.run()
    except Exception as e:
        console.print(f"[red]Run failed:[/red] {escape(str(e))}")
        sys.exit(1)
    finally:
        if logs:
            sink.save(Path(logs))

    print_summary(runner.result)
    if report:
        generate_json_report(runner.result, Path(report))
        console.print(f"  JSON report: [blue]{report}[/blue]")

    if success:
        console.print("\n[bold green]All scenarios passed[/bold green]")
    else:
        console.print("\n[bold red]Some scenarios failed[/bold red]")
    sys.exit(0 if success else 1)


@cli.command()
@click.argument("path", default=".", type=click.Path())
def validate(path: str) -> None:
    """Load and validate configuration without running a browser."""
    config = load_config(path, RunConfig())

    table = Table(title="Projects")
    table.add_column("Project", style="bold")
    table.add_column("Scenarios", justify="right")
    table.add_column("Viewport")
    table.add_column("Timeout")
    table.add_column("Root")
    for project in config.projects:
        table.add_row(
            project.name,
            str(len(project.scenarios)),
            f"{project.width}x{project.height}",
            f"{project.timeout}ms",
            str(project.root),
        )
    console.print(table)
    console.print(f"[green]Configuration valid:[/green] {len(config.projects)} project(s)")


@cli.command()
@click.argument("directory", default=".", type=click.Path(file_okay=False))
def init(directory: str) -> None:
    """Create a starter configuration file."""
    config_path = Path(directory) / CONFIG_NAME
    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    starter = ProjectConfigFile(
        scenarios=[ScenarioConfig(event="my-event", reference="references/my-event.png")],
    )
    config_path.parent.mkdir(parents=True, exist_ok=True)
    (config_path.parent / "references").mkdir(exist_ok=True)
    with open(config_path, "w") as f:
        json.dump(starter.model_dump(by_alias=True, exclude_none=True), f, indent=2)

    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nDispatch the event from your application:")
    console.print("  [blue]await window.testScreenshot('my-event');[/blue]")
    console.print("\nThen capture the references and run:")
    console.print(f"  [blue]screenshot-runner run {directory} --mode capture[/blue]")
    console.print(f"  [blue]screenshot-runner run {directory}[/blue]")


if __name__ == "__main__":
    cli()
