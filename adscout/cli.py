"""Command line interface for inspecting and running adscout sessions."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from adscout.config import load_config
from adscout.orchestrator import run_workflow
from adscout.persistence import get_repository

app = typer.Typer(help="CLI for adscout ad intelligence workflows")

session_app = typer.Typer(help="Commands for inspecting sessions")
app.add_typer(session_app, name="session")


@app.callback()
def main() -> None:
    """adscout CLI entry point."""
    pass


@session_app.command("list")
def session_list(user_id: Optional[str] = typer.Option(None, help="Filter by owner")) -> None:
    """
    List sessions with their state and progress.

    Example:
        adscout session list
        # Output: 3f2a...    running    45%    meta_ads_extraction
    """
    repo = get_repository()
    sessions = asyncio.run(repo.list_sessions(user_id=user_id))
    if not sessions:
        typer.echo("No sessions found")
        return
    for s in sessions:
        typer.echo(f"{s.id}\t{s.state.value}\t{s.progress}%\t{s.current_step or '-'}")


@session_app.command("show")
def session_show(session_id: str) -> None:
    """
    Show a session's state, metadata and execution log.

    Example:
        adscout session show 3f2a...
        # Output: Session 3f2a...: completed (100%)
        #         - [started] Deep Research (firecrawl) 10%
        #         - [completed] Deep Research (firecrawl) 25% 812ms Found 3 competitors
    """
    repo = get_repository()
    session = asyncio.run(repo.get_session(session_id))
    if session is None:
        typer.echo("Session not found")
        raise typer.Exit(code=1)
    typer.echo(f"Session {session.id}: {session.state.value} ({session.progress}%)")
    typer.echo(f"User: {session.user_id}")
    if session.current_step:
        typer.echo(f"Current step: {session.current_step}")
    if session.completed_at:
        typer.echo(f"Completed at: {session.completed_at.isoformat()}")
    if "error" in session.metadata:
        typer.secho(f"Error: {session.metadata['error']}", fg=typer.colors.RED)
    _print_logs(asyncio.run(repo.list_logs(session_id)))


@session_app.command("logs")
def session_logs(session_id: str) -> None:
    """Print only the execution log of a session."""
    repo = get_repository()
    entries = asyncio.run(repo.list_logs(session_id))
    if not entries:
        typer.echo("No log entries found")
        return
    _print_logs(entries)


def _print_logs(entries) -> None:
    for entry in entries:
        parts = [f"- [{entry.status.value}] {entry.step_name}"]
        if entry.tool_name:
            parts.append(f"({entry.tool_name})")
        if entry.progress_percent is not None:
            parts.append(f"{entry.progress_percent}%")
        if entry.duration_ms is not None:
            parts.append(f"{entry.duration_ms}ms")
        if entry.sub_step:
            parts.append(entry.sub_step)
        if entry.error_message:
            parts.append(f"error: {entry.error_message}")
        typer.echo(" ".join(parts))


@app.command("run")
def run(
    input_path: Path,
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML config file"),
) -> None:
    """
    Run the ad intelligence workflow for the JSON input in INPUT_PATH.

    Prints the result envelope as JSON and exits non-zero on failure.

    Example:
        adscout run brand.json --config config.yaml
    """
    if not input_path.exists():
        typer.secho("Input file does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    try:
        payload = json.loads(input_path.read_text())
    except json.JSONDecodeError as exc:
        typer.secho(f"Input is not valid JSON: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    config = load_config(str(config_path) if config_path else None)
    if not config.functions.base_url:
        typer.secho(
            "functions.base_url is not configured (set ADSCOUT_FUNCTIONS_URL)",
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)

    outcome = asyncio.run(run_workflow(payload, config=config))
    typer.echo(json.dumps(outcome.model_dump(mode="json", by_alias=True), indent=2))
    if not outcome.success:
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
