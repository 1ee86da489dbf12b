"""Command-line interface for the career portal."""

import json
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from career_portal.config import settings
from career_portal.core.models import Candidate, Opportunity
from career_portal.matching.scorer import compute_breakdown

app = typer.Typer(
    name="career-portal",
    help="Career Portal - application and matching engine",
    add_completion=False,
)
console = Console()


@app.command()
def serve(
    host: str = typer.Option(settings.host, help="Host to bind to"),
    port: int = typer.Option(settings.port, help="Port to bind to"),
    reload: bool = typer.Option(settings.reload, help="Enable auto-reload"),
) -> None:
    """Start the API server."""
    import uvicorn

    console.print(f"Starting {settings.app_name} on {host}:{port}")
    uvicorn.run(
        "career_portal.api.main:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def config() -> None:
    """Show current configuration."""
    table = Table(title=f"{settings.app_name} Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Debug Mode", str(settings.debug))
    table.add_row("Log Level", settings.log_level)
    table.add_row("Applications per Institution", str(settings.organization_application_limit))
    table.add_row("Store Timeout (s)", str(settings.store_timeout_seconds))
    table.add_row("Counter Retries", str(settings.counter_max_retries))
    table.add_row("Resubscribe Delay (s)", str(settings.resubscribe_delay_seconds))
    table.add_row("API Host", settings.host)
    table.add_row("API Port", str(settings.port))

    console.print(table)


def _load(path: Path, model):
    try:
        return model.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        console.print(f"[red]Could not load {path}: {e}[/red]")
        raise typer.Exit(code=1)


@app.command()
def score(
    candidate_file: Path = typer.Argument(..., help="Candidate profile JSON"),
    opportunity_file: Path = typer.Argument(..., help="Opportunity JSON"),
) -> None:
    """Score a candidate against an opportunity."""
    candidate = _load(candidate_file, Candidate)
    opportunity = _load(opportunity_file, Opportunity)
    breakdown = compute_breakdown(candidate, opportunity)

    table = Table(title=f"{candidate.name} / {opportunity.title}")
    table.add_column("Category", style="cyan")
    table.add_column("Points", style="green", justify="right")
    table.add_row("Skills", f"{breakdown.skills:.2f}")
    table.add_row("Academics", f"{breakdown.academics:.2f}")
    table.add_row("Certificates", f"{breakdown.certificates:.2f}")
    table.add_row("Experience", f"{breakdown.experience:.2f}")
    table.add_row("Score", str(breakdown.score), style="bold")

    console.print(table)
    console.print(f"Fit: {breakdown.fit_level}")
    if breakdown.missing_skills:
        console.print(f"Missing skills: {', '.join(breakdown.missing_skills)}")
    if breakdown.meets_min_education is False:
        console.print("[yellow]Below the minimum education level[/yellow]")


@app.command()
def version() -> None:
    """Show version information."""
    from career_portal import __version__
    console.print(f"Career Portal v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
