from pathlib import Path
from typing import Optional

import typer
from sqlalchemy.exc import SQLAlchemyError

from . import config
from .logging_config import setup_logging
from .migrations import InvalidPlan, MigrationError, MigrationPlan, MigrationRunner, load_plan
from .migrations.catalog import platform_plan

app = typer.Typer(help="Idempotent schema migrations for the property operations database.")

EXIT_FAILED_STEPS = 1
EXIT_INVALID_PLAN = 2


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", "-l", help="Logging level (DEBUG, INFO, WARNING, ERROR). Defaults to LOG_LEVEL or WARNING."),
):
    setup_logging(log_level or config.get_log_level("WARNING"))


def _load(plan_file: Optional[Path]) -> MigrationPlan:
    try:
        return load_plan(plan_file) if plan_file else platform_plan()
    except InvalidPlan as e:
        typer.secho(f"Invalid plan: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_INVALID_PLAN)


def _runner(database_url: Optional[str]) -> MigrationRunner:
    return MigrationRunner(database_url=database_url or config.get_database_url())


@app.command()
def run(
    plan_file: Optional[Path] = typer.Option(None, "--plan", "-p", help="JSON plan file. Defaults to the built-in platform plan."),
    database_url: Optional[str] = typer.Option(None, "--database-url", "-d", help="Target database URL. Defaults to DATABASE_URL."),
):
    """Apply every step that is not already in place."""
    plan = _load(plan_file)
    try:
        report = _runner(database_url).run(plan)
    except InvalidPlan as e:
        typer.secho(f"Plan rejected, nothing was applied: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_INVALID_PLAN)
    except SQLAlchemyError as e:
        typer.secho(f"Could not open the database: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILED_STEPS)

    for result in report:
        typer.echo(result.format_line())

    summary = report.summary()
    line = f"\nApplied: {summary['Applied']}  Skipped: {summary['Skipped']}  Failed: {summary['Failed']}"
    if report.succeeded:
        typer.secho(line, fg=typer.colors.GREEN)
    else:
        typer.secho(line, fg=typer.colors.RED)
        raise typer.Exit(code=EXIT_FAILED_STEPS)


@app.command("plan")
def show_plan(
    plan_file: Optional[Path] = typer.Option(None, "--plan", "-p", help="JSON plan file. Defaults to the built-in platform plan."),
):
    """Print the resolved execution order without touching the database."""
    plan = _load(plan_file)
    try:
        units = MigrationRunner().resolve(plan)
    except InvalidPlan as e:
        typer.secho(f"Plan rejected: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_INVALID_PLAN)

    position = 1
    for unit in units:
        if unit.is_group:
            typer.echo(f"[group {unit.name}]")
        for step in unit.steps:
            indent = "  " if unit.is_group else ""
            typer.echo(f"{indent}{position:>3}. {step.name} ({step.kind} {step.target})")
            position += 1


@app.command()
def status(
    plan_file: Optional[Path] = typer.Option(None, "--plan", "-p", help="JSON plan file. Defaults to the built-in platform plan."),
    database_url: Optional[str] = typer.Option(None, "--database-url", "-d", help="Target database URL. Defaults to DATABASE_URL."),
):
    """Dry run: show which steps would be applied. Exits 1 when the schema has drifted."""
    plan = _load(plan_file)
    try:
        statuses = _runner(database_url).status(plan)
    except InvalidPlan as e:
        typer.secho(f"Plan rejected: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_INVALID_PLAN)
    except SQLAlchemyError as e:
        typer.secho(f"Could not inspect the database: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILED_STEPS)

    colors = {"present": typer.colors.GREEN, "pending": typer.colors.YELLOW, "blocked": typer.colors.RED}
    for entry in statuses:
        typer.secho(f"{entry.state:<8} {entry.step_name}: {entry.detail}", fg=colors[entry.state])

    outstanding = [s for s in statuses if s.state != "present"]
    typer.echo(f"\nTotal: {len(statuses)}  Present: {len(statuses) - len(outstanding)}  Outstanding: {len(outstanding)}")
    if outstanding:
        raise typer.Exit(code=EXIT_FAILED_STEPS)


@app.command()
def snapshot(
    table: Optional[str] = typer.Option(None, "--table", "-t", help="Only show this table."),
    database_url: Optional[str] = typer.Option(None, "--database-url", "-d", help="Target database URL. Defaults to DATABASE_URL."),
):
    """List tables and column types from the live catalog."""
    try:
        current = _runner(database_url).snapshot()
    except (MigrationError, SQLAlchemyError) as e:
        typer.secho(f"Could not read the catalog: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILED_STEPS)

    if table and not current.has_table(table):
        typer.secho(f"Table {table} does not exist", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILED_STEPS)

    for name, columns in current.tables.items():
        if table and name != table:
            continue
        typer.echo(f"{name}:")
        for column_name, column_type in columns.items():
            typer.echo(f"  - {column_name} {column_type}")


if __name__ == "__main__":
    app()
