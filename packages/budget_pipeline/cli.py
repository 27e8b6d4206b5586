# ruff: noqa: I001
"""CLI for the ``budget_pipeline`` package.

Typer-based console interface over the pipeline services. Environment
variables (``DATABASE_URL``, ``BUDGET_*``, ``YELP_API_KEY``) are loaded from a
local ``.env`` using ``python-dotenv`` by the root callback before any
command runs. Business logic lives in the service modules; commands only
parse options, open a session and print results.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .config import PipelineSettings
from .logging_setup import configure_logging


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank CSV exports into the budget database, manage merchant "
        "identities and categorization rules, and keep budget spend in sync. "
        "Loads DATABASE_URL and BUDGET_* settings from a local .env."
    ),
)


# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults). Typer inspects these when used as default values below.
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,  # required
    "--csv-path",
    help="Path to a bank CSV export with a header row",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files itself
    readable=True,
)


def _settings(database_url: str | None) -> PipelineSettings:
    try:
        settings = PipelineSettings.from_env()
    except ValueError as e:
        typer.echo(f"Error: invalid configuration: {e}", err=True)
        raise typer.Exit(1) from e
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})
    if not settings.database_url:
        typer.echo("Error: DATABASE_URL is not set in the environment.", err=True)
        raise typer.Exit(1)
    return settings


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(1)


@app.command("import-csv")
def import_csv_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    *,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    source: str = typer.Option("manual-upload", help="Source label stored on the import batch."),
) -> None:
    """Import a CSV file and print the import summary as JSON."""

    import csv

    from .ingest.importer import import_csv_file

    settings = _settings(database_url)
    try:
        summary = import_csv_file(
            csv_path, database_url=settings.database_url, source=source, settings=settings
        )
    except FileNotFoundError:
        raise _fail(f"File not found: {csv_path}") from None
    except PermissionError:
        raise _fail(f"Permission denied: {csv_path}") from None
    except UnicodeDecodeError as e:
        raise _fail(f"File is not valid UTF-8: {e}") from None
    except csv.Error as e:
        raise _fail(f"Failed to parse CSV: {e}") from None

    typer.echo(json.dumps(summary.as_dict(), indent=2))


@app.command("add-rule")
def add_rule_cmd(
    *,
    name: str = typer.Option(..., help="Rule name."),
    match_value: str = typer.Option(..., help="Value (or regular expression) to match."),
    category: str = typer.Option(..., help="Category name; created under EXPENSES if missing."),
    match_field: str = typer.Option("DESCRIPTION", help="DESCRIPTION, MERCHANT or RAW."),
    match_type: str = typer.Option(
        "CONTAINS", help="EXACT, STARTS_WITH, ENDS_WITH, CONTAINS or REGEX."
    ),
    apply: bool = typer.Option(False, help="Assign the rule over existing transactions."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Create a categorization rule and print its id."""

    from db.client import session_scope

    from .categories import create_category
    from .rules import create_rule

    settings = _settings(database_url)
    try:
        with session_scope(database_url=settings.database_url) as session:
            cat = create_category(session, name=category).category
            rule, result = create_rule(
                session,
                name=name,
                match_value=match_value,
                category_id=cat.id,
                match_field=match_field,
                match_type=match_type,
                apply_to_existing=apply,
            )
            rule_id = rule.id
    except ValueError as e:
        raise _fail(str(e)) from None

    typer.echo(rule_id)
    if result is not None:
        typer.echo(f"updated\t{result.updated}")


@app.command("apply-rule")
def apply_rule_cmd(
    rule_id: str = typer.Argument(..., help="Id of the rule to re-apply."),
    *,
    mode: str = typer.Option("assign", help="assign or clear."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Re-apply a rule to stored EXPENSE transactions."""

    from db.client import session_scope
    from db.models.budget import Rule

    from .rules import apply_rule_to_existing_transactions

    if mode not in ("assign", "clear"):
        raise _fail(f"mode must be 'assign' or 'clear', got {mode!r}")
    settings = _settings(database_url)
    with session_scope(database_url=settings.database_url) as session:
        rule = session.get(Rule, rule_id)
        if rule is None:
            raise _fail(f"Rule not found: {rule_id}")
        result = apply_rule_to_existing_transactions(
            session, rule, mode, default_category_name=settings.default_category_name
        )

    typer.echo(f"updated\t{result.updated}")
    for tx_id in result.affected_transaction_ids:
        typer.echo(tx_id)


@app.command("sync-month")
def sync_month_cmd(
    month: str = typer.Argument(..., help="Month as YYYY-MM."),
    *,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Recompute spent amounts of a month's budget allocations."""

    from db.client import session_scope

    from .budget_sync import parse_month_key, sync_budget_spent_for_month

    start = parse_month_key(month)
    if start is None:
        raise _fail(f"Invalid month {month!r}; expected YYYY-MM")
    settings = _settings(database_url)
    with session_scope(database_url=settings.database_url) as session:
        synced = sync_budget_spent_for_month(session, start)
    typer.echo("synced" if synced else f"no budget for {month}")


@app.command("resolve-merchant")
def resolve_merchant_cmd(
    *,
    key: str = typer.Option(..., help="Normalized key reported as pending by an import."),
    name: str = typer.Option(..., help="Canonical merchant name to assign."),
    raw_name: str | None = typer.Option(None, help="Raw statement spelling."),
    yelp_id: str | None = typer.Option(None, help="Optional Yelp business id."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Name a pending merchant and attach its unresolved transactions."""

    from db.client import session_scope

    from .merchant_resolver import resolve_pending_merchant

    settings = _settings(database_url)
    try:
        with session_scope(database_url=settings.database_url) as session:
            resolution = resolve_pending_merchant(
                session,
                normalized_key=key,
                canonical_name=name,
                raw_name=raw_name,
                yelp_id=yelp_id,
            )
    except ValueError as e:
        raise _fail(str(e)) from None

    typer.echo(f"{resolution.merchant_id}\t{resolution.canonical_name}\t{resolution.normalized_key}")


@app.command("canonicalize")
def canonicalize_cmd(
    names: list[str] = typer.Argument(..., help="Raw merchant names."),
) -> None:
    """Print ``raw<TAB>canonical<TAB>key`` for each name (no database access)."""

    from .merchant_names import merchant_name_parts

    for raw in names:
        canonical, key = merchant_name_parts(raw)
        typer.echo(f"{raw}\t{canonical}\t{key}")


@app.callback(invoke_without_command=True)
def _root(
    ctx: typer.Context,
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="DEBUG, INFO, WARNING or ERROR (default: BUDGET_PIPELINE_LOG_LEVEL).",
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    # Load environment from .env in CWD (override=False to keep existing env)
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    # Central logging setup so child loggers inherit configuration
    configure_logging(log_level)

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    # Running as a module: `python -m budget_pipeline.cli`
    app()
