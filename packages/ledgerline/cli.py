"""Typer console for ``ledgerline``.

The root callback loads ``.env`` from the working directory (never overriding
variables already set), configures logging once and resolves the database URL
and user id shared by every subcommand. Business logic lives in
:mod:`ledgerline.api`; this module only decodes files, renders ``rich``
tables and maps package errors to exit codes.

Exit codes: ``0`` success, ``1`` operation failed, ``2`` missing
configuration (no user id).
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from typer.models import ArgumentInfo

from .errors import FileValidationError, LedgerlineError
from .ingest.rows import UnsupportedFileError, read_file_to_rows
from .logging_setup import configure_logging

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank exports, deduplicate them and categorize transactions by keyword. "
        "Reads DATABASE_URL and LEDGERLINE_USER_ID from the environment or a local .env."
    ),
)


@dataclass(slots=True)
class CliState:
    database_url: str | None
    user_id: str | None

    def require_user(self) -> str:
        if not self.user_id:
            err_console.print(
                "[red]Error:[/red] no user id; pass --user or set LEDGERLINE_USER_ID."
            )
            raise typer.Exit(2)
        return self.user_id


def _state(ctx: typer.Context) -> CliState:
    state = ctx.find_object(CliState)
    if state is None:
        state = CliState(database_url=None, user_id=os.getenv("LEDGERLINE_USER_ID"))
    return state


@contextmanager
def _reported_errors() -> Iterator[None]:
    """Turn package and file errors into a red message and exit code 1."""

    try:
        yield
    except FileValidationError as e:
        err_console.print(f"[red]Error:[/red] {e.parser_id} rejected the file:")
        for msg in e.errors:
            err_console.print(f"  - {msg}")
        for msg in e.warnings:
            err_console.print(f"  [yellow]warning:[/yellow] {msg}")
        raise typer.Exit(1) from e
    except (LedgerlineError, UnsupportedFileError, FileNotFoundError) as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


# Module-level argument object (ruff B008: no calls in parameter defaults).
FILE_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help="Bank export (.csv, .xlsx or .xlsm).",
    dir_okay=False,
    file_okay=True,
)


# ---- Parsers ---------------------------------------------------------------


@app.command("parsers")
def parsers_cmd() -> None:
    """List supported bank formats."""

    from .api import list_parsers

    table = Table("ID", "Bank", "Country", "Extensions", "Format")
    for meta in list_parsers():
        table.add_row(
            meta.id,
            meta.name,
            meta.country,
            ", ".join(meta.supported_extensions),
            meta.format_description,
        )
    console.print(table)


@app.command("detect")
def detect_cmd(path: Annotated[Path, FILE_ARGUMENT]) -> None:
    """Show which bank format a file looks like."""

    from .api import detect_parser

    with _reported_errors():
        file, rows = read_file_to_rows(path)
        match = detect_parser(file, rows)
    if match is None:
        err_console.print(f"{file.name}: no supported bank format recognized")
        raise typer.Exit(1)

    console.print(f"[bold]{match.parser_id}[/bold] ({match.confidence}): {match.reason}")
    if match.ambiguous:
        console.print(
            "[yellow]Ambiguous:[/yellow] also matches "
            + ", ".join(match.alternatives)
            + "; pass --parser to import."
        )
    elif match.alternatives:
        console.print("Other candidates: " + ", ".join(match.alternatives))


@app.command("import")
def import_cmd(
    ctx: typer.Context,
    path: Annotated[Path, FILE_ARGUMENT],
    *,
    parser_id: str | None = typer.Option(
        None, "--parser", help="Parser id (e.g. AMEX, CIBC); detected when omitted."
    ),
    allow_duplicates: bool = typer.Option(
        False, help="Insert rows even when an identical transaction already exists."
    ),
    categorize: bool = typer.Option(True, help="Run keyword categorization after import."),
) -> None:
    """Import one bank export for the current user."""

    from .api import import_file

    state = _state(ctx)
    user_id = state.require_user()
    with _reported_errors():
        file, rows = read_file_to_rows(path)
        report = import_file(
            user_id,
            file,
            rows,
            parser_id=parser_id,
            skip_duplicates=not allow_duplicates,
            auto_categorize=categorize,
            database_url=state.database_url,
        )

    r = report.result
    console.print(
        f"Imported [bold]{file.name}[/bold] as {report.parser_id} (import #{report.import_id}): "
        f"{r.inserted} inserted, {r.skipped} duplicates skipped, {r.total} parsed"
    )
    for msg in report.warnings:
        console.print(f"[yellow]warning:[/yellow] {msg}")
    for msg in report.parse_errors:
        console.print(f"[red]skipped[/red] {msg}")
    if report.categorization is not None:
        c = report.categorization
        console.print(
            f"Categorized {c.updated} of {c.processed} uncategorized; {c.conflicts} conflicts"
        )


# ---- Categorization --------------------------------------------------------


@app.command("recategorize")
def recategorize_cmd(
    ctx: typer.Context,
    *,
    all_transactions: bool = typer.Option(
        False, "--all", help="Revisit every transaction outside 'Excluded'."
    ),
) -> None:
    """Apply keyword rules to stored transactions."""

    from .api import recategorize

    state = _state(ctx)
    user_id = state.require_user()
    with _reported_errors():
        result = recategorize(
            user_id,
            "all" if all_transactions else "uncategorized",
            database_url=state.database_url,
        )
    console.print(
        f"Processed {result.processed}: {result.updated} updated, {result.conflicts} conflicts"
    )


@app.command("conflicts")
def conflicts_cmd(
    ctx: typer.Context,
    *,
    resolve: bool = typer.Option(
        True, "--resolve/--list", help="Resolve interactively or only list them."
    ),
) -> None:
    """List or interactively resolve multi-category keyword conflicts."""

    from .api import list_conflicts, resolve_conflict
    from .term_ui import select_conflict_category

    state = _state(ctx)
    user_id = state.require_user()
    with _reported_errors():
        conflicts = list_conflicts(user_id, database_url=state.database_url)
    if not conflicts:
        console.print("No conflicts.")
        return

    if not resolve:
        table = Table("Txn", "Date", "Description", "Amount", "Candidates")
        for c in conflicts:
            table.add_row(
                str(c["transaction_id"]),
                c["date"].isoformat(),
                c["description"],
                f"{c['net_amount']:.2f}",
                ", ".join(cand["name"] for cand in c["candidates"]),
            )
        console.print(table)
        return

    resolved = 0
    for c in conflicts:
        by_name = {cand["name"]: cand["id"] for cand in c["candidates"]}
        console.print(
            f"\n[bold]{c['date'].isoformat()}[/bold] {c['description']} "
            f"({c['net_amount']:.2f})"
        )
        choice = select_conflict_category(list(by_name))
        if choice is None:
            continue
        with _reported_errors():
            resolve_conflict(
                user_id, c["transaction_id"], by_name[choice], database_url=state.database_url
            )
        resolved += 1
    console.print(f"Resolved {resolved} of {len(conflicts)} conflicts.")


# ---- Categories ------------------------------------------------------------


@app.command("categories")
def categories_cmd(ctx: typer.Context) -> None:
    """List categories in display order."""

    from .api import list_categories

    state = _state(ctx)
    user_id = state.require_user()
    with _reported_errors():
        rows = list_categories(user_id, database_url=state.database_url)
    table = Table("ID", "Name", "Keywords", "Order", "System")
    for c in rows:
        table.add_row(
            str(c["id"]),
            c["name"],
            ", ".join(c["keywords"]),
            str(c["order"]),
            "yes" if c["is_system"] else "",
        )
    console.print(table)


@app.command("add-category")
def add_category_cmd(
    ctx: typer.Context,
    name: str | None = typer.Argument(None, help="Category name; prompted when omitted."),
    *,
    keyword: list[str] = typer.Option([], "--keyword", "-k", help="Keyword (repeatable)."),
) -> None:
    """Create a category with optional keywords."""

    from .api import create_category
    from .term_ui import prompt_category_name

    state = _state(ctx)
    user_id = state.require_user()
    if name is None:
        name = prompt_category_name()
        if name is None:
            raise typer.Exit(1)
    with _reported_errors():
        created = create_category(user_id, name, keyword, database_url=state.database_url)
    console.print(f"Created category #{created['id']} {created['name']!r}")


@app.command("add-keyword")
def add_keyword_cmd(ctx: typer.Context, category_id: int, keyword: str) -> None:
    """Add a keyword to a category and re-classify affected transactions."""

    from .api import add_keyword

    state = _state(ctx)
    user_id = state.require_user()
    with _reported_errors():
        r = add_keyword(user_id, category_id, keyword, database_url=state.database_url)
    console.print(
        f"{r.assigned} assigned, {r.uncategorized} uncategorized, {r.conflicts} conflicts"
    )


@app.command("remove-keyword")
def remove_keyword_cmd(ctx: typer.Context, category_id: int, keyword: str) -> None:
    """Remove a keyword from a category and re-classify affected transactions."""

    from .api import remove_keyword

    state = _state(ctx)
    user_id = state.require_user()
    with _reported_errors():
        r = remove_keyword(user_id, category_id, keyword, database_url=state.database_url)
    console.print(
        f"{r.assigned} assigned, {r.uncategorized} uncategorized, {r.conflicts} conflicts"
    )


@app.command("delete-category")
def delete_category_cmd(ctx: typer.Context, category_id: int) -> None:
    """Delete a category; its transactions move to 'Uncategorized'."""

    from .api import delete_category

    state = _state(ctx)
    user_id = state.require_user()
    with _reported_errors():
        result = delete_category(user_id, category_id, database_url=state.database_url)
    console.print(f"Deleted category #{category_id}; {result.reassigned} transactions reassigned")


# ---- Imports ---------------------------------------------------------------


@app.command("imports")
def imports_cmd(ctx: typer.Context) -> None:
    """List import batches, newest first."""

    from .api import list_imports

    state = _state(ctx)
    user_id = state.require_user()
    with _reported_errors():
        rows = list_imports(user_id, database_url=state.database_url)
    table = Table("ID", "File", "Source", "Transactions", "Total", "Imported at")
    for b in rows:
        table.add_row(
            str(b["id"]),
            b["file_name"],
            b["source"],
            str(b["transaction_count"]),
            f"{b['total_amount']:.2f}",
            b["imported_at"].isoformat(sep=" ", timespec="seconds"),
        )
    console.print(table)


@app.command("delete-import")
def delete_import_cmd(ctx: typer.Context, import_id: int) -> None:
    """Delete an import batch together with its transactions."""

    from .api import delete_import

    state = _state(ctx)
    user_id = state.require_user()
    with _reported_errors():
        removed = delete_import(user_id, import_id, database_url=state.database_url)
    console.print(f"Deleted import #{import_id} and {removed} transactions")


@app.callback()
def _root(
    ctx: typer.Context,
    *,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    user: str | None = typer.Option(
        None, "--user", help="User id (falls back to LEDGERLINE_USER_ID)."
    ),
    log_level: str | None = typer.Option(
        None, help="Log level (falls back to LEDGERLINE_LOG_LEVEL, then INFO)."
    ),
) -> None:
    """Load ``.env``, configure logging and resolve shared options."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)
    ctx.obj = CliState(
        database_url=database_url,
        user_id=user or os.getenv("LEDGERLINE_USER_ID"),
    )


if __name__ == "__main__":  # pragma: no cover
    app()
