"""
Command-line interface for the simplification pipeline.

Usage:
    easylang init-db                                   # Create the schema
    easylang add-object 12 --title ... --content ...   # Register/update an original
    easylang simplify 12 --language de_LS              # Start a run and tick it to the end
    easylang status 12                                 # Show copies and the latest run
    easylang texts --state to_simplify                 # List fragments
"""

from __future__ import annotations

import logging
import uuid
from functools import lru_cache
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from easylang_core.db.enums import FragmentState, ObjectStatus
from easylang_core.db.models import ContentObject
from easylang_core.errors import EasyLanguageError
from easylang_core.store import ORDER_DATE_ASC, ORDER_DATE_DESC, ORDER_TITLES_FIRST, FragmentFilter, ObjectRef
from simplify_pipeline.services import Services, build_services

app = typer.Typer(name="easylang", help="Easy Language simplification pipeline (fragments, runs, providers).")
console = Console()


@lru_cache(maxsize=1)
def get_services() -> Services:
    from easylang_core.db.session import SessionLocal
    from easylang_core.settings import settings as core_settings
    from simplify_pipeline.settings import settings

    return build_services(SessionLocal, core_settings=core_settings, settings=settings)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _object(object_id: int, object_type: str) -> ContentObject:
    services = get_services()
    obj = services.objects.find(object_id, object_type, services.core_settings.blog_id)
    if obj is None:
        console.print(f"[red]Unknown {object_type} {object_id}[/red]")
        raise typer.Exit(1)
    return obj


def _target_language(language: Optional[str]) -> str:
    return language or "de_LS"


@app.command("init-db")
def init_db() -> None:
    """Create all tables (use alembic for upgrades of existing databases)."""
    from easylang_core.db.base import Base
    from easylang_core.db.session import engine

    Base.metadata.create_all(engine)
    console.print(f"[green]✓ Schema created[/green] ({engine.url.render_as_string(hide_password=True)})")


@app.command("add-object")
def add_object(
    object_id: int,
    *,
    object_type: str = typer.Option("post", "--type", help="post, page, category, ..."),
    title: str = typer.Option("", help="Object title."),
    content: Optional[str] = typer.Option(None, help="Raw content (HTML or block markup)."),
    content_file: Optional[Path] = typer.Option(None, help="Read the content from this file."),
    language: Optional[str] = typer.Option(None, help="Source language, defaults to EASYLANG_DEFAULT_LANGUAGE."),
    page_builder: Optional[str] = typer.Option(None, help="Force a page builder (gutenberg, classic)."),
) -> None:
    services = get_services()
    if content_file is not None:
        content = content_file.read_text(encoding="utf-8")
    obj = services.objects.save_object(
        object_id=object_id,
        object_type=object_type,
        title=title,
        content=content or "",
        source_language=language or services.core_settings.default_language,
        blog_id=services.core_settings.blog_id,
        page_builder=page_builder,
    )
    texts = services.decomposer.decompose(obj)
    console.print(f"[green]✓ Saved {object_type} {object_id}[/green] ({len(texts)} texts, id={obj.content_object_id})")


@app.command("prepare")
def prepare(
    object_id: int,
    *,
    object_type: str = typer.Option("post", "--type"),
    language: Optional[str] = typer.Option(None, help="Target language (default de_LS)."),
    api: Optional[str] = typer.Option(None, help="API to use (default EASYLANG_ACTIVE_API)."),
    prevent_automatic: bool = typer.Option(False, help="Exclude the copy from automatic mode."),
    copy_id: Optional[int] = typer.Option(None, help="Host id of the copy (default: next free negative id)."),
) -> None:
    """Create the simplified copy without calling any API."""
    services = get_services()
    copy = services.orchestrator.prepare_copy(
        _object(object_id, object_type),
        _target_language(language),
        api_name=api,
        prevent_automatic=prevent_automatic,
        copy_object_id=copy_id,
    )
    links = services.store.get_links(ObjectRef(copy.object_id, copy.object_type, copy.blog_id))
    console.print(f"[green]✓ Copy {copy.object_type} {copy.object_id}[/green] linked to {len(links)} texts")


@app.command("simplify")
def simplify(
    object_id: int,
    *,
    object_type: str = typer.Option("post", "--type"),
    language: Optional[str] = typer.Option(None, help="Target language (default de_LS)."),
    api: Optional[str] = typer.Option(None, help="API to use (default EASYLANG_ACTIVE_API)."),
    per_tick: Optional[int] = typer.Option(None, help="Texts per tick (default EASYLANG_TEXT_LIMIT_PER_PROCESS)."),
) -> None:
    """Start a run and tick it until it stops."""
    services = get_services()
    obj = _object(object_id, object_type)
    try:
        state = services.orchestrator.start_run(obj, _target_language(language), api, per_tick)
    except EasyLanguageError as exc:
        console.print(f"[red]{type(exc).__name__}: {exc}[/red]")
        raise typer.Exit(1)

    if not state.started:
        payload = state.results or {}
        console.print(f"[yellow]{payload.get('title', 'Not started')}[/yellow]: {payload.get('message', '')}")
        raise typer.Exit(2)

    with Progress(TextColumn("[cyan]simplifying"), BarColumn(), MofNCompleteColumn(), console=console) as bar:
        task = bar.add_task("run", total=state.max, completed=state.count)
        while state.running:
            state = services.orchestrator.tick(state.run_id)
            bar.update(task, completed=state.count)

    _print_payload(state.results)
    for failure in state.failures:
        console.print(f"  [red]{failure.to_log_message()}[/red]")


@app.command("status")
def status(
    object_id: int,
    *,
    object_type: str = typer.Option("post", "--type"),
    language: Optional[str] = typer.Option(None, help="Only show runs for this target language."),
) -> None:
    services = get_services()
    obj = _object(object_id, object_type)
    table = Table(title=f"{object_type} {object_id}: {obj.title}")
    table.add_column("Language")
    table.add_column("Copy")
    table.add_column("API")
    table.add_column("Locked")
    table.add_column("Changed")
    for copy in services.objects.list_copies(obj.content_object_id):
        table.add_row(
            copy.target_language or "",
            f"{copy.object_type} {copy.object_id}",
            copy.api_name or "",
            "yes" if services.objects.is_locked(copy.content_object_id, copy.target_language) else "no",
            "yes" if copy.target_language in obj.changed_languages else "no",
        )
    console.print(table)

    state = services.orchestrator.latest_run(obj, language)
    if state is None:
        console.print("[dim]No runs yet.[/dim]")
        return
    console.print(
        f"Latest run {state.run_id}: [bold]{state.status.value}[/bold] "
        f"{state.count}/{state.max} ({state.kind.value}, {state.target_language})"
    )
    for failure in state.failures:
        console.print(f"  [red]{failure.to_log_message()}[/red]")


@app.command("reset")
def reset(
    object_id: int,
    *,
    object_type: str = typer.Option("post", "--type"),
    language: Optional[str] = typer.Option(None, help="Target language (default de_LS)."),
) -> None:
    """Clear the simplifications of an object and unlock it."""
    services = get_services()
    try:
        count = services.orchestrator.reset_run(_object(object_id, object_type), _target_language(language))
    except EasyLanguageError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Reset {count} texts[/green]")


@app.command("ignore")
def ignore(fragment_id: str) -> None:
    """Skip one text in all future runs."""
    services = get_services()
    try:
        services.orchestrator.ignore_failed(uuid.UUID(fragment_id))
    except (ValueError, EasyLanguageError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Ignoring {fragment_id}[/green]")


@app.command("automatic")
def automatic(
    *,
    api: Optional[str] = typer.Option(None, help="Override the API of every copy."),
    limit: Optional[int] = typer.Option(None, help="Max texts to simplify in this pass."),
) -> None:
    """One pass of background simplification (meant for cron)."""
    services = get_services()
    result = services.orchestrator.process_automatic(api, limit)
    console.print(
        f"[green]✓ Processed {result.processed} texts[/green] "
        f"({result.succeeded} simplified, {len(result.failures)} failed, {len(result.copies)} copies)"
    )


@app.command("texts")
def texts(
    *,
    state: Optional[FragmentState] = typer.Option(None, help="in_use, to_simplify, processing or ignore."),
    language: Optional[str] = typer.Option(None, help="Source language."),
    target_language: Optional[str] = typer.Option(None, help="Target language for the simplified column."),
    order: str = typer.Option(ORDER_TITLES_FIRST, help=f"{ORDER_TITLES_FIRST}, {ORDER_DATE_ASC} or {ORDER_DATE_DESC}."),
    limit: int = typer.Option(50, help="Max rows."),
) -> None:
    services = get_services()
    fragments = services.store.query_fragments(
        FragmentFilter(
            state=state,
            source_language=language,
            target_language=target_language,
            order=order,
            limit=limit,
        )
    )
    simplified = (
        services.store.simplifications_for([f.fragment_id for f in fragments], target_language)
        if target_language
        else {}
    )
    table = Table(title=f"{len(fragments)} texts")
    table.add_column("ID", overflow="fold")
    table.add_column("Field")
    table.add_column("State")
    table.add_column("Text")
    table.add_column("Simplified")
    for fragment in fragments:
        row = simplified.get(fragment.fragment_id)
        table.add_row(
            str(fragment.fragment_id),
            fragment.field,
            fragment.state.value,
            fragment.content[:60],
            row.simplified_content[:60] if row is not None else "",
        )
    console.print(table)


@app.command("usage")
def usage(api: Optional[str] = typer.Argument(None, help="Only this API.")) -> None:
    services = get_services()
    names = [api] if api else services.apis.names()
    table = Table(title="Character usage")
    table.add_column("API")
    table.add_column("Spent", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Used", justify="right")
    for name in names:
        current = services.quota.get_usage(name)
        table.add_row(
            name,
            str(current.spent),
            str(current.limit) if current.limit is not None else "unlimited",
            f"{current.percent:.0%}" if current.limit else "",
        )
    console.print(table)


@app.command("reset-usage")
def reset_usage(api: str) -> None:
    services = get_services()
    services.quota.reset_usage(api)
    console.print(f"[green]✓ Usage of {api} reset[/green]")


@app.command("delete-copies")
def delete_copies(
    object_id: int,
    *,
    object_type: str = typer.Option("post", "--type"),
) -> None:
    """Delete all simplified copies of an object."""
    services = get_services()
    obj = _object(object_id, object_type)
    if obj.status == ObjectStatus.trash:
        console.print("[yellow]Object is in the trash.[/yellow]")
    try:
        state = services.orchestrator.start_deletion(obj)
    except EasyLanguageError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    while state.running:
        state = services.orchestrator.tick(state.run_id)
    _print_payload(state.results)


def _print_payload(payload: dict | None) -> None:
    if not payload:
        return
    style = {"success": "green", "partial": "yellow"}.get(payload.get("kind", ""), "red")
    console.print(f"[{style}]{payload.get('title', '')}[/{style}]: {payload.get('message', '')}")
    for link in payload.get("links", []):
        console.print(f"  {link['label']}: {link['url']}")


if __name__ == "__main__":
    app()
