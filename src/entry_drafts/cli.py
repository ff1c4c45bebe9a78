"""CLI entrypoint for inspecting and maintaining a stored draft registry."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from .config import Settings, build_registry, load_settings
from .logging_config import configure_logging
from .registry import DraftRegistry
from .schemas import DraftSource

console = Console()


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="entry-drafts", message="Entry Drafts CLI %(version)s")
@click.option("--config", "config_path", type=click.Path(exists=True, path_type=Path), default=None)
@click.option("--verbose", is_flag=True, default=False, help="Increase logging verbosity.")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[Path], verbose: bool) -> None:
    """Inspect and maintain the entry editor's draft registry."""

    configure_logging(verbose=verbose, logger_name="entry_drafts.cli")
    ctx.obj = load_settings(config_path)


@main.command("list")
@click.pass_obj
def list_command(settings: Settings) -> None:
    """List stored drafts with their remaining lifetime."""

    registry = _open_registry(settings)
    drafts = registry.drafts
    _close_registry(registry, persist=False)

    if not drafts:
        console.print("No drafts stored.")
        return

    table = Table(title="Draft Registry", show_lines=True)
    table.add_column("Draft ID")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Source")
    table.add_column("Dirty")
    table.add_column("Post ID")
    table.add_column("Expires In")

    for draft in sorted(drafts, key=lambda d: d.updated_at, reverse=True):
        ttl = registry.get_ttl_status(draft.draft_id)
        remaining = _format_remaining(ttl.remaining_ms) if ttl else "-"
        if ttl and ttl.is_warning:
            remaining = f"[yellow]{remaining}[/yellow]"
        marker = "* " if draft.draft_id == registry.active_draft_id else ""
        table.add_row(
            f"{marker}{draft.draft_id}",
            draft.title or "Untitled",
            draft.status.value,
            draft.source.value,
            "yes" if draft.is_dirty else "no",
            draft.post_id or "",
            remaining,
        )

    console.print(table)
    console.print(f"{len(drafts)}/{registry.limits.MAX_DRAFTS} drafts")


@main.command("show")
@click.argument("draft_id")
@click.pass_obj
def show_command(settings: Settings, draft_id: str) -> None:
    """Print one draft as JSON."""

    registry = _open_registry(settings)
    draft = registry.get_draft(draft_id)
    _close_registry(registry, persist=False)
    if draft is None:
        click.echo(f"Draft not found: {draft_id}", err=True)
        sys.exit(1)
    click.echo(draft.model_dump_json(by_alias=True, indent=2))


@main.command("validate")
@click.argument("draft_id", required=False)
@click.pass_obj
def validate_command(settings: Settings, draft_id: Optional[str]) -> None:
    """Validate one draft, or every stored draft when no id is given."""

    registry = _open_registry(settings)
    draft_ids = [draft_id] if draft_id else [draft.draft_id for draft in registry.drafts]

    table = Table(title="Validation", show_lines=True)
    table.add_column("Draft ID")
    table.add_column("Field")
    table.add_column("Code")
    table.add_column("Message")

    failed = False
    for current in draft_ids:
        result = registry.validate_draft(current)
        if result.is_valid:
            table.add_row(current, "", "OK", "")
            continue
        failed = True
        for error in result.errors:
            table.add_row(current, error.field, error.code, error.message)

    _close_registry(registry, persist=True)
    console.print(table)
    if failed:
        sys.exit(1)


@main.command("limits")
@click.pass_obj
def limits_command(settings: Settings) -> None:
    """Show the registry limits in effect."""

    table = Table(title="Registry Limits")
    table.add_column("Limit")
    table.add_column("Value", justify="right")
    for name, value in settings.limits.model_dump().items():
        table.add_row(name, str(value))
    console.print(table)


@main.command("import")
@click.argument("source_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def import_command(settings: Settings, source_file: Path) -> None:
    """Create drafts from a JSON list of entry field objects."""

    try:
        entries = json.loads(source_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"{source_file} is not valid JSON: {exc}") from exc
    if isinstance(entries, dict):
        entries = [entries]
    if not isinstance(entries, list):
        raise click.ClickException(f"{source_file} must contain a JSON object or list of objects")

    registry = _open_registry(settings)
    try:
        created = registry.create_drafts(entries, DraftSource.IMPORT)
    except ValidationError as exc:
        _close_registry(registry, persist=False)
        raise click.ClickException(f"Invalid entry in {source_file}: {exc}") from exc
    saved = _close_registry(registry, persist=True)

    for draft_id in created:
        click.echo(f"Created {draft_id}")
    skipped = len(entries) - len(created)
    if skipped:
        click.echo(
            click.style(f"Skipped {skipped} entr{'y' if skipped == 1 else 'ies'}: registry is full", fg="yellow")
        )
    if not saved:
        click.echo(click.style("Registry could not be persisted", fg="red"), err=True)
        sys.exit(1)


@main.command("prune")
@click.pass_obj
def prune_command(settings: Settings) -> None:
    """Drop expired drafts from storage."""

    registry = _open_registry(settings)
    registry.prune_expired()
    _close_registry(registry, persist=True)
    click.echo(f"Registry holds {registry.draft_count} draft(s) after pruning")


@main.command("clear")
@click.confirmation_option(prompt="Remove every stored draft?")
@click.pass_obj
def clear_command(settings: Settings) -> None:
    """Remove the stored registry. The legacy single-draft key is left alone."""

    registry = build_registry(settings)
    if registry.persistence is not None:
        registry.persistence.clear_registry()
    click.echo("Draft registry cleared")


def _open_registry(settings: Settings) -> DraftRegistry:
    registry = build_registry(settings)
    registry.load()
    return registry


def _close_registry(registry: DraftRegistry, persist: bool) -> bool:
    if persist:
        return registry.flush()
    if registry.persistence is not None:
        registry.persistence.cancel_pending_save()
    return True


def _format_remaining(remaining_ms: int) -> str:
    minutes, seconds = divmod(remaining_ms // 1000, 60)
    return f"{minutes:02d}:{seconds:02d}"


if __name__ == "__main__":  # pragma: no cover
    main()
