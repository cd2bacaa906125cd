"""CLI entry point for session-hub."""

import json
import logging
import webbrowser

import click
import uvicorn

from . import server
from .backends import build_stores
from .config import load_settings
from .core import sort_newest_first
from .trash import TrashStore


def _path_options(func):
    """Attach the home/trash/retention options shared by every command."""
    options = [
        click.option("--codex-home", type=click.Path(file_okay=False), help="Codex home (default ~/.codex)."),
        click.option("--claude-home", type=click.Path(file_okay=False), help="Claude Code home (default ~/.claude)."),
        click.option("--gemini-home", type=click.Path(file_okay=False), help="Gemini CLI home (default ~/.gemini)."),
        click.option("--trash-root", type=click.Path(file_okay=False), help="Trash directory."),
        click.option("--retention-days", type=int, default=None, help="Days before trashed sessions are purged."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _settings(codex_home, claude_home, gemini_home, trash_root, retention_days):
    return load_settings(
        codex_home=codex_home,
        claude_home=claude_home,
        gemini_home=gemini_home,
        trash_root=trash_root,
        retention_days=retention_days,
    )


@click.group()
def main():
    """Archive, trash and restore AI coding sessions from Codex, Claude Code, and Gemini CLI."""
    pass


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.option("--no-open", is_flag=True, help="Do not open a browser window.")
@click.option("--log-level", default="info", type=click.Choice(["debug", "info", "warning", "error"]))
@_path_options
def serve(port: int, host: str, no_open: bool, log_level: str, **paths):
    """Start the web interface."""
    logging.basicConfig(level=log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    settings = _settings(**paths)
    hub = server.configure(settings)
    url = f"http://{host}:{port}"

    click.echo(f"Starting session-hub on {url}")
    for name, store in hub.stores.items():
        click.echo(f"{name}-home: {store.home}")
    click.echo(f"trash-root: {settings.trash_root} (retention: {settings.retention_days} days)")
    report = hub.cleanup_report
    click.echo(
        f"expired cleanup at startup: {report.succeeded_count} deleted, {report.failed_count} failed"
    )

    if not no_open:
        webbrowser.open(url)

    uvicorn.run(server.app, host=host, port=port, reload=False, log_level=log_level)


@main.command()
@_path_options
def cleanup(**paths):
    """Permanently delete trashed sessions past their retention window."""
    settings = _settings(**paths)
    trash = TrashStore(settings.trash_root, settings.retention_days, settings.home_roots)
    report = trash.cleanup_expired()
    click.echo(json.dumps(report.to_dict(), indent=2))


@main.command(name="list")
@click.option("--provider", type=click.Choice(["codex", "claude", "gemini"]), default=None)
@click.option("--json", "as_json", is_flag=True, help="Print items as JSON.")
@_path_options
def list_sessions(provider, as_json: bool, **paths):
    """List visible sessions, newest first."""
    settings = _settings(**paths)
    stores = build_stores(settings)
    if provider:
        stores = {provider: stores[provider]}

    items = []
    for store in stores.values():
        items.extend(store.list_sessions().items)
    items = sort_newest_first(items)

    if as_json:
        click.echo(json.dumps([server._item_to_dict(i) for i in items], indent=2, ensure_ascii=False))
        return

    for item in items:
        updated = item.updated_at.strftime("%Y-%m-%d %H:%M") if item.updated_at else "-"
        click.echo(f"{updated}  {item.provider:<6}  {item.state:<8}  {item.title}")
    click.echo(f"{len(items)} sessions")
