from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from notesync.core.config import DEFAULT_CONFIG_PATH, RUN_HISTORY_PATH, load_config, save_config
from notesync.core.history import HistoryRecorder, RunHistory
from notesync.core.logging_setup import setup_logging
from notesync.engine import build_scheduler
from notesync.providers.db import count_records
from notesync.sync.errors import AuthenticationFailure

app = typer.Typer(add_completion=False)
console = Console()
logger = logging.getLogger("cli")


def _setup(cfg) -> None:
    setup_logging(cfg.logging.level, cfg.logging.file)


@app.command("config-show")
def config_show(path: Path = DEFAULT_CONFIG_PATH):
    """Show current config.yaml."""
    cfg = load_config(path)
    print(json.dumps(cfg.model_dump(), ensure_ascii=False, indent=2))


@app.command("config-set-backend")
def config_set_backend(
    backend: str = typer.Argument(..., help="remotestorage or dropbox"),
    url: str = typer.Option("", "--url", help="remoteStorage storage root URL"),
    token: str = typer.Option("", "--token", help="Bearer token for the backend"),
):
    """Select the cloud backend and store its credentials."""
    cfg = load_config()
    try:
        data = cfg.model_dump()
        data["cloud"]["backend"] = backend
        cfg = cfg.model_validate(data)
    except ValueError as e:
        console.print(f"[red]invalid backend: {backend}[/red] ({e})")
        raise typer.Exit(2)

    if cfg.cloud.backend == "remotestorage":
        if url:
            cfg.cloud.remotestorage.storage_url = url
        if token:
            cfg.cloud.remotestorage.token = token
    elif token:
        cfg.cloud.dropbox.access_token = token
    save_config(cfg)
    print(json.dumps({"ok": True, "backend": cfg.cloud.backend, "token_set": bool(token)}, indent=2))


@app.command()
def status():
    """Show configuration and local record counts."""
    cfg = load_config()
    counts = count_records(cfg.database.path, cfg.sync.profile_id)

    table = Table(title="notesync status")
    table.add_column("Key")
    table.add_column("Value")
    table.add_row("config", str(DEFAULT_CONFIG_PATH))
    table.add_row("backend", cfg.cloud.backend)
    table.add_row("profile", cfg.sync.profile_id)
    table.add_row("concurrent_start", cfg.sync.concurrent_start)
    for name, n in counts.items():
        table.add_row(f"local_{name}", str(n))
    table.add_row("db", cfg.database.path)
    table.add_row("log", cfg.logging.file)
    table.add_row("web", f"http://{cfg.web_bind_host}:{cfg.web_port}")
    console.print(table)


@app.command("check-auth")
def check_auth():
    """Ask the configured backend whether the credentials are accepted."""
    cfg = load_config()
    _setup(cfg)
    scheduler = build_scheduler(cfg)
    try:
        asyncio.run(scheduler.ensure_auth())
    except AuthenticationFailure as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]authenticated[/green] backend={cfg.cloud.backend}")


@app.command("sync-once")
def sync_once():
    """Run one full pass and print per-collection results."""
    cfg = load_config()
    _setup(cfg)
    scheduler = build_scheduler(cfg, observers=[HistoryRecorder(RunHistory())])

    async def _run():
        await scheduler.ensure_auth()
        try:
            return await scheduler.run_pass()
        finally:
            scheduler.stop_watch()

    try:
        result = asyncio.run(_run())
    except AuthenticationFailure as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"sync pass: {result.result}")
    table.add_column("Collection")
    table.add_column("Pulled")
    table.add_column("Pushed")
    for item in result.collections:
        table.add_row(item.collection, str(item.pulled), str(item.pushed))
    console.print(table)
    if not result.ok:
        console.print(f"[red]{result.error}[/red]")
        raise typer.Exit(1)


@app.command()
def watch():
    """Run the adaptive sync loop in the foreground until interrupted."""
    cfg = load_config()
    _setup(cfg)
    scheduler = build_scheduler(cfg, observers=[HistoryRecorder(RunHistory())])

    async def _run():
        if not await scheduler.init():
            raise AuthenticationFailure("authentication_failed")
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.disconnect()

    try:
        asyncio.run(_run())
    except AuthenticationFailure as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        logger.info("watch_interrupted")


@app.command()
def history(limit: int = typer.Option(20, "--limit", "-n")):
    """Show the most recent sync passes."""
    items = RunHistory(RUN_HISTORY_PATH).read(limit=limit)
    table = Table(title="sync history")
    table.add_column("Started")
    table.add_column("Result")
    table.add_column("Pulled")
    table.add_column("Pushed")
    table.add_column("Error")
    for item in items:
        table.add_row(
            str(item.get("started_at") or "-"),
            str(item.get("result") or "-"),
            str(item.get("pulled", 0)),
            str(item.get("pushed", 0)),
            str(item.get("error") or ""),
        )
    console.print(table)


@app.command()
def serve():
    """Run the HTTP service with the sync engine."""
    from notesync.web.main import main as web_main

    web_main()


def main():
    app()


if __name__ == "__main__":
    main()
