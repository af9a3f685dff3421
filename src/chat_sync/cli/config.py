"""CLI: chat-sync config show|set"""

from typing import Optional

import click
from rich.console import Console

console = Console()


def _load_config():
    from chat_sync.cli.main import _load_config
    return _load_config()


def _save_config(cfg) -> None:
    from chat_sync.cli.main import _save_config
    _save_config(cfg)


@click.group()
def config():
    """Endpoint configuration."""


@config.command("show")
def config_show():
    """Print the active configuration."""
    cfg = _load_config()
    console.print_json(cfg.model_dump_json(exclude={"token"}))
    console.print(f"[dim]token: {'set' if cfg.token else 'not set'}[/dim]")


@config.command("set")
@click.option("--base-url", default=None, help="REST base URL, e.g. http://localhost:3000")
@click.option("--socket-url", default=None, help="Socket.IO URL (defaults to the base URL)")
@click.option("--token", default=None, help="Bearer token sent to both endpoints")
@click.option("--max-attempts", default=None, type=int, help="Reconnect attempts before giving up")
@click.option("--poll-interval", default=None, type=float, help="Fallback poll interval (seconds)")
@click.option("--poll-duration", default=None, type=float, help="Fallback poll window (seconds)")
def config_set(
    base_url: Optional[str],
    socket_url: Optional[str],
    token: Optional[str],
    max_attempts: Optional[int],
    poll_interval: Optional[float],
    poll_duration: Optional[float],
):
    """Update and save configuration values."""
    cfg = _load_config()
    if base_url:
        cfg.base_url = base_url
    if socket_url:
        cfg.socket_url = socket_url
    if token:
        cfg.token = token
    if max_attempts is not None:
        cfg.connection.max_attempts = max_attempts
    if poll_interval is not None:
        cfg.poll.interval = poll_interval
    if poll_duration is not None:
        cfg.poll.max_duration = poll_duration
    _save_config(type(cfg).model_validate(cfg.model_dump()))
    console.print("[green]Configuration saved.[/green]")
