"""CLI: chat-sync live start|stop"""

import click
from rich.console import Console

console = Console()


def _get_client():
    from chat_sync.cli.main import _get_client
    return _get_client()


def _run(coro):
    from chat_sync.cli.main import _run
    return _run(coro)


@click.group()
def live():
    """Server-generated automated messages."""


@live.command("start")
def live_start():
    """Start live automated messages."""

    async def _start():
        client = _get_client()
        try:
            await client.conversations.start_live_messages()
        finally:
            await client.close()
        console.print("[green]Live messages started.[/green]")

    _run(_start())


@live.command("stop")
def live_stop():
    """Stop live automated messages."""

    async def _stop():
        client = _get_client()
        try:
            await client.conversations.stop_live_messages()
        finally:
            await client.close()
        console.print("[green]Live messages stopped.[/green]")

    _run(_stop())
