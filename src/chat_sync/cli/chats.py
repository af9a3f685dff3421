"""CLI: chat-sync chats list|create|rename|delete"""

import json
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

console = Console()


def _get_client():
    from chat_sync.cli.main import _get_client
    return _get_client()


def _run(coro):
    from chat_sync.cli.main import _run
    return _run(coro)


@click.group()
def chats():
    """Conversation management."""


@chats.command("list")
@click.option("--search", default=None, help="Filter by name")
@click.option("--json-output", "--json", is_flag=True)
def chats_list(search: Optional[str], json_output: bool):
    """List conversations."""

    async def _list():
        client = _get_client()
        try:
            result = await client.conversations.list(search=search)
        finally:
            await client.close()
        if json_output:
            click.echo(json.dumps([c.model_dump(mode="json", exclude={"messages"}) for c in result], indent=2))
            return
        table = Table(title=f"Chats ({len(result)})")
        table.add_column("ID", style="bold")
        table.add_column("Name")
        table.add_column("Created")
        for c in result:
            table.add_row(c.id, c.display_name, c.created_at)
        console.print(table)

    _run(_list())


@chats.command("create")
@click.argument("first_name")
@click.argument("last_name")
def chats_create(first_name: str, last_name: str):
    """Create a new conversation."""

    async def _create():
        client = _get_client()
        try:
            with console.status("Creating chat..."):
                chat = await client.conversations.create(first_name, last_name)
        finally:
            await client.close()
        console.print(f"[green]Chat created: {chat.id}[/green]")

    _run(_create())


@chats.command("rename")
@click.argument("chat_id")
@click.argument("first_name")
@click.argument("last_name")
def chats_rename(chat_id: str, first_name: str, last_name: str):
    """Rename a conversation."""

    async def _rename():
        client = _get_client()
        try:
            chat = await client.conversations.update(chat_id, first_name, last_name)
        finally:
            await client.close()
        console.print(f"[green]Chat {chat.id} renamed to {chat.display_name}.[/green]")

    _run(_rename())


@chats.command("delete")
@click.argument("chat_id")
@click.confirmation_option(prompt="Delete this chat and its messages?")
def chats_delete(chat_id: str):
    """Delete a conversation."""

    async def _delete():
        client = _get_client()
        try:
            with console.status("Deleting..."):
                await client.conversations.delete(chat_id)
        finally:
            await client.close()
        console.print(f"[green]Chat {chat_id} deleted.[/green]")

    _run(_delete())
