"""CLI: chat-sync watch <chat-id>"""

import asyncio

import click
from rich.console import Console

from chat_sync.errors import ChatSyncError
from chat_sync.models.message import Message, MessageCategory
from chat_sync.models.notification import Notification
from chat_sync.reconciler import ConversationView
from chat_sync.transport.state import ConnectionStatus

console = Console()

STYLES = {
    MessageCategory.USER: "cyan",
    MessageCategory.AUTOMATED: "green",
    MessageCategory.SYSTEM: "yellow",
}


def _get_client():
    from chat_sync.cli.main import _get_client
    return _get_client()


def _run(coro):
    from chat_sync.cli.main import _run
    return _run(coro)


def _print_message(message: Message) -> None:
    label = {MessageCategory.AUTOMATED: "auto", MessageCategory.SYSTEM: "system"}.get(message.category, "you")
    console.print(f"[{STYLES[message.category]}]{label}:[/] {message.text}")


def _print_status(_old: ConnectionStatus, new: ConnectionStatus) -> None:
    console.print(f"[dim][{new}][/dim]")


def _print_notification(notification: Notification) -> None:
    console.print(f"[magenta]🔔 {notification.conversation_id or 'server'}: {notification.text}[/magenta]")


@click.command("watch")
@click.argument("chat_id")
def watch_cmd(chat_id: str):
    """Open a chat: print messages as they arrive and send what you type.

    Type /reload to re-fetch history, /reconnect to force a reconnect,
    /status for the connection state and /quit to exit.
    """

    async def _watch():
        client = _get_client()
        client.connection.add_state_listener(_print_status)
        client.add_notification_handler(_print_notification)
        printed: set[str] = set()

        def show(view: ConversationView) -> None:
            for message in view.messages:
                if message.id not in printed:
                    printed.add(message.id)
                    _print_message(message)
            if view.error:
                console.print(f"[red]History unavailable: {view.error} (type /reload to retry)[/red]")

        status = await client.start()
        if not status.connected:
            console.print("[yellow]Not connected; showing history only. Type /reconnect to retry.[/yellow]")
        try:
            await client.on_conversation_opened(chat_id)
        except ChatSyncError as e:
            console.print(f"[red]{e}[/red]")
        show(client.view(chat_id))

        async def follow() -> None:
            async for view in client.watch(chat_id):
                show(view)

        follower = asyncio.create_task(follow())
        console.print("[cyan]Type your message (/quit to exit)[/cyan]\n")
        try:
            while True:
                line = await asyncio.to_thread(click.prompt, "", prompt_suffix="> ", show_default=False)
                text = line.strip()
                if text in ("/quit", "/exit"):
                    break
                if text == "/status":
                    console.print(f"[dim][{client.status()}][/dim]")
                elif text == "/reconnect":
                    console.print(f"[dim][{await client.reconnect()}][/dim]")
                elif text == "/reload":
                    try:
                        await client.load_history(chat_id)
                    except ChatSyncError as e:
                        console.print(f"[red]{e}[/red]")
                elif text:
                    try:
                        await client.send_message(chat_id, text)
                    except ChatSyncError as e:
                        console.print(f"[red]{e}[/red]")
        except (click.Abort, EOFError, KeyboardInterrupt):
            pass
        finally:
            await client.on_conversation_closed(chat_id)
            await asyncio.wait({follower})
            await client.close()

    _run(_watch())
