"""
chat-sync CLI — `chat-sync` command.

Commands:
  chat-sync config show|set      Endpoint configuration
  chat-sync chats <cmd>          Conversation CRUD
  chat-sync watch <chat-id>      Live view of one conversation
  chat-sync live start|stop      Server-side automated messages
"""

import asyncio
import logging

try:
    import click
    from rich.console import Console
except ImportError:
    raise SystemExit("CLI requires extras: pip install chat-sync[cli]")

from chat_sync import __version__
from chat_sync.client import AsyncChatClient
from chat_sync.config import CONFIG_FILE, ClientConfig

console = Console()


def _load_config() -> ClientConfig:
    return ClientConfig.load(CONFIG_FILE)


def _save_config(cfg: ClientConfig) -> None:
    cfg.save(CONFIG_FILE)


def _get_client() -> AsyncChatClient:
    return AsyncChatClient(_load_config())


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option(__version__)
@click.option(
    "--log-level", default="WARNING", show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
)
def main(log_level: str):
    """chat-sync CLI — realtime chat from the terminal."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Register subcommands from separate modules
from chat_sync.cli.config import config
from chat_sync.cli.chats import chats
from chat_sync.cli.watch import watch_cmd
from chat_sync.cli.live import live

main.add_command(config)
main.add_command(chats)
main.add_command(watch_cmd)
main.add_command(live)


if __name__ == "__main__":
    main()
