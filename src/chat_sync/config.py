"""
Client configuration — connection retry policy, fallback poll policy, endpoints.

Durations are in seconds.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

DEFAULT_BASE_URL = "http://localhost:3000"
CONFIG_FILE = Path.home() / ".chat-sync" / "config.json"

logger = logging.getLogger(__name__)


class ConnectionPolicy(BaseModel):
    max_attempts: int = Field(default=10, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)
    connect_timeout: float = Field(default=20.0, gt=0)


class PollPolicy(BaseModel):
    interval: float = Field(default=2.0, gt=0)
    max_duration: float = Field(default=30.0, gt=0)


class ClientConfig(BaseModel):
    base_url: str = DEFAULT_BASE_URL
    socket_url: Optional[str] = None
    socketio_path: str = "/socket.io"
    transports: list[str] = Field(default_factory=lambda: ["websocket", "polling"])
    token: Optional[str] = None
    connection: ConnectionPolicy = Field(default_factory=ConnectionPolicy)
    poll: PollPolicy = Field(default_factory=PollPolicy)
    queue_size: int = Field(default=256, gt=0)

    @property
    def resolved_socket_url(self) -> str:
        return (self.socket_url or self.base_url).rstrip("/")

    @classmethod
    def load(cls, path: Path = CONFIG_FILE) -> "ClientConfig":
        """Read a JSON config file; a missing, unreadable or invalid file gives the defaults."""
        try:
            return cls.model_validate(json.loads(path.read_text()))
        except FileNotFoundError:
            return cls()
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Ignoring invalid config file {path}: {e}")
            return cls()

    def save(self, path: Path = CONFIG_FILE) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2, exclude_none=True))
