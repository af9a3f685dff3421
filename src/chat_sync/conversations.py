"""
Conversations REST API — chat CRUD, message history, message send.

The sync core only relies on `fetch_history` and `send_message`; the rest is
plain request/response plumbing for the CLI.
"""

from __future__ import annotations

from typing import Any, Optional

from chat_sync.models.conversation import Conversation
from chat_sync.models.message import Message
from chat_sync.transport.http import HttpClient


class ConversationsAPI:
    def __init__(self, http: HttpClient):
        self._http = http

    async def list(self, search: Optional[str] = None) -> list[Conversation]:
        params = {"search": search} if search else None
        data = await self._http.get("/chats", params=params)
        return [Conversation.model_validate(item) for item in data or []]

    async def get(self, conversation_id: str) -> Conversation:
        return Conversation.model_validate(await self._http.get(f"/chats/{conversation_id}"))

    async def create(self, first_name: str, last_name: str) -> Conversation:
        data = await self._http.post("/chats", {"firstName": first_name, "lastName": last_name})
        return Conversation.model_validate(data)

    async def update(self, conversation_id: str, first_name: str, last_name: str) -> Conversation:
        data = await self._http.put(
            f"/chats/{conversation_id}", {"firstName": first_name, "lastName": last_name},
        )
        return Conversation.model_validate(data)

    async def delete(self, conversation_id: str) -> None:
        await self._http.delete(f"/chats/{conversation_id}")

    async def fetch_history(self, conversation_id: str) -> list[Message]:
        data = await self._http.get(f"/chats/{conversation_id}/messages")
        return [Message.model_validate(item) for item in data or []]

    async def send_message(self, conversation_id: str, text: str) -> Message:
        data = await self._http.post("/messages", {"text": text, "chatId": conversation_id})
        return Message.model_validate(data)

    async def start_live_messages(self) -> Any:
        """Ask the server to start generating automated messages."""
        return await self._http.post("/live-messages/start")

    async def stop_live_messages(self) -> Any:
        return await self._http.post("/live-messages/stop")
