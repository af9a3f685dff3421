"""
Conversation models — REST `/chats` resources. Only `id` matters to the sync core.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from chat_sync.models.message import Message


class Conversation(BaseModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")
    owner_id: Optional[str] = Field(default=None, alias="userId")
    created_at: str = Field(default="", alias="createdAt")
    messages: Optional[list[Message]] = None

    model_config = {"populate_by_name": True}

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
