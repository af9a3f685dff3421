"""
Message models — the record pushed on `message:new` and returned by the history API.
"""

from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class MessageCategory(str, Enum):
    USER = "user"
    AUTOMATED = "auto"
    SYSTEM = "system"


class Author(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None

    model_config = {"frozen": True}


class Message(BaseModel):
    """A chat message. Immutable once parsed; identity is `id` across push and pull."""

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    conversation_id: str = Field(alias="chatId")
    category: MessageCategory = Field(default=MessageCategory.USER, alias="type")
    created_at: str = Field(default="", alias="createdAt")
    text: str = ""
    author_id: Optional[str] = Field(default=None, alias="userId")
    author: Optional[Author] = Field(default=None, alias="user")

    model_config = {"populate_by_name": True, "frozen": True}

    @property
    def is_automated(self) -> bool:
        return self.category is MessageCategory.AUTOMATED

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
