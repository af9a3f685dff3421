"""
Notification raised by the global relay — transient, never acknowledged.
"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

NotificationKind = Literal["automated_reply", "server"]


class Notification(BaseModel):
    kind: NotificationKind
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None
    text: str = ""
    raised_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    payload: Optional[dict[str, Any]] = None
