from datetime import datetime
from typing import Any, Literal
from pydantic import BaseModel, Field

class UIMessage(BaseModel):
    """A chat message as the UI exchanges it: typed parts, stored as-is."""
    id: str | None = None
    role: Literal["user", "assistant", "system"]
    parts: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime | None = Field(default=None, exclude=True)

class ChatCreate(BaseModel):
    title: str | None = Field(default=None, max_length=255)

class ChatTitleUpdate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)

class ChatOut(BaseModel):
    id: str
    title: str | None
    pinned: bool
    created_at: datetime | None
    updated_at: datetime | None
    message_count: int = 0

    class Config:
        from_attributes = True

class ChatCreated(BaseModel):
    chat_id: str

class PinState(BaseModel):
    chat_id: str
    pinned: bool
