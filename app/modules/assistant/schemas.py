from pydantic import BaseModel, field_validator
from app.modules.chats.schemas import UIMessage

class ChatRequest(BaseModel):
    message: UIMessage
    id: str | None = None  # chat id; may not exist yet

    @field_validator("message")
    @classmethod
    def _server_assigns_created_at(cls, message: UIMessage) -> UIMessage:
        return message.model_copy(update={"created_at": None})

class ChatStatus(BaseModel):
    chat_id: str
    exists: bool = True
    message_count: int
    stream_ids: list[str]

class UserContextSummary(BaseModel):
    practitioner_id: str
    practitioner_name: str | None = None
    patient_id: str | None = None
    patient_name: str | None = None
    fhir_base_url: str
    has_access_token: bool

class ToolStatus(BaseModel):
    connected: bool
    tool_count: int
    tool_names: list[str]
    health: str
    is_healthy: bool
    last_fetch: str | None = None
    user_context: UserContextSummary
