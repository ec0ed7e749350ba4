import json
import logging
from typing import Any
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from app.core.db import get_session, get_session_factory
from app.core.errors import ChatNotFoundError, error_response
from app.core.ids import generate_id, STREAM_PREFIX
from app.core.security import SessionUser, require_user
from app.platform.provider_registry import registry
from app.platform.ports.chat_model import ChatModelPort
from app.modules.chats.service import ChatService, DEFAULT_CHAT_TITLE
from app.modules.mcp.registry import MCPToolRegistry, get_tool_registry
from app.modules.assistant.agent import ChatAgent
from app.modules.assistant.messages import convert_to_model_messages
from app.modules.assistant.prompts import build_system_prompt
from app.modules.assistant.schemas import ChatRequest, ChatStatus, ToolStatus, UserContextSummary
from app.modules.assistant.tools import bind_session_context, get_information_tool, merge_tools, remote_tool

logger = logging.getLogger(__name__)

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session)) -> ChatService: return ChatService(s)

def get_chat_model() -> ChatModelPort:
    return registry.chat_model()

def sse(payload: Any) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"

@router.post("/chat")
async def chat(
    payload: ChatRequest,
    user: SessionUser = Depends(require_user),
    service: ChatService = Depends(svc),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    tool_registry: MCPToolRegistry = Depends(get_tool_registry),
    chat_model: ChatModelPort = Depends(get_chat_model),
):
    practitioner_id = user.practitioner_id

    chat_id = payload.id
    if not chat_id or not await service.verify_chat_access(chat_id, practitioner_id):
        # clients may post to an id they have not persisted yet
        try:
            chat_id = await service.create_chat(practitioner_id, title=DEFAULT_CHAT_TITLE, chat_id=chat_id)
        except Exception as e:
            logger.error(f"Failed to create chat for practitioner {practitioner_id}: {e}", exc_info=True)
            return error_response(500, "Failed to create chat. Please try again.")

    history = await service.load_chat(chat_id, practitioner_id)
    ui_messages = [m for m in [*history, payload.message] if m]
    model_messages = convert_to_model_messages(ui_messages)

    await service.append_stream_id(chat_id, practitioner_id, generate_id(STREAM_PREFIX))

    local = {t.name: t for t in [get_information_tool(session_factory)]}
    remote = {
        name: bind_session_context(remote_tool(rt, tool_registry.client), user)
        for name, rt in (await tool_registry.get_tools()).items()
    }
    tools = merge_tools(local, remote)

    run = ChatAgent(chat_model).run(
        model_messages, tools, build_system_prompt(user), metadata={"chatId": chat_id},
    )
    # the turn is saved on a fresh session; do not hold this connection while streaming
    await service.s.close()

    async def event_stream():
        try:
            async for event in run.events():
                yield sse(event)
        except Exception as e:
            logger.error(f"Chat stream failed for chat {chat_id}: {e}", exc_info=True)
            yield sse({"type": "error", "errorText": "The assistant failed to respond. Please try again."})
            return

        # only a completed turn is persisted
        try:
            async with session_factory() as s:
                await ChatService(s).save_chat(chat_id, practitioner_id, [*ui_messages, run.message])
        except Exception as e:
            logger.error(f"Failed to save chat {chat_id}: {e}", exc_info=True)
        yield "data: [DONE]\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"x-chat-id": chat_id, "Cache-Control": "no-cache", "x-vercel-ai-ui-message-stream": "v1"},
    )

@router.get("/chat")
async def chat_status(
    chat_id: str | None = Query(default=None, alias="chatId"),
    action: str | None = Query(default=None),
    user: SessionUser = Depends(require_user),
    service: ChatService = Depends(svc),
    tool_registry: MCPToolRegistry = Depends(get_tool_registry),
):
    if action == "tool-status":
        status = await tool_registry.status()
        return ToolStatus(
            **status,
            is_healthy=tool_registry.monitor.is_healthy(),
            user_context=UserContextSummary(
                **user.model_dump(exclude={"id", "access_token"}),
                has_access_token=bool(user.access_token),
            ),
        )
    if action == "mcp-dashboard":
        return tool_registry.monitor.dashboard()

    if not chat_id:
        return error_response(400, "Chat ID is required")
    if not await service.verify_chat_access(chat_id, user.practitioner_id):
        raise ChatNotFoundError()
    messages = await service.load_chat(chat_id, user.practitioner_id)
    streams = await service.load_streams(chat_id, user.practitioner_id)
    return ChatStatus(chat_id=chat_id, message_count=len(messages), stream_ids=streams)
