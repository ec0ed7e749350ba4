from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.db import get_session
from app.core.security import SessionUser, require_user
from app.modules.chats.service import ChatService
from app.modules.chats.schemas import ChatCreate, ChatTitleUpdate, ChatOut, ChatCreated, PinState, UIMessage

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session)) -> ChatService: return ChatService(s)

@router.get("/chats", response_model=list[ChatOut])
async def list_chats(user: SessionUser = Depends(require_user), service: ChatService = Depends(svc)):
    return await service.get_user_chats(user.practitioner_id)

@router.post("/chats", response_model=ChatCreated, status_code=201)
async def create_chat(payload: ChatCreate | None = None, user: SessionUser = Depends(require_user), service: ChatService = Depends(svc)):
    chat_id = await service.create_chat(user.practitioner_id, title=payload.title if payload else None)
    return ChatCreated(chat_id=chat_id)

@router.patch("/chats/{chat_id}", status_code=204)
async def rename_chat(chat_id: str, payload: ChatTitleUpdate, user: SessionUser = Depends(require_user), service: ChatService = Depends(svc)):
    await service.update_chat_title(chat_id, user.practitioner_id, payload.title)
    return None

@router.post("/chats/{chat_id}/pin", response_model=PinState)
async def toggle_pin(chat_id: str, user: SessionUser = Depends(require_user), service: ChatService = Depends(svc)):
    pinned = await service.toggle_pin_chat(chat_id, user.practitioner_id)
    return PinState(chat_id=chat_id, pinned=pinned)

@router.delete("/chats/{chat_id}", status_code=204)
async def delete_chat(chat_id: str, user: SessionUser = Depends(require_user), service: ChatService = Depends(svc)):
    await service.delete_chat(chat_id, user.practitioner_id)
    return None

@router.get("/chats/{chat_id}/messages", response_model=list[UIMessage])
async def chat_messages(chat_id: str, user: SessionUser = Depends(require_user), service: ChatService = Depends(svc)):
    return await service.load_chat(chat_id, user.practitioner_id)
