import logging
from datetime import timedelta
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.base import utcnow
from app.core.errors import ChatNotFoundError, UserNotFoundError
from app.core.ids import generate_id, CHAT_PREFIX, MESSAGE_PREFIX
from app.modules.chats.models import Chat, Message
from app.modules.chats.repository import ChatRepository, MessageRepository, StreamRepository
from app.modules.chats.schemas import UIMessage, ChatOut

logger = logging.getLogger(__name__)

DEFAULT_CHAT_TITLE = "New Chat"

class ChatService:
    """
    Chat storage scoped to a practitioner.
    Every lookup goes through the chats -> users join, so a chat owned by
    someone else is indistinguishable from a missing one.
    """
    def __init__(self, s: AsyncSession):
        self.s = s
        self.chats = ChatRepository(s)
        self.messages = MessageRepository(s)
        self.streams = StreamRepository(s)

    async def _owned(self, chat_id: str, practitioner_id: str) -> Chat:
        chat = await self.chats.get_owned(chat_id, practitioner_id)
        if chat is None:
            raise ChatNotFoundError()
        return chat

    async def verify_chat_access(self, chat_id: str, practitioner_id: str) -> bool:
        if not chat_id or not practitioner_id:
            return False
        return await self.chats.get_owned(chat_id, practitioner_id) is not None

    async def create_chat(self, practitioner_id: str, title: str | None = None, chat_id: str | None = None) -> str:
        user = await self.chats.get_user(practitioner_id)
        if user is None:
            raise UserNotFoundError()

        new_id = chat_id
        if not new_id or await self.chats.exists(new_id):
            new_id = generate_id(CHAT_PREFIX)
        await self.chats.create(new_id, user.id, title or DEFAULT_CHAT_TITLE)
        await self.s.commit()
        logger.info(f"Created chat {new_id} for practitioner {practitioner_id}")
        return new_id

    async def load_chat(self, chat_id: str, practitioner_id: str) -> list[UIMessage]:
        if not await self.verify_chat_access(chat_id, practitioner_id):
            return []
        rows = await self.messages.list_for_chat(chat_id)
        return [
            UIMessage(id=m.id, role=m.role, parts=list(m.content or []), created_at=m.created_at)
            for m in rows
        ]

    async def save_chat(self, chat_id: str, practitioner_id: str, messages: list[UIMessage]) -> int:
        """Insert the messages not yet stored for this chat; returns how many were added."""
        await self._owned(chat_id, practitioner_id)

        existing = await self.messages.existing_ids(chat_id)
        base = utcnow()
        new_rows: list[Message] = []
        for i, msg in enumerate(messages):
            if not msg.id:
                msg.id = generate_id(MESSAGE_PREFIX)
            if msg.id in existing:
                continue
            existing.add(msg.id)
            # strictly increasing within a batch so replay order is stable
            created_at = msg.created_at or base + timedelta(microseconds=i)
            new_rows.append(Message(
                id=msg.id, chat_id=chat_id, role=msg.role,
                content=list(msg.parts), created_at=created_at,
            ))

        if new_rows:
            await self.messages.insert_many(new_rows)
        await self.chats.touch(chat_id)
        await self.s.commit()
        logger.debug(f"Saved {len(new_rows)} new message(s) to chat {chat_id}")
        return len(new_rows)

    async def update_chat_title(self, chat_id: str, practitioner_id: str, title: str) -> None:
        chat = await self._owned(chat_id, practitioner_id)
        chat.title = title
        chat.updated_at = utcnow()
        await self.s.commit()

    async def toggle_pin_chat(self, chat_id: str, practitioner_id: str) -> bool:
        chat = await self._owned(chat_id, practitioner_id)
        chat.pinned = not chat.pinned
        chat.updated_at = utcnow()
        await self.s.commit()
        return chat.pinned

    async def delete_chat(self, chat_id: str, practitioner_id: str) -> None:
        await self._owned(chat_id, practitioner_id)
        await self.chats.delete(chat_id)
        await self.s.commit()
        logger.info(f"Deleted chat {chat_id}")

    async def get_user_chats(self, practitioner_id: str) -> list[ChatOut]:
        user = await self.chats.get_user(practitioner_id)
        if user is None:
            return []
        rows = await self.chats.list_for_user(user.id)
        return [
            ChatOut(
                id=c.id, title=c.title, pinned=bool(c.pinned),
                created_at=c.created_at, updated_at=c.updated_at, message_count=count,
            )
            for c, count in rows
        ]

    async def append_stream_id(self, chat_id: str, practitioner_id: str, stream_id: str) -> None:
        await self._owned(chat_id, practitioner_id)
        await self.streams.append(chat_id, stream_id)
        await self.s.commit()

    async def load_streams(self, chat_id: str, practitioner_id: str) -> list[str]:
        if not await self.verify_chat_access(chat_id, practitioner_id):
            return []
        return await self.streams.list_for_chat(chat_id)
