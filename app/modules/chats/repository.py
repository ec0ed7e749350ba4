from datetime import datetime
from typing import Sequence
from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.base import utcnow
from app.core.ids import generate_id, STREAM_PREFIX
from app.modules.chats.models import Chat, Message, Stream
from app.modules.identity.models import User

class ChatRepository:
    """Row access for chats. Callers resolve ownership before touching messages/streams."""
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, practitioner_id: str) -> User | None:
        res = await self.session.execute(select(User).where(User.practitioner_id == practitioner_id).limit(1))
        return res.scalar_one_or_none()

    async def get_owned(self, chat_id: str, practitioner_id: str) -> Chat | None:
        q = (
            select(Chat)
            .join(User, User.id == Chat.user_id)
            .where(Chat.id == chat_id, User.practitioner_id == practitioner_id)
            .limit(1)
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def exists(self, chat_id: str) -> bool:
        res = await self.session.execute(select(Chat.id).where(Chat.id == chat_id).limit(1))
        return res.scalar_one_or_none() is not None

    async def create(self, chat_id: str, user_id: str, title: str) -> Chat:
        obj = Chat(id=chat_id, user_id=user_id, title=title, pinned=False)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def list_for_user(self, user_id: str) -> list[tuple[Chat, int]]:
        q = (
            select(Chat, func.count(Message.id).label("message_count"))
            .outerjoin(Message, Message.chat_id == Chat.id)
            .where(Chat.user_id == user_id)
            .group_by(Chat.id)
            .order_by(Chat.updated_at.desc(), Chat.created_at.desc())
        )
        res = await self.session.execute(q)
        return [(row[0], int(row[1])) for row in res.all()]

    async def touch(self, chat_id: str) -> None:
        await self.session.execute(update(Chat).where(Chat.id == chat_id).values(updated_at=utcnow()))

    async def delete(self, chat_id: str) -> None:
        await self.session.execute(delete(Message).where(Message.chat_id == chat_id))
        await self.session.execute(delete(Stream).where(Stream.chat_id == chat_id))
        await self.session.execute(delete(Chat).where(Chat.id == chat_id))

class MessageRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_chat(self, chat_id: str) -> Sequence[Message]:
        q = select(Message).where(Message.chat_id == chat_id).order_by(Message.created_at.asc(), Message.id.asc())
        res = await self.session.execute(q)
        return res.scalars().all()

    async def existing_ids(self, chat_id: str) -> set[str]:
        res = await self.session.execute(select(Message.id).where(Message.chat_id == chat_id))
        return set(res.scalars().all())

    async def count_for_chat(self, chat_id: str) -> int:
        res = await self.session.execute(select(func.count(Message.id)).where(Message.chat_id == chat_id))
        return int(res.scalar_one())

    async def insert_many(self, objs: list[Message]) -> None:
        self.session.add_all(objs)
        await self.session.flush()

class StreamRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, chat_id: str, stream_id: str, created_at: datetime | None = None) -> Stream:
        obj = Stream(id=generate_id(STREAM_PREFIX), chat_id=chat_id, stream_id=stream_id, created_at=created_at or utcnow())
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def list_for_chat(self, chat_id: str) -> list[str]:
        q = select(Stream.stream_id).where(Stream.chat_id == chat_id).order_by(Stream.created_at.asc(), Stream.id.asc())
        res = await self.session.execute(q)
        return list(res.scalars().all())
