import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from app.modules.identity.models import User

class IdentityRepository:
    def __init__(self, session: AsyncSession):
        self.s = session

    async def get_by_practitioner(self, practitioner_id: str) -> User | None:
        r = await self.s.execute(select(User).where(User.practitioner_id == practitioner_id).limit(1))
        return r.scalar_one_or_none()

    async def add_user(self, practitioner_id: str, name: str | None) -> User:
        obj = User(id=str(uuid.uuid4()), practitioner_id=practitioner_id, name=name)
        self.s.add(obj); await self.s.flush(); return obj
