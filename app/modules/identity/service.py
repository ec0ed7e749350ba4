import logging
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.security import SessionUser
from app.modules.identity.repository import IdentityRepository
from app.modules.identity.schemas import FhirUserData

logger = logging.getLogger(__name__)

class IdentityService:
    def __init__(self, s: AsyncSession):
        self.s = s
        self.repo = IdentityRepository(s)

    async def create_or_update_user(self, data: FhirUserData) -> SessionUser:
        """Upsert the practitioner's user row and build the session identity."""
        user = await self.repo.get_by_practitioner(data.practitioner_id)
        if user is None:
            user = await self.repo.add_user(data.practitioner_id, data.name)
            logger.info(f"Created user {user.id} for practitioner {data.practitioner_id}")
        elif data.name and user.name != data.name:
            user.name = data.name
            await self.s.flush()
        await self.s.commit()

        return SessionUser(
            id=user.id,
            practitioner_id=data.practitioner_id,
            practitioner_name=user.name or data.name,
            patient_id=data.patient_id,
            patient_name=data.patient_name,
            fhir_base_url=data.fhir_base_url,
            access_token=data.access_token,
        )
