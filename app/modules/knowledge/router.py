from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.db import get_session
from app.core.errors import ResourceNotFoundError, error_response
from app.core.security import SessionUser, require_user
from app.modules.knowledge.service import KnowledgeService, generate_chunks
from app.modules.knowledge.schemas import CollectionIn, CollectionOut, CollectionCreated

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session)) -> KnowledgeService:
    return KnowledgeService(session)

@router.get("/collections", response_model=list[CollectionOut])
async def list_collections(user: SessionUser = Depends(require_user), service: KnowledgeService = Depends(svc)):
    return await service.list_resources()

@router.post("/collections", response_model=CollectionCreated)
async def create_collection(payload: CollectionIn, user: SessionUser = Depends(require_user), service: KnowledgeService = Depends(svc)):
    if not payload.content or not payload.content.strip():
        return error_response(400, "Content is required")
    if not generate_chunks(payload.content):
        return error_response(400, "Content has no text to index")
    result = await service.create_resource(payload.content)
    if not result.ok:
        return error_response(500, result.error or "Failed to create collection")
    return CollectionCreated(
        message="Collection created successfully",
        resource_id=result.resource_id,
        chunks=result.chunks,
        filename=payload.filename,
    )

@router.delete("/collections/{resource_id}", status_code=204)
async def delete_collection(resource_id: str, user: SessionUser = Depends(require_user), service: KnowledgeService = Depends(svc)):
    if not await service.delete_resource(resource_id):
        raise ResourceNotFoundError()
    return None
