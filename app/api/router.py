from fastapi import APIRouter
from app.modules.identity.router import router as identity_router
from app.modules.chats.router import router as chats_router
from app.modules.knowledge.router import router as knowledge_router
from app.modules.assistant.router import router as assistant_router

api_router = APIRouter()
api_router.include_router(identity_router, tags=["auth"])
api_router.include_router(chats_router, tags=["chats"])
api_router.include_router(knowledge_router, tags=["collections"])
api_router.include_router(assistant_router, tags=["chat"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
