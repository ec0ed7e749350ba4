import logging
from dataclasses import dataclass
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.config import settings
from app.core.ids import generate_id, RESOURCE_PREFIX, EMBEDDING_PREFIX
from app.platform.provider_registry import registry
from app.platform.ports.embeddings import EmbeddingsPort
from app.modules.knowledge.repository import KnowledgeRepository
from app.modules.knowledge.models import Resource, Embedding
from app.modules.knowledge.schemas import RelevantContent

logger = logging.getLogger(__name__)

def generate_chunks(text: str) -> list[str]:
    # sentence-ish chunks: split on "." and drop empties
    return [c for c in (text or "").strip().split(".") if c != ""]

@dataclass
class CreateResourceResult:
    ok: bool
    resource_id: str | None = None
    chunks: int = 0
    error: str | None = None

class KnowledgeService:
    def __init__(self, session: AsyncSession, embedder: EmbeddingsPort | None = None):
        self.session = session
        self.repo = KnowledgeRepository(session)
        self.embedder = embedder or registry.embeddings()

    async def create_resource(self, content: str) -> CreateResourceResult:
        if not content or not content.strip():
            return CreateResourceResult(ok=False, error="Content is required")
        chunks = generate_chunks(content)
        if not chunks:
            return CreateResourceResult(ok=False, error="Content has no text to index")
        try:
            resource = await self.repo.add_resource(Resource(id=generate_id(RESOURCE_PREFIX), content=content))
            vectors = await self.embedder.embed(chunks)
            objs = [
                Embedding(id=generate_id(EMBEDDING_PREFIX), resource_id=resource.id, content=chunk, embedding=vectors[i])
                for i, chunk in enumerate(chunks)
            ]
            await self.repo.insert_embeddings(objs)
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Failed to create resource: {e}", exc_info=True)
            return CreateResourceResult(ok=False, error=str(e) or "Error, please try again.")

        logger.info(f"Created resource {resource.id} with {len(objs)} chunk(s)")
        return CreateResourceResult(ok=True, resource_id=resource.id, chunks=len(objs))

    async def find_relevant_content(self, query: str) -> list[RelevantContent]:
        """Top matching chunks for `query` above the similarity floor, closest first."""
        try:
            [query_vec] = await self.embedder.embed([query.replace("\\n", " ")])
            rows = await self.repo.search_cosine(
                query_vec,
                min_similarity=settings.RETRIEVAL_MIN_SIMILARITY,
                top_k=settings.RETRIEVAL_TOP_K,
            )
        except Exception:
            logger.error("Error in find_relevant_content", exc_info=True)
            raise
        return [
            RelevantContent(
                name=emb.content, similarity=similarity, resource_id=emb.resource_id,
                resource_content=resource_content, distance=distance,
            )
            for emb, resource_content, distance, similarity in rows
        ]

    async def list_resources(self) -> list[Resource]:
        return list(await self.repo.list_resources())

    async def delete_resource(self, resource_id: str) -> bool:
        if await self.repo.get_resource(resource_id) is None:
            return False
        await self.repo.delete_resource(resource_id)
        await self.session.commit()
        logger.info(f"Deleted resource {resource_id}")
        return True
