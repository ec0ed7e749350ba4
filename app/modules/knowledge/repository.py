from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import Select, select, delete
from app.modules.knowledge.models import Resource, Embedding

class KnowledgeRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_resource(self, obj: Resource) -> Resource:
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def insert_embeddings(self, objs: list[Embedding]) -> None:
        self.session.add_all(objs)
        await self.session.flush()

    async def list_resources(self) -> Sequence[Resource]:
        res = await self.session.execute(select(Resource).order_by(Resource.created_at.desc(), Resource.id.desc()))
        return res.scalars().all()

    async def get_resource(self, resource_id: str) -> Resource | None:
        return await self.session.get(Resource, resource_id)

    async def delete_resource(self, resource_id: str) -> None:
        await self.session.execute(delete(Embedding).where(Embedding.resource_id == resource_id))
        await self.session.execute(delete(Resource).where(Resource.id == resource_id))

    @staticmethod
    def cosine_search_query(query_vec: list[float], *, min_similarity: float, top_k: int) -> Select:
        # cosine distance (smaller is closer); similarity = 1 - distance
        dist = Embedding.embedding.cosine_distance(query_vec)
        sim = (1 - dist)
        return (
            select(Embedding, Resource.content, dist.label("distance"), sim.label("similarity"))
            .join(Resource, Resource.id == Embedding.resource_id)
            .where(sim > min_similarity)
            .order_by(dist.asc())
            .limit(top_k)
        )

    async def search_cosine(self, query_vec: list[float], *, min_similarity: float, top_k: int) -> list[tuple[Embedding, str, float, float]]:
        q = self.cosine_search_query(query_vec, min_similarity=min_similarity, top_k=top_k)
        res = await self.session.execute(q)
        return [(row[0], row[1], float(row[2]), float(row[3])) for row in res.all()]
