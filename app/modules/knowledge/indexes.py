import logging
from sqlalchemy.exc import DBAPIError
from app.core.config import settings
from app.core.db import engine

logger = logging.getLogger(__name__)

# pgvector's HNSW index only covers vectors up to this width
HNSW_MAX_DIM = 2000

async def ensure_vector_indexes():
    if settings.DB_MANAGE.lower() != "create_all":
        return
    if settings.EMBEDDINGS_DIM > HNSW_MAX_DIM:
        logger.warning(f"Skipping HNSW index: {settings.EMBEDDINGS_DIM} dims exceeds {HNSW_MAX_DIM}; retrieval uses a sequential scan")
        return
    try:
        async with engine.begin() as conn:
            await conn.exec_driver_sql(
                "CREATE INDEX IF NOT EXISTS embeddings_embedding_idx ON embeddings USING hnsw (embedding vector_cosine_ops)"
            )
    except DBAPIError as e:
        logger.warning(f"Could not create vector index: {e}")
