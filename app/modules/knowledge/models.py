from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, ForeignKey
from pgvector.sqlalchemy import Vector
from app.core.base import Base, TimestampMixin
from app.core.config import settings

class Resource(Base, TimestampMixin):
    """An uploaded knowledge-base document ("collection" in the API)."""
    __tablename__ = "resources"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    content: Mapped[str] = mapped_column(Text)

class Embedding(Base):
    """
    One chunk of a resource with its vector.
    Vector width follows EMBEDDINGS_DIM and must match the configured provider.
    """
    __tablename__ = "embeddings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    resource_id: Mapped[str] = mapped_column(ForeignKey("resources.id", ondelete="CASCADE"), index=True)
    content: Mapped[str] = mapped_column(Text)
    embedding: Mapped[list[float]] = mapped_column(Vector(dim=settings.EMBEDDINGS_DIM))
