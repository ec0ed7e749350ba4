from datetime import datetime
from pydantic import BaseModel

class CollectionIn(BaseModel):
    content: str | None = None
    filename: str | None = None

class CollectionOut(BaseModel):
    id: str
    content: str
    created_at: datetime | None
    updated_at: datetime | None

    class Config:
        from_attributes = True

class CollectionCreated(BaseModel):
    message: str
    resource_id: str
    chunks: int
    filename: str | None = None

class RelevantContent(BaseModel):
    name: str  # matching chunk text
    similarity: float
    resource_id: str
    resource_content: str
    distance: float
