import logging
from openai import AsyncOpenAI
from app.platform.ports.embeddings import EmbeddingsPort

log = logging.getLogger("embeddings.openai")

class OpenAIEmbeddings(EmbeddingsPort):
    def __init__(self, client: AsyncOpenAI, model: str, d: int):
        self.client = client
        self.model = model
        self._d = int(d)

    def dim(self) -> int:
        return self._d

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        # the provider treats literal "\n" sequences as noise
        inputs = [t.replace("\\n", " ") for t in texts]
        res = await self.client.embeddings.create(model=self.model, input=inputs, dimensions=self._d)
        log.debug(f"embedded {len(inputs)} text(s) with {self.model}")
        return [item.embedding for item in sorted(res.data, key=lambda d: d.index)]
