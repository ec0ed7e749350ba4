import hashlib
import math
import re
from app.platform.ports.embeddings import EmbeddingsPort

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")

class HashingEmbeddings(EmbeddingsPort):
    """
    Deterministic feature-hashing embeddings for local runs and tests.
    Texts sharing vocabulary land close under cosine similarity; no model call.
    """
    def __init__(self, d: int = 3072):
        self._d = int(d)

    def dim(self) -> int:
        return self._d

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [self._vector(t) for t in texts]

    def _vector(self, text: str) -> list[float]:
        v = [0.0] * self._d
        for tok in self._tokenize(text):
            h = int(hashlib.md5(tok.encode("utf-8")).hexdigest(), 16)
            v[h % self._d] += 1.0
        norm = math.sqrt(sum(x * x for x in v)) or 1.0
        return [x / norm for x in v]

    def _tokenize(self, text: str) -> list[str]:
        return [x for x in _TOKEN_SPLIT.split((text or "").lower()) if x]
