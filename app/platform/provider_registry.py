from openai import AsyncOpenAI
from app.core.config import settings
from app.platform.ports.embeddings import EmbeddingsPort
from app.platform.ports.chat_model import ChatModelPort
from app.platform.adapters.embeddings_hash import HashingEmbeddings
from app.platform.adapters.embeddings_openai import OpenAIEmbeddings
from app.platform.adapters.chat_openai import OpenAIChatModel

class ProviderRegistry:
    _openai: AsyncOpenAI | None = None
    _embeddings: EmbeddingsPort | None = None
    _chat_model: ChatModelPort | None = None

    @classmethod
    def openai(cls) -> AsyncOpenAI:
        if cls._openai is None:
            if not settings.OPENAI_API_KEY:
                raise RuntimeError("OPENAI_API_KEY not configured")
            cls._openai = AsyncOpenAI(api_key=settings.OPENAI_API_KEY, base_url=settings.OPENAI_BASE_URL)
        return cls._openai

    @classmethod
    def embeddings(cls) -> EmbeddingsPort:
        if cls._embeddings is None:
            prov = (settings.EMBEDDINGS_PROVIDER or "hashing").lower()
            if prov == "openai":
                cls._embeddings = OpenAIEmbeddings(cls.openai(), settings.EMBEDDINGS_MODEL, settings.EMBEDDINGS_DIM)
            else:
                cls._embeddings = HashingEmbeddings(d=settings.EMBEDDINGS_DIM)
        return cls._embeddings

    @classmethod
    def chat_model(cls) -> ChatModelPort:
        if cls._chat_model is None:
            cls._chat_model = OpenAIChatModel(cls.openai(), settings.CHAT_MODEL, settings.CHAT_TEMPERATURE)
        return cls._chat_model

registry = ProviderRegistry()
