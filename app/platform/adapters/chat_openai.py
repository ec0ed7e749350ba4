from typing import Any, AsyncIterator
from openai import AsyncOpenAI
from app.platform.ports.chat_model import ChatModelPort

class OpenAIChatModel(ChatModelPort):
    def __init__(self, client: AsyncOpenAI, model: str, temperature: float | None = None):
        self.client = client
        self.model = model
        self.temperature = temperature

    async def stream(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]] | None = None) -> AsyncIterator[Any]:
        kwargs: dict[str, Any] = {"model": self.model, "messages": messages, "stream": True}
        if tools:
            kwargs["tools"] = tools
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        response = await self.client.chat.completions.create(**kwargs)
        async for chunk in response:
            yield chunk
