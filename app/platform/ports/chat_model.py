from typing import Any, AsyncIterator, Protocol, runtime_checkable

@runtime_checkable
class ChatModelPort(Protocol):
    """Streaming chat-completions model with tool calling.

    Yields provider chunks shaped like OpenAI `ChatCompletionChunk` objects.
    """
    def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[Any]: ...
