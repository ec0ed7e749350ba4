import json
import logging
import time
from typing import Any, AsyncIterator
from app.core.config import settings
from app.core.ids import generate_id, MESSAGE_PREFIX
from app.platform.ports.chat_model import ChatModelPort
from app.modules.chats.schemas import UIMessage
from app.modules.assistant.tools import Tool, to_openai_tools

logger = logging.getLogger(__name__)

class AgentRun:
    """
    One assistant turn. Iterate `events()` to drive the model/tool loop; the
    UI events are yielded as dicts and the finished turn is assembled in
    `message` as it goes.
    """
    def __init__(self, chat_model: ChatModelPort, messages: list[dict], tools: dict[str, Tool], system_prompt: str, max_steps: int, metadata: dict | None = None):
        self.chat_model = chat_model
        self.history: list[dict] = [{"role": "system", "content": system_prompt}, *messages]
        self.tools = tools
        self.max_steps = max_steps
        self.metadata = metadata or {}
        self.message = UIMessage(id=generate_id(MESSAGE_PREFIX), role="assistant", parts=[])
        self.steps = 0
        self.finished = False

    async def events(self) -> AsyncIterator[dict]:
        yield {"type": "start", "messageId": self.message.id, "messageMetadata": self.metadata}
        openai_tools = to_openai_tools(self.tools) or None

        for step in range(self.max_steps):
            self.steps = step + 1
            calls: dict[int, dict] = {}
            async for event in self._model_step(openai_tools, calls):
                yield event

            if not calls:
                yield {"type": "finish-step"}
                break

            for call in (calls[i] for i in sorted(calls)):
                async for event in self._run_tool(call):
                    yield event
            yield {"type": "finish-step"}
        else:
            logger.info(f"Max steps ({self.max_steps}) reached, ending turn")

        self.finished = True
        yield {"type": "finish"}

    async def _model_step(self, openai_tools: list[dict] | None, calls: dict[int, dict]) -> AsyncIterator[dict]:
        yield {"type": "start-step"}
        self.message.parts.append({"type": "step-start"})

        text_id = reasoning_id = None
        text: list[str] = []
        reasoning: list[str] = []
        started = time.perf_counter()

        async for chunk in self.chat_model.stream(self.history, tools=openai_tools):
            if not getattr(chunk, "choices", None):
                continue
            delta = chunk.choices[0].delta

            reasoning_delta = getattr(delta, "reasoning_content", None)
            if reasoning_delta:
                if reasoning_id is None:
                    reasoning_id = generate_id()
                    yield {"type": "reasoning-start", "id": reasoning_id}
                reasoning.append(reasoning_delta)
                yield {"type": "reasoning-delta", "id": reasoning_id, "delta": reasoning_delta}

            if delta.content:
                if text_id is None:
                    text_id = generate_id()
                    yield {"type": "text-start", "id": text_id}
                text.append(delta.content)
                yield {"type": "text-delta", "id": text_id, "delta": delta.content}

            for ann in getattr(delta, "annotations", None) or []:
                event = _source_event(ann)
                if event is not None:
                    self.message.parts.append(dict(event))
                    yield event

            for tc in delta.tool_calls or []:
                slot = calls.setdefault(tc.index, {"id": None, "name": "", "arguments": ""})
                if tc.id:
                    slot["id"] = tc.id
                if tc.function is not None:
                    if tc.function.name:
                        slot["name"] = tc.function.name
                    if tc.function.arguments:
                        slot["arguments"] += tc.function.arguments

        if reasoning_id is not None:
            yield {"type": "reasoning-end", "id": reasoning_id}
            self.message.parts.append({"type": "reasoning", "text": "".join(reasoning), "state": "done"})
        if text_id is not None:
            yield {"type": "text-end", "id": text_id}
            self.message.parts.append({"type": "text", "text": "".join(text), "state": "done"})

        for call in calls.values():
            call["id"] = call["id"] or generate_id("call")
        logger.info(
            f"Step {self.steps}: {len(calls)} tool call(s) {[c['name'] for c in calls.values()]} "
            f"({(time.perf_counter() - started):.1f}s)"
        )

        assistant: dict[str, Any] = {"role": "assistant", "content": "".join(text) or None}
        if calls:
            assistant["tool_calls"] = [
                {"id": c["id"], "type": "function", "function": {"name": c["name"], "arguments": c["arguments"] or "{}"}}
                for c in (calls[i] for i in sorted(calls))
            ]
        self.history.append(assistant)

    async def _run_tool(self, call: dict) -> AsyncIterator[dict]:
        name, call_id = call["name"], call["id"]
        part: dict[str, Any] = {"type": f"tool-{name}", "toolCallId": call_id}
        try:
            args = json.loads(call["arguments"] or "{}")
        except json.JSONDecodeError:
            args = None
        yield {"type": "tool-input-available", "toolCallId": call_id, "toolName": name, "input": args}

        started = time.perf_counter()
        try:
            if not isinstance(args, dict):
                raise ValueError(f"Invalid arguments for tool '{name}'")
            tool = self.tools.get(name)
            if tool is None:
                raise LookupError(f"Unknown tool '{name}'")
            output = await tool.run(args)
        except Exception as e:
            # reported back to the model so it can recover
            error_text = getattr(e, "message", None) or str(e) or type(e).__name__
            logger.warning(f"Tool {name} failed: {error_text}")
            part.update(state="output-error", input=args, errorText=error_text)
            self.message.parts.append(part)
            self.history.append({"role": "tool", "tool_call_id": call_id, "content": json.dumps({"error": error_text})})
            yield {"type": "tool-output-error", "toolCallId": call_id, "errorText": error_text}
            return

        logger.info(f"  tool {name}: {(time.perf_counter() - started) * 1000:.0f}ms")
        part.update(state="output-available", input=args, output=output)
        self.message.parts.append(part)
        content = output if isinstance(output, str) else json.dumps(output, default=str)
        self.history.append({"role": "tool", "tool_call_id": call_id, "content": content})
        yield {"type": "tool-output-available", "toolCallId": call_id, "output": output}

def _source_event(annotation: Any) -> dict | None:
    if isinstance(annotation, dict):
        kind, citation = annotation.get("type"), annotation.get("url_citation") or {}
        url, title = citation.get("url"), citation.get("title")
    else:
        kind, citation = getattr(annotation, "type", None), getattr(annotation, "url_citation", None)
        url, title = getattr(citation, "url", None), getattr(citation, "title", None)
    if kind != "url_citation" or not url:
        return None
    event = {"type": "source-url", "sourceId": generate_id(), "url": url}
    if title:
        event["title"] = title
    return event

class ChatAgent:
    def __init__(self, chat_model: ChatModelPort, max_steps: int | None = None):
        self.chat_model = chat_model
        self.max_steps = max_steps or settings.CHAT_MAX_STEPS

    def run(self, messages: list[dict], tools: dict[str, Tool], system_prompt: str, metadata: dict | None = None) -> AgentRun:
        return AgentRun(self.chat_model, messages, tools, system_prompt, self.max_steps, metadata)
