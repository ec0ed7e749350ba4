"""
UI message parts -> OpenAI chat-completions messages.

Assistant turns are replayed step by step: each `step-start` part opens a new
assistant message, and completed tool parts become a tool call on that
message followed by a `tool` result message.
"""
import json
from typing import Any
from app.core.errors import MessageValidationError
from app.modules.chats.schemas import UIMessage

DONE_TOOL_STATES = ("output-available", "output-error")

def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise MessageValidationError(msg)

def _part_type(part: Any) -> str:
    _require(isinstance(part, dict), "Message part must be an object")
    kind = part.get("type")
    _require(isinstance(kind, str) and kind != "", "Message part is missing its type")
    return kind

def _is_tool_part(kind: str) -> bool:
    return kind.startswith("tool-") or kind == "dynamic-tool"

def _tool_name(part: dict, kind: str) -> str:
    name = part.get("toolName") if kind == "dynamic-tool" else kind[len("tool-"):]
    _require(isinstance(name, str) and name != "", "Tool part is missing the tool name")
    return name

def _dumps(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, default=str)

def _user_content(msg: UIMessage) -> list[dict]:
    content: list[dict] = []
    for part in msg.parts:
        kind = _part_type(part)
        if kind == "text":
            _require(isinstance(part.get("text"), str), "Text part must carry a string")
            content.append({"type": "text", "text": part["text"]})
        elif kind == "file":
            url, media_type = part.get("url"), part.get("mediaType")
            _require(isinstance(url, str) and isinstance(media_type, str), "File part needs url and mediaType")
            if media_type.startswith("image/"):
                content.append({"type": "image_url", "image_url": {"url": url}})
            else:
                content.append({"type": "text", "text": f"[Attached file: {part.get('filename') or url}]"})
        elif kind == "step-start" or kind.startswith("data-") or kind.startswith("source-"):
            continue
        else:
            raise MessageValidationError(f"Unsupported part '{kind}' in user message")
    _require(len(content) > 0, "User message has no content")
    return content

def _system_content(msg: UIMessage) -> str:
    texts = []
    for part in msg.parts:
        _require(_part_type(part) == "text" and isinstance(part.get("text"), str), "System messages may only contain text")
        texts.append(part["text"])
    return "".join(texts)

def _assistant_messages(msg: UIMessage) -> list[dict]:
    out: list[dict] = []
    blocks: list[list[dict]] = [[]]
    for part in msg.parts:
        if _part_type(part) == "step-start":
            if blocks[-1]:
                blocks.append([])
            continue
        blocks[-1].append(part)

    for block in blocks:
        text: list[str] = []
        calls: list[dict] = []
        results: list[dict] = []
        for part in block:
            kind = part["type"]
            if kind == "text":
                _require(isinstance(part.get("text"), str), "Text part must carry a string")
                text.append(part["text"])
            elif _is_tool_part(kind):
                name = _tool_name(part, kind)
                call_id = part.get("toolCallId")
                _require(isinstance(call_id, str) and call_id != "", "Tool part is missing toolCallId")
                state = part.get("state")
                if state not in DONE_TOOL_STATES:
                    # call never completed; nothing to replay
                    continue
                calls.append({
                    "id": call_id,
                    "type": "function",
                    "function": {"name": name, "arguments": json.dumps(part.get("input") or {}, default=str)},
                })
                if state == "output-available":
                    result = _dumps(part.get("output"))
                else:
                    result = json.dumps({"error": part.get("errorText") or "Tool execution failed"})
                results.append({"role": "tool", "tool_call_id": call_id, "content": result})
            # reasoning, sources and files are not replayed to the model

        if not text and not calls:
            continue
        message: dict[str, Any] = {"role": "assistant", "content": "".join(text) or None}
        if calls:
            message["tool_calls"] = calls
        out.append(message)
        out.extend(results)
    return out

def convert_to_model_messages(messages: list[UIMessage]) -> list[dict]:
    """Raises MessageValidationError for structurally invalid messages."""
    out: list[dict] = []
    for msg in messages:
        _require(isinstance(msg, UIMessage), "Invalid message")
        _require(isinstance(msg.parts, list), "Message parts must be a list")
        if msg.role == "user":
            out.append({"role": "user", "content": _user_content(msg)})
        elif msg.role == "system":
            out.append({"role": "system", "content": _system_content(msg)})
        else:
            out.extend(_assistant_messages(msg))
    return out
