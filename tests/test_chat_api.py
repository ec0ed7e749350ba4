import json
import pytest
from sqlalchemy import select
from app.modules.assistant.router import get_chat_model
from app.modules.chats.models import Chat, Message, Stream
from app.modules.chats.service import ChatService
from app.modules.mcp.client import MCPClientConfig, MCPServerConfig
from app.modules.mcp.monitoring import HealthSample, MCPError, MCPErrorCode, MCPMonitor
from app.modules.mcp.registry import MCPToolRegistry, get_tool_registry

QUESTION = {"role": "user", "parts": [{"type": "text", "text": "What are the current medications?"}]}

class DownClient:
    async def list_tools(self):
        raise MCPError("connection refused", MCPErrorCode.CONNECTION_FAILED)

async def unreachable(url, timeout, client=None, monitor=None):
    sample = HealthSample(connected=False, error="connection refused")
    monitor.record_health(sample)
    return sample

@pytest.fixture
def tool_registry():
    return MCPToolRegistry(
        MCPClientConfig(servers=[MCPServerConfig(name="fhir-mcp", url="http://mcp.test/mcp")]),
        client_factory=lambda cfg: DownClient(), monitor=MCPMonitor(), retry_delay=0,
        health_check=unreachable,
    )

@pytest.fixture
def wire(app, tool_registry):
    def install(model):
        app.dependency_overrides[get_chat_model] = lambda: model
        app.dependency_overrides[get_tool_registry] = lambda: tool_registry
        return model
    return install

def parse_sse(body: str) -> list:
    events = []
    for block in body.strip().split("\n\n"):
        assert block.startswith("data: ")
        data = block[len("data: "):]
        events.append(data if data == "[DONE]" else json.loads(data))
    return events

async def stored(session_factory, chat_id: str) -> list[Message]:
    async with session_factory() as s:
        res = await s.execute(select(Message).where(Message.chat_id == chat_id).order_by(Message.created_at))
        return list(res.scalars().all())

async def test_first_turn_creates_chat_and_persists_both_messages(client, api, alice, auth, wire, fake_model, chunks, session_factory):
    model = wire(fake_model([chunks.text("Metformin 500mg twice daily.")]))

    r = await client.post(f"{api}/chat", json={"message": QUESTION, "id": "new-chat-1"}, headers=auth(alice))
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    assert r.headers["x-chat-id"] == "new-chat-1"

    events = parse_sse(r.text)
    assert events[-1] == "[DONE]"
    assert events[0]["type"] == "start"
    assert events[0]["messageMetadata"] == {"chatId": "new-chat-1"}
    assert "".join(e["delta"] for e in events if isinstance(e, dict) and e["type"] == "text-delta") == "Metformin 500mg twice daily."

    # the retrieval tool is offered even when the tool server is down
    assert [t["function"]["name"] for t in model.calls[0]["tools"]] == ["getInformation"]
    assert "never" in model.calls[0]["messages"][0]["content"].lower()

    rows = await stored(session_factory, "new-chat-1")
    assert [m.role for m in rows] == ["user", "assistant"]
    assert rows[1].id == events[0]["messageId"]
    async with session_factory() as s:
        chat = await s.get(Chat, "new-chat-1")
        assert chat.title == "New Chat"
        assert await ChatService(s).load_streams("new-chat-1", alice.practitioner_id) != []

async def test_follow_up_turn_replays_history(client, api, alice, auth, wire, fake_model, chunks, session_factory):
    model = wire(fake_model([chunks.text("First answer."), chunks.text("Second answer.")]))
    h = auth(alice)
    await client.post(f"{api}/chat", json={"message": QUESTION, "id": "c-1"}, headers=h)
    follow_up = {"role": "user", "parts": [{"type": "text", "text": "Any allergies?"}]}
    r = await client.post(f"{api}/chat", json={"message": follow_up, "id": "c-1"}, headers=h)
    assert r.status_code == 200

    sent = model.calls[1]["messages"]
    assert [m["role"] for m in sent] == ["system", "user", "assistant", "user"]
    assert sent[2]["content"] == "First answer."
    assert len(await stored(session_factory, "c-1")) == 4

async def test_foreign_chat_id_starts_a_new_chat(client, api, alice, bob, auth, wire, fake_model, chunks, session_factory):
    wire(fake_model([chunks.text("a"), chunks.text("b")]))
    await client.post(f"{api}/chat", json={"message": QUESTION, "id": "shared"}, headers=auth(alice))
    r = await client.post(f"{api}/chat", json={"message": QUESTION, "id": "shared"}, headers=auth(bob))
    new_id = r.headers["x-chat-id"]
    assert new_id != "shared"
    assert len(await stored(session_factory, "shared")) == 2
    assert len(await stored(session_factory, new_id)) == 2

async def test_requires_session(client, api, wire, fake_model):
    model = wire(fake_model([]))
    r = await client.post(f"{api}/chat", json={"message": QUESTION, "id": "x"})
    assert r.status_code == 401
    assert model.calls == []

async def test_invalid_message_is_rejected(client, api, alice, auth, wire, fake_model, session_factory):
    model = wire(fake_model([]))
    bad = {"role": "user", "parts": [{"type": "text"}]}
    r = await client.post(f"{api}/chat", json={"message": bad, "id": "c-bad"}, headers=auth(alice))
    assert r.status_code == 400
    assert "error" in r.json()
    assert model.calls == []
    assert await stored(session_factory, "c-bad") == []
    async with session_factory() as s:
        res = await s.execute(select(Stream).where(Stream.chat_id == "c-bad"))
        assert res.scalars().all() == []

async def test_malformed_body_is_rejected(client, api, alice, auth, wire, fake_model):
    wire(fake_model([]))
    r = await client.post(f"{api}/chat", json={"message": {"role": "robot", "parts": []}}, headers=auth(alice))
    assert r.status_code == 400

async def test_provider_failure_ends_stream_without_saving(client, api, alice, auth, wire, fake_model, chunks, session_factory):
    wire(fake_model([chunks.text("partial", " answer")], fail_after=1))
    r = await client.post(f"{api}/chat", json={"message": QUESTION, "id": "c-fail"}, headers=auth(alice))
    events = parse_sse(r.text)
    assert events[-1]["type"] == "error"
    assert "[DONE]" not in events
    assert await stored(session_factory, "c-fail") == []

async def test_chat_creation_failure(client, api, alice, auth, wire, fake_model, monkeypatch):
    wire(fake_model([]))

    async def boom(self, *args, **kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr(ChatService, "create_chat", boom)
    r = await client.post(f"{api}/chat", json={"message": QUESTION, "id": "c-x"}, headers=auth(alice))
    assert r.status_code == 500
    assert r.json() == {"error": "Failed to create chat. Please try again."}

async def test_chat_status_lookup(client, api, alice, bob, auth, wire, fake_model, chunks):
    wire(fake_model([chunks.text("hi")]))
    await client.post(f"{api}/chat", json={"message": QUESTION, "id": "c-s"}, headers=auth(alice))

    r = await client.get(f"{api}/chat", params={"chatId": "c-s"}, headers=auth(alice))
    assert r.status_code == 200
    body = r.json()
    assert body["message_count"] == 2
    assert len(body["stream_ids"]) == 1

    assert (await client.get(f"{api}/chat", headers=auth(alice))).status_code == 400
    assert (await client.get(f"{api}/chat", params={"chatId": "c-s"}, headers=auth(bob))).status_code == 404
    assert (await client.get(f"{api}/chat", params={"chatId": "c-s"})).status_code == 401

async def test_tool_status_redacts_token(client, api, alice, auth, wire, fake_model):
    wire(fake_model([]))
    r = await client.get(f"{api}/chat", params={"action": "tool-status"}, headers=auth(alice))
    assert r.status_code == 200
    body = r.json()
    assert body["tool_count"] == 0
    assert body["connected"] is False
    assert body["health"] == "unhealthy"
    assert body["is_healthy"] is False
    assert body["user_context"]["has_access_token"] is True
    assert alice.access_token not in r.text

async def test_mcp_dashboard(client, api, alice, auth, wire, fake_model):
    wire(fake_model([]))
    await client.get(f"{api}/chat", params={"action": "tool-status"}, headers=auth(alice))
    r = await client.get(f"{api}/chat", params={"action": "mcp-dashboard"}, headers=auth(alice))
    assert r.status_code == 200
    assert set(r.json()) >= {"metrics", "recent_health", "success_rate", "is_healthy", "uptime"}
    assert r.json()["recent_health"][0]["connected"] is False
    assert r.json()["uptime"] == 0
    assert r.json()["connectivity"] == "unhealthy"

async def test_remote_tools_are_offered_with_context_hidden(client, api, alice, auth, wire, fake_model, chunks, tool_registry):
    from app.modules.mcp.client import RemoteTool
    from app.modules.mcp.schema import build_arguments_model

    schema = {
        "type": "object",
        "properties": {"patient_id": {"type": "string"}, "fhir_base_url": {"type": "string"}, "access_token": {"type": "string"}},
        "required": ["patient_id", "fhir_base_url", "access_token"],
    }
    called = []

    class UpClient:
        async def list_tools(self):
            return [RemoteTool(name="get_medications", remote_name="get_medications", server="fhir-mcp",
                               description="meds", input_schema=schema, args_model=build_arguments_model("m", schema))]

        async def call_tool(self, name, args):
            called.append((name, args))
            return {"meds": ["lisinopril"]}

    up = UpClient()
    tool_registry._client_factory = lambda cfg: up
    model = wire(fake_model([
        chunks.tool_call("get_medications", json.dumps({"patient_id": "pat-1"})),
        chunks.text("Lisinopril."),
    ]))
    r = await client.post(f"{api}/chat", json={"message": QUESTION, "id": "c-r"}, headers=auth(alice))
    assert r.status_code == 200

    offered = {t["function"]["name"]: t["function"]["parameters"] for t in model.calls[0]["tools"]}
    assert set(offered) == {"getInformation", "get_medications"}
    assert list(offered["get_medications"]["properties"]) == ["patient_id"]
    assert called == [("get_medications", {
        "patient_id": "pat-1", "fhir_base_url": alice.fhir_base_url, "access_token": alice.access_token,
    })]

async def test_client_supplied_timestamp_is_ignored(client, api, alice, auth, wire, fake_model, chunks, session_factory):
    wire(fake_model([chunks.text("Noted.")]))
    backdated = {**QUESTION, "id": "msg-old", "created_at": "2001-01-01T00:00:00Z"}
    r = await client.post(f"{api}/chat", json={"message": backdated, "id": "c-ts"}, headers=auth(alice))
    assert r.status_code == 200

    rows = await stored(session_factory, "c-ts")
    assert [m.id for m in rows][0] == "msg-old"
    assert all(m.created_at.year > 2001 for m in rows)
    assert [m.role for m in rows] == ["user", "assistant"]
