from types import SimpleNamespace
import pytest
from app.modules.mcp.client import MCPClient, MCPClientConfig, MCPServerConfig
from app.modules.mcp.monitoring import MCPError, MCPErrorCode

def make_client(**kwargs) -> MCPClient:
    return MCPClient(MCPClientConfig(servers=[MCPServerConfig(name="fhir-mcp", url="http://mcp.test/mcp")], **kwargs))

def text(t: str):
    return SimpleNamespace(type="text", text=t)

def fake_session(result):
    """Replaces the transport: runs the operation against a stub session."""
    calls = []

    class Session:
        async def list_tools(self):
            return result

        async def call_tool(self, name, args):
            calls.append((name, args))
            return result

    async def with_session(server, op):
        return await op(Session())

    return with_session, calls

async def test_list_tools_builds_argument_models():
    client = make_client()
    listing = SimpleNamespace(tools=[
        SimpleNamespace(name="get_patient", description="Read a patient", inputSchema={
            "type": "object", "properties": {"patient_id": {"type": "string"}}, "required": ["patient_id"],
        }),
        SimpleNamespace(name="ping", description=None, inputSchema=None),
    ])
    client._with_session, _ = fake_session(listing)

    tools = await client.list_tools()
    assert [t.name for t in tools] == ["get_patient", "ping"]
    assert tools[0].args_model.model_validate({"patient_id": "p1"})
    assert tools[1].description == ""
    assert tools[1].input_schema == {"type": "object", "properties": {}}

async def test_tool_name_prefixes():
    client = make_client(prefix_tool_name_with_server_name=True, additional_tool_name_prefix="mcp")
    assert client.exposed_name("fhir-mcp", "get_patient") == "mcp__fhir-mcp__get_patient"
    assert make_client().exposed_name("fhir-mcp", "get_patient") == "get_patient"

async def test_call_tool_prefers_structured_content():
    client = make_client()
    client._with_session, calls = fake_session(SimpleNamespace(
        isError=False, structuredContent={"result": [{"drug": "metformin"}]}, content=[text("ignored")],
    ))
    assert await client.call_tool("get_medications", {"patient_id": "p1"}) == {"result": [{"drug": "metformin"}]}
    assert calls == [("get_medications", {"patient_id": "p1"})]

async def test_call_tool_joins_text_blocks():
    client = make_client()
    client._with_session, _ = fake_session(SimpleNamespace(
        isError=False, structuredContent=None,
        content=[text("line one"), SimpleNamespace(type="image", data="..."), text("line two")],
    ))
    assert await client.call_tool("summary", {}) == "line one\nline two"

async def test_call_tool_error_result_raises():
    client = make_client()
    client._with_session, _ = fake_session(SimpleNamespace(
        isError=True, structuredContent=None, content=[text("patient not found")],
    ))
    with pytest.raises(MCPError) as exc:
        await client.call_tool("get_patient", {"patient_id": "nope"})
    assert exc.value.code is MCPErrorCode.TOOL_EXECUTION_FAILED
    assert exc.value.message == "patient not found"

async def test_connection_failure_without_fallback(monkeypatch):
    client = make_client()

    def broken(*args, **kwargs):
        raise OSError("connection refused")

    monkeypatch.setattr("app.modules.mcp.client.streamablehttp_client", broken)
    with pytest.raises(MCPError) as exc:
        await client.list_tools()
    assert exc.value.code is MCPErrorCode.CONNECTION_FAILED

async def test_load_errors_can_be_skipped(monkeypatch):
    client = make_client(throw_on_load_error=False)

    def broken(*args, **kwargs):
        raise OSError("connection refused")

    monkeypatch.setattr("app.modules.mcp.client.streamablehttp_client", broken)
    assert await client.list_tools() == []

async def test_unusable_schema_does_not_drop_other_tools():
    client = make_client()
    listing = SimpleNamespace(tools=[
        SimpleNamespace(name="search_observations", description="Search", inputSchema={
            "type": "object", "properties": {"patient_id": {"type": ["string", "null"]}},
        }),
        SimpleNamespace(name="broken", description="Odd schema", inputSchema={"type": "object", "properties": ["patient_id"]}),
        SimpleNamespace(name="get_patient", description="Read a patient", inputSchema={
            "type": "object", "properties": {"patient_id": {"type": "string"}}, "required": ["patient_id"],
        }),
    ])
    client._with_session, _ = fake_session(listing)

    tools = await client.list_tools()
    assert [t.name for t in tools] == ["search_observations", "broken", "get_patient"]
    assert tools[0].args_model.model_validate({}).model_dump(by_alias=True, exclude_none=True) == {}
    # falls back to accepting any arguments
    assert tools[1].args_model.model_validate({"x": 1}).model_dump() == {"x": 1}
