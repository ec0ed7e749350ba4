import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable
from pydantic import BaseModel
from mcp import ClientSession
from mcp.client.sse import sse_client
from mcp.client.streamable_http import streamablehttp_client
from app.core.config import settings
from app.modules.mcp.monitoring import MCPError, MCPErrorCode
from app.modules.mcp.schema import build_arguments_model

logger = logging.getLogger(__name__)

@dataclass
class MCPServerConfig:
    name: str
    url: str
    automatic_sse_fallback: bool = False
    headers: dict[str, str] | None = None

@dataclass
class MCPClientConfig:
    servers: list[MCPServerConfig]
    throw_on_load_error: bool = True
    prefix_tool_name_with_server_name: bool = False
    additional_tool_name_prefix: str = ""

    @classmethod
    def from_settings(cls) -> "MCPClientConfig":
        return cls(
            servers=[MCPServerConfig(
                name=settings.MCP_SERVER_NAME,
                url=settings.MCP_SERVER_URL,
                automatic_sse_fallback=settings.MCP_AUTOMATIC_SSE_FALLBACK,
            )],
            prefix_tool_name_with_server_name=settings.MCP_PREFIX_TOOL_NAME_WITH_SERVER_NAME,
            additional_tool_name_prefix=settings.MCP_ADDITIONAL_TOOL_NAME_PREFIX,
        )

@dataclass
class RemoteTool:
    name: str  # name exposed to the model
    remote_name: str
    server: str
    description: str
    input_schema: dict
    args_model: type[BaseModel] = field(repr=False)

class MCPClient:
    """
    Thin client over the MCP python SDK. Each operation opens its own session
    (streamable HTTP, optionally falling back to SSE) and closes it afterwards.
    """
    def __init__(self, config: MCPClientConfig):
        self.config = config
        self._servers = {s.name: s for s in config.servers}
        self._routes: dict[str, tuple[str, str]] = {}  # exposed name -> (server, remote name)

    def exposed_name(self, server: str, tool_name: str) -> str:
        parts = []
        if self.config.additional_tool_name_prefix:
            parts.append(self.config.additional_tool_name_prefix)
        if self.config.prefix_tool_name_with_server_name:
            parts.append(server)
        parts.append(tool_name)
        return "__".join(parts)

    async def _run(self, transport, op: Callable[[ClientSession], Awaitable[Any]]) -> Any:
        async with transport as streams:
            read_stream, write_stream = streams[0], streams[1]
            async with ClientSession(read_stream, write_stream) as session:
                await session.initialize()
                return await op(session)

    async def _with_session(self, server: MCPServerConfig, op: Callable[[ClientSession], Awaitable[Any]]) -> Any:
        try:
            return await self._run(streamablehttp_client(server.url, headers=server.headers), op)
        except Exception as e:
            if not server.automatic_sse_fallback:
                raise MCPError(f"MCP server '{server.name}' unreachable: {e}", MCPErrorCode.CONNECTION_FAILED) from e
            logger.warning(f"Streamable HTTP failed for '{server.name}', falling back to SSE: {e}")
        try:
            return await self._run(sse_client(server.url, headers=server.headers), op)
        except Exception as e:
            raise MCPError(f"MCP server '{server.name}' unreachable over SSE: {e}", MCPErrorCode.CONNECTION_FAILED) from e

    async def list_tools(self) -> list[RemoteTool]:
        tools: list[RemoteTool] = []
        for server in self.config.servers:
            try:
                result = await self._with_session(server, lambda s: s.list_tools())
            except MCPError as e:
                if self.config.throw_on_load_error:
                    raise
                logger.error(f"Skipping tools from '{server.name}': {e.message}")
                continue
            for t in result.tools:
                name = self.exposed_name(server.name, t.name)
                schema = t.inputSchema or {"type": "object", "properties": {}}
                try:
                    args_model = build_arguments_model(f"{name}Args", schema)
                except Exception as e:
                    logger.warning(f"Unsupported input schema for tool '{name}', accepting any arguments: {e}")
                    args_model = build_arguments_model(f"{name}Args", {"type": "object"})
                tools.append(RemoteTool(
                    name=name,
                    remote_name=t.name,
                    server=server.name,
                    description=t.description or "",
                    input_schema=schema,
                    args_model=args_model,
                ))
                self._routes[name] = (server.name, t.name)
        logger.debug(f"Loaded {len(tools)} remote tool(s)")
        return tools

    async def call_tool(self, name: str, args: dict | None = None) -> Any:
        """Run a remote tool; returns structured content when present, else the joined text blocks."""
        server_name, remote_name = self._routes.get(name, (self.config.servers[0].name, name))
        server = self._servers[server_name]
        result = await self._with_session(server, lambda s: s.call_tool(remote_name, args or {}))

        text = "\n".join(c.text for c in result.content if getattr(c, "type", None) == "text")
        if result.isError:
            raise MCPError(text or f"Tool '{name}' failed", MCPErrorCode.TOOL_EXECUTION_FAILED, details={"tool": name})
        if result.structuredContent is not None:
            return result.structuredContent
        return text

