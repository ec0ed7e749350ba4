import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from app.core.security import SessionUser
from app.platform.ports.embeddings import EmbeddingsPort
from app.modules.knowledge.service import KnowledgeService
from app.modules.mcp.client import MCPClient, RemoteTool
from app.modules.mcp.schema import validate_arguments

logger = logging.getLogger(__name__)

GET_INFORMATION = "getInformation"

# argument names tool servers use for the FHIR connection
FHIR_BASE_URL_ALIASES = ("fhir_base_url", "fhirBaseUrl", "fhir_url", "fhirUrl", "base_url", "baseUrl")
ACCESS_TOKEN_ALIASES = ("access_token", "accessToken", "fhir_access_token", "fhirAccessToken")

@dataclass
class Tool:
    name: str
    description: str
    parameters: dict  # JSON schema shown to the model
    execute: Callable[[dict], Awaitable[Any]]
    args_model: type[BaseModel] | None = None
    context: dict[str, Any] = field(default_factory=dict)  # merged over model-supplied args

    async def run(self, args: dict | None) -> Any:
        args = {**(args or {}), **self.context}
        if self.args_model is not None:
            args = validate_arguments(self.args_model, args)
        return await self.execute(args)

class GetInformationArgs(BaseModel):
    question: str = Field(..., description="the users question")

def get_information_tool(
    session_factory: async_sessionmaker[AsyncSession],
    embedder: EmbeddingsPort | None = None,
) -> Tool:
    async def execute(args: dict) -> list[dict]:
        async with session_factory() as session:
            rows = await KnowledgeService(session, embedder).find_relevant_content(args["question"])
        return [r.model_dump() for r in rows]

    return Tool(
        name=GET_INFORMATION,
        description="get information from your knowledge base to answer questions.",
        parameters=GetInformationArgs.model_json_schema(),
        execute=execute,
        args_model=GetInformationArgs,
    )

def remote_tool(remote: RemoteTool, client: MCPClient) -> Tool:
    async def execute(args: dict) -> Any:
        return await client.call_tool(remote.name, args)

    return Tool(
        name=remote.name,
        description=remote.description,
        parameters=remote.input_schema,
        execute=execute,
        args_model=remote.args_model,
    )

def bind_session_context(tool: Tool, user: SessionUser) -> Tool:
    """
    Hide FHIR connection arguments from the model and fill them from the session.
    Tools that take no such arguments are returned unchanged.
    """
    props = dict((tool.parameters or {}).get("properties") or {})
    context: dict[str, Any] = {}
    for alias in FHIR_BASE_URL_ALIASES:
        if alias in props:
            context[alias] = user.fhir_base_url
    for alias in ACCESS_TOKEN_ALIASES:
        if alias in props:
            context[alias] = user.access_token
    if not context:
        return tool

    for key in context:
        props.pop(key)
    parameters = {
        **tool.parameters,
        "properties": props,
        "required": [r for r in tool.parameters.get("required") or [] if r not in context],
    }
    return replace(tool, parameters=parameters, context={**tool.context, **context})

def merge_tools(local: dict[str, Tool], remote: dict[str, Tool]) -> dict[str, Tool]:
    merged = dict(local)
    for name, t in remote.items():
        if name in merged:
            logger.warning(f"Remote tool '{name}' shadows a local tool; keeping the local one")
            continue
        merged[name] = t
    return merged

def to_openai_tools(tools: dict[str, Tool]) -> list[dict]:
    return [
        {
            "type": "function",
            "function": {"name": t.name, "description": t.description, "parameters": t.parameters},
        }
        for t in tools.values()
    ]
