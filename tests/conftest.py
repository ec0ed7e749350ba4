import os

# must be set before app settings are imported
os.environ.setdefault("ENV", "local")
os.environ.setdefault("EMBEDDINGS_PROVIDER", "hashing")
os.environ.setdefault("EMBEDDINGS_DIM", "64")
os.environ.setdefault("SESSION_SECRET", "test-secret")

import copy
from types import SimpleNamespace
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.base import Base
from app.core.config import settings
from app.core.db import get_session_factory
from app.core.security import SessionUser, encode_session
from app.modules.identity import models as _identity  # noqa: F401
from app.modules.chats import models as _chats  # noqa: F401
from app.modules.knowledge import models as _knowledge  # noqa: F401
from app.modules.identity.schemas import FhirUserData
from app.modules.identity.service import IdentityService

@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()

@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s

async def _login(session_factory, practitioner_id: str, name: str) -> SessionUser:
    async with session_factory() as s:
        return await IdentityService(s).create_or_update_user(FhirUserData(
            practitioner_id=practitioner_id,
            name=name,
            fhir_base_url="https://fhir.example.org/r4",
            access_token=f"token-{practitioner_id}",
            patient_id="pat-1",
            patient_name="Jane Roe",
        ))

@pytest.fixture
async def alice(session_factory) -> SessionUser:
    return await _login(session_factory, "prac-alice", "Dr Alice")

@pytest.fixture
async def bob(session_factory) -> SessionUser:
    return await _login(session_factory, "prac-bob", "Dr Bob")

@pytest.fixture
def auth():
    def headers(user: SessionUser) -> dict[str, str]:
        return {"Authorization": f"Bearer {encode_session(user)}"}
    return headers

@pytest.fixture
def app(session_factory):
    from app.main import app as fastapi_app
    fastapi_app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()

@pytest.fixture
async def client(app):
    # no lifespan: startup would try to reach Postgres
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

@pytest.fixture
def api() -> str:
    return settings.API_PREFIX

# ---- fake model provider ----
def _chunk(content=None, tool_calls=None, reasoning=None, annotations=None, finish_reason=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls, reasoning_content=reasoning, annotations=annotations)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)])

def text_chunks(*pieces: str) -> list:
    return [_chunk(content=p) for p in pieces] + [_chunk(finish_reason="stop")]

def tool_call_chunks(name: str, arguments: str, call_id: str = "call_1", index: int = 0) -> list:
    # name and id arrive first, arguments are streamed in two pieces
    half = len(arguments) // 2
    return [
        _chunk(tool_calls=[SimpleNamespace(index=index, id=call_id, function=SimpleNamespace(name=name, arguments=""))]),
        _chunk(tool_calls=[SimpleNamespace(index=index, id=None, function=SimpleNamespace(name=None, arguments=arguments[:half]))]),
        _chunk(tool_calls=[SimpleNamespace(index=index, id=None, function=SimpleNamespace(name=None, arguments=arguments[half:]))]),
        _chunk(finish_reason="tool_calls"),
    ]

class FakeChatModel:
    """Replays one scripted list of chunks per `stream` call and records the requests."""
    def __init__(self, script: list[list], fail_after: int | None = None):
        self.script = list(script)
        self.fail_after = fail_after
        self.calls: list[dict] = []

    async def stream(self, messages, tools=None):
        self.calls.append({"messages": copy.deepcopy(messages), "tools": tools})
        chunks = self.script.pop(0) if self.script else text_chunks("")
        for i, c in enumerate(chunks):
            if self.fail_after is not None and i >= self.fail_after:
                raise RuntimeError("provider connection reset")
            yield c

@pytest.fixture
def fake_model():
    return FakeChatModel

@pytest.fixture
def chunks():
    return SimpleNamespace(text=text_chunks, tool_call=tool_call_chunks, raw=_chunk)
