"""
Shared fixtures: an in-memory database per test, a stub LLM client and
MockTransport builders for the Slack, GitHub and Google HTTP APIs.
"""
import json
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from recapbot import models  # noqa: F401
from recapbot.core.database import Base


@pytest.fixture
async def engine():
    """SQLite in memory, shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


class StubCompletions:
    def __init__(self, content: Optional[str] = None, error: Optional[Exception] = None):
        self.content = content
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class StubLLM:
    """Stands in for AsyncOpenAI: exposes chat.completions.create and records calls."""

    def __init__(self, content: Optional[str] = None, error: Optional[Exception] = None):
        self.chat = SimpleNamespace(completions=StubCompletions(content, error))

    @property
    def calls(self) -> List[Dict[str, Any]]:
        return self.chat.completions.calls


@pytest.fixture
def stub_llm() -> Callable[..., StubLLM]:
    return StubLLM


@pytest.fixture
def summary_json() -> Callable[..., str]:
    def build(progress="• Shipped the thing", blockers="", plan="• Review PRs") -> str:
        return json.dumps({"progress": progress, "blockers": blockers, "plan": plan})
    return build


def _slack_handler(routes: Dict[str, Any], calls: List):
    def handler(request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        body = json.loads(request.content) if request.content else None
        calls.append((method, dict(request.url.params), body))

        result = routes.get(method)
        if callable(result):
            result = result(request)
        if result is None:
            return httpx.Response(200, json={"ok": False, "error": "unknown_method"})
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json={"ok": True, **result})
    return handler


@pytest.fixture
def slack_api():
    """
    Build a MockTransport for the Slack Web API.

    `routes` maps a method name (e.g. "chat.postMessage") to the response
    payload, a callable taking the request, or an httpx.Response. The
    returned list collects (method, query params, json body) per call.
    """
    def build(routes: Dict[str, Any]):
        calls: List = []
        return httpx.MockTransport(_slack_handler(routes, calls)), calls
    return build


@pytest.fixture
def slack_user() -> Callable[..., Dict[str, Any]]:
    def build(user_id: str, name: str = "", email: Optional[str] = None, **extra) -> Dict[str, Any]:
        profile = {"display_name": name or user_id.lower()}
        if email:
            profile["email"] = email
        return {"id": user_id, "name": user_id.lower(), "profile": profile, **extra}
    return build
