"""
Shared test fixtures for the book editor backend.

Uses a per-test SQLite file database (aiosqlite) with table create/drop, and
an httpx MockTransport standing in for the Anthropic Messages API.
"""

import os
from collections.abc import Callable

import httpx
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-tests")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-test-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./book_editor_test.db")

from book_editor.db.base import Base  # noqa: E402
from book_editor.api.v1.helpers.rate_limit import limiter  # noqa: E402
from book_editor.main import app  # noqa: E402
import book_editor.models  # noqa: E402,F401

TEST_PASSWORD = "Password1"


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'book_editor.db'}", echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Upstream AI mock
# ---------------------------------------------------------------------------


class FakeAnthropic:
    """Scripted stand-in for the Messages API.

    Queue responses (or httpx exception classes) in order; once the queue is
    empty every call succeeds with ``default_usage``.
    """

    def __init__(self):
        self.calls: list[httpx.Request] = []
        self.queue: list = []
        self.default_text = "Edited text."
        self.default_usage = (10, 5)

    def queue_success(self, text: str = "Edited text.", input_tokens: int = 10, output_tokens: int = 5):
        self.queue.append(("ok", text, input_tokens, output_tokens))

    def queue_status(self, status_code: int, message: str = "upstream error"):
        self.queue.append(("status", status_code, message))

    def queue_exception(self, exc_class: type[Exception]):
        self.queue.append(("raise", exc_class))

    def _ok(self, text: str, input_tokens: int, output_tokens: int) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "id": "msg_test",
                "model": "claude-test",
                "content": [{"type": "text", "text": text}],
                "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
            },
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if not self.queue:
            return self._ok(self.default_text, *self.default_usage)
        kind, *args = self.queue.pop(0)
        if kind == "raise":
            raise args[0]("scripted failure", request=request)
        if kind == "status":
            status_code, message = args
            return httpx.Response(
                status_code, json={"error": {"type": "error", "message": message}}
            )
        return self._ok(*args)


@pytest_asyncio.fixture()
async def fake_ai():
    return FakeAnthropic()


@pytest_asyncio.fixture()
async def breaker():
    from book_editor.core.circuit_breaker import CircuitBreaker

    return CircuitBreaker(failure_threshold=5, reset_timeout_ms=60_000)


@pytest_asyncio.fixture()
async def editor_client(fake_ai, breaker):
    from book_editor.core.editor_client import EditorClient

    client = EditorClient(
        breaker,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(fake_ai.handler)),
        api_key="sk-ant-test-key",
        model="claude-test",
    )
    yield client
    await client.aclose()


# ---------------------------------------------------------------------------
# Test client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(scope="function")
async def test_client(db_session, breaker, editor_client):
    from book_editor.db.session import get_db

    async def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    original_breaker = app.state.circuit_breaker
    original_client = app.state.editor_client
    app.state.circuit_breaker = breaker
    app.state.editor_client = editor_client

    limiter.reset()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.state.circuit_breaker = original_breaker
    app.state.editor_client = original_client
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture()
async def user_factory(db_session) -> Callable:
    from book_editor.core.passwords import hash_password
    from book_editor.models.iam import PasswordFormat, User

    counter = {"n": 0}

    async def _create(
        username: str | None = None,
        email: str | None = None,
        password: str = TEST_PASSWORD,
        role: str = "user",
        is_active: bool = True,
        daily_token_limit: int = -1,
        monthly_token_limit: int = -1,
        **kwargs,
    ) -> User:
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        user = User(
            username=username,
            email=email or f"{username.lower()}@example.com",
            password_hash=hash_password(password),
            password_format=PasswordFormat.BCRYPT.value,
            role=role,
            is_active=is_active,
            daily_token_limit=daily_token_limit,
            monthly_token_limit=monthly_token_limit,
            failed_login_attempts=0,
            **kwargs,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create


@pytest_asyncio.fixture()
async def invite_factory(db_session) -> Callable:
    from book_editor.models.iam import InviteCode

    async def _create(code: str = "WELCOME1", is_used: bool = False) -> InviteCode:
        invite = InviteCode(code=code, is_used=is_used)
        db_session.add(invite)
        await db_session.commit()
        await db_session.refresh(invite)
        return invite

    return _create


@pytest_asyncio.fixture()
async def role_defaults(db_session):
    from book_editor.bootstrap import ensure_role_defaults

    await ensure_role_defaults(db_session)


def bearer(user) -> dict[str, str]:
    from book_editor.core.tokens import issue_access_token

    return {"Authorization": f"Bearer {issue_access_token(user)}"}


@pytest_asyncio.fixture()
async def headers_for() -> Callable:
    return bearer


@pytest_asyncio.fixture()
async def admin_user(user_factory):
    return await user_factory(username="admin", email="admin@example.com", role="admin")


@pytest_asyncio.fixture()
async def admin_headers(admin_user):
    return bearer(admin_user)
