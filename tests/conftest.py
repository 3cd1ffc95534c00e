"""Pytest fixtures: app, client, db session, storage, stub LLM."""
import os
from collections.abc import AsyncGenerator

os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pdfchat.config import Settings
from pdfchat.database import get_db
from pdfchat.dependencies import AppServices, build_services, get_services
from pdfchat.llm_client import ExtractedMetadata, LlmReply
from pdfchat.main import app
from pdfchat.models import Base
from pdfchat.schemas import Usage
from pdfchat.services.metadata_service import wait_for_background_tasks
from pdfchat.storage.local import LocalPdfStorage

PDF_BYTES = b"%PDF-1.4\n1234\n%%EOF\n"


class StubLlm:
    """Записывает запросы и отдаёт заготовленные ответы вместо Claude API."""

    def __init__(self):
        self.chat_calls: list[dict] = []
        self.extract_calls: list[str] = []
        self.reply_content: list[dict] = [{"type": "text", "text": "This paper is about testing (page 1)."}]
        self.usage = Usage(input_tokens=1500, output_tokens=42, cache_read_input_tokens=1200)
        self.chat_error: Exception | None = None
        self.metadata = ExtractedMetadata(keywords=["pdf", "testing"], topics=["software"])
        self.extract_errors: list[Exception] = []

    async def chat(self, model, max_tokens, messages, system=None):
        self.chat_calls.append(
            {"model": model, "max_tokens": max_tokens, "messages": messages, "system": system}
        )
        if self.chat_error is not None:
            raise self.chat_error
        return LlmReply(content=list(self.reply_content), usage=self.usage)

    async def extract_metadata(self, pdf_base64):
        self.extract_calls.append(pdf_base64)
        if self.extract_errors:
            raise self.extract_errors.pop(0)
        return self.metadata


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        anthropic_api_key="test-key",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        upload_dir=tmp_path / "uploads",
        metadata_retry_base_delay=0.0,
        _env_file=None,
    )


@pytest.fixture
async def engine(test_settings):
    eng = create_async_engine(test_settings.database_url, echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autocommit=False, autoflush=False
    )


@pytest.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture
def storage(test_settings) -> LocalPdfStorage:
    return LocalPdfStorage(test_settings.upload_dir)


@pytest.fixture
def stub_llm() -> StubLlm:
    return StubLlm()


@pytest.fixture
def services(test_settings, session_maker, storage, stub_llm) -> AppServices:
    return build_services(test_settings, session_maker, storage=storage, llm=stub_llm)


@pytest.fixture
def override_get_db(session_maker):
    async def _get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    return _get_db


@pytest.fixture
async def async_client(override_get_db, services):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_services] = lambda: services
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    await wait_for_background_tasks(timeout=5)
    app.dependency_overrides.clear()


async def upload_pdf(client: AsyncClient, data: bytes = PDF_BYTES, filename: str = "paper.pdf") -> str:
    r = await client.post("/api/upload", files={"pdf": (filename, data, "application/pdf")})
    assert r.status_code == 200, r.text
    return r.json()["document_id"]
