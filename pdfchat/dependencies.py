"""Application services: storage, LLM client, PDF cache, session factory.

Собираются один раз в lifespan и лежат в app.state.services; в тестах подменяются
через dependency_overrides[get_services]."""
from dataclasses import dataclass
from typing import Protocol

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pdfchat.config import Settings
from pdfchat.llm_client import AnthropicClient, ExtractedMetadata, LlmReply
from pdfchat.services.pdf_cache import PdfCache
from pdfchat.storage.base import PdfStorage
from pdfchat.storage.factory import create_storage


class LlmGateway(Protocol):
    async def chat(
        self,
        model: str,
        max_tokens: int,
        messages: list[dict],
        system: list[dict] | None = None,
    ) -> LlmReply: ...

    async def extract_metadata(self, pdf_base64: str) -> ExtractedMetadata: ...


@dataclass
class AppServices:
    settings: Settings
    storage: PdfStorage
    llm: LlmGateway
    pdf_cache: PdfCache
    session_maker: async_sessionmaker[AsyncSession]


def build_services(
    s: Settings,
    session_maker: async_sessionmaker[AsyncSession],
    storage: PdfStorage | None = None,
    llm: LlmGateway | None = None,
) -> AppServices:
    storage = storage or create_storage(s)
    return AppServices(
        settings=s,
        storage=storage,
        llm=llm or AnthropicClient.from_settings(s),
        pdf_cache=PdfCache(
            storage,
            max_entries=s.pdf_cache_max_entries,
            ttl_seconds=s.pdf_cache_ttl_seconds,
        ),
        session_maker=session_maker,
    )


def get_services(request: Request) -> AppServices:
    return request.app.state.services
