"""Tests for the base64 PDF cache."""
import base64

import pytest

from conftest import PDF_BYTES
from pdfchat.services.pdf_cache import PdfCache
from pdfchat.storage.base import PdfNotFoundError


class CountingStorage:
    """Обёртка над хранилищем: считает чтения PDF."""

    def __init__(self, inner):
        self.inner = inner
        self.reads = 0

    async def get_pdf(self, document_id):
        self.reads += 1
        return await self.inner.get_pdf(document_id)


@pytest.mark.asyncio
async def test_get_or_compute_encodes_and_caches(storage):
    document_id = await storage.store_pdf("a.pdf", PDF_BYTES)
    counting = CountingStorage(storage)
    cache = PdfCache(counting, max_entries=10, ttl_seconds=60)

    first = await cache.get_or_compute(document_id)
    second = await cache.get_or_compute(document_id)

    assert first == base64.b64encode(PDF_BYTES).decode("ascii")
    assert second == first
    assert counting.reads == 1
    assert cache.get(document_id) == first


@pytest.mark.asyncio
async def test_eviction_is_transparent(storage):
    """After eviction or clear the value is recomputed and identical."""
    a = await storage.store_pdf("a.pdf", PDF_BYTES)
    b = await storage.store_pdf("b.pdf", PDF_BYTES + b"more")
    counting = CountingStorage(storage)
    cache = PdfCache(counting, max_entries=1, ttl_seconds=60)

    original = await cache.get_or_compute(a)
    await cache.get_or_compute(b)
    assert len(cache) == 1
    assert cache.get(a) is None

    assert await cache.get_or_compute(a) == original
    cache.clear()
    assert await cache.get_or_compute(a) == original
    cache.invalidate(a)
    assert await cache.get_or_compute(a) == original
    assert counting.reads == 5


@pytest.mark.asyncio
async def test_missing_document_raises_and_is_not_cached(storage):
    cache = PdfCache(storage)
    with pytest.raises(PdfNotFoundError):
        await cache.get_or_compute("missing")
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_services_cache_uses_settings(services):
    """Cache from build_services is bounded by the configured size."""
    assert services.pdf_cache._cache.maxsize == services.settings.pdf_cache_max_entries
    assert services.pdf_cache._cache.ttl == services.settings.pdf_cache_ttl_seconds
