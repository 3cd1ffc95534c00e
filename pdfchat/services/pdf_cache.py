"""base64 PDF cache in front of the blob storage.

Кэш производный: промах всегда означает «пересчитать из хранилища», не ошибку.
Одновременные промахи по одному id могут кодировать PDF дважды, это допустимо."""
import base64
import logging

from cachetools import TTLCache

from pdfchat.storage.base import PdfStorage

_log = logging.getLogger(__name__)


class PdfCache:
    def __init__(self, storage: PdfStorage, max_entries: int = 100, ttl_seconds: float = 3600):
        self.storage = storage
        self._cache: TTLCache = TTLCache(maxsize=max_entries, ttl=ttl_seconds)

    def get(self, document_id: str) -> str | None:
        return self._cache.get(document_id)

    async def get_or_compute(self, document_id: str) -> str:
        """base64 of the stored PDF. Raises PdfNotFoundError if the blob is missing."""
        cached = self._cache.get(document_id)
        if cached is not None:
            return cached
        _log.debug("PDF cache miss | document_id=%s", document_id)
        data = await self.storage.get_pdf(document_id)
        encoded = base64.b64encode(data).decode("ascii")
        self._cache[document_id] = encoded
        return encoded

    def invalidate(self, document_id: str) -> None:
        self._cache.pop(document_id, None)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
