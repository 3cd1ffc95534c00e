"""Local filesystem storage: {base}/pdfs/{id}.pdf and {base}/metadata/{id}.json."""
import logging
from pathlib import Path

import aiofiles
import aiofiles.os

from pdfchat.storage.base import (
    BlobStorageError,
    PdfNotFoundError,
    PdfStorage,
    is_valid_document_id,
    new_document_id,
    validate_pdf,
)

_log = logging.getLogger(__name__)


class LocalPdfStorage(PdfStorage):
    def __init__(self, base_path: Path | str):
        self.base_path = Path(base_path)
        try:
            (self.base_path / "pdfs").mkdir(parents=True, exist_ok=True)
            (self.base_path / "metadata").mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BlobStorageError(f"Failed to create storage at {self.base_path}: {e}") from e

    def _pdf_path(self, document_id: str) -> Path:
        return self.base_path / "pdfs" / f"{_checked_id(document_id)}.pdf"

    def _metadata_path(self, document_id: str) -> Path:
        return self.base_path / "metadata" / f"{_checked_id(document_id)}.json"

    async def store_pdf(self, filename: str, data: bytes) -> str:
        validate_pdf(data)
        document_id = new_document_id()
        path = self._pdf_path(document_id)
        try:
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise BlobStorageError(f"Failed to write {path}: {e}") from e
        _log.info("Stored %s (%d bytes) as %s", filename, len(data), document_id)
        return document_id

    async def get_pdf(self, document_id: str) -> bytes:
        path = self._pdf_path(document_id)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except FileNotFoundError:
            raise PdfNotFoundError(document_id) from None
        except OSError as e:
            raise BlobStorageError(f"Failed to read {path}: {e}") from e

    async def exists(self, document_id: str) -> bool:
        if not is_valid_document_id(document_id):
            return False
        return await aiofiles.os.path.exists(self._pdf_path(document_id))

    async def delete(self, document_id: str) -> None:
        if not is_valid_document_id(document_id):
            return
        for path in (self._pdf_path(document_id), self._metadata_path(document_id)):
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError:
                continue
            except OSError as e:
                raise BlobStorageError(f"Failed to delete {path}: {e}") from e

    async def store_metadata(self, document_id: str, metadata: bytes) -> None:
        path = self._metadata_path(document_id)
        try:
            async with aiofiles.open(path, "wb") as f:
                await f.write(metadata)
        except OSError as e:
            raise BlobStorageError(f"Failed to write {path}: {e}") from e

    async def get_metadata(self, document_id: str) -> bytes | None:
        if not is_valid_document_id(document_id):
            return None
        path = self._metadata_path(document_id)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise BlobStorageError(f"Failed to read {path}: {e}") from e


def _checked_id(document_id: str) -> str:
    # id приходит из URL: чужие символы означают «такого документа нет», а не другой файл
    if not is_valid_document_id(document_id):
        raise PdfNotFoundError(document_id)
    return document_id
