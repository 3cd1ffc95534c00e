"""PDF blob storage interface. Variants are chosen at construction (see factory.py)."""
import base64
import re
import uuid
from abc import ABC, abstractmethod

PDF_MAGIC = b"%PDF"
_DOCUMENT_ID_RE = re.compile(r"[A-Za-z0-9_-]+")


class BlobStorageError(Exception):
    """Any storage failure other than a missing document."""


class PdfNotFoundError(BlobStorageError):
    def __init__(self, document_id: str):
        super().__init__(f"File not found: {document_id}")
        self.document_id = document_id


class InvalidPdfError(BlobStorageError):
    def __init__(self, message: str = "Invalid file format: expected a PDF"):
        super().__init__(message)


def validate_pdf(data: bytes) -> None:
    if len(data) < len(PDF_MAGIC) or data[: len(PDF_MAGIC)] != PDF_MAGIC:
        raise InvalidPdfError()


def new_document_id() -> str:
    return str(uuid.uuid4())


def is_valid_document_id(document_id: str) -> bool:
    """Только [A-Za-z0-9_-]; такой id никогда не переписывается."""
    return bool(_DOCUMENT_ID_RE.fullmatch(document_id))


class PdfStorage(ABC):
    """Store of PDF bytes and small JSON sidecars, keyed by generated document id."""

    @abstractmethod
    async def store_pdf(self, filename: str, data: bytes) -> str:
        """Validates the %PDF header, stores bytes, returns a new document id."""

    @abstractmethod
    async def get_pdf(self, document_id: str) -> bytes:
        """Raises PdfNotFoundError if absent."""

    @abstractmethod
    async def exists(self, document_id: str) -> bool:
        ...

    @abstractmethod
    async def delete(self, document_id: str) -> None:
        """Removes the PDF and its sidecar; missing objects are ignored."""

    @abstractmethod
    async def store_metadata(self, document_id: str, metadata: bytes) -> None:
        ...

    @abstractmethod
    async def get_metadata(self, document_id: str) -> bytes | None:
        ...

    async def get_pdf_base64(self, document_id: str) -> str:
        data = await self.get_pdf(document_id)
        return base64.b64encode(data).decode("ascii")
