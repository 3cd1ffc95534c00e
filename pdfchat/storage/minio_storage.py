"""MinIO storage: objects pdfs/{id}.pdf and metadata/{id}.json in one bucket.

Клиент minio синхронный, вызовы уходят в executor."""
import asyncio
import io
import logging
from functools import partial

from minio import Minio
from minio.error import S3Error

from pdfchat.storage.base import (
    BlobStorageError,
    PdfNotFoundError,
    PdfStorage,
    is_valid_document_id,
    new_document_id,
    validate_pdf,
)

_log = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "NoSuchObject", "ResourceNotFound"}


class MinioPdfStorage(PdfStorage):
    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        secure: bool = False,
        client: Minio | None = None,
    ):
        self.bucket = bucket
        self._client = client or Minio(
            endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
        )
        self._bucket_checked = False

    @staticmethod
    def _pdf_key(document_id: str) -> str:
        return f"pdfs/{document_id}.pdf"

    @staticmethod
    def _metadata_key(document_id: str) -> str:
        return f"metadata/{document_id}.json"

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(func, *args, **kwargs))
        except S3Error:
            raise
        except Exception as e:
            raise BlobStorageError(f"MinIO request failed: {e}") from e

    def _ensure_bucket(self) -> None:
        if self._bucket_checked:
            return
        if not self._client.bucket_exists(self.bucket):
            self._client.make_bucket(self.bucket)
        self._bucket_checked = True

    def _put(self, key: str, data: bytes, content_type: str) -> None:
        self._ensure_bucket()
        self._client.put_object(
            self.bucket,
            key,
            io.BytesIO(data),
            len(data),
            content_type=content_type,
        )

    def _get(self, key: str) -> bytes:
        response = self._client.get_object(self.bucket, key)
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    async def _get_or_none(self, key: str) -> bytes | None:
        try:
            return await self._run(self._get, key)
        except S3Error as e:
            if e.code in _MISSING_CODES:
                return None
            raise BlobStorageError(f"MinIO get {key} failed: {e}") from e

    async def store_pdf(self, filename: str, data: bytes) -> str:
        validate_pdf(data)
        document_id = new_document_id()
        try:
            await self._run(self._put, self._pdf_key(document_id), data, "application/pdf")
        except S3Error as e:
            raise BlobStorageError(f"MinIO put failed: {e}") from e
        _log.info("Stored %s (%d bytes) in bucket %s as %s", filename, len(data), self.bucket, document_id)
        return document_id

    async def get_pdf(self, document_id: str) -> bytes:
        if not is_valid_document_id(document_id):
            raise PdfNotFoundError(document_id)
        data = await self._get_or_none(self._pdf_key(document_id))
        if data is None:
            raise PdfNotFoundError(document_id)
        return data

    async def exists(self, document_id: str) -> bool:
        if not is_valid_document_id(document_id):
            return False
        try:
            await self._run(self._client.stat_object, self.bucket, self._pdf_key(document_id))
        except S3Error as e:
            if e.code in _MISSING_CODES:
                return False
            raise BlobStorageError(f"MinIO stat failed: {e}") from e
        return True

    async def delete(self, document_id: str) -> None:
        for key in (self._pdf_key(document_id), self._metadata_key(document_id)):
            try:
                await self._run(self._client.remove_object, self.bucket, key)
            except S3Error as e:
                raise BlobStorageError(f"MinIO delete {key} failed: {e}") from e

    async def store_metadata(self, document_id: str, metadata: bytes) -> None:
        try:
            await self._run(self._put, self._metadata_key(document_id), metadata, "application/json")
        except S3Error as e:
            raise BlobStorageError(f"MinIO put failed: {e}") from e

    async def get_metadata(self, document_id: str) -> bytes | None:
        if not is_valid_document_id(document_id):
            return None
        return await self._get_or_none(self._metadata_key(document_id))
