"""Выбор хранилища PDF по настройке STORAGE_BACKEND."""
from pdfchat.config import Settings
from pdfchat.storage.base import PdfStorage
from pdfchat.storage.local import LocalPdfStorage
from pdfchat.storage.minio_storage import MinioPdfStorage


def create_storage(s: Settings) -> PdfStorage:
    backend = s.storage_backend.strip().lower()
    if backend == "local":
        return LocalPdfStorage(s.get_upload_dir())
    if backend == "minio":
        return MinioPdfStorage(
            s.minio_endpoint,
            access_key=s.minio_access_key,
            secret_key=s.minio_secret_key,
            bucket=s.minio_bucket,
            secure=s.minio_secure,
        )
    raise ValueError(f"Unknown STORAGE_BACKEND: {s.storage_backend!r} (expected 'local' or 'minio')")
