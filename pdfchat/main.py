"""FastAPI app: upload, chat, documents, metadata backfill."""
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI

from pdfchat.config import settings, validate_required_settings

# Логи приложения в stderr, видны в docker logs
_app_log = logging.getLogger("pdfchat")
_app_log.setLevel(settings.log_level.upper())
if not _app_log.handlers:
    _h = logging.StreamHandler(sys.stderr)
    _h.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    _app_log.addHandler(_h)
_app_log.propagate = False
from fastapi.middleware.cors import CORSMiddleware

from pdfchat.database import async_session_maker, engine, init_db
from pdfchat.dependencies import build_services
from pdfchat.errors import register_exception_handlers
from pdfchat.routers import chat, documents, metadata, upload
from pdfchat.services.metadata_service import wait_for_background_tasks


@asynccontextmanager
async def lifespan(app: FastAPI):
    validate_required_settings(settings)
    await init_db()
    app.state.services = build_services(settings, async_session_maker)
    _app_log.info("Storage backend: %s, model: %s", settings.storage_backend, settings.anthropic_model)
    yield
    await wait_for_background_tasks(timeout=60)
    await engine.dispose()


app = FastAPI(
    title="PDF Chat",
    description="Chat with an LLM about an uploaded PDF",
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)

app.include_router(upload.router)
app.include_router(chat.router)
app.include_router(documents.router)
app.include_router(metadata.router)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "pdfchat"}
