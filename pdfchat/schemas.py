"""Pydantic schemas for API."""
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None


# Upload
class UploadResponse(BaseModel):
    document_id: str


# Chat
class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    document_id: str = Field(..., min_length=1)
    messages: list[ChatTurn] = Field(default_factory=list)


class ChatResponse(BaseModel):
    response: str
    usage: Usage | None = None


class StoredMessage(BaseModel):
    id: str
    role: str
    content: str
    created_at: datetime

    class Config:
        from_attributes = True


# Documents
class DocumentListItem(BaseModel):
    id: str
    filename: str
    keywords: list[str] = []
    topics: list[str] = []
    uploaded_at: datetime
    created_at: datetime
    updated_at: datetime


# Metadata
class BackfillResponse(BaseModel):
    processed: int
    succeeded: int
    failed: int


class ErrorResponse(BaseModel):
    error: str
    message: str
