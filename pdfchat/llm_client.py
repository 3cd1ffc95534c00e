"""HTTP client for the Anthropic Messages API with prompt-caching hints."""
import json
import logging
from dataclasses import dataclass, field

import httpx
from pydantic import BaseModel, ValidationError

from pdfchat.config import Settings
from pdfchat.schemas import Usage

_log = logging.getLogger(__name__)

CACHE_CONTROL = {"type": "ephemeral"}

METADATA_PROMPT = (
    "Extract keywords and topics from this PDF document. Analyze the content and return ONLY "
    'a valid JSON object with this exact format: {"keywords": ["keyword1", "keyword2", ...], '
    '"topics": ["topic1", "topic2", ...]}. Provide 5-10 relevant keywords and 3-5 main topics. '
    "No additional text, just the JSON."
)


class LlmApiError(Exception):
    """Non-2xx response, transport failure or unreadable body."""


class LlmDecodeError(LlmApiError):
    def __init__(self, message: str, raw_text: str | None = None):
        super().__init__(message)
        self.raw_text = raw_text


class ExtractedMetadata(BaseModel):
    keywords: list[str]
    topics: list[str]


@dataclass
class LlmReply:
    content: list[dict]
    usage: Usage = field(default_factory=Usage)


def pdf_message(pdf_base64: str, text: str, cache: bool = True) -> dict:
    """User message with the PDF as a document block followed by the text."""
    document = {
        "type": "document",
        "source": {
            "type": "base64",
            "media_type": "application/pdf",
            "data": pdf_base64,
        },
    }
    if cache:
        document["cache_control"] = dict(CACHE_CONTROL)
    return {"role": "user", "content": [document, {"type": "text", "text": text}]}


def text_message(role: str, text: str) -> dict:
    return {"role": role, "content": [{"type": "text", "text": text}]}


def system_blocks(text: str) -> list[dict]:
    return [{"type": "text", "text": text, "cache_control": dict(CACHE_CONTROL)}]


def extract_reply_text(content: list[dict]) -> str:
    """Все текстовые сегменты ответа через перевод строки. Другие типы не ожидаются."""
    parts: list[str] = []
    for segment in content:
        if segment.get("type") != "text" or not isinstance(segment.get("text"), str):
            raise LlmDecodeError(
                f"Unexpected content segment type: {segment.get('type')!r}",
                raw_text=json.dumps(segment)[:2000],
            )
        parts.append(segment["text"])
    return "\n".join(parts)


def strip_code_fence(text: str) -> str:
    s = text.strip()
    if s.startswith("```json"):
        s = s[len("```json"):]
    elif s.startswith("```"):
        s = s[3:]
    if s.endswith("```"):
        s = s[:-3]
    return s.strip()


class AnthropicClient:
    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.anthropic.com/v1",
        model: str = "claude-sonnet-4-5-20250929",
        api_version: str = "2023-06-01",
        beta: str | None = "prompt-caching-2024-07-31",
        metadata_max_tokens: int = 1024,
        timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.model = model
        self.api_version = api_version
        self.beta = beta
        self.metadata_max_tokens = metadata_max_tokens
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, s: Settings) -> "AnthropicClient":
        return cls(
            api_key=s.anthropic_api_key,
            api_url=s.anthropic_api_url,
            model=s.anthropic_model,
            api_version=s.anthropic_version,
            beta=s.anthropic_beta or None,
            metadata_max_tokens=s.metadata_max_tokens,
            timeout=s.llm_timeout_seconds,
        )

    def _headers(self) -> dict[str, str]:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
            "content-type": "application/json",
        }
        if self.beta:
            headers["anthropic-beta"] = self.beta
        return headers

    async def chat(
        self,
        model: str,
        max_tokens: int,
        messages: list[dict],
        system: list[dict] | None = None,
    ) -> LlmReply:
        payload: dict = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if system is not None:
            payload["system"] = system
        url = f"{self.api_url}/messages"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            _log.warning("LLM request failed: url=%s error=%s", url, e)
            raise LlmApiError(f"Claude API request failed: {e}") from e
        if not r.is_success:
            raise LlmApiError(f"Claude API error ({r.status_code}): {r.text}")
        try:
            data = r.json()
        except ValueError as e:
            raise LlmDecodeError(f"Claude API returned invalid JSON: {e}", raw_text=r.text) from e
        content = data.get("content") if isinstance(data, dict) else None
        if not isinstance(content, list):
            raise LlmDecodeError("Claude API response has no content list", raw_text=r.text)
        try:
            usage = Usage.model_validate(data.get("usage") or {})
        except ValidationError as e:
            raise LlmDecodeError(f"Claude API usage is malformed: {e}", raw_text=r.text) from e
        return LlmReply(content=content, usage=usage)

    async def extract_metadata(self, pdf_base64: str) -> ExtractedMetadata:
        """Keywords и topics документа. Ответ модели должен быть строгим JSON."""
        message = pdf_message(pdf_base64, METADATA_PROMPT, cache=False)
        reply = await self.chat(self.model, self.metadata_max_tokens, [message])
        first = reply.content[0] if reply.content else None
        if not first or first.get("type") != "text":
            raise LlmDecodeError("No text content in response")
        text = first.get("text") or ""
        try:
            return ExtractedMetadata.model_validate_json(strip_code_fence(text))
        except ValidationError as e:
            raise LlmDecodeError(
                f"Failed to parse metadata JSON: {e}. Response was: {text}",
                raw_text=text,
            ) from e
