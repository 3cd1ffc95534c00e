"""Tests for the Anthropic client: request shape, errors, metadata parsing (httpx.MockTransport)."""
import json

import httpx
import pytest

from pdfchat.llm_client import (
    METADATA_PROMPT,
    AnthropicClient,
    LlmApiError,
    LlmDecodeError,
    extract_reply_text,
    pdf_message,
    strip_code_fence,
    system_blocks,
    text_message,
)


def _client(handler) -> tuple[AnthropicClient, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def _wrapped(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = AnthropicClient(
        api_key="sk-test",
        api_url="https://llm.test/v1/",
        transport=httpx.MockTransport(_wrapped),
    )
    return client, seen


def _ok(text: str, usage: dict | None = None) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "id": "msg_1",
            "type": "message",
            "role": "assistant",
            "content": [{"type": "text", "text": text}],
            "usage": usage or {"input_tokens": 10, "output_tokens": 5},
        },
    )


@pytest.mark.asyncio
async def test_chat_sends_headers_and_payload():
    client, seen = _client(
        lambda r: _ok(
            "hi",
            {
                "input_tokens": 12,
                "output_tokens": 3,
                "cache_creation_input_tokens": 900,
                "cache_read_input_tokens": 0,
            },
        )
    )
    reply = await client.chat(
        "claude-test",
        256,
        [text_message("user", "hello")],
        system_blocks("be brief"),
    )
    request = seen[0]
    assert str(request.url) == "https://llm.test/v1/messages"
    assert request.headers["x-api-key"] == "sk-test"
    assert request.headers["anthropic-version"] == "2023-06-01"
    assert request.headers["anthropic-beta"] == "prompt-caching-2024-07-31"
    body = json.loads(request.content)
    assert body["model"] == "claude-test"
    assert body["max_tokens"] == 256
    assert body["system"] == [{"type": "text", "text": "be brief", "cache_control": {"type": "ephemeral"}}]
    assert reply.content == [{"type": "text", "text": "hi"}]
    assert reply.usage.input_tokens == 12
    assert reply.usage.cache_creation_input_tokens == 900


@pytest.mark.asyncio
async def test_chat_omits_system_when_absent():
    client, seen = _client(lambda r: _ok("hi"))
    await client.chat("m", 10, [text_message("user", "x")])
    assert "system" not in json.loads(seen[0].content)


@pytest.mark.asyncio
async def test_chat_non_2xx_carries_body():
    client, _ = _client(lambda r: httpx.Response(400, text='{"error": "invalid x-api-key"}'))
    with pytest.raises(LlmApiError, match="invalid x-api-key"):
        await client.chat("m", 10, [text_message("user", "x")])


@pytest.mark.asyncio
async def test_chat_transport_error():
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    client, _ = _client(boom)
    with pytest.raises(LlmApiError, match="connection refused"):
        await client.chat("m", 10, [text_message("user", "x")])


@pytest.mark.asyncio
async def test_chat_invalid_json_body():
    client, _ = _client(lambda r: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(LlmDecodeError) as exc_info:
        await client.chat("m", 10, [text_message("user", "x")])
    assert exc_info.value.raw_text == "<html>oops</html>"


@pytest.mark.asyncio
async def test_extract_metadata_parses_fenced_json():
    payload = '```json\n{"keywords": ["a", "b"], "topics": ["x"]}\n```'
    client, seen = _client(lambda r: _ok(payload))
    metadata = await client.extract_metadata("UERGLTE=")
    assert metadata.keywords == ["a", "b"]
    assert metadata.topics == ["x"]

    body = json.loads(seen[0].content)
    assert "system" not in body
    assert body["max_tokens"] == 1024
    (message,) = body["messages"]
    document, text = message["content"]
    assert document["type"] == "document"
    assert document["source"]["data"] == "UERGLTE="
    assert "cache_control" not in document
    assert text == {"type": "text", "text": METADATA_PROMPT}


@pytest.mark.asyncio
async def test_extract_metadata_invalid_json_keeps_raw_text():
    client, _ = _client(lambda r: _ok("Sure! Here are the keywords: a, b"))
    with pytest.raises(LlmDecodeError) as exc_info:
        await client.extract_metadata("UERGLTE=")
    assert exc_info.value.raw_text == "Sure! Here are the keywords: a, b"


@pytest.mark.asyncio
async def test_extract_metadata_wrong_shape():
    client, _ = _client(lambda r: _ok('{"keywords": "a, b"}'))
    with pytest.raises(LlmDecodeError):
        await client.extract_metadata("UERGLTE=")


def test_strip_code_fence():
    assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fence('```\n{"a": 1}```') == '{"a": 1}'
    assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'


def test_extract_reply_text():
    assert extract_reply_text([{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]) == "a\nb"
    assert extract_reply_text([]) == ""
    with pytest.raises(LlmDecodeError):
        extract_reply_text([{"type": "image", "source": {}}])


def test_message_builders():
    cached = pdf_message("QUJD", "question")
    assert cached["role"] == "user"
    assert cached["content"][0]["cache_control"] == {"type": "ephemeral"}
    assert cached["content"][1] == {"type": "text", "text": "question"}
    assert "cache_control" not in pdf_message("QUJD", "q", cache=False)["content"][0]
    assert text_message("assistant", "ok") == {
        "role": "assistant",
        "content": [{"type": "text", "text": "ok"}],
    }
