#!/usr/bin/env python3
"""
Unit tests for model backends
"""

import asyncio
import json
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from switchboard.backends import (
    CallableBackend,
    OpenAICompatibleBackend,
    StreamChunk,
    parse_sse_event,
)
from switchboard.errors import BackendError, EmptyResponseError, classify_error
from switchboard.fallback import create_fallback


def make_response(status=200, body=None, lines=None):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = body or {}
    response.iter_lines.return_value = iter(lines or [])
    return response


def sse(delta, finish_reason=None):
    return "data: " + json.dumps({"choices": [{"delta": delta, "finish_reason": finish_reason}]})


class TestOpenAICompatibleInvoke:
    """Non-streaming chat completions."""

    @pytest.fixture
    def backend(self):
        return OpenAICompatibleBackend(
            model_id="openai/gpt-4.1",
            url="https://api.example.test/v1/chat/completions",
            api_key="sk-test",
            model="gpt-4.1",
        )

    def test_returns_assistant_message(self, backend):
        body = {"choices": [{"message": {"role": "assistant", "content": "hi"}}]}
        with patch("requests.post", return_value=make_response(body=body)) as post:
            result = backend.invoke({"messages": [{"role": "user", "content": "hello"}]})

        assert result == {"role": "assistant", "content": "hi"}
        kwargs = post.call_args.kwargs
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        assert kwargs["json"]["model"] == "gpt-4.1"
        assert kwargs["json"]["messages"][0]["content"] == "hello"
        assert "stream" not in kwargs["json"]
        assert kwargs["timeout"] == 30

    def test_rate_limit_raises_classified_error(self, backend):
        with patch("requests.post", return_value=make_response(status=429)):
            with pytest.raises(BackendError) as excinfo:
                backend.invoke({"messages": []})

        assert excinfo.value.status_code == 429
        assert excinfo.value.model_id == "openai/gpt-4.1"
        assert classify_error(excinfo.value) == "rate-limit"

    def test_no_choices_is_empty_response(self, backend):
        with patch("requests.post", return_value=make_response(body={"choices": []})):
            with pytest.raises(EmptyResponseError):
                backend.invoke({"messages": []})

    def test_no_api_key_sends_no_auth_header(self):
        backend = OpenAICompatibleBackend("ollama/llama3.2", "http://localhost/v1", None, "llama3.2")
        body = {"choices": [{"message": {"content": "ok"}}]}
        with patch("requests.post", return_value=make_response(body=body)) as post:
            backend.invoke({"messages": []})

        assert "Authorization" not in post.call_args.kwargs["headers"]


class TestOpenAICompatibleStream:
    """Server-sent-event streaming."""

    @pytest.fixture
    def backend(self):
        return OpenAICompatibleBackend("groq/llama", "https://api.example.test/v1", "k", "llama")

    def test_streams_text_and_tool_deltas(self, backend):
        lines = [
            "",
            sse({"content": "Let me check"}),
            sse({"tool_calls": [{"index": 0, "id": "call_1", "function": {"name": "done", "arguments": ""}}]}),
            sse({"tool_calls": [{"index": 0, "function": {"arguments": '{"final_'}}]}),
            ": keep-alive",
            "data: [DONE]",
            sse({"content": "never read"}),
        ]
        response = make_response(lines=lines)
        with patch("requests.post", return_value=response) as post:
            chunks = list(backend.stream({"messages": []}))

        assert post.call_args.kwargs["stream"] is True
        assert post.call_args.kwargs["json"]["stream"] is True
        assert [c.text_delta for c in chunks] == ["Let me check", "", ""]
        assert chunks[1].tool_call_deltas[0].tool_call_id == "call_1"
        assert chunks[1].tool_call_deltas[0].tool_name == "done"
        assert chunks[2].tool_call_deltas[0].args_text_delta == '{"final_'
        response.close.assert_called_once()

    def test_empty_stream_raises(self, backend):
        with patch("requests.post", return_value=make_response(lines=["data: [DONE]"])):
            with pytest.raises(EmptyResponseError):
                list(backend.stream({"messages": []}))

    def test_error_status_raises_before_output(self, backend):
        response = make_response(status=503)
        with patch("requests.post", return_value=response):
            with pytest.raises(BackendError) as excinfo:
                list(backend.stream({"messages": []}))

        assert classify_error(excinfo.value) == "server-error"
        response.close.assert_called_once()

    def test_parse_sse_event_without_choices(self):
        assert parse_sse_event('data: {"choices": []}') is None

    def test_timeout_falls_back_to_next_backend(self, backend):
        backup = CallableBackend("backup", lambda request: "unused", lambda request: iter([StreamChunk("b")]))
        fallback = create_fallback([backend, backup])

        with patch("requests.post", side_effect=requests.Timeout("read timed out")):
            chunks = list(fallback.stream({"messages": []}))

        assert [c.text_delta for c in chunks] == ["b"]
        assert fallback.last_failures[0][1].kind == "network-timeout"


class TestCallableBackend:
    def test_invoke_and_default_stream(self):
        backend = CallableBackend("fn", lambda request: request["x"] * 2)

        assert backend.invoke({"x": 2}) == 4
        assert list(backend.stream({"x": 3})) == [6]

    def test_async_wrappers(self):
        backend = CallableBackend("fn", lambda request: "done", lambda request: iter(["a", "b"]))

        async def run():
            result = await backend.ainvoke({})
            chunks = [chunk async for chunk in backend.astream({})]
            return result, chunks

        assert asyncio.run(run()) == ("done", ["a", "b"])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
