"""
Model backends — what the fallback executor rotates over

A backend takes an opaque request and either returns a response, streams
chunks, or raises. ``OpenAICompatibleBackend`` talks to any
chat-completions endpoint (OpenAI, Kimi/Moonshot, Groq, Ollama's /v1).
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Iterator, List, Optional

import requests

from .errors import BackendError, EmptyResponseError

logger = logging.getLogger(__name__)

DEFAULT_URLS = {
    "openai": "https://api.openai.com/v1/chat/completions",
    "moonshot": "https://api.moonshot.cn/v1/chat/completions",
    "groq": "https://api.groq.com/openai/v1/chat/completions",
    "ollama": "http://127.0.0.1:11434/v1/chat/completions",
}

_DONE = object()


@dataclass
class ToolCallDelta:
    index: int
    args_text_delta: str = ""
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None


@dataclass
class StreamChunk:
    text_delta: str = ""
    tool_call_deltas: List[ToolCallDelta] = field(default_factory=list)
    finish_reason: Optional[str] = None


class ModelBackend:
    """Base backend. Subclasses implement ``invoke`` and usually ``stream``."""

    model_id: str = "unknown"

    def invoke(self, request: Any) -> Any:
        raise NotImplementedError

    def stream(self, request: Any) -> Iterator[Any]:
        yield self.invoke(request)

    async def ainvoke(self, request: Any) -> Any:
        return await asyncio.to_thread(self.invoke, request)

    async def astream(self, request: Any) -> AsyncIterator[Any]:
        iterator = iter(self.stream(request))
        while True:
            chunk = await asyncio.to_thread(next, iterator, _DONE)
            if chunk is _DONE:
                return
            yield chunk

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.model_id!r})"


class CallableBackend(ModelBackend):
    """Wrap plain callables, e.g. a provider SDK call."""

    def __init__(
        self,
        model_id: str,
        invoke_fn: Callable[[Any], Any],
        stream_fn: Optional[Callable[[Any], Iterator[Any]]] = None,
    ) -> None:
        self.model_id = model_id
        self._invoke_fn = invoke_fn
        self._stream_fn = stream_fn

    def invoke(self, request: Any) -> Any:
        return self._invoke_fn(request)

    def stream(self, request: Any) -> Iterator[Any]:
        if self._stream_fn is None:
            yield self._invoke_fn(request)
            return
        yield from self._stream_fn(request)


def parse_sse_event(line: str) -> Optional[StreamChunk]:
    """Turn one ``data: {...}`` line into a chunk. None for keep-alives."""
    payload = line[len("data:"):].strip()
    event = json.loads(payload)
    choices = event.get("choices") or []
    if not choices:
        return None
    choice = choices[0]
    delta = choice.get("delta") or {}

    tool_deltas = []
    for call in delta.get("tool_calls") or []:
        function = call.get("function") or {}
        tool_deltas.append(
            ToolCallDelta(
                index=int(call.get("index", 0)),
                args_text_delta=function.get("arguments") or "",
                tool_call_id=call.get("id"),
                tool_name=function.get("name"),
            )
        )

    return StreamChunk(
        text_delta=delta.get("content") or "",
        tool_call_deltas=tool_deltas,
        finish_reason=choice.get("finish_reason"),
    )


class OpenAICompatibleBackend(ModelBackend):
    """Chat-completions over HTTP. Request is a dict with ``messages`` (and ``tools``)."""

    def __init__(
        self,
        model_id: str,
        url: str,
        api_key: Optional[str],
        model: str,
        timeout: int = 30,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> None:
        self.model_id = model_id
        self.url = url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.temperature = temperature

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _payload(self, request: Dict[str, Any], stream: bool) -> Dict[str, Any]:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        payload.update(request)
        if stream:
            payload["stream"] = True
        return payload

    def _check_status(self, response: requests.Response) -> None:
        if response.status_code == 200:
            return
        logger.warning("%s chat error: %s", self.model_id, response.status_code)
        raise BackendError(
            f"{self.model_id} returned HTTP {response.status_code}",
            status_code=response.status_code,
            model_id=self.model_id,
        )

    def invoke(self, request: Dict[str, Any]) -> Dict[str, Any]:
        response = requests.post(
            self.url,
            headers=self._headers(),
            json=self._payload(request, stream=False),
            timeout=self.timeout,
        )
        self._check_status(response)
        data = response.json()
        choices = data.get("choices") or []
        if not choices:
            raise EmptyResponseError(f"{self.model_id} returned no choices", model_id=self.model_id)
        return choices[0]["message"]

    def stream(self, request: Dict[str, Any]) -> Iterator[StreamChunk]:
        response = requests.post(
            self.url,
            headers=self._headers(),
            json=self._payload(request, stream=True),
            timeout=self.timeout,
            stream=True,
        )
        try:
            self._check_status(response)
            received = False
            for line in response.iter_lines(decode_unicode=True):
                if not line or not line.startswith("data:"):
                    continue
                if line[len("data:"):].strip() == "[DONE]":
                    break
                chunk = parse_sse_event(line)
                if chunk is None:
                    continue
                received = True
                yield chunk
            if not received:
                raise EmptyResponseError(f"{self.model_id} streamed no content", model_id=self.model_id)
        finally:
            response.close()
