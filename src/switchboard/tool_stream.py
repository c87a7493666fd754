"""
Tool Call Accumulator — streamed tool arguments to live previews

Providers send tool-call arguments as text deltas. The accumulator keeps
the text per call, re-parses it optimistically after every delta and holds
on to the last arguments that parsed, so a preview never goes blank while
a string or array is half written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .backends import StreamChunk
from .optimistic_json import OptimisticJsonParser, ParseResult, get_optimistic_value

logger = logging.getLogger(__name__)


@dataclass
class ToolCallInProgress:
    tool_call_id: str
    tool_name: str
    args_text: str = ""
    args: Optional[Dict[str, Any]] = None
    last_result: ParseResult = field(default_factory=ParseResult)

    @property
    def is_complete(self) -> bool:
        return self.last_result.is_complete


class ToolCallAccumulator:
    def __init__(self) -> None:
        self._calls: Dict[str, ToolCallInProgress] = {}
        # provider stream index -> tool call id
        self._by_index: Dict[int, str] = {}

    def start(self, tool_call_id: str, tool_name: str) -> ToolCallInProgress:
        call = ToolCallInProgress(tool_call_id=tool_call_id, tool_name=tool_name)
        self._calls[tool_call_id] = call
        return call

    def add_delta(self, tool_call_id: str, args_text_delta: str) -> Optional[ParseResult]:
        call = self._calls.get(tool_call_id)
        if call is None:
            logger.debug("delta for unknown tool call %s ignored", tool_call_id)
            return None

        call.args_text += args_text_delta or ""
        result = OptimisticJsonParser.parse(call.args_text)
        call.last_result = result
        if isinstance(result.parsed, dict):
            call.args = result.parsed
        return result

    def consume(self, chunk: StreamChunk) -> List[Tuple[str, ParseResult]]:
        """Feed one provider stream chunk; returns updated (id, result) pairs."""
        updates = []
        for delta in chunk.tool_call_deltas:
            if delta.tool_call_id and delta.tool_call_id not in self._calls:
                self.start(delta.tool_call_id, delta.tool_name or "unknown")
            if delta.tool_call_id:
                self._by_index[delta.index] = delta.tool_call_id

            tool_call_id = delta.tool_call_id or self._by_index.get(delta.index)
            if tool_call_id is None:
                continue
            result = self.add_delta(tool_call_id, delta.args_text_delta)
            if result is not None:
                updates.append((tool_call_id, result))
        return updates

    def get(self, tool_call_id: str) -> Optional[ToolCallInProgress]:
        return self._calls.get(tool_call_id)

    def in_progress(self) -> List[ToolCallInProgress]:
        return list(self._calls.values())

    def preview_value(self, tool_call_id: str, key: str, default: Any = None) -> Any:
        call = self._calls.get(tool_call_id)
        if call is None:
            return default
        return get_optimistic_value(call.last_result.extracted_values, key, default)

    def finish(self, tool_call_id: str) -> Optional[ToolCallInProgress]:
        call = self._calls.pop(tool_call_id, None)
        if call is None:
            return None
        for index, known_id in list(self._by_index.items()):
            if known_id == tool_call_id:
                del self._by_index[index]

        result = OptimisticJsonParser.parse(call.args_text)
        call.last_result = result
        if isinstance(result.parsed, dict):
            call.args = result.parsed
        elif call.args is None:
            call.args = {}
        if not result.is_complete:
            logger.warning("tool call %s (%s) finished with incomplete arguments", tool_call_id, call.tool_name)
        return call
