"""
Switchboard — streaming tool-call core for agent loops

Provides:
- Optimistic JSON parsing of half-streamed tool arguments (OptimisticJsonParser)
- Ordered model fallback with lazy reset to the primary (create_fallback)
- Per-role executors built from YAML config (ModelRoles, load_config)
- Tool-call delta accumulation for live previews (ToolCallAccumulator)
"""

from .backends import CallableBackend, ModelBackend, OpenAICompatibleBackend, StreamChunk, ToolCallDelta
from .config import SwitchboardConfig, load_config
from .errors import (
    BackendError, ConfigError, EmptyResponseError, NoModelsAvailableError,
    NormalizedError, SwitchboardError, classify_error, normalize_error,
)
from .fallback import FallbackModel, create_fallback
from .healing import HealingResult, heal_tool_arguments
from .optimistic_json import OptimisticJsonParser, ParseResult, get_optimistic_value, parse_optimistic
from .retry import RetryConfig, retry_call
from .roles import ModelRoles
from .tool_stream import ToolCallAccumulator, ToolCallInProgress

__all__ = [
    'OptimisticJsonParser', 'ParseResult', 'parse_optimistic', 'get_optimistic_value',
    'FallbackModel', 'create_fallback',
    'ModelBackend', 'CallableBackend', 'OpenAICompatibleBackend', 'StreamChunk', 'ToolCallDelta',
    'SwitchboardError', 'ConfigError', 'NoModelsAvailableError', 'BackendError',
    'EmptyResponseError', 'NormalizedError', 'classify_error', 'normalize_error',
    'SwitchboardConfig', 'load_config', 'ModelRoles',
    'ToolCallAccumulator', 'ToolCallInProgress',
    'HealingResult', 'heal_tool_arguments',
    'RetryConfig', 'retry_call',
]
