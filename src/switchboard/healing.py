"""Corrections for tool calls the model got slightly wrong."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

DEFAULT_ARRAY_PARAMS = ("files",)


@dataclass
class HealingResult:
    healed: bool
    message: str
    healed_args: Optional[Dict[str, Any]] = None


def heal_tool_arguments(
    tool_name: str,
    raw_args: str,
    array_params: Iterable[str] = DEFAULT_ARRAY_PARAMS,
) -> HealingResult:
    """Un-escape parameters that arrived as JSON strings instead of structures.

    Models regularly send ``"files": "[{...}]"`` where ``"files": [{...}]``
    was asked for.
    """
    try:
        args = json.loads(raw_args)
    except ValueError:
        return HealingResult(
            healed=False,
            message=f"Invalid arguments for {tool_name}: arguments are not valid JSON",
        )
    if not isinstance(args, dict):
        return HealingResult(
            healed=False,
            message=f"Invalid arguments for {tool_name}: expected a JSON object",
        )

    healed = dict(args)
    fixed = []
    for param in array_params:
        value = args.get(param)
        if not isinstance(value, str):
            continue
        try:
            healed[param] = json.loads(value)
        except ValueError:
            return HealingResult(
                healed=False,
                message=(
                    f"The '{param}' parameter should be an array, not a JSON string. "
                    f"Please provide it as: {param}: [{{...}}] not {param}: \"[{{...}}]\""
                ),
            )
        fixed.append(param)

    if not fixed:
        return HealingResult(healed=False, message=f"Nothing to correct in arguments for {tool_name}")

    return HealingResult(
        healed=True,
        message=(
            f"Arguments auto-corrected: {', '.join(fixed)} un-escaped from JSON string "
            "to proper structure."
        ),
        healed_args=healed,
    )


def no_such_tool_message(tool_name: str, available: Iterable[str]) -> str:
    return (
        f'Tool "{tool_name}" is not available. Available tools: {", ".join(available)}. '
        "Please use one of the available tools instead."
    )
