"""Tool execution helpers."""

from __future__ import annotations

import json
from typing import Any

from . import ToolContext, ToolExecutionError, ToolResult, get_tool_entry


async def execute_tool(name: str, arguments: str | dict[str, Any], *, context: ToolContext) -> ToolResult:
    """
    Execute the registered tool ``name`` with ``arguments``.

    ``arguments`` may be a JSON string (as sent by the model) or a parsed
    mapping. Malformed arguments raise a non-retryable
    :class:`ToolExecutionError`; failures inside the tool are retryable unless
    the tool says otherwise.
    """

    entry = get_tool_entry(name)
    if entry is None:
        raise ToolExecutionError(f"Unknown tool '{name}'", retryable=False)

    if isinstance(arguments, str):
        try:
            parsed_args = json.loads(arguments) if arguments.strip() else {}
        except json.JSONDecodeError as exc:
            raise ToolExecutionError(
                f"Invalid JSON arguments for tool '{name}': {exc}", retryable=False
            ) from exc
    else:
        parsed_args = arguments

    if not isinstance(parsed_args, dict):
        raise ToolExecutionError(f"Arguments for tool '{name}' must be an object", retryable=False)

    tool = entry()
    try:
        return await tool.run(context=context, **parsed_args)
    except ToolExecutionError:
        raise
    except TypeError as exc:
        raise ToolExecutionError(str(exc), retryable=False) from exc
    except Exception as exc:
        raise ToolExecutionError(f"Tool '{name}' execution failed: {exc}") from exc
