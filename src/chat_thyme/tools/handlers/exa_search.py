"""Web search tool backed by Exa."""

from __future__ import annotations

from typing import Any

from .. import Tool, ToolContext, ToolExecutionError, ToolResult, ToolSpec, register_tool

NUM_RESULTS = 3


@register_tool(
    ToolSpec(
        name="exa_search",
        description="Perform a search query on the web with Exa, and retrieve the most relevant URLs/web data.",
        parameters={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The search query to perform.",
                },
            },
            "required": ["query"],
            "additionalProperties": False,
        },
    )
)
class ExaSearchTool(Tool):
    """Search the web and hand the top results back to the model."""

    async def run(self, *, context: ToolContext, **kwargs: Any) -> ToolResult:
        query = kwargs.get("query")
        if not query or not isinstance(query, str):
            raise ToolExecutionError("'query' must be supplied as a string", retryable=False)
        if context.search_client is None:
            raise ToolExecutionError("No search client configured", retryable=False)

        try:
            results = await context.search_client.search(query, num_results=NUM_RESULTS, highlights=True)
        except Exception as exc:
            raise ToolExecutionError(f"Exa search failed: {exc}") from exc
        return ToolResult(response=results)
