"""Thin async wrapper around the Exa web search SDK."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from exa_py import Exa

logger = logging.getLogger(__name__)

_RESULT_FIELDS = ("title", "url", "id", "published_date", "author", "score", "text", "highlights")


def _result_to_dict(result: Any) -> dict[str, Any]:
    if isinstance(result, dict):
        return {key: result.get(key) for key in _RESULT_FIELDS if result.get(key) is not None}
    out: dict[str, Any] = {}
    for key in _RESULT_FIELDS:
        value = getattr(result, key, None)
        if value is not None:
            out[key] = value
    return out


class ExaSearchClient:
    """Run Exa ``search_and_contents`` calls off the event loop."""

    def __init__(self, api_key: str, *, exa: Exa | None = None) -> None:
        self._exa = exa or Exa(api_key)

    async def search(self, query: str, *, num_results: int = 3, highlights: bool = True) -> dict[str, Any]:
        """Return ``{"results": [...]}`` for ``query``."""
        logger.info("Exa search: %r", query)
        resp = await asyncio.to_thread(
            self._exa.search_and_contents,
            query,
            type="auto",
            highlights=highlights,
            num_results=num_results,
        )
        if resp is None:
            raise RuntimeError("Search returned no results")
        results = getattr(resp, "results", None)
        if results is None and isinstance(resp, dict):
            results = resp.get("results")
        return {"results": [_result_to_dict(r) for r in results or []]}


__all__ = ["ExaSearchClient"]
