"""
Import side-effects for tool handlers.

Every module imported here should register itself with the tool registry using
the :func:`chat_thyme.tools.register_tool` decorator.
"""

from __future__ import annotations

# Import concrete tools so module-level decorators execute on import.
from . import exa_search  # noqa: F401
