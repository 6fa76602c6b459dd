"""Discord to OpenAI-compatible model relay with per-user chat history."""

__version__ = "0.1.0"
