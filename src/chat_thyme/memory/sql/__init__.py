from .db import ensure_schema, open_user_db
from .repositories import ChatMessagesRepo, StoredMessage

__all__ = ["ChatMessagesRepo", "StoredMessage", "ensure_schema", "open_user_db"]
