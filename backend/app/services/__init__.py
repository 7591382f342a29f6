"""Application service helpers."""

from . import calls, conversations, group_permissions, messages, relationships, statuses

__all__ = [
    "calls",
    "conversations",
    "group_permissions",
    "messages",
    "relationships",
    "statuses",
]
