"""Database models (Data Objects) - map to database tables."""

from .conversation import ConversationDO, MessageDO, AttachmentDO, AgentDO

__all__ = ["ConversationDO", "MessageDO", "AttachmentDO", "AgentDO"]
