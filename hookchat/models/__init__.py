"""Pydantic models for API request/response."""

from .conversation import (
    MessageModel,
    AgentModel,
    AttachmentResponse,
    ConversationResponse,
    ConversationSummaryResponse,
    ConversationListResponse,
    CreateConversationRequest,
    RenameConversationRequest,
    ArchiveConversationRequest,
    SendMessageRequest,
    SendMessageResponse,
    DispatchErrorInfo,
    AwaitReplyResponse,
)
from .agent import AgentResponse, AgentListResponse

__all__ = [
    "MessageModel",
    "AgentModel",
    "AttachmentResponse",
    "ConversationResponse",
    "ConversationSummaryResponse",
    "ConversationListResponse",
    "CreateConversationRequest",
    "RenameConversationRequest",
    "ArchiveConversationRequest",
    "SendMessageRequest",
    "SendMessageResponse",
    "DispatchErrorInfo",
    "AwaitReplyResponse",
    "AgentResponse",
    "AgentListResponse",
]
