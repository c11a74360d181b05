"""Conversation API models."""

from datetime import datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, Field

from ..db.database_models.conversation import (
    ConversationDO,
    MessageDO,
    AttachmentDO,
    AgentDO,
)

Role = Literal["user", "assistant", "system"]
AttachmentStatus = Literal["pending", "processed", "error"]


class MessageModel(BaseModel):
    """A chat message."""

    role: Role = Field(description="Message role (user/assistant/system)")
    content: str = Field(description="Message content")
    timestamp: Optional[datetime] = Field(None, description="Append time")

    @classmethod
    def from_do(cls, message: MessageDO) -> "MessageModel":
        return cls(role=message.role, content=message.content, timestamp=message.timestamp)

    def to_do(self) -> MessageDO:
        if self.timestamp is None:
            return MessageDO(role=self.role, content=self.content)
        return MessageDO(role=self.role, content=self.content, timestamp=self.timestamp)


class AgentModel(BaseModel):
    """Workflow binding of a conversation."""

    name: Optional[str] = Field(None, description="Agent display name")
    webhook_url: Optional[str] = Field(None, description="Workflow endpoint")
    icon: Optional[str] = Field(None, description="UI icon name")
    description: Optional[str] = Field(None, description="Agent description")
    account_hint: Optional[str] = Field(None, description="Account/identity parameter forwarded to the workflow")

    @classmethod
    def from_do(cls, agent: Optional[AgentDO]) -> Optional["AgentModel"]:
        if agent is None:
            return None
        return cls(**agent.to_dict())

    def to_do(self) -> AgentDO:
        return AgentDO.from_dict(self.model_dump())


class AttachmentResponse(BaseModel):
    """Response model for an attachment."""

    id: str = Field(description="Attachment ID")
    name: str = Field(description="Original file name")
    mime_type: str = Field(description="MIME type")
    size_bytes: int = Field(description="Size in bytes")
    status: AttachmentStatus = Field(description="pending, processed or error")
    uploaded_at: datetime = Field(description="Upload timestamp")

    @classmethod
    def from_do(cls, attachment: AttachmentDO) -> "AttachmentResponse":
        return cls(
            id=attachment.id,
            name=attachment.name,
            mime_type=attachment.mime_type,
            size_bytes=attachment.size_bytes,
            status=attachment.status,
            uploaded_at=attachment.uploaded_at,
        )


class ConversationSummaryResponse(BaseModel):
    """Conversation without its message list."""

    id: str = Field(description="Conversation ID")
    title: str = Field(description="Conversation title")
    agent: Optional[AgentModel] = Field(None, description="Workflow binding")
    is_archived: bool = Field(default=False, description="Whether the conversation is archived")
    message_count: int = Field(default=0, description="Number of messages")
    created_at: datetime = Field(description="Creation timestamp")
    updated_at: datetime = Field(description="Last mutation timestamp")

    @classmethod
    def from_do(cls, conversation: ConversationDO) -> "ConversationSummaryResponse":
        return cls(
            id=conversation.id,
            title=conversation.title,
            agent=AgentModel.from_do(conversation.agent),
            is_archived=conversation.is_archived,
            message_count=len(conversation.messages),
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )


class ConversationResponse(BaseModel):
    """Response model for a full conversation."""

    id: str = Field(description="Conversation ID")
    title: str = Field(description="Conversation title")
    agent: Optional[AgentModel] = Field(None, description="Workflow binding")
    messages: List[MessageModel] = Field(default_factory=list, description="Messages in creation order")
    attachments: List[AttachmentResponse] = Field(default_factory=list, description="Attachments in upload order")
    is_archived: bool = Field(default=False, description="Whether the conversation is archived")
    created_at: datetime = Field(description="Creation timestamp")
    updated_at: datetime = Field(description="Last mutation timestamp")

    @classmethod
    def from_do(cls, conversation: ConversationDO) -> "ConversationResponse":
        return cls(
            id=conversation.id,
            title=conversation.title,
            agent=AgentModel.from_do(conversation.agent),
            messages=[MessageModel.from_do(m) for m in conversation.messages],
            attachments=[AttachmentResponse.from_do(a) for a in conversation.attachments],
            is_archived=conversation.is_archived,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )


class ConversationListResponse(BaseModel):
    """Response model for listing conversations."""

    conversations: List[ConversationSummaryResponse] = Field(description="List of conversations")
    total: int = Field(description="Total number of conversations")


class CreateConversationRequest(BaseModel):
    """Request model for creating or updating a conversation."""

    conversation_id: Optional[str] = Field(None, description="Existing or client-generated conversation ID")
    title: Optional[str] = Field(None, description="Conversation title", max_length=200)
    messages: Optional[List[MessageModel]] = Field(None, description="Replace the message list")
    is_archived: Optional[bool] = Field(None, description="Archive flag")
    agent: Optional[AgentModel] = Field(None, description="Explicit workflow binding")
    agent_id: Optional[str] = Field(None, description="Bind to a configured agent by id")


class RenameConversationRequest(BaseModel):
    """Request model for renaming a conversation."""

    title: str = Field(description="New conversation title", min_length=1, max_length=200)


class ArchiveConversationRequest(BaseModel):
    """Request model for archiving or unarchiving a conversation."""

    is_archived: bool = Field(description="New archive flag")


class SendMessageRequest(BaseModel):
    """Request model for sending a message."""

    message: str = Field(description="Message text", min_length=1)
    webhook_url: Optional[str] = Field(None, description="Endpoint override for this message")
    account_id: Optional[str] = Field(None, description="Account/identity parameter for the workflow")


class DispatchErrorInfo(BaseModel):
    """Details of a failed dispatch."""

    kind: str = Field(description="timeout, transport_error, non_success_status or cancelled")
    message: str = Field(description="Error description")
    status: Optional[int] = Field(None, description="Webhook HTTP status, for non_success_status")


class SendMessageResponse(BaseModel):
    """Response model for a sent message."""

    success: bool = Field(description="Whether the webhook produced a reply")
    response: str = Field(description="Assistant text, or the recorded error message")
    conversation: ConversationResponse = Field(description="Conversation after the send")
    error: Optional[DispatchErrorInfo] = Field(None, description="Dispatch failure details")


class AwaitReplyResponse(BaseModel):
    """Response model for the poll endpoint."""

    status: Literal["completed", "timed_out", "failed", "cancelled"] = Field(description="Poll outcome")
    attempts: int = Field(description="Number of fetches made")
    messages: List[MessageModel] = Field(default_factory=list, description="Last fetched messages")
    notice: Optional[MessageModel] = Field(None, description="System notice for terminal failures")
