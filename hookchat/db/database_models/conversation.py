"""Conversation database model."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, Any, List, Optional

from ...utils.clock import utcnow


ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_SYSTEM = "system"
MESSAGE_ROLES = (ROLE_USER, ROLE_ASSISTANT, ROLE_SYSTEM)

STATUS_PENDING = "pending"
STATUS_PROCESSED = "processed"
STATUS_ERROR = "error"
ATTACHMENT_STATUSES = (STATUS_PENDING, STATUS_PROCESSED, STATUS_ERROR)

DEFAULT_TITLE = "New Conversation"


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        return datetime.fromisoformat(value)
    return utcnow()


@dataclass
class MessageDO:
    """A single chat message, stored inside the conversation row."""

    role: str
    content: str
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.role not in MESSAGE_ROLES:
            raise ValueError(f"Invalid message role: {self.role}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MessageDO":
        return cls(
            role=data["role"],
            content=data.get("content", ""),
            timestamp=_parse_timestamp(data.get("timestamp")),
        )


@dataclass
class AttachmentDO:
    """Metadata for an uploaded file."""

    id: str
    name: str
    mime_type: str
    size_bytes: int
    status: str = STATUS_PENDING
    uploaded_at: datetime = field(default_factory=utcnow)
    stored_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["uploaded_at"] = self.uploaded_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttachmentDO":
        return cls(
            id=data["id"],
            name=data["name"],
            mime_type=data.get("mime_type", "application/octet-stream"),
            size_bytes=int(data.get("size_bytes", 0)),
            status=data.get("status", STATUS_PENDING),
            uploaded_at=_parse_timestamp(data.get("uploaded_at")),
            stored_path=data.get("stored_path"),
        )


@dataclass
class AgentDO:
    """Workflow binding for a conversation."""

    name: str = "BigQuery Agent"
    webhook_url: str = ""
    icon: str = "database"
    description: str = "Default agent"
    account_hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentDO":
        # Missing or empty fields fall back to the defaults above
        defaults = cls()
        return cls(
            name=data.get("name") or defaults.name,
            webhook_url=data.get("webhook_url") or defaults.webhook_url,
            icon=data.get("icon") or defaults.icon,
            description=data.get("description") or defaults.description,
            account_hint=data.get("account_hint") or None,
        )


@dataclass
class ConversationDO:
    """Conversation data object - maps to conversations table."""

    id: str
    owner: str
    title: str = DEFAULT_TITLE
    messages: List[MessageDO] = field(default_factory=list)
    agent: Optional[AgentDO] = None
    attachments: List[AttachmentDO] = field(default_factory=list)
    is_archived: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def append_message(self, role: str, content: str) -> MessageDO:
        """Append a message, keeping timestamps non-decreasing."""
        now = utcnow()
        if self.messages and self.messages[-1].timestamp > now:
            now = self.messages[-1].timestamp
        message = MessageDO(role=role, content=content, timestamp=now)
        self.messages.append(message)
        self.touch()
        return message

    def touch(self) -> None:
        self.updated_at = max(utcnow(), self.updated_at)

    def get_attachment(self, attachment_id: str) -> Optional[AttachmentDO]:
        for attachment in self.attachments:
            if attachment.id == attachment_id:
                return attachment
        return None

    def attachments_with_status(self, status: str) -> List[AttachmentDO]:
        return [a for a in self.attachments if a.status == status]
