"""Services package."""

from .orchestrator import ConversationOrchestrator, SendResult
from .dispatcher import WebhookDispatcher, DispatchResult, resolve_url
from .poller import ConversationPoller, PollOutcome
from .attachments import AttachmentPolicy
from .storage import AttachmentStorage
from .agents import AgentRegistry
from .normalizer import normalize

__all__ = [
    "ConversationOrchestrator",
    "SendResult",
    "WebhookDispatcher",
    "DispatchResult",
    "resolve_url",
    "ConversationPoller",
    "PollOutcome",
    "AttachmentPolicy",
    "AttachmentStorage",
    "AgentRegistry",
    "normalize",
]
