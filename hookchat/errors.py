"""
Exception hierarchy.

Raised by the services and mapped to HTTP status codes by the API layer.
"""

from typing import Optional


class HookChatError(Exception):
    """Base class for all service errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(HookChatError):
    """Request rejected before anything was persisted. Maps to: HTTP 400."""


class NotFoundError(HookChatError):
    """Conversation or attachment absent or not owned by the caller. Maps to: HTTP 404."""


class StorageError(HookChatError):
    """The session store failed to persist a change. Maps to: HTTP 500."""


class AttachmentError(HookChatError):
    """Attachment operation failed."""


class AttachmentRejectedError(AttachmentError):
    """Upload refused by the attachment policy. Maps to: HTTP 409."""


class InvalidTransitionError(AttachmentError):
    """Attachment status change that the state machine does not allow. Maps to: HTTP 409."""


class DispatchError(HookChatError):
    """The outbound webhook call did not produce a usable response."""

    kind = "dispatch_error"


class DispatchTimeout(DispatchError):
    """The webhook did not answer before the configured deadline."""

    kind = "timeout"

    def __init__(self, timeout: float):
        super().__init__(f"Webhook did not respond within {timeout:g} seconds")
        self.timeout = timeout


class DispatchTransportError(DispatchError):
    """Connection-level failure (DNS, refused connection, reset, ...)."""

    kind = "transport_error"


class DispatchNonSuccess(DispatchError):
    """The webhook answered with a non-2xx status."""

    kind = "non_success_status"

    def __init__(self, status: int, body: Optional[str] = None):
        detail = f" - {body}" if body else ""
        super().__init__(f"Webhook responded with status: {status}{detail}")
        self.status = status
        self.body = body


class DispatchCancelled(DispatchError):
    """The caller cancelled the dispatch before it completed."""

    kind = "cancelled"

    def __init__(self):
        super().__init__("Webhook request was cancelled")
