"""Conversation orchestration.

Owns the send-message use case end to end (append, dispatch, normalize,
append reply, persist) and the guarded mutations on a conversation. Every
operation is scoped by ``(owner, conversation_id)``.
"""

import asyncio
import uuid
import weakref
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..config import Settings
from ..db.repositories.conversation import ConversationRepository
from ..db.database_models.conversation import (
    ConversationDO,
    MessageDO,
    AgentDO,
    AttachmentDO,
    DEFAULT_TITLE,
    ROLE_USER,
    ROLE_ASSISTANT,
    STATUS_PENDING,
)
from ..errors import (
    ValidationError,
    NotFoundError,
    StorageError,
    AttachmentError,
    DispatchError,
)
from .attachments import AttachmentPolicy, describe_for_dispatch
from .dispatcher import WebhookDispatcher
from .normalizer import normalize, decode_body
from .poller import ConversationPoller, PollOutcome
from .storage import AttachmentStorage
from ..utils.logger import get_logger

logger = get_logger(__name__)

DISPATCH_ERROR_PREFIX = "I'm sorry, I encountered an error while processing your request."
MAX_TITLE_LENGTH = 200


@dataclass
class SendResult:
    """Outcome of send_message.

    ``error`` is set when the dispatch failed; the conversation then ends
    with a synthetic assistant message describing the failure.
    """

    assistant_text: str
    conversation: ConversationDO
    error: Optional[DispatchError] = None

    @property
    def success(self) -> bool:
        return self.error is None


class ConversationOrchestrator:
    """Single entry point for conversation use cases."""

    def __init__(
        self,
        repo: ConversationRepository,
        dispatcher: WebhookDispatcher,
        settings: Settings,
        storage: Optional[AttachmentStorage] = None,
    ):
        self.repo = repo
        self.dispatcher = dispatcher
        self.settings = settings
        self.storage = storage or AttachmentStorage(settings.attachments_dir)
        self.policy = AttachmentPolicy(settings.max_attachments)
        # Held by running coroutines only; idle locks are collected
        self._locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = weakref.WeakValueDictionary()

    # === Helpers ===

    def _lock_for(self, owner: str, conversation_id: str) -> asyncio.Lock:
        key = (owner, conversation_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @staticmethod
    def _require(value: Optional[str], name: str) -> str:
        if value is None or not str(value).strip():
            raise ValidationError(f"{name} is required")
        return value

    def _save(self, conversation: ConversationDO) -> None:
        if not self.repo.upsert(conversation):
            raise StorageError(f"Failed to save conversation {conversation.id}")

    def _load(self, owner: str, conversation_id: str) -> ConversationDO:
        self._require(owner, "owner")
        self._require(conversation_id, "conversation_id")
        conversation = self.repo.get(owner, conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation not found: {conversation_id}")
        return conversation

    def _resolve_target(self, conversation: ConversationDO, webhook_url: Optional[str]) -> str:
        target = webhook_url
        if not target and conversation.agent and conversation.agent.webhook_url:
            target = conversation.agent.webhook_url
        if not target:
            target = self.settings.default_webhook_url
        return self.dispatcher.resolve(target or "")

    def _history(self, conversation: ConversationDO) -> List[Dict[str, str]]:
        limit = self.settings.history_limit
        if limit <= 0:
            return []
        return [
            {"role": m.role, "content": m.content}
            for m in conversation.messages[-limit:]
        ]

    def build_payload(
        self,
        conversation: ConversationDO,
        text: str,
        pending: List[AttachmentDO],
        account_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Request body for the workflow endpoint."""
        payload: Dict[str, Any] = {
            "message": text,
            "conversationId": conversation.id,
            "userId": conversation.owner,
            "history": self._history(conversation),
            "files": describe_for_dispatch(pending),
        }
        account = account_id or (conversation.agent.account_hint if conversation.agent else None)
        if account:
            payload["accountId"] = account
        return payload

    # === Send message ===

    async def send_message(
        self,
        owner: str,
        conversation_id: Optional[str],
        text: str,
        webhook_url: Optional[str] = None,
        account_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SendResult:
        """
        Append ``text`` as a user message, dispatch it and record the reply.

        An empty or unknown ``conversation_id`` creates a new conversation.

        Args:
            owner: Caller identity
            conversation_id: Target conversation
            text: Message text
            webhook_url: Optional endpoint override for this message
            account_id: Optional identity/account parameter for the workflow
            cancel_event: Setting this event aborts the dispatch

        Returns:
            SendResult; ``error`` carries the dispatch failure, if any

        Raises:
            ValidationError: Empty text or owner, or no usable webhook URL
            StorageError: The conversation could not be saved
        """
        self._require(owner, "owner")
        if text is None or not text.strip():
            raise ValidationError("Message text is required")
        conversation_id = conversation_id or str(uuid.uuid4())

        async with self._lock_for(owner, conversation_id):
            conversation = self.repo.get(owner, conversation_id)
            if conversation is None:
                conversation = ConversationDO(id=conversation_id, owner=owner)
                logger.info(f"Creating conversation {conversation_id} for {owner} on first send")

            url = self._resolve_target(conversation, webhook_url)

            # Persist the user's input before the slow call so it survives any failure
            conversation.append_message(ROLE_USER, text)
            self._save(conversation)

            pending = conversation.attachments_with_status(STATUS_PENDING)
            payload = self.build_payload(conversation, text, pending, account_id)

            logger.info(f"Sending message to webhook: {url} for conversation: {conversation_id}")
            try:
                result = await self.dispatcher.dispatch(url, payload, cancel_event=cancel_event)
            except DispatchError as e:
                logger.error(f"Dispatch failed for conversation {conversation_id} ({e.kind}): {e}")
                content = f"{DISPATCH_ERROR_PREFIX} {e.message}"
                conversation.append_message(ROLE_ASSISTANT, content)
                self._save(conversation)
                return SendResult(assistant_text=content, conversation=conversation, error=e)

            assistant_text = normalize(decode_body(result.body))
            conversation.append_message(ROLE_ASSISTANT, assistant_text)
            self.policy.mark_processed(pending)
            self._save(conversation)

            return SendResult(assistant_text=assistant_text, conversation=conversation)

    def make_poller(self, owner: str, conversation_id: str, sleep=None) -> ConversationPoller:
        """Poller that re-reads this conversation from the store."""
        self._load(owner, conversation_id)

        async def fetch() -> List[MessageDO]:
            return self._load(owner, conversation_id).messages

        kwargs = {}
        if sleep is not None:
            kwargs["sleep"] = sleep
        return ConversationPoller(
            fetch,
            interval=self.settings.poll_interval,
            max_attempts=self.settings.poll_max_attempts,
            max_consecutive_failures=self.settings.poll_max_consecutive_failures,
            **kwargs,
        )

    async def await_reply(
        self,
        owner: str,
        conversation_id: str,
        sent_text: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PollOutcome:
        """Poll the store until the reply to ``sent_text`` appears."""
        if sent_text is None or not sent_text.strip():
            raise ValidationError("The sent message text is required")
        poller = self.make_poller(owner, conversation_id)
        return await poller.run(sent_text, cancel_event=cancel_event)

    # === Conversation management ===

    async def create_conversation(
        self,
        owner: str,
        conversation_id: Optional[str] = None,
        title: Optional[str] = None,
        agent: Optional[AgentDO] = None,
        messages: Optional[List[MessageDO]] = None,
        is_archived: Optional[bool] = None,
    ) -> ConversationDO:
        """
        Create a conversation, or update it if the id already exists for this owner.

        An update waits for any send in progress on the same conversation.
        """
        self._require(owner, "owner")
        conversation_id = conversation_id or str(uuid.uuid4())

        async with self._lock_for(owner, conversation_id):
            conversation = self.repo.get(owner, conversation_id)
            if conversation is None:
                conversation = ConversationDO(
                    id=conversation_id,
                    owner=owner,
                    title=title or DEFAULT_TITLE,
                    messages=list(messages or []),
                    agent=agent,
                    is_archived=bool(is_archived),
                )
                logger.info(f"Created conversation {conversation_id} for {owner}")
            else:
                conversation.title = title or conversation.title
                if messages is not None:
                    conversation.messages = list(messages)
                if is_archived is not None:
                    conversation.is_archived = is_archived
                if agent is not None:
                    conversation.agent = agent
                conversation.touch()
                logger.info(f"Updated conversation {conversation_id} for {owner}")

            self._save(conversation)
        return conversation

    def get_conversation(self, owner: str, conversation_id: str) -> ConversationDO:
        return self._load(owner, conversation_id)

    def list_conversations(self, owner: str, include_archived: bool = True) -> List[ConversationDO]:
        self._require(owner, "owner")
        return self.repo.list_by_owner(owner, include_archived=include_archived)

    async def rename(self, owner: str, conversation_id: str, title: str) -> ConversationDO:
        if title is None or not title.strip():
            raise ValidationError("Conversation title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Conversation title must be at most {MAX_TITLE_LENGTH} characters")

        async with self._lock_for(owner, conversation_id):
            conversation = self._load(owner, conversation_id)
            conversation.title = title.strip()
            conversation.touch()
            self._save(conversation)
        logger.info(f"Renamed conversation {conversation_id} to '{conversation.title}'")
        return conversation

    async def set_archived(self, owner: str, conversation_id: str, is_archived: bool) -> ConversationDO:
        if is_archived is None:
            raise ValidationError("is_archived is required")

        async with self._lock_for(owner, conversation_id):
            conversation = self._load(owner, conversation_id)
            conversation.is_archived = bool(is_archived)
            conversation.touch()
            self._save(conversation)
        return conversation

    async def delete(self, owner: str, conversation_id: str) -> None:
        """Delete a conversation and its stored files. Irreversible."""
        async with self._lock_for(owner, conversation_id):
            self._load(owner, conversation_id)
            if not self.repo.delete(owner, conversation_id):
                raise StorageError(f"Failed to delete conversation {conversation_id}")
            await self.storage.remove_conversation(owner, conversation_id)
        logger.info(f"Deleted conversation {conversation_id} for {owner}")

    async def reset(self, owner: str, conversation_id: str) -> ConversationDO:
        """Clear messages and attachments, keeping title and agent."""
        async with self._lock_for(owner, conversation_id):
            conversation = self._load(owner, conversation_id)
            conversation.messages = []
            conversation.attachments = []
            conversation.touch()
            self._save(conversation)
            await self.storage.remove_conversation(owner, conversation_id)
        logger.info(f"Reset conversation {conversation_id}")
        return conversation

    # === Attachments ===

    async def upload_attachment(
        self,
        owner: str,
        conversation_id: str,
        name: str,
        mime_type: str,
        content: bytes,
    ) -> AttachmentDO:
        """
        Store an uploaded file as the conversation's pending attachment.

        Raises:
            AttachmentRejectedError: A file is already pending or the cap is reached
        """
        self._require(name, "file name")

        async with self._lock_for(owner, conversation_id):
            conversation = self._load(owner, conversation_id)
            attachment = self.policy.admit(conversation, name, mime_type, len(content))
            try:
                attachment.stored_path = await self.storage.save(
                    owner, conversation_id, attachment.id, name, content
                )
            except OSError as e:
                logger.error(f"Failed to store attachment {name}: {e}")
                raise AttachmentError(f"Failed to store file {name}: {e}")
            self._save(conversation)

        logger.info(f"Uploaded attachment {attachment.id} ({name}) to conversation {conversation_id}")
        return attachment

    async def remove_attachment(self, owner: str, conversation_id: str, attachment_id: str) -> ConversationDO:
        """
        Delete an attachment and its file.

        If the file cannot be removed a pending attachment moves to ``error``
        and AttachmentError is raised.
        """
        async with self._lock_for(owner, conversation_id):
            conversation = self._load(owner, conversation_id)
            attachment = conversation.get_attachment(attachment_id)
            if attachment is None:
                raise NotFoundError(f"Attachment not found: {attachment_id}")

            if attachment.stored_path:
                try:
                    await self.storage.remove(attachment.stored_path)
                except OSError as e:
                    logger.error(f"Failed to remove attachment file {attachment.stored_path}: {e}")
                    if attachment.status == STATUS_PENDING:
                        self.policy.mark_error(attachment)
                        conversation.touch()
                        self._save(conversation)
                    raise AttachmentError(f"Failed to remove file {attachment.name}")

            conversation.attachments = [a for a in conversation.attachments if a.id != attachment_id]
            conversation.touch()
            self._save(conversation)

        logger.info(f"Removed attachment {attachment_id} from conversation {conversation_id}")
        return conversation

    async def mark_attachment_error(self, owner: str, conversation_id: str, attachment_id: str) -> AttachmentDO:
        async with self._lock_for(owner, conversation_id):
            conversation = self._load(owner, conversation_id)
            attachment = conversation.get_attachment(attachment_id)
            if attachment is None:
                raise NotFoundError(f"Attachment not found: {attachment_id}")
            self.policy.mark_error(attachment)
            conversation.touch()
            self._save(conversation)
        return attachment
