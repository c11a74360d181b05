"""Attachment state machine.

An uploaded file stays ``pending`` until the next successful send picks it
up. The workflow endpoint can only tie "the next message" to "the most recent
file", so a conversation never holds more than one pending attachment.

    pending --send ok--------------> processed
    pending --remove failed / mark--> error
"""

import uuid
from typing import List

from ..db.database_models.conversation import (
    ConversationDO,
    AttachmentDO,
    STATUS_PENDING,
    STATUS_PROCESSED,
    STATUS_ERROR,
)
from ..errors import AttachmentRejectedError, InvalidTransitionError
from ..utils.formatting import human_file_size

ALLOWED_TRANSITIONS = {
    STATUS_PENDING: (STATUS_PROCESSED, STATUS_ERROR),
    STATUS_PROCESSED: (),
    STATUS_ERROR: (),
}


class AttachmentPolicy:
    """Upload admission and status transitions for one conversation."""

    def __init__(self, max_attachments: int = 10):
        self.max_attachments = max_attachments

    def check_upload(self, conversation: ConversationDO) -> None:
        """
        Raise if ``conversation`` cannot accept another upload.

        Raises:
            AttachmentRejectedError: A file is already pending, or the cap is reached
        """
        if conversation.attachments_with_status(STATUS_PENDING):
            raise AttachmentRejectedError(
                "A file is already waiting to be sent. Send a message or remove it before uploading another."
            )
        if len(conversation.attachments) >= self.max_attachments:
            raise AttachmentRejectedError(
                f"Maximum number of files ({self.max_attachments}) reached. "
                "Please remove some files before uploading more."
            )

    def admit(
        self,
        conversation: ConversationDO,
        name: str,
        mime_type: str,
        size_bytes: int,
    ) -> AttachmentDO:
        """Check the policy and append a new pending attachment."""
        self.check_upload(conversation)
        attachment = AttachmentDO(
            id=str(uuid.uuid4()),
            name=name,
            mime_type=mime_type or "application/octet-stream",
            size_bytes=size_bytes,
        )
        conversation.attachments.append(attachment)
        conversation.touch()
        return attachment

    @staticmethod
    def transition(attachment: AttachmentDO, new_status: str) -> None:
        """Move ``attachment`` to ``new_status`` or raise InvalidTransitionError."""
        allowed = ALLOWED_TRANSITIONS.get(attachment.status, ())
        if new_status not in allowed:
            raise InvalidTransitionError(
                f"Attachment {attachment.id} cannot go from {attachment.status} to {new_status}"
            )
        attachment.status = new_status

    def mark_processed(self, attachments: List[AttachmentDO]) -> None:
        for attachment in attachments:
            self.transition(attachment, STATUS_PROCESSED)

    def mark_error(self, attachment: AttachmentDO) -> None:
        self.transition(attachment, STATUS_ERROR)


def describe_for_dispatch(attachments: List[AttachmentDO]) -> List[dict]:
    """
    Build the ``files`` entries of a dispatch payload.

    Only metadata is sent; the workflow fetches binaries by ``binaryKey``.
    """
    files = []
    for index, attachment in enumerate(attachments):
        name = attachment.name
        files.append({
            "fileName": name,
            "fileSize": human_file_size(attachment.size_bytes),
            "fileType": attachment.mime_type.split("/")[-1],
            "mimeType": attachment.mime_type,
            "fileExtension": name.rsplit(".", 1)[-1] if "." in name else "",
            "binaryKey": f"data{index}",
        })
    return files
