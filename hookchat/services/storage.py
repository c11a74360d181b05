"""Attachment file storage.

Files are stored under:
  {base_path}/{owner}/{conversation_id[:2]}/{conversation_id}/{attachment_id}_{name}
"""

import asyncio
import os
import shutil
from pathlib import Path

import aiofiles
import aiofiles.os

from ..utils.logger import get_logger

logger = get_logger(__name__)


def _safe_name(name: str) -> str:
    safe = Path(name).name.replace(os.sep, "_")
    if safe in ("", ".", ".."):
        return "_"
    return safe


class AttachmentStorage:
    """Writes uploaded bytes to disk and removes them again."""

    def __init__(self, base_path: str = "./data/attachments"):
        self.base_path = Path(base_path)

    def _conversation_dir(self, owner: str, conversation_id: str) -> Path:
        conv_name = _safe_name(conversation_id)
        return self.base_path / _safe_name(owner) / conv_name[:2] / conv_name

    async def save(self, owner: str, conversation_id: str, attachment_id: str, name: str, content: bytes) -> str:
        """
        Write an attachment's bytes.

        Returns:
            Path of the stored file
        """
        conv_dir = self._conversation_dir(owner, conversation_id)
        await aiofiles.os.makedirs(conv_dir, exist_ok=True)
        file_path = conv_dir / f"{attachment_id}_{_safe_name(name)}"

        async with aiofiles.open(file_path, mode="wb") as f:
            await f.write(content)

        logger.info(f"Stored attachment {attachment_id} ({len(content)} bytes) at {file_path}")
        return str(file_path)

    async def remove(self, stored_path: str) -> None:
        """
        Remove a stored file. A file that is already gone counts as removed.

        Raises:
            OSError: If the file exists but cannot be removed
        """
        try:
            await aiofiles.os.remove(stored_path)
        except FileNotFoundError:
            logger.debug(f"Attachment file already gone: {stored_path}")

    async def remove_conversation(self, owner: str, conversation_id: str) -> bool:
        """
        Remove every stored file of a conversation.

        Failures are logged, not raised: the conversation record is already
        gone and leftover files only cost disk space.

        Returns:
            True if the directory was removed
        """
        conv_dir = self._conversation_dir(owner, conversation_id)
        if not await aiofiles.os.path.isdir(conv_dir):
            return False
        try:
            await asyncio.to_thread(shutil.rmtree, conv_dir)
        except OSError as e:
            logger.warning(f"Failed to remove stored files of conversation {conversation_id} at {conv_dir}: {e}")
            return False
        logger.info(f"Removed stored files of conversation {conversation_id}")
        return True
