"""Conversation repository for database operations."""

import json
from typing import Optional, List

from .base import BaseRepository
from ..database_models.conversation import (
    ConversationDO,
    MessageDO,
    AttachmentDO,
    AgentDO,
)


_COLUMNS = "owner, id, title, agent, messages, attachments, is_archived, created_at, updated_at"


class ConversationRepository(BaseRepository):
    """Session store for the Conversation aggregate.

    Every query is scoped by owner; a conversation id is only unique
    within one owner's namespace.
    """

    def _row_to_do(self, row) -> ConversationDO:
        agent_data = json.loads(row[3]) if row[3] else None
        return ConversationDO(
            owner=row[0],
            id=row[1],
            title=row[2],
            agent=AgentDO.from_dict(agent_data) if agent_data else None,
            messages=[MessageDO.from_dict(m) for m in json.loads(row[4] or "[]")],
            attachments=[AttachmentDO.from_dict(a) for a in json.loads(row[5] or "[]")],
            is_archived=bool(row[6]),
            created_at=row[7],
            updated_at=row[8],
        )

    def upsert(self, conversation: ConversationDO) -> bool:
        """
        Insert or fully replace a conversation record.

        Args:
            conversation: ConversationDO instance

        Returns:
            True if successful, False otherwise
        """
        try:
            agent_json = json.dumps(conversation.agent.to_dict()) if conversation.agent else None
            messages_json = json.dumps([m.to_dict() for m in conversation.messages], ensure_ascii=False)
            attachments_json = json.dumps([a.to_dict() for a in conversation.attachments], ensure_ascii=False)

            self.conn.execute(f"""
                INSERT INTO conversations ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (owner, id) DO UPDATE SET
                    title = EXCLUDED.title,
                    agent = EXCLUDED.agent,
                    messages = EXCLUDED.messages,
                    attachments = EXCLUDED.attachments,
                    is_archived = EXCLUDED.is_archived,
                    updated_at = EXCLUDED.updated_at
            """, [
                conversation.owner,
                conversation.id,
                conversation.title,
                agent_json,
                messages_json,
                attachments_json,
                conversation.is_archived,
                conversation.created_at,
                conversation.updated_at,
            ])
            self.logger.debug(f"Saved conversation {conversation.id} ({len(conversation.messages)} messages)")
            return True
        except Exception as e:
            self.logger.error(f"Failed to save conversation {conversation.id}: {e}")
            return False

    def get(self, owner: str, conversation_id: str) -> Optional[ConversationDO]:
        """
        Get conversation by owner and ID.

        Args:
            owner: Owner identity
            conversation_id: Conversation ID

        Returns:
            ConversationDO instance or None
        """
        try:
            result = self.conn.execute(f"""
                SELECT {_COLUMNS}
                FROM conversations
                WHERE owner = ? AND id = ?
            """, [owner, conversation_id]).fetchone()

            if result:
                return self._row_to_do(result)
            return None
        except Exception as e:
            self.logger.error(f"Failed to get conversation {conversation_id}: {e}")
            return None

    def list_by_owner(self, owner: str, include_archived: bool = True) -> List[ConversationDO]:
        """
        List conversations for an owner, most recently updated first.

        Args:
            owner: Owner identity
            include_archived: Whether archived conversations are returned

        Returns:
            List of ConversationDO instances
        """
        try:
            query = f"SELECT {_COLUMNS} FROM conversations WHERE owner = ?"
            if not include_archived:
                query += " AND is_archived = FALSE"
            query += " ORDER BY updated_at DESC, id"

            results = self.conn.execute(query, [owner]).fetchall()
            return [self._row_to_do(row) for row in results]
        except Exception as e:
            self.logger.error(f"Failed to list conversations for {owner}: {e}")
            return []

    def delete(self, owner: str, conversation_id: str) -> bool:
        """
        Delete conversation by owner and ID.

        Args:
            owner: Owner identity
            conversation_id: Conversation ID

        Returns:
            True if successful, False otherwise
        """
        try:
            self.conn.execute(
                "DELETE FROM conversations WHERE owner = ? AND id = ?",
                [owner, conversation_id]
            )
            self.logger.info(f"Deleted conversation record: {conversation_id}")
            return True
        except Exception as e:
            self.logger.error(f"Failed to delete conversation: {e}")
            return False
