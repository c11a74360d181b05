"""Agent registry built from configuration."""

from typing import List, Optional

from ..config import Settings, AgentSettings
from ..db.database_models.conversation import AgentDO


class AgentRegistry:
    """The agents a user can bind a conversation to."""

    def __init__(self, settings: Settings):
        self._agents = {agent.id: agent for agent in settings.agents if agent.webhook_url}

    def list_agents(self) -> List[AgentSettings]:
        return list(self._agents.values())

    def get(self, agent_id: str) -> Optional[AgentSettings]:
        return self._agents.get(agent_id)

    def binding_for(self, agent_id: str, account_hint: Optional[str] = None) -> Optional[AgentDO]:
        """Build a conversation agent binding from a registered agent."""
        agent = self.get(agent_id)
        if agent is None:
            return None
        return AgentDO(
            name=agent.name,
            webhook_url=agent.webhook_url,
            icon=agent.icon,
            description=agent.description,
            account_hint=account_hint,
        )
