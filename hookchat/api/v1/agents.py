"""Agent REST API routes - V1."""

from fastapi import APIRouter, HTTPException, Depends

from ...models.agent import AgentResponse, AgentListResponse
from ...services.agents import AgentRegistry

router = APIRouter(prefix="/api/v1/agents", tags=["Agents"])

# Agent registry (set by main.py)
agent_registry: AgentRegistry = None


def get_agent_registry() -> AgentRegistry:
    """Dependency to get the agent registry."""
    if agent_registry is None:
        raise HTTPException(status_code=500, detail="Agent registry not initialized")
    return agent_registry


@router.get("", response_model=AgentListResponse)
async def list_agents(registry: AgentRegistry = Depends(get_agent_registry)):
    """List the agents a conversation can be bound to."""
    agents = registry.list_agents()
    return AgentListResponse(
        agents=[
            AgentResponse(
                id=a.id,
                name=a.name,
                webhook_url=a.webhook_url,
                icon=a.icon,
                description=a.description,
            )
            for a in agents
        ],
        total=len(agents)
    )
