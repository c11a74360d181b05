"""Agent API models."""

from typing import List
from pydantic import BaseModel, Field


class AgentResponse(BaseModel):
    """Response model for a selectable agent."""

    id: str = Field(description="Agent ID")
    name: str = Field(description="Display name")
    webhook_url: str = Field(description="Workflow endpoint")
    icon: str = Field(description="UI icon name")
    description: str = Field(description="Agent description")


class AgentListResponse(BaseModel):
    """Response model for listing agents."""

    agents: List[AgentResponse] = Field(description="Configured agents")
    total: int = Field(description="Number of agents")
