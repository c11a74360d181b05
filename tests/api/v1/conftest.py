"""Pytest fixtures for API testing."""

import pytest
from httpx import AsyncClient, ASGITransport
from fastapi import FastAPI

from hookchat.api import register_exception_handlers
from hookchat.api.v1 import conversations, agents
from hookchat.config import AgentSettings
from hookchat.services import AgentRegistry

from fakes import make_settings


OWNER = "user-1"


@pytest.fixture
async def client(orchestrator, tmp_path):
    """Create async HTTP client over a test app with injected services."""
    agent_settings = make_settings(tmp_path, agents=[
        AgentSettings(id="bigquery", name="BigQuery Agent", webhook_url="/internal/bigquery"),
        AgentSettings(id="ga4", name="GA4 Agent", webhook_url="https://n8n.example.com/webhook/ga4", icon="chart"),
    ])

    # Inject dependencies into routers
    conversations.orchestrator = orchestrator
    agents.agent_registry = AgentRegistry(agent_settings)

    # Create a test app without lifespan (to avoid conflicts)
    test_app = FastAPI(title="hookchat test")
    register_exception_handlers(test_app)
    test_app.include_router(conversations.router)
    test_app.include_router(agents.router)

    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test", headers={"X-User-Id": OWNER}) as ac:
        yield ac

    conversations.orchestrator = None
    agents.agent_registry = None
