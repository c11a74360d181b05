"""Shared pytest fixtures."""

import pytest

from hookchat.db import DatabaseConnection, ConversationRepository
from hookchat.services import ConversationOrchestrator, AttachmentStorage

from fakes import FakeWebhook, make_settings, make_dispatcher


@pytest.fixture
def settings(tmp_path):
    """Provide test settings."""
    return make_settings(tmp_path)


@pytest.fixture
def db_conn(settings):
    """Provide a fresh database connection."""
    db = DatabaseConnection(settings.database_path)
    yield db
    db.close()


@pytest.fixture
def repo(db_conn):
    """Provide a ConversationRepository."""
    return ConversationRepository(db_conn.conn)


@pytest.fixture
def webhook():
    """Webhook answering like a typical workflow."""
    return FakeWebhook(json_body={"output": "ok"})


@pytest.fixture
async def dispatcher(webhook, settings):
    """Dispatcher wired to the fake webhook."""
    d = make_dispatcher(webhook, timeout=settings.dispatch_timeout)
    yield d
    await d.close()


@pytest.fixture
def orchestrator(repo, dispatcher, settings):
    """Orchestrator over a temporary database and attachment directory."""
    return ConversationOrchestrator(
        repo,
        dispatcher,
        settings,
        storage=AttachmentStorage(settings.attachments_dir),
    )
