"""FastAPI main application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .config import settings
from .db import DatabaseConnection, ConversationRepository
from .services import (
    ConversationOrchestrator,
    WebhookDispatcher,
    AttachmentStorage,
    AgentRegistry,
)
from .utils.logger import init_app_logger
from .api import register_exception_handlers
from .api.v1 import conversations, agents

SERVICE_NAME = "Webhook Chat Service"
VERSION = "1.0.0"

# Initialize logger
logger = init_app_logger(settings)

# Global instances
db_conn: DatabaseConnection = None
dispatcher: WebhookDispatcher = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    Args:
        app: FastAPI application instance
    """
    global db_conn, dispatcher

    # Startup
    logger.info("=" * 70)
    logger.info(f"Starting {SERVICE_NAME}...")
    logger.info("=" * 70)

    logger.info("")
    logger.info("Server Configuration:")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")
    logger.info(f"  Debug: {settings.debug}")
    logger.info(f"  Log Level: {settings.log_level}")
    logger.info(f"  Log File: {settings.log_file}")

    logger.info("")
    logger.info("Webhook Configuration:")
    logger.info(f"  Default Webhook: {settings.default_webhook_url or 'Not set'}")
    logger.info(f"  Base URL: {settings.base_url or 'Not set'}")
    logger.info(f"  Dispatch Timeout: {settings.dispatch_timeout:g}s")
    logger.info(f"  History Limit: {settings.history_limit}")
    logger.info(f"  Polling: every {settings.poll_interval:g}s, max {settings.poll_max_attempts} attempts")

    registry = AgentRegistry(settings)
    logger.info("")
    logger.info("Agents:")
    for agent in registry.list_agents():
        logger.info(f"  {agent.id}: {agent.name} -> {agent.webhook_url}")
    if not registry.list_agents():
        logger.info("  None configured")

    logger.info("")
    logger.info("Storage:")
    logger.info(f"  Database: {settings.database_path}")
    logger.info(f"  Attachments: {settings.attachments_dir} (max {settings.max_attachments} per conversation)")

    db_conn = DatabaseConnection(settings.database_path)
    dispatcher = WebhookDispatcher(settings.dispatch_timeout, base_url=settings.base_url)

    # Set services in API modules
    conversations.orchestrator = ConversationOrchestrator(
        ConversationRepository(db_conn.conn),
        dispatcher,
        settings,
        storage=AttachmentStorage(settings.attachments_dir),
    )
    agents.agent_registry = registry

    logger.info("")
    logger.info("=" * 70)
    logger.info(f"{SERVICE_NAME} started successfully!")
    logger.info(f"Access at: http://{settings.host}:{settings.port}")
    logger.info(f"API Docs: http://{settings.host}:{settings.port}/docs")
    logger.info("=" * 70)

    yield

    # Shutdown
    logger.info("")
    logger.info(f"Shutting down {SERVICE_NAME}...")

    conversations.orchestrator = None
    agents.agent_registry = None
    if dispatcher:
        await dispatcher.close()
        dispatcher = None
    if db_conn:
        db_conn.close()
        db_conn = None

    logger.info(f"{SERVICE_NAME} shut down successfully")


# Create FastAPI application
app = FastAPI(
    title=SERVICE_NAME,
    description="Chat conversations answered by external webhook workflows",
    version=VERSION,
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include API routers
app.include_router(conversations.router)
app.include_router(agents.router)


@app.get("/")
async def read_root():
    return {
        "message": f"{SERVICE_NAME} API",
        "version": VERSION,
        "docs": "/docs",
        "health": "/api/v1/health"
    }


@app.get("/api/v1/health")
async def health():
    """
    Simple health check endpoint.

    Returns:
        Health status
    """
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": VERSION
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "hookchat.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
