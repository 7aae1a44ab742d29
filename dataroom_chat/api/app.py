"""FastAPI application factory and configuration.

Hosts the NiceGUI chat page and exposes a health endpoint that reports
whether the client is configured to reach the search backend. Queries do not
go through this app: the page talks to the backend over its own WebSocket
connection.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from dataroom_chat import __version__
from dataroom_chat.client.config import ClientConfig, get_client_config

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health report of the chat host.

    Attributes:
        status: ``healthy`` when queries can be sent, ``degraded`` otherwise.
        service: Service name.
        version: Package version.
        collection_id: Default collection the chat page queries.
        backend_url: WebSocket endpoint of the search backend.
        problems: Configuration problems that block querying.
    """

    status: str
    service: str = "dataroom-chat"
    version: str = __version__
    collection_id: str
    backend_url: str
    problems: list[str] = Field(default_factory=list)


def config_problems(config: ClientConfig) -> list[str]:
    """List the configuration gaps that prevent sending a query."""
    problems = []
    if not config.collection_id:
        problems.append("COLLECTION_ID is not set")
    if not config.token_url and not config.identity_token:
        problems.append("No identity token source (IDENTITY_TOKEN_URL or IDENTITY_TOKEN)")
    return problems


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Log the backend the chat page will use, and any gaps in its setup.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application while it runs.
    """
    config: ClientConfig = app.state.config
    logger.info(
        f"Starting Dataroom Chat (backend {config.ws_url}, "
        f"collection {config.collection_id or '<unset>'})"
    )
    for problem in config_problems(config):
        logger.warning(f"Queries will fail: {problem}")
    yield
    logger.info("Shutting down Dataroom Chat...")


def create_app(config: ClientConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Client configuration; loaded from the environment if not provided.

    Returns:
        Configured FastAPI application instance.
    """
    application = FastAPI(
        title="Dataroom Chat",
        description=(
            "Streaming question answering over a dataroom collection. "
            "Renders reasoning steps, cited sources and final answers as they "
            "stream in from the search backend."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    application.state.config = config or get_client_config()

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.get("/health", response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        """Report whether the chat page is configured to query the backend."""
        config: ClientConfig = request.app.state.config
        problems = config_problems(config)
        return HealthResponse(
            status="degraded" if problems else "healthy",
            collection_id=config.collection_id,
            backend_url=config.ws_url,
            problems=problems,
        )

    return application
