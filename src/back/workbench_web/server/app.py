"""Application factory for the workbench web server."""
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from .config import WebClientConfig
from .connection_token import add_connection_token_middleware
from .logging_middleware import add_logging_middleware
from .router import WebClientServer, create_web_client_router

logger = logging.getLogger(__name__)


def create_app(
    config: WebClientConfig | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create a pre-wired FastAPI application.

    All collaborators are injectable for testing.

    Args:
        config: Web client configuration. Defaults to one read from the
            environment.
        http_client: Client used by the resource gateway. Defaults to a
            lazily created ``httpx.AsyncClient`` owned by the gateway.

    Returns:
        FastAPI application serving the web client on every path.

    Example:
        config = WebClientConfig(app_root=Path('/opt/workbench'))
        app = create_app(config)
    """
    config = config or WebClientConfig()

    # Fail fast on unusable configuration
    try:
        config.validate_startup()
    except ValueError as e:
        logger.error('Configuration validation failed: %s', e)
        raise

    server = WebClientServer(config, http_client=http_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info('Workbench web server startup')
        logger.info('App root: %s', config.app_root)
        logger.info('Build: %s', 'built' if config.is_built else 'development')
        logger.info('Connection token mode: %s', config.connection_token.mode.value)
        if server.gateway.template is None:
            logger.info('Extension resource gateway disabled (no resourceUrlTemplate)')
        yield
        await server.aclose()

    app = FastAPI(
        title='Workbench Web Server',
        version='0.1.0',
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    # Middleware runs in reverse order of addition: logging wraps the token check
    add_connection_token_middleware(app, config.connection_token)
    add_logging_middleware(app)

    app.include_router(create_web_client_router(server))
    app.state.web_client_server = server

    return app
