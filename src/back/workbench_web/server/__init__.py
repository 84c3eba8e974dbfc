"""FastAPI application serving the browser workbench.

Example:
    from pathlib import Path
    from workbench_web.server import create_app, WebClientConfig

    app = create_app(WebClientConfig(app_root=Path('/opt/workbench')))

    # Compose manually
    from fastapi import FastAPI
    from workbench_web.server import WebClientServer, create_web_client_router

    server = WebClientServer(WebClientConfig(app_root=Path('/opt/workbench')))
    app = FastAPI()
    app.include_router(create_web_client_router(server))
"""

# Configuration
from .config import (
    ConfigValidationError,
    ProductConfiguration,
    ResourceUrlTemplate,
    WebClientConfig,
)
from .connection_token import ConnectionTokenMode, ServerConnectionToken

# Handlers
from .router import WebClientServer, create_web_client_router

# App factory
from .app import create_app

__all__ = [
    # Configuration
    'ConfigValidationError',
    'ProductConfiguration',
    'ResourceUrlTemplate',
    'WebClientConfig',
    'ConnectionTokenMode',
    'ServerConnectionToken',
    # Handlers
    'WebClientServer',
    'create_web_client_router',
    # App factory
    'create_app',
]
