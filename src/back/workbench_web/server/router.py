"""Top-level dispatcher for web client requests.

Only invoked after the connection token has been validated (see
``connection_token.add_connection_token_middleware``).
"""
from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Request
from starlette.responses import PlainTextResponse, Response

from .bootstrap import RootBootstrapHandler
from .callback import CallbackHandler
from .config import WebClientConfig
from .errors import NotFound, WebClientError
from .resource_gateway import RESOURCE_PREFIX, ResourceGateway
from .static_files import STATIC_PREFIX, StaticFileResponder

logger = logging.getLogger(__name__)

SERVER_RESOURCE_FILES = frozenset({
    '/favicon.ico',
    '/manifest.json',
    '/code-192.png',
    '/code-512.png',
})

ALL_METHODS = ['GET', 'HEAD', 'POST', 'PUT', 'DELETE', 'PATCH', 'OPTIONS']


def error_response(status_code: int, message: str) -> Response:
    return PlainTextResponse(message, status_code=status_code)


class WebClientServer:
    """Routes a request to the handler that owns its path.

    Handlers share only the immutable configuration given here.
    """

    def __init__(
        self,
        config: WebClientConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.static_files = StaticFileResponder(config.app_root)
        self.root = RootBootstrapHandler(config)
        self.callback = CallbackHandler(config.callback_html)
        self.gateway = ResourceGateway(
            config.product.resource_url_template,
            http_client=http_client,
        )

    async def _dispatch(self, request: Request) -> Response:
        path = request.scope['path']

        if path in SERVER_RESOURCE_FILES:
            return await self.static_files.serve(
                request, self.config.server_resources_dir / path[1:],
            )
        if path.startswith(STATIC_PREFIX):
            return await self.static_files.serve_static(request)
        if path == '/':
            return await self.root.render(request)
        if path == '/callback':
            return await self.callback.render(request)
        if path.startswith(RESOURCE_PREFIX):
            return await self.gateway.proxy(request)

        raise NotFound(f'No route for {path}')

    async def handle(self, request: Request) -> Response:
        """Return a response for every request, even when a handler fails."""
        try:
            return await self._dispatch(request)
        except NotFound as exc:
            return error_response(exc.status_code, exc.message)
        except WebClientError as exc:
            logger.warning(
                '%s %s -> %d: %s',
                request.method, request.scope['path'], exc.status_code, exc.detail,
            )
            return error_response(exc.status_code, exc.message)
        except Exception:
            logger.exception('Unhandled error serving %s', request.scope['path'])
            return error_response(500, 'Internal Server Error')

    async def aclose(self) -> None:
        await self.gateway.aclose()


def create_web_client_router(server: WebClientServer) -> APIRouter:
    """Create the catch-all router for the web client.

    Args:
        server: Configured WebClientServer

    Returns:
        APIRouter that sends every path to ``server.handle``
    """
    router = APIRouter()

    async def web_client(request: Request, full_path: str) -> Response:
        return await server.handle(request)

    router.add_api_route(
        '/{full_path:path}',
        web_client,
        methods=ALL_METHODS,
        include_in_schema=False,
    )
    return router
