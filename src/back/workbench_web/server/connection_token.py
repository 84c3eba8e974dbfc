"""Connection-token cookie lifecycle.

A browser first reaches the server with the token in the ``tkn`` query
parameter. The root handler moves it into the ``vscode-tkn`` cookie and
redirects to the clean URL; every later root render extends the cookie.

The token value itself is produced elsewhere; this module only consumes it.
"""
from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable
from urllib.parse import urlencode

from fastapi import FastAPI, Request
from starlette.responses import PlainTextResponse, RedirectResponse, Response

logger = logging.getLogger(__name__)

CONNECTION_TOKEN_QUERY_NAME = 'tkn'
CONNECTION_TOKEN_COOKIE_NAME = 'vscode-tkn'
CONNECTION_TOKEN_MAX_AGE = 60 * 60 * 24 * 7  # 1 week


class ConnectionTokenMode(str, Enum):
    """Whether a connection token guards the server.

    - NONE: no token; the cookie is never issued
    - OPTIONAL: token accepted and refreshed
    - MANDATORY: token required on every request
    """
    NONE = 'none'
    OPTIONAL = 'optional'
    MANDATORY = 'mandatory'


@dataclass(frozen=True)
class ServerConnectionToken:
    mode: ConnectionTokenMode = ConnectionTokenMode.NONE
    value: str = ''

    def validate(self, candidate: str | None) -> bool:
        if self.mode is ConnectionTokenMode.NONE:
            return True
        if not candidate:
            return False
        return hmac.compare_digest(candidate.encode('utf-8'), self.value.encode('utf-8'))


def set_token_cookie(response: Response, value: str) -> None:
    response.set_cookie(
        key=CONNECTION_TOKEN_COOKIE_NAME,
        value=value,
        max_age=CONNECTION_TOKEN_MAX_AGE,
        samesite='lax',
        path='/',
    )


def redirect_with_token_cookie(request: Request) -> Response | None:
    """Convert a query-parameter token into a cookie.

    Returns a 302 to the same path without the ``tkn`` parameter, or None
    unless the request carries exactly one query token.
    """
    query_tokens = request.query_params.getlist(CONNECTION_TOKEN_QUERY_NAME)
    if len(query_tokens) != 1:
        return None
    query_token = query_tokens[0]

    remaining = [
        (key, value)
        for key, value in request.query_params.multi_items()
        if key != CONNECTION_TOKEN_QUERY_NAME
    ]
    location = request.scope['path']
    if remaining:
        location = f'{location}?{urlencode(remaining)}'

    response = RedirectResponse(url=location, status_code=302)
    set_token_cookie(response, query_token)
    return response


def refresh_token_cookie(response: Response, token: ServerConnectionToken) -> None:
    """Extend the cookie lifetime on a successful render.

    At this point the client already passed the token check, so the
    server's own value is written back.
    """
    if token.mode is not ConnectionTokenMode.NONE:
        set_token_cookie(response, token.value)


def request_has_valid_token(request: Request, token: ServerConnectionToken) -> bool:
    candidate = request.query_params.get(CONNECTION_TOKEN_QUERY_NAME)
    if candidate is None:
        candidate = request.cookies.get(CONNECTION_TOKEN_COOKIE_NAME)
    return token.validate(candidate)


def add_connection_token_middleware(app: FastAPI, token: ServerConnectionToken) -> None:
    """Reject requests that do not carry the connection token.

    The web client router assumes this check already ran. Nothing is added
    when the mode is NONE.

    Args:
        app: FastAPI application
        token: Server connection token
    """
    if token.mode is ConnectionTokenMode.NONE:
        logger.info('Connection token check disabled (mode: none)')
        return

    @app.middleware('http')
    async def connection_token_check(request: Request, call_next: Callable) -> Any:
        if not request_has_valid_token(request, token):
            logger.warning('Rejected request without valid connection token: %s', request.scope['path'])
            return PlainTextResponse('Forbidden.', status_code=403)
        return await call_next(request)

    logger.info('Connection token middleware added (mode: %s)', token.mode.value)
