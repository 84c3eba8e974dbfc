"""Error kinds raised by the web client handlers.

Every error carries the HTTP status and the short plain-text message the
client sees. Details for the server log go in ``detail``.
"""
from __future__ import annotations


class WebClientError(Exception):
    """Base class for request-terminating errors rendered by the router."""

    status_code: int = 500
    message: str = 'Internal Server Error'

    def __init__(self, detail: str = '', *, status_code: int | None = None, message: str | None = None):
        if status_code is not None:
            self.status_code = status_code
        if message is not None:
            self.message = message
        self.detail = detail or self.message
        super().__init__(f'{self.status_code}: {self.detail}')


class BadRequest(WebClientError):
    """Malformed request (missing host, path traversal attempt)."""
    status_code = 400
    message = 'Bad request'


class NotFound(WebClientError):
    """Missing asset or unmatched route. Not logged."""
    status_code = 404
    message = 'Not found'


class Forbidden(WebClientError):
    """Resource gateway authority outside the trusted parent domain."""
    status_code = 403
    message = 'Request Forbidden'


class Unconfigured(WebClientError):
    """Resource gateway used without a resource URL template."""
    status_code = 500
    message = 'No extension gallery service configured.'


class UpstreamFailure(WebClientError):
    """Upstream answered with a non-200 status."""

    def __init__(self, status_code: int, text: str | None = None):
        super().__init__(
            f'Upstream returned {status_code}',
            status_code=status_code,
            message=text or f'Request failed with status {status_code}',
        )
