"""Gateway for extension resources hosted on the extension gallery.

The browser cannot always reach the gallery's resource host directly, so
it asks ``/web-extension-resource/<authority>/<path>`` and this server
fetches the resource. Guardrails:

  1. The authority must share the configured template's parent domain.
  2. Only an allowlisted set of request headers is forwarded.
  3. Only ``Cache-Control`` and ``Content-Type`` are relayed back.
  4. Redirects are not followed.
"""
from __future__ import annotations

import logging
import posixpath
import re
from urllib.parse import quote

import httpx
from fastapi import Request
from starlette.responses import Response

from .config import ResourceUrlTemplate, parent_domain
from .errors import Forbidden, Unconfigured, UpstreamFailure

logger = logging.getLogger(__name__)

RESOURCE_PREFIX = '/web-extension-resource/'

FORWARDED_REQUEST_HEADERS = (
    'X-Client-Name',
    'X-Client-Version',
    'X-Machine-Id',
    'X-Client-Commit',
)

RELAYED_RESPONSE_HEADERS = (
    'Cache-Control',
    'Content-Type',
)

# host[:port] with no userinfo, query or fragment delimiters
_AUTHORITY = re.compile(r'^(?P<host>[A-Za-z0-9._~-]+)(?::(?P<port>[0-9]{1,5}))?$')
_PATH_SAFE = "/:@!$&'()*+,;=~"


def select_headers(headers, names: tuple[str, ...]) -> dict[str, str]:
    """Pick ``names`` out of a case-insensitive header map."""
    return {name: headers[name] for name in names if headers.get(name)}


def build_upstream_url(template: ResourceUrlTemplate, resource_path: str) -> tuple[str, httpx.URL]:
    """Split ``<authority>/<path>`` and return (authority, upstream URL).

    The URL is assembled from components and the decoded path is
    re-quoted, so a ``#``, ``?`` or ``@`` in it stays part of the path.

    Raises:
        Forbidden: if the authority is not a plain ``host[:port]``
    """
    normalized = posixpath.normpath(resource_path) if resource_path else ''
    if resource_path.endswith('/') and not normalized.endswith('/'):
        normalized += '/'
    authority, _, path = normalized.partition('/')

    match = _AUTHORITY.match(authority)
    if match is None:
        raise Forbidden(f'Malformed resource authority {authority!r}')
    host, port = match.group('host'), match.group('port')
    if port and int(port) > 65535:
        raise Forbidden(f'Invalid resource authority {authority!r}')
    try:
        url = httpx.URL(
            scheme=template.scheme,
            host=host,
            port=int(port) if port else None,
            path=quote(f'/{path}', safe=_PATH_SAFE),
        )
    except httpx.InvalidURL as exc:
        raise Forbidden(f'Invalid resource authority {authority!r}: {exc}')
    if url.host != host.lower():
        raise Forbidden(f'Resource authority {authority!r} parsed as host {url.host!r}')
    return authority, url


class ResourceGateway:
    """Proxies extension resource fetches to the gallery's resource host."""

    def __init__(
        self,
        template: ResourceUrlTemplate | None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.template = template
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Return the shared httpx client, creating it lazily."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(follow_redirects=False)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this gateway created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def is_trusted_authority(self, authority: str) -> bool:
        expected = self.template.parent_domain if self.template else None
        return expected is not None and parent_domain(authority) == expected

    async def proxy(self, request: Request) -> Response:
        if self.template is None:
            raise Unconfigured('Resource request without resourceUrlTemplate')

        resource_path = request.scope['path'][len(RESOURCE_PREFIX):]
        authority, url = build_upstream_url(self.template, resource_path)
        if not self.is_trusted_authority(authority):
            raise Forbidden(
                f'Authority {authority!r} is outside {self.template.parent_domain!r}'
            )

        headers = select_headers(request.headers, FORWARDED_REQUEST_HEADERS)
        client = self._get_client()
        upstream = await client.send(client.build_request('GET', url, headers=headers), stream=True)
        try:
            if upstream.status_code != 200:
                text = None
                try:
                    await upstream.aread()
                    text = upstream.text
                except Exception as exc:
                    logger.debug('Could not read upstream error body from %s: %s', url, exc)
                raise UpstreamFailure(upstream.status_code, text)

            body = await upstream.aread()
            relayed = select_headers(upstream.headers, RELAYED_RESPONSE_HEADERS)
        finally:
            await upstream.aclose()

        return Response(content=body, status_code=200, headers=relayed)
