"""Root document handler: the HTML shell with injected configuration."""
from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any

from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.responses import HTMLResponse, Response

from .config import WebClientConfig
from .connection_token import redirect_with_token_cookie, refresh_token_cookie
from .csp import build_workbench_csp, extract_script_hashes
from .errors import BadRequest

logger = logging.getLogger(__name__)

CONFIGURATION_MARKER = '{{WORKBENCH_WEB_CONFIGURATION}}'
AUTH_SESSION_MARKER = '{{WORKBENCH_AUTH_SESSION}}'
REMOTE_SCHEME = 'vscode-remote'
RESOURCE_GATEWAY_SEGMENT = 'web-extension-resource'


def escape_attribute(value: str) -> str:
    return value.replace('"', '&quot;')


def _to_attribute_json(value: Any) -> str:
    return escape_attribute(json.dumps(value, separators=(',', ':')))


def _prune(value: Any) -> Any:
    """Drop None entries recursively, like JSON.stringify drops undefined."""
    if isinstance(value, dict):
        return {k: _prune(v) for k, v in value.items() if v is not None}
    return value


async def _read_text(path: Path) -> str:
    return await run_in_threadpool(path.read_text, encoding='utf-8')


class RootBootstrapHandler:
    """Renders ``/`` for the browser client."""

    def __init__(self, config: WebClientConfig):
        self.config = config
        self.resource_url_template = config.product.resource_url_template

    def _resolve_workspace_uri(self, location: str | None, remote_authority: str) -> dict | None:
        if not location:
            return None
        return {
            'scheme': REMOTE_SCHEME,
            'authority': remote_authority,
            'path': os.path.abspath(location),
        }

    def build_web_configuration(self, remote_authority: str) -> dict[str, Any]:
        """Assemble the configuration object embedded in the shell."""
        config = self.config

        wrap_in_iframe = None
        if config.driver_handle:
            # Integration tests run before the built output reaches the CDN,
            # so the iframe URL would 404.
            wrap_in_iframe = False

        extensions_gallery = None
        if self.resource_url_template is not None:
            extensions_gallery = {
                **(config.product.extensions_gallery or {}),
                'resourceUrlTemplate': self.resource_url_template.rewrite_for_gateway(
                    remote_authority, RESOURCE_GATEWAY_SEGMENT,
                ),
            }

        return _prune({
            'remoteAuthority': remote_authority,
            '_wrapWebWorkerExtHostInIframe': wrap_in_iframe,
            'developmentOptions': {
                'enableSmokeTestDriver': True if config.driver_handle == 'web' else None,
            },
            'settingsSyncOptions': {'enabled': True} if not config.is_built and config.enable_sync else None,
            'enableWorkspaceTrust': not config.disable_workspace_trust,
            'folderUri': self._resolve_workspace_uri(config.default_folder, remote_authority),
            'workspaceUri': self._resolve_workspace_uri(config.default_workspace, remote_authority),
            'productConfiguration': {
                'embedderIdentifier': 'server-distro',
                'extensionsGallery': extensions_gallery,
            },
        })

    def build_auth_session(self) -> dict[str, Any] | None:
        """Ephemeral development auth session, or None."""
        if self.config.is_built or not self.config.github_auth:
            return None
        return {
            'id': str(uuid.uuid4()),
            'providerId': 'github',
            'accessToken': self.config.github_auth,
            'scopes': [['user:email'], ['repo']],
        }

    async def render(self, request: Request) -> Response:
        remote_authority = request.headers.get('host')
        if not remote_authority:
            raise BadRequest('Missing Host header')

        redirect = redirect_with_token_cookie(request)
        if redirect is not None:
            return redirect

        template = await _read_text(self.config.workbench_html)
        auth_session = self.build_auth_session()
        data = template.replace(
            CONFIGURATION_MARKER,
            _to_attribute_json(self.build_web_configuration(remote_authority)),
            1,
        ).replace(
            AUTH_SESSION_MARKER,
            _to_attribute_json(auth_session) if auth_session else '',
            1,
        )

        csp = build_workbench_csp(extract_script_hashes(data), remote_authority)
        response = HTMLResponse(data, headers={'Content-Security-Policy': csp})
        refresh_token_cookie(response, self.config.connection_token)
        return response
