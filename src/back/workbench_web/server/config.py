"""Configuration for the workbench web server."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from .connection_token import ConnectionTokenMode, ServerConnectionToken

_TRUTHY = {'1', 'true', 'yes', 'on'}


class ConfigValidationError(ValueError):
    """Raised when the process configuration cannot be used."""


def _env_flag(name: str) -> bool:
    return os.environ.get(name, '').strip().lower() in _TRUTHY


def _env_optional(name: str) -> str | None:
    value = os.environ.get(name, '').strip()
    return value or None


@dataclass(frozen=True)
class ResourceUrlTemplate:
    """Trusted upstream location for proxied extension resources.

    The path usually carries placeholders such as ``{publisher}`` which are
    filled in by the browser client, so it is kept verbatim.
    """
    scheme: str
    authority: str
    path: str = ''
    query: str = ''

    @classmethod
    def parse(cls, template: str) -> 'ResourceUrlTemplate':
        parts = urlsplit(template)
        if not parts.scheme or not parts.netloc:
            raise ConfigValidationError(
                f"Invalid resourceUrlTemplate '{template}': scheme and authority are required"
            )
        return cls(
            scheme=parts.scheme,
            authority=parts.netloc,
            path=parts.path,
            query=parts.query,
        )

    @property
    def parent_domain(self) -> str | None:
        return parent_domain(self.authority)

    def rewrite_for_gateway(self, remote_authority: str, prefix: str) -> str:
        """Point the template at this server's gateway instead of the upstream."""
        path = self.path if self.path.startswith('/') or not self.path else f'/{self.path}'
        url = f'http://{remote_authority}/{prefix}/{self.authority}{path}'
        if self.query:
            url = f'{url}?{self.query}'
        return url


def parent_domain(authority: str) -> str | None:
    """Return the portion of ``authority`` after its first label.

    ``foo.example.com`` -> ``example.com``; an authority without a dot has
    no parent domain.
    """
    index = authority.find('.')
    return authority[index + 1:] if index != -1 else None


@dataclass(frozen=True)
class ProductConfiguration:
    """Subset of product metadata the web client server consumes."""
    name_short: str = 'Workbench'
    extensions_gallery: dict[str, Any] | None = None

    @classmethod
    def load(cls, path: Path | str | None) -> 'ProductConfiguration':
        """Load product metadata from a ``product.json`` file.

        A missing path yields the defaults (no extension gallery).
        """
        if path is None:
            return cls()
        try:
            data = json.loads(Path(path).read_text(encoding='utf-8'))
        except (OSError, ValueError) as exc:
            raise ConfigValidationError(f"Cannot read product configuration '{path}': {exc}") from exc
        gallery = data.get('extensionsGallery')
        return cls(
            name_short=data.get('nameShort', cls.name_short),
            extensions_gallery=dict(gallery) if isinstance(gallery, dict) else None,
        )

    @classmethod
    def from_env(cls) -> 'ProductConfiguration':
        return cls.load(_env_optional('WORKBENCH_PRODUCT_JSON'))

    @property
    def resource_url_template(self) -> ResourceUrlTemplate | None:
        template = (self.extensions_gallery or {}).get('resourceUrlTemplate')
        if not template:
            return None
        return ResourceUrlTemplate.parse(template)


def _connection_token_from_env() -> ServerConnectionToken:
    """Read the connection token from WORKBENCH_CONNECTION_TOKEN[_MODE].

    The mode defaults to MANDATORY when a token value is present and NONE
    otherwise. Case-insensitive.
    """
    value = os.environ.get('WORKBENCH_CONNECTION_TOKEN', '')
    raw_mode = os.environ.get('WORKBENCH_CONNECTION_TOKEN_MODE', '').strip().lower()
    if not raw_mode:
        mode = ConnectionTokenMode.MANDATORY if value else ConnectionTokenMode.NONE
    else:
        try:
            mode = ConnectionTokenMode(raw_mode)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid WORKBENCH_CONNECTION_TOKEN_MODE='{raw_mode}'. "
                f"Must be one of: {', '.join(m.value for m in ConnectionTokenMode)}"
            )
    return ServerConnectionToken(mode=mode, value=value)


@dataclass
class WebClientConfig:
    """Central configuration passed to the web client handlers.

    Every field is read once at construction time and never mutated, so
    handlers can share one instance across concurrent requests.
    """
    app_root: Path = field(default_factory=lambda: Path(os.environ.get('WORKBENCH_APP_ROOT', Path.cwd())))
    is_built: bool = field(default_factory=lambda: _env_flag('WORKBENCH_BUILT'))

    # Set by the integration-test driver ('web' enables the smoke-test driver)
    driver_handle: str | None = field(default_factory=lambda: _env_optional('WORKBENCH_DRIVER_HANDLE'))

    default_folder: str | None = field(default_factory=lambda: _env_optional('WORKBENCH_DEFAULT_FOLDER'))
    default_workspace: str | None = field(default_factory=lambda: _env_optional('WORKBENCH_DEFAULT_WORKSPACE'))
    enable_sync: bool = field(default_factory=lambda: _env_flag('WORKBENCH_ENABLE_SYNC'))
    disable_workspace_trust: bool = field(default_factory=lambda: _env_flag('WORKBENCH_DISABLE_WORKSPACE_TRUST'))

    # Development only: seeds an ephemeral auth session into the shell
    github_auth: str | None = field(default_factory=lambda: _env_optional('WORKBENCH_GITHUB_AUTH'))

    connection_token: ServerConnectionToken = field(default_factory=_connection_token_from_env)
    product: ProductConfiguration = field(default_factory=ProductConfiguration.from_env)

    def __post_init__(self) -> None:
        self.app_root = Path(self.app_root)

    @property
    def server_resources_dir(self) -> Path:
        return self.app_root / 'resources' / 'server'

    @property
    def workbench_dir(self) -> Path:
        return self.app_root / 'out' / 'vs' / 'code' / 'browser' / 'workbench'

    @property
    def workbench_html(self) -> Path:
        name = 'workbench.html' if self.is_built else 'workbench-dev.html'
        return self.workbench_dir / name

    @property
    def callback_html(self) -> Path:
        return self.workbench_dir / 'callback.html'

    def validate_startup(self) -> None:
        """Validate configuration at startup.

        Raises:
            ConfigValidationError: listing every problem found
        """
        problems = []
        if not self.app_root.is_dir():
            problems.append(f'App root is not a directory: {self.app_root}')
        token = self.connection_token
        if token.mode is not ConnectionTokenMode.NONE and not token.value:
            problems.append(
                f'Connection token mode is {token.mode.value} but no token value is set '
                f'(WORKBENCH_CONNECTION_TOKEN)'
            )
        try:
            self.product.resource_url_template
        except ConfigValidationError as exc:
            problems.append(str(exc))

        if problems:
            raise ConfigValidationError(
                'Startup validation failed.\n' + '\n'.join(f'  - {p}' for p in problems)
            )
