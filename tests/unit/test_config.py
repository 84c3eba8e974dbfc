"""Unit tests for workbench_web.server.config module."""
import json
from unittest.mock import patch

import pytest

from workbench_web.server.app import create_app
from workbench_web.server.config import (
    ConfigValidationError,
    ProductConfiguration,
    ResourceUrlTemplate,
    WebClientConfig,
    parent_domain,
)
from workbench_web.server.connection_token import ConnectionTokenMode, ServerConnectionToken

_ENV_KEYS = [
    'WORKBENCH_APP_ROOT',
    'WORKBENCH_BUILT',
    'WORKBENCH_DRIVER_HANDLE',
    'WORKBENCH_DEFAULT_FOLDER',
    'WORKBENCH_DEFAULT_WORKSPACE',
    'WORKBENCH_ENABLE_SYNC',
    'WORKBENCH_DISABLE_WORKSPACE_TRUST',
    'WORKBENCH_GITHUB_AUTH',
    'WORKBENCH_CONNECTION_TOKEN',
    'WORKBENCH_CONNECTION_TOKEN_MODE',
    'WORKBENCH_PRODUCT_JSON',
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestParentDomain:

    @pytest.mark.parametrize('authority, expected', [
        ('foo.example.com', 'example.com'),
        ('{publisher}.gallerycdn.example.com', 'gallerycdn.example.com'),
        ('example.com', 'com'),
        ('localhost', None),
        ('', None),
    ])
    def test_after_first_label(self, authority, expected):
        assert parent_domain(authority) == expected


class TestResourceUrlTemplate:

    def test_parse(self):
        template = ResourceUrlTemplate.parse('https://{publisher}.cdn.example.com/ext/{name}/{path}?v=1')
        assert template.scheme == 'https'
        assert template.authority == '{publisher}.cdn.example.com'
        assert template.path == '/ext/{name}/{path}'
        assert template.query == 'v=1'

    def test_rewrite_for_gateway(self):
        template = ResourceUrlTemplate.parse('https://{publisher}.cdn.example.com/ext/{name}/{path}?v=1')
        assert template.rewrite_for_gateway('localhost:8000', 'web-extension-resource') == (
            'http://localhost:8000/web-extension-resource/{publisher}.cdn.example.com/ext/{name}/{path}?v=1'
        )

    @pytest.mark.parametrize('bad', ['not a url', '/relative/{path}', 'https:///no-host'])
    def test_rejects_invalid(self, bad):
        with pytest.raises(ConfigValidationError):
            ResourceUrlTemplate.parse(bad)


class TestProductConfiguration:

    def test_defaults_have_no_gallery(self):
        assert ProductConfiguration().resource_url_template is None
        assert ProductConfiguration.load(None).extensions_gallery is None

    def test_load_from_file(self, tmp_path):
        product_json = tmp_path / 'product.json'
        product_json.write_text(json.dumps({
            'nameShort': 'Code - OSS',
            'extensionsGallery': {
                'serviceUrl': 'https://gallery.example.com',
                'resourceUrlTemplate': 'https://{publisher}.cdn.example.com/{path}',
            },
        }), encoding='utf-8')
        product = ProductConfiguration.load(product_json)
        assert product.name_short == 'Code - OSS'
        assert product.resource_url_template.parent_domain == 'cdn.example.com'

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(ConfigValidationError):
            ProductConfiguration.load(tmp_path / 'missing.json')


class TestFromEnv:

    def test_defaults(self, clean_env, tmp_path):
        clean_env.setenv('WORKBENCH_APP_ROOT', str(tmp_path))
        config = WebClientConfig()
        assert config.app_root == tmp_path
        assert config.is_built is False
        assert config.driver_handle is None
        assert config.connection_token.mode is ConnectionTokenMode.NONE
        assert config.product.extensions_gallery is None

    def test_flags_and_token(self, clean_env, tmp_path):
        clean_env.setenv('WORKBENCH_APP_ROOT', str(tmp_path))
        clean_env.setenv('WORKBENCH_BUILT', 'TRUE')
        clean_env.setenv('WORKBENCH_ENABLE_SYNC', '1')
        clean_env.setenv('WORKBENCH_DRIVER_HANDLE', 'web')
        clean_env.setenv('WORKBENCH_CONNECTION_TOKEN', 'tok')
        config = WebClientConfig()
        assert config.is_built is True
        assert config.enable_sync is True
        assert config.driver_handle == 'web'
        assert config.connection_token == ServerConnectionToken(ConnectionTokenMode.MANDATORY, 'tok')
        assert config.workbench_html.name == 'workbench.html'

    def test_explicit_token_mode(self, clean_env):
        clean_env.setenv('WORKBENCH_CONNECTION_TOKEN', 'tok')
        clean_env.setenv('WORKBENCH_CONNECTION_TOKEN_MODE', 'Optional')
        assert WebClientConfig().connection_token.mode is ConnectionTokenMode.OPTIONAL

    def test_invalid_token_mode(self, clean_env):
        clean_env.setenv('WORKBENCH_CONNECTION_TOKEN_MODE', 'sometimes')
        with pytest.raises(ConfigValidationError, match='WORKBENCH_CONNECTION_TOKEN_MODE'):
            WebClientConfig()


class TestValidateStartup:

    def test_valid(self, make_config):
        make_config().validate_startup()

    def test_reports_every_problem(self, make_config, tmp_path):
        config = make_config(
            app_root=tmp_path / 'missing',
            connection_token=ServerConnectionToken(ConnectionTokenMode.MANDATORY, ''),
            product=ProductConfiguration(extensions_gallery={'resourceUrlTemplate': 'nope'}),
        )
        with pytest.raises(ConfigValidationError) as exc_info:
            config.validate_startup()
        message = str(exc_info.value)
        assert 'App root is not a directory' in message
        assert 'no token value' in message
        assert "Invalid resourceUrlTemplate 'nope'" in message

    def test_create_app_fails_fast(self, make_config, tmp_path):
        with pytest.raises(ConfigValidationError):
            create_app(make_config(app_root=tmp_path / 'missing'))

    def test_create_app_reads_env_by_default(self, clean_env, app_root):
        clean_env.setenv('WORKBENCH_APP_ROOT', str(app_root))
        with patch.object(WebClientConfig, 'validate_startup') as validate:
            app = create_app()
        validate.assert_called_once()
        assert app.state.web_client_server.config.app_root == app_root
