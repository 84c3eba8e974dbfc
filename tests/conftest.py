"""Pytest configuration for workbench_web tests."""
import sys
from pathlib import Path

# Add src/back to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC_BACK = _PROJECT_ROOT / 'src' / 'back'
if str(_SRC_BACK) not in sys.path:
    sys.path.insert(0, str(_SRC_BACK))

import pytest

from workbench_web.server.config import ProductConfiguration, WebClientConfig
from workbench_web.server.connection_token import ConnectionTokenMode, ServerConnectionToken

WORKBENCH_HTML = (
    '<!DOCTYPE html>\n'
    '<html>\n'
    '<head>\n'
    '<meta id="vscode-workbench-web-configuration" data-settings="{{WORKBENCH_WEB_CONFIGURATION}}">\n'
    '<meta id="vscode-workbench-auth-session" data-settings="{{WORKBENCH_AUTH_SESSION}}">\n'
    '<script>\n\tself.a = 1;\n</script>\n'
    '</head>\n'
    '<body>\n'
    '<script>console.log("two");</script>\n'
    '<script src="./workbench.js"></script>\n'
    '</body>\n'
    '</html>\n'
)

CALLBACK_HTML = (
    '<!DOCTYPE html>\n'
    '<html><body>\n'
    '<script>window.opener.postMessage("done", "*");</script>\n'
    '</body></html>\n'
)

# sha256 of the two inline scripts in WORKBENCH_HTML, in document order
WORKBENCH_SCRIPT_HASHES = [
    'sha256-1e/KozuSF4TALWYdeOLCui3jtg+Sw5LNqUvgWbLq/qM=',
    'sha256-HWRjLkhjAZl8GeyxrRjTtRuJqfAiuRsDZkKdK1qUrB0=',
]
CALLBACK_SCRIPT_HASH = 'sha256-TdcH1l3RJtZ6GqwjRMhQLleaiPt6zUl+9GKZ1nRxIfo='

GALLERY = {
    'serviceUrl': 'https://marketplace.example.com/_apis/public/gallery',
    'resourceUrlTemplate': 'https://{publisher}.gallerycdn.example.com/extensions/{name}/{version}/{path}',
}


@pytest.fixture
def app_root(tmp_path):
    """Create an asset tree laid out like a server build."""
    root = tmp_path / 'app'
    workbench = root / 'out' / 'vs' / 'code' / 'browser' / 'workbench'
    workbench.mkdir(parents=True)
    (workbench / 'workbench.html').write_text(WORKBENCH_HTML, encoding='utf-8')
    (workbench / 'workbench-dev.html').write_text(WORKBENCH_HTML, encoding='utf-8')
    (workbench / 'callback.html').write_text(CALLBACK_HTML, encoding='utf-8')

    resources = root / 'resources' / 'server'
    resources.mkdir(parents=True)
    (resources / 'favicon.ico').write_bytes(b'\x00\x00\x01\x00icon')
    (resources / 'manifest.json').write_text('{"name": "Workbench"}', encoding='utf-8')

    (root / 'a.txt').write_text('alpha', encoding='utf-8')
    (root / 'b.txt').write_text('bravo', encoding='utf-8')
    (root / 'style.css').write_text('body { margin: 0; }', encoding='utf-8')
    (root / 'sub dir').mkdir()
    (root / 'sub dir' / 'main.js').write_text('export {};', encoding='utf-8')
    return root


@pytest.fixture
def make_config(app_root):
    """Build a WebClientConfig independent of the process environment."""

    def _make(**overrides) -> WebClientConfig:
        defaults = dict(
            app_root=app_root,
            is_built=True,
            driver_handle=None,
            default_folder=None,
            default_workspace=None,
            enable_sync=False,
            disable_workspace_trust=False,
            github_auth=None,
            connection_token=ServerConnectionToken(ConnectionTokenMode.NONE),
            product=ProductConfiguration(extensions_gallery=dict(GALLERY)),
        )
        defaults.update(overrides)
        return WebClientConfig(**defaults)

    return _make
