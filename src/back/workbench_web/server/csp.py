"""Content-Security-Policy helpers for the served HTML documents."""
from __future__ import annotations

import base64
import hashlib
import re

# Matches only the bare ``<script>...</script>`` shape used by the workbench
# shells. Scripts with attributes are not hashed.
_INLINE_SCRIPT = re.compile(r'<script>([\s\S]+?)</script>', re.IGNORECASE | re.MULTILINE)

# Hash of the inline script in webWorkerExtensionHostIframe.html, which is
# shipped separately from the shell.
WORKER_BOOTSTRAP_HASH = 'sha256-fh3TwPMflhsEIpR8g1OYTIMVWhXTLcjQ9kh2tIpmv54='


def extract_script_hashes(html: str) -> list[str]:
    """Return a ``sha256-<base64>`` token per inline script, in document order."""
    hashes = []
    for match in _INLINE_SCRIPT.finditer(html):
        # CRLF and LF checkouts must hash the same
        script = match.group(1).replace('\r\n', '\n')
        digest = hashlib.sha256(script.encode('utf-8')).digest()
        hashes.append(f"sha256-{base64.b64encode(digest).decode('ascii')}")
    return hashes


def _quoted(tokens: list[str]) -> str:
    return ' '.join(f"'{token}'" for token in tokens)


def build_workbench_csp(script_hashes: list[str], remote_authority: str) -> str:
    script_src = ' '.join(filter(None, [
        "'self' 'unsafe-eval'",
        _quoted(script_hashes),
        _quoted([WORKER_BOOTSTRAP_HASH]),
        f'http://{remote_authority}',
    ]))
    return ' '.join([
        "default-src 'self';",
        "img-src 'self' https: data: blob:;",
        "media-src 'self';",
        f'script-src {script_src};',
        "child-src 'self';",
        "frame-src 'self' https://*.vscode-webview.net data:;",
        "worker-src 'self' data:;",
        "style-src 'self' 'unsafe-inline';",
        "connect-src 'self' ws: wss: https:;",
        "font-src 'self' blob:;",
        "manifest-src 'self';",
    ])


def build_callback_csp(script_hashes: list[str]) -> str:
    script_src = ' '.join(filter(None, ["'self'", _quoted(script_hashes)]))
    return ' '.join([
        "default-src 'self';",
        "img-src 'self' https: data: blob:;",
        "media-src 'none';",
        f'script-src {script_src};',
        "style-src 'self' 'unsafe-inline';",
        "font-src 'self' blob:;",
    ])
