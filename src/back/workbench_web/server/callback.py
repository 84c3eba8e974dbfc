"""Handler for the fixed ``/callback`` page."""
from __future__ import annotations

from pathlib import Path

from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.responses import HTMLResponse, Response

from .csp import build_callback_csp, extract_script_hashes


class CallbackHandler:

    def __init__(self, callback_html: Path):
        self.callback_html = Path(callback_html)

    async def render(self, request: Request) -> Response:
        data = await run_in_threadpool(self.callback_html.read_text, encoding='utf-8')
        csp = build_callback_csp(extract_script_hashes(data))
        return HTMLResponse(data, headers={'Content-Security-Policy': csp})
