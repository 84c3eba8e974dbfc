"""Static file serving with conditional GET and path containment."""
from __future__ import annotations

import logging
import mimetypes
import os
import posixpath
import stat
import sys

from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.responses import FileResponse, Response

from .errors import BadRequest, NotFound

logger = logging.getLogger(__name__)

STATIC_PREFIX = '/static/'

TEXT_MIME_TYPES = {
    '.html': 'text/html',
    '.js': 'text/javascript',
    '.json': 'application/json',
    '.css': 'text/css',
    '.svg': 'image/svg+xml',
}

# Linux filesystems are case-sensitive; macOS and Windows default to not.
IGNORE_PATH_CASE = not sys.platform.startswith('linux')


def media_type_for(path: str) -> str:
    ext = os.path.splitext(path)[1].lower()
    return TEXT_MIME_TYPES.get(ext) or mimetypes.guess_type(path)[0] or 'text/plain'


def compute_etag(st: os.stat_result) -> str:
    """Weak validator derived from inode, size and modification time."""
    return f'W/"{st.st_ino}-{st.st_size}-{st.st_mtime_ns // 1_000_000}"'


def is_equal_or_parent(path: str, candidate_parent: str, ignore_case: bool = False) -> bool:
    if ignore_case:
        path, candidate_parent = path.lower(), candidate_parent.lower()
    if path == candidate_parent:
        return True
    parent = candidate_parent.rstrip('/\\') + os.sep
    return path.startswith(parent)


def resolve_static_path(app_root: str, relative: str, ignore_case: bool = IGNORE_PATH_CASE) -> str:
    """Map a decoded ``/static/`` remainder to a file path inside ``app_root``.

    Pure string manipulation: the filesystem is not consulted, so symlinks
    inside the root are followed by the later read as usual.

    Raises:
        BadRequest: for ``..`` segments, absolute paths, NUL bytes, or any
            result outside ``app_root``
    """
    if '\x00' in relative:
        raise BadRequest(f'NUL byte in static path: {relative!r}')
    segments = relative.replace('\\', '/').split('/')
    if '..' in segments:
        raise BadRequest(f'Path traversal detected: {relative!r}')

    normalized = posixpath.normpath(relative.replace('\\', '/'))
    if normalized.startswith('/') or os.path.splitdrive(normalized)[0]:
        raise BadRequest(f'Absolute static path rejected: {relative!r}')

    root = os.path.normpath(app_root)
    file_path = os.path.normpath(os.path.join(root, normalized))
    if not is_equal_or_parent(file_path, root, ignore_case):
        raise BadRequest(f'Static path escapes app root: {relative!r}')
    return file_path


class StaticFileResponder:
    """Serves files from disk with weak ETags.

    Bodies are streamed by ``FileResponse`` in chunks through the ASGI send
    channel, so a slow client never causes the whole file to be buffered.
    """

    def __init__(self, app_root: str | os.PathLike, ignore_case: bool = IGNORE_PATH_CASE):
        self.app_root = os.fspath(app_root)
        self.ignore_case = ignore_case

    @staticmethod
    def _stat(path: str) -> os.stat_result:
        return os.stat(path)

    async def serve(
        self,
        request: Request,
        path: str | os.PathLike,
        headers: dict[str, str] | None = None,
    ) -> Response:
        """Serve the file at ``path`` or raise NotFound."""
        path = os.fspath(path)
        try:
            st = await run_in_threadpool(self._stat, path)
        except (FileNotFoundError, NotADirectoryError):
            raise NotFound(f'No such file: {path}')
        except OSError as exc:
            logger.error('Cannot stat %s: %s', path, exc)
            raise NotFound(f'Unreadable file: {path}')

        if not stat.S_ISREG(st.st_mode):
            raise NotFound(f'Not a regular file: {path}')

        etag = compute_etag(st)
        if request.headers.get('if-none-match') == etag:
            return Response(status_code=304, headers={'Etag': etag})

        response_headers = dict(headers or {})
        response_headers['Etag'] = etag
        return FileResponse(
            path,
            headers=response_headers,
            media_type=media_type_for(path),
            stat_result=st,
        )

    async def serve_static(self, request: Request) -> Response:
        """Handle ``/static/*`` requests."""
        # ASGI has already percent-decoded the path once (%20 -> space)
        relative = request.scope['path'][len(STATIC_PREFIX):]
        file_path = resolve_static_path(self.app_root, relative, self.ignore_case)
        return await self.serve(request, file_path)
