import os
import stat
import asyncio
import mimetypes

from asyserve import logger
from asyserve.common.config import ServerConfig
from asyserve.protocol.http.messages import HTTPRequest, HTTPResponse
from asyserve.fileserver.paths import resolve_request_path, is_within_root

CHUNK_SIZE = 64*1024


def get_mime_type(filepath:str):
    mime_type, _ = mimetypes.guess_type(filepath)
    return mime_type or 'application/octet-stream'


class FileBody:
    """Async iterator over at most ``size`` bytes of an open file, closing it when done."""

    def __init__(self, f, size:int):
        self.f = f
        self.remaining = size

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.remaining <= 0 or self.f.closed:
            await self.aclose()
            raise StopAsyncIteration
        loop = asyncio.get_running_loop()
        chunk = await loop.run_in_executor(None, self.f.read, min(CHUNK_SIZE, self.remaining))
        if not chunk:
            await self.aclose()
            raise StopAsyncIteration
        self.remaining -= len(chunk)
        return chunk

    async def aclose(self):
        if not self.f.closed:
            self.f.close()


class StaticFileService:
    """
    Serves regular files below the configured root for GET and HEAD requests.

    Anything that is not a regular file (directories, missing paths, paths
    leaving the root) gets a plain 404 which the router uses as the signal
    to try a directory listing instead. Other OS errors are reported as 500.
    Requests with any other method are not handled and ``None`` is returned.
    """

    def __init__(self, config:ServerConfig):
        self.config = config

    @staticmethod
    def not_found():
        return HTTPResponse.text(404, 'Not Found')

    @staticmethod
    def _open_file(path:str):
        try:
            st = os.stat(path)
        except (FileNotFoundError, NotADirectoryError, ValueError):
            return None, None
        if not stat.S_ISREG(st.st_mode):
            return None, None
        try:
            f = open(path, 'rb')
        except FileNotFoundError:
            # removed between stat and open
            return None, None
        return f, st.st_size

    async def serve(self, request:HTTPRequest):
        if request.method not in ('GET', 'HEAD'):
            return None

        path = resolve_request_path(self.config.root, request.target)
        if not is_within_root(self.config.root, path):
            logger.debug('Refusing path outside of root: %s' % path)
            return self.not_found()

        loop = asyncio.get_running_loop()
        try:
            f, size = await loop.run_in_executor(None, self._open_file, path)
        except OSError as e:
            return HTTPResponse.text(500, 'Service Error: %s' % e)

        if f is None:
            return self.not_found()

        headers = [('Content-Type', get_mime_type(path))]
        if request.method == 'HEAD':
            f.close()
            return HTTPResponse(200, headers, content_length=size)
        return HTTPResponse(200, headers, body_iter=FileBody(f, size), content_length=size)
