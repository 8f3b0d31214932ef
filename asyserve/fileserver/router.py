import os
import asyncio

from asyserve import logger
from asyserve.common.config import ServerConfig
from asyserve.common.exceptions import RenderError
from asyserve.protocol.http.messages import HTTPRequest, HTTPResponse
from asyserve.protocol.http.server import HTTPServerHandler
from asyserve.fileserver.paths import resolve_request_path, is_within_root, listing_link_prefix
from asyserve.fileserver.static import StaticFileService
from asyserve.fileserver.listing import list_entries
from asyserve.fileserver.render import render_listing
from asyserve.fileserver.upload import UploadHandler


class FileServerHandler(HTTPServerHandler):
    """
    Per-connection request router.

    GET/HEAD go to the static file service first. A 404 from it is the
    signal to try a directory listing for the same path; if that is not
    possible the original 404 goes out unchanged. POST never touches the
    static file service and is handed to the upload handler, unless the
    server runs read-only.
    """

    def __init__(self, config:ServerConfig):
        super().__init__()
        self.config = config
        self.static = StaticFileService(config)
        self.upload = None
        if config.allow_upload is True:
            self.upload = UploadHandler(config)

    def allowed_methods(self):
        methods = ['GET', 'HEAD']
        if self.upload is not None:
            methods.append('POST')
        return methods

    async def route(self, request:HTTPRequest):
        response = await self.static.serve(request)
        if response is not None and response.status != 404:
            return response

        if request.method == 'POST':
            if self.upload is None:
                return self.method_not_allowed()
            return await self.upload.handle(request)

        if response is None:
            return self.method_not_allowed()

        listing = await self.try_listing(request)
        if listing is not None:
            return listing
        return response

    async def try_listing(self, request:HTTPRequest):
        """Returns the listing page for the request path or None if it is not a listable directory."""
        path = resolve_request_path(self.config.root, request.target)
        if not is_within_root(self.config.root, path):
            return None
        loop = asyncio.get_running_loop()
        if not await loop.run_in_executor(None, os.path.isdir, path):
            return None

        entries, err = await list_entries(path)
        if err is not None:
            logger.warning('Listing %s failed: %s' % (path, err))
            return None

        try:
            page = render_listing(
                entries,
                allow_upload = self.upload is not None,
                link_prefix = listing_link_prefix(request.target)
            )
        except RenderError as e:
            logger.error('%s' % e)
            return HTTPResponse.text(500, 'Render Error')
        return HTTPResponse.html(page)

    async def do_GET(self, request:HTTPRequest):
        return await self.route(request)

    async def do_HEAD(self, request:HTTPRequest):
        return await self.route(request)

    async def do_POST(self, request:HTTPRequest):
        return await self.route(request)
