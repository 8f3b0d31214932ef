import os
import re
import asyncio
from typing import Dict

from asyserve import logger
from asyserve.common.config import ServerConfig
from asyserve.common.exceptions import UploadError
from asyserve.protocol.http.messages import HTTPRequest, HTTPResponse
from asyserve.fileserver.paths import resolve_request_path, is_within_root


class MultipartPart:
    def __init__(self, headers:Dict[str, str], data:bytes):
        self.headers = headers
        self.data = data

    def get_disposition_param(self, param:str):
        """Extract a parameter from the Content-Disposition header."""
        disposition = self.headers.get('content-disposition')
        if disposition is None:
            return None
        match = re.search(r'(?<![\w*])%s="([^"]*)"' % param, disposition, re.IGNORECASE)
        if match:
            return match.group(1)
        # Also try without quotes
        match = re.search(r'(?<![\w*])%s=([^;\s]+)' % param, disposition, re.IGNORECASE)
        if match:
            return match.group(1)
        return None

    @property
    def name(self):
        return self.get_disposition_param('name')

    @property
    def filename(self):
        return self.get_disposition_param('filename')


def get_boundary(content_type:str):
    if not content_type or not content_type.lower().startswith('multipart/form-data'):
        raise UploadError('Only multipart/form-data uploads are supported')
    match = re.search(r'boundary=([^;]+)', content_type, re.IGNORECASE)
    if not match:
        raise UploadError('Missing boundary in Content-Type')
    boundary = match.group(1).strip().strip('"')
    if not boundary:
        raise UploadError('Empty multipart boundary')
    return boundary.encode('latin-1')

def parse_first_part(body:bytes, boundary:bytes) -> MultipartPart:
    """
    Parses the first part of a buffered multipart/form-data body.
    Everything after the first part is ignored.
    """
    delimiter = b'--' + boundary
    start = body.find(delimiter)
    if start == -1:
        raise UploadError('Multipart boundary not found in body')
    pos = start + len(delimiter)
    if body[pos:pos + 2] == b'--':
        raise UploadError('Multipart body has no fields')

    line_end = body.find(b'\r\n', pos)
    if line_end == -1:
        raise UploadError('Malformed multipart delimiter line')
    header_end = body.find(b'\r\n\r\n', line_end)
    if header_end == -1:
        raise UploadError('Multipart headers are not terminated')

    headers = {}
    for line in body[line_end + 2:header_end].split(b'\r\n'):
        if not line.strip():
            continue
        name, sep, value = line.decode('utf-8', errors='replace').partition(':')
        if not sep:
            raise UploadError('Malformed multipart header line')
        headers[name.strip().lower()] = value.strip()

    data_start = header_end + 4
    data_end = body.find(b'\r\n' + delimiter, data_start)
    if data_end == -1:
        raise UploadError('Multipart field is not terminated')
    return MultipartPart(headers, body[data_start:data_end])

def sanitize_upload_filename(filename:str):
    """Only the base name of an uploaded file is kept."""
    if not filename:
        return None
    safe_name = os.path.basename(filename.replace('\\', '/'))
    if safe_name in ('', '.', '..'):
        return None
    return safe_name

def write_file(path:str, data:bytes):
    with open(path, 'wb') as f:
        f.write(data)


class UploadHandler:
    """
    Stores the first file field of a multipart/form-data POST in the
    directory addressed by the request path.

    The body is buffered in memory (bounded by ``max_upload_size``) and
    the file is overwritten if it exists. The target directory is never
    created. Every failure results in the same 500 "upload failed"
    response, the cause is only logged.
    """

    def __init__(self, config:ServerConfig):
        self.config = config

    async def get_target_directory(self, request:HTTPRequest):
        path = resolve_request_path(self.config.root, request.target)
        if not is_within_root(self.config.root, path):
            raise UploadError('Target %s is outside of the root directory' % path)
        loop = asyncio.get_running_loop()
        if not await loop.run_in_executor(None, os.path.isdir, path):
            raise UploadError('Target directory %s does not exist' % path)
        return path

    async def read_body(self, request:HTTPRequest):
        content_length = request.get_header('content-length')
        if content_length is not None and int(content_length) > self.config.max_upload_size:
            raise UploadError('Upload too large: %s bytes (max: %s)' % (content_length, self.config.max_upload_size))
        return await request.read_body(self.config.max_upload_size)

    async def receive(self, request:HTTPRequest):
        target_dir = await self.get_target_directory(request)
        boundary = get_boundary(request.get_header('content-type'))
        body = await self.read_body(request)

        part = parse_first_part(body, boundary)
        filename = sanitize_upload_filename(part.filename)
        if filename is None:
            raise UploadError('First multipart field "%s" carries no usable file name' % part.name)

        file_path = os.path.join(target_dir, filename)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, write_file, file_path, part.data)
        logger.info('[UPLOAD] Stored %s (%s bytes)' % (file_path, len(part.data)))
        return file_path

    async def handle(self, request:HTTPRequest):
        try:
            await self.receive(request)
        except (UploadError, ValueError, OSError) as e:
            logger.warning('[UPLOAD] %s failed: %s' % (request, e))
            response = HTTPResponse.text(500, 'upload failed')
            if request.body_complete is False:
                # unread body, close instead of draining it
                response.headers.append(('Connection', 'close'))
            return response
        return HTTPResponse.empty(200)
