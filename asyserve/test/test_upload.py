import os
import tempfile
import unittest

from asyserve.common.config import ServerConfig
from asyserve.common.exceptions import UploadError
from asyserve.fileserver.upload import UploadHandler, get_boundary, parse_first_part, sanitize_upload_filename
from asyserve.test.helpers import BOUNDARY, build_multipart, make_request, make_upload_request, read_response_body


class MultipartParsingTests(unittest.TestCase):
    def test_first_part_only(self):
        body = build_multipart([
            ('file', 'hello.txt', b'hi'),
            ('file', 'second.txt', b'ignored'),
        ])
        part = parse_first_part(body, BOUNDARY.encode())
        self.assertEqual(part.name, 'file')
        self.assertEqual(part.filename, 'hello.txt')
        self.assertEqual(part.data, b'hi')

    def test_binary_payload_with_crlf(self):
        payload = b'\r\n\x00\xff--not-a-boundary\r\n\r\n'
        part = parse_first_part(build_multipart([('file', 'blob.bin', payload)]), BOUNDARY.encode())
        self.assertEqual(part.data, payload)

    def test_field_without_filename(self):
        part = parse_first_part(build_multipart([('comment', None, b'text')]), BOUNDARY.encode())
        self.assertIsNone(part.filename)
        self.assertEqual(part.name, 'comment')

    def test_no_fields(self):
        body = b'--' + BOUNDARY.encode() + b'--\r\n'
        with self.assertRaises(UploadError):
            parse_first_part(body, BOUNDARY.encode())

    def test_unterminated_field(self):
        body = build_multipart([('file', 'a.txt', b'data')])
        body = body[:body.index(b'\r\n--' + BOUNDARY.encode())]
        with self.assertRaises(UploadError):
            parse_first_part(body, BOUNDARY.encode())

    def test_boundary_from_content_type(self):
        self.assertEqual(get_boundary('multipart/form-data; boundary=abc'), b'abc')
        self.assertEqual(get_boundary('multipart/form-data; boundary="a b"; charset=utf-8'), b'a b')
        with self.assertRaises(UploadError):
            get_boundary('application/json')
        with self.assertRaises(UploadError):
            get_boundary('multipart/form-data')
        with self.assertRaises(UploadError):
            get_boundary(None)

    def test_filename_sanitizing(self):
        self.assertEqual(sanitize_upload_filename('a b.txt'), 'a b.txt')
        self.assertEqual(sanitize_upload_filename('../../etc/passwd'), 'passwd')
        self.assertEqual(sanitize_upload_filename('C:\\Users\\me\\report.pdf'), 'report.pdf')
        self.assertIsNone(sanitize_upload_filename('..'))
        self.assertIsNone(sanitize_upload_filename('dir/'))
        self.assertIsNone(sanitize_upload_filename(''))
        self.assertIsNone(sanitize_upload_filename(None))


class UploadHandlerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.config = ServerConfig.from_directory(self.tmp.name)
        self.root = self.config.root
        os.mkdir(os.path.join(self.root, 'uploads'))
        self.handler = UploadHandler(self.config)

    def tearDown(self):
        self.tmp.cleanup()

    def read(self, *parts):
        with open(os.path.join(self.root, *parts), 'rb') as f:
            return f.read()

    async def assertUploadFails(self, request):
        response = await self.handler.handle(request)
        self.assertEqual(response.status, 500)
        self.assertEqual(await read_response_body(response), b'upload failed')

    async def test_upload_into_directory(self):
        response = await self.handler.handle(make_upload_request('/uploads/', [('file', 'hello.txt', b'hi')]))
        self.assertEqual(response.status, 200)
        self.assertEqual(await read_response_body(response), b'')
        self.assertEqual(self.read('uploads', 'hello.txt'), b'hi')

    async def test_upload_into_root(self):
        response = await self.handler.handle(make_upload_request('/', [('file', 'root.txt', b'root')]))
        self.assertEqual(response.status, 200)
        self.assertEqual(self.read('root.txt'), b'root')

    async def test_repeated_upload_overwrites(self):
        await self.handler.handle(make_upload_request('/uploads/', [('file', 'hello.txt', b'first payload')]))
        await self.handler.handle(make_upload_request('/uploads/', [('file', 'hello.txt', b'2nd')]))
        self.assertEqual(self.read('uploads', 'hello.txt'), b'2nd')

    async def test_only_first_field_is_stored(self):
        request = make_upload_request('/uploads/', [('file', 'one.txt', b'1'), ('file', 'two.txt', b'2')])
        response = await self.handler.handle(request)
        self.assertEqual(response.status, 200)
        self.assertEqual(sorted(os.listdir(os.path.join(self.root, 'uploads'))), ['one.txt'])

    async def test_percent_encoded_target_directory(self):
        os.mkdir(os.path.join(self.root, 'a b'))
        response = await self.handler.handle(make_upload_request('/a%20b/', [('file', 'x.txt', b'x')]))
        self.assertEqual(response.status, 200)
        self.assertEqual(self.read('a b', 'x.txt'), b'x')

    async def test_missing_target_directory(self):
        await self.assertUploadFails(make_upload_request('/nope/', [('file', 'x.txt', b'x')]))
        self.assertFalse(os.path.exists(os.path.join(self.root, 'nope')))

    async def test_target_is_a_file(self):
        with open(os.path.join(self.root, 'plain.txt'), 'wb') as f:
            f.write(b'plain')
        await self.assertUploadFails(make_upload_request('/plain.txt', [('file', 'x.txt', b'x')]))

    async def test_target_outside_root(self):
        await self.assertUploadFails(make_upload_request('/../', [('file', 'escaped.txt', b'x')]))
        self.assertFalse(os.path.exists(os.path.join(os.path.dirname(self.root), 'escaped.txt')))

    async def test_first_field_without_filename(self):
        await self.assertUploadFails(make_upload_request('/uploads/', [('comment', None, b'text'), ('file', 'x.txt', b'x')]))
        self.assertEqual(os.listdir(os.path.join(self.root, 'uploads')), [])

    async def test_not_multipart(self):
        request = make_request('POST', '/uploads/', [('Content-Type', 'text/plain'), ('Content-Length', '2')], b'hi')
        await self.assertUploadFails(request)

    async def test_body_too_large(self):
        handler = UploadHandler(self.config._replace(max_upload_size=16))
        response = await handler.handle(make_upload_request('/uploads/', [('file', 'big.bin', b'x' * 64)]))
        self.assertEqual(response.status, 500)
        self.assertEqual(response.get_header('Connection'), 'close')
        self.assertFalse(os.path.exists(os.path.join(self.root, 'uploads', 'big.bin')))

    async def test_failure_after_full_body_keeps_connection(self):
        request = make_upload_request('/uploads/', [('comment', None, b'text')])
        response = await self.handler.handle(request)
        self.assertEqual(response.status, 500)
        self.assertTrue(request.body_complete)
        self.assertIsNone(response.get_header('Connection'))

    async def test_success_keeps_connection(self):
        response = await self.handler.handle(make_upload_request('/uploads/', [('file', 'a.txt', b'a')]))
        self.assertEqual(response.status, 200)
        self.assertIsNone(response.get_header('Connection'))


if __name__ == '__main__':
    unittest.main()
