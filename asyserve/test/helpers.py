import asyncio
import h11

from asyserve.protocol.http.messages import HTTPRequest

BOUNDARY = '----asyserveformboundary7MA4YWxk'


class BodyFeeder:
    """Stands in for the connection wrapper, hands out a request body as h11 events."""
    def __init__(self, body:bytes, chunk_size:int = 7):
        self.events = [h11.Data(data=body[i:i + chunk_size]) for i in range(0, len(body), chunk_size)]
        self.events.append(h11.EndOfMessage())

    async def next_event(self):
        return self.events.pop(0)


def make_request(method:str, target:str, headers = None, body:bytes = None):
    hdrs = [('Host', 'localhost')]
    if headers is not None:
        hdrs.extend(headers)
    event = h11.Request(method=method, target=target, headers=hdrs)
    wrapper = None
    if body is not None:
        wrapper = BodyFeeder(body)
    return HTTPRequest.from_h11(event, wrapper, '127.0.0.1:1')

def build_multipart(fields, boundary:str = BOUNDARY):
    """fields is a list of (name, filename, data) tuples, filename may be None"""
    out = b''
    for name, filename, data in fields:
        disposition = 'form-data; name="%s"' % name
        if filename is not None:
            disposition += '; filename="%s"' % filename
        out += b'--' + boundary.encode() + b'\r\n'
        out += ('Content-Disposition: %s\r\n' % disposition).encode('utf-8')
        if filename is not None:
            out += b'Content-Type: application/octet-stream\r\n'
        out += b'\r\n' + data + b'\r\n'
    out += b'--' + boundary.encode() + b'--\r\n'
    return out

def make_upload_request(target:str, fields, boundary:str = BOUNDARY):
    body = build_multipart(fields, boundary)
    headers = [
        ('Content-Type', 'multipart/form-data; boundary=%s' % boundary),
        ('Content-Length', str(len(body))),
    ]
    return make_request('POST', target, headers, body)

async def read_response_body(response):
    chunks = []
    async for chunk in response.iter_body():
        chunks.append(chunk)
    await response.close()
    return b''.join(chunks)

async def http_request(port:int, method:str, target:str, headers = None, body:bytes = b''):
    """Minimal h11 client, returns (status, headers, body)"""
    reader, writer = await asyncio.open_connection('127.0.0.1', port)
    conn = h11.Connection(h11.CLIENT)
    hdrs = [('Host', '127.0.0.1:%s' % port), ('Connection', 'close')]
    if headers is not None:
        hdrs.extend(headers)
    if body or method == 'POST':
        hdrs.append(('Content-Length', str(len(body))))
    try:
        writer.write(conn.send(h11.Request(method=method, target=target, headers=hdrs)))
        if body:
            writer.write(conn.send(h11.Data(data=body)))
        writer.write(conn.send(h11.EndOfMessage()))
        await writer.drain()

        response = None
        chunks = []
        while True:
            event = conn.next_event()
            if event is h11.NEED_DATA:
                conn.receive_data(await reader.read(65536))
                continue
            if type(event) is h11.Response:
                response = event
            elif type(event) is h11.Data:
                chunks.append(bytes(event.data))
            elif type(event) in (h11.EndOfMessage, h11.ConnectionClosed):
                break
    finally:
        writer.close()
        await writer.wait_closed()

    resp_headers = {name.decode().lower(): value.decode() for name, value in response.headers}
    return response.status_code, resp_headers, b''.join(chunks)
