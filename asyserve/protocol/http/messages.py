import h11
from typing import List, Tuple, Dict, AsyncIterator


class HTTPRequest:
	def __init__(self):
		self.method:str = None
		self.target:bytes = None
		self.http_version:str = None
		self.headers:Dict[str, List[str]] = {}
		self.peer:str = None
		self.h11:h11.Request = None
		self.body_consumed = False
		self.body_complete = False
		self._wrapper = None

	@staticmethod
	def from_h11(event:h11.Request, wrapper = None, peer:str = None):
		req = HTTPRequest()
		req.h11 = event
		req.method = event.method.decode('ascii')
		req.target = event.target
		req.http_version = event.http_version.decode('ascii')
		req.peer = peer
		req._wrapper = wrapper
		for name, value in event.headers:
			name = name.decode('ascii').lower()
			if name not in req.headers:
				req.headers[name] = []
			req.headers[name].append(value.decode('latin-1'))
		return req

	def get_header(self, name:str, default = None):
		values = self.headers.get(name.lower())
		if not values:
			return default
		return values[0]

	async def read_body(self, max_size:int = None):
		"""
		Reads the complete request body into memory.
		Raises ValueError if the body grows past max_size and ConnectionError
		if the peer goes away before the end of the message.
		"""
		if self.body_consumed is True:
			raise ValueError('Request body has already been read')
		self.body_consumed = True
		if self._wrapper is None:
			self.body_complete = True
			return b''

		chunks = []
		total = 0
		while True:
			event = await self._wrapper.next_event()
			if type(event) is h11.Data:
				total += len(event.data)
				if max_size is not None and total > max_size:
					raise ValueError('Request body exceeds %s bytes' % max_size)
				chunks.append(bytes(event.data))
				continue
			if type(event) is h11.EndOfMessage:
				self.body_complete = True
				break
			if type(event) is h11.ConnectionClosed:
				raise ConnectionError('Connection closed while reading request body')
			raise ValueError('Unexpected event while reading request body: %s' % type(event))
		return b''.join(chunks)

	def __str__(self):
		return '%s %s' % (self.method, self.target.decode('latin-1'))


class HTTPResponse:
	def __init__(self, status:int = 200, headers:List[Tuple[str, str]] = None, body:bytes = b'', body_iter:AsyncIterator[bytes] = None, content_length:int = None):
		self.status = status
		self.headers = headers
		if headers is None:
			self.headers = []
		self.body = body
		self.body_iter = body_iter
		self.content_length = content_length
		if self.content_length is None and self.body_iter is None:
			self.content_length = len(self.body)

	@staticmethod
	def html(text:str, status:int = 200):
		body = text.encode('utf-8')
		return HTTPResponse(status, [('Content-Type', 'text/html; charset=utf-8')], body)

	@staticmethod
	def text(status:int, message:str):
		body = message.encode('utf-8')
		return HTTPResponse(status, [('Content-Type', 'text/plain; charset=utf-8')], body)

	@staticmethod
	def empty(status:int = 200):
		return HTTPResponse(status)

	def get_header(self, name:str, default = None):
		for hname, value in self.headers:
			if hname.lower() == name.lower():
				return value
		return default

	async def iter_body(self):
		if self.body_iter is None:
			if self.body:
				yield self.body
			return
		async for chunk in self.body_iter:
			yield chunk

	async def close(self):
		if self.body_iter is not None and hasattr(self.body_iter, 'aclose'):
			await self.body_iter.aclose()
			self.body_iter = None
