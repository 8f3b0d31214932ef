import asyncio

from asyserve import logger
from asyserve.common.target import ServerTarget
from asyserve.common.connection import ServerConnection
from asyserve.common.exceptions import StartupError


class TCPServer:
	def __init__(self, target:ServerTarget):
		self.target = target
		self.connection_queue = asyncio.Queue()
		self.started_evt = asyncio.Event()
		self.server = None

	def get_listen_port(self):
		if self.server is None or not self.server.sockets:
			return None
		return self.server.sockets[0].getsockname()[1]

	async def __handle_connection(self, reader, writer):
		connection = ServerConnection(reader, writer)
		await self.connection_queue.put(connection)

	async def close(self):
		if self.server is not None:
			self.server.close()

	async def serve(self):
		"""
		Binds the listening socket and yields a ServerConnection for every accepted client.
		Binding errors are raised as StartupError on the first iteration.
		"""
		try:
			self.server = await asyncio.start_server(
				self.__handle_connection,
				self.target.get_ip_or_hostname(),
				self.target.port
			)
		except OSError as e:
			raise StartupError('Failed to listen on %s: %s' % (self.target, e), innerexception = e)

		logger.debug('Listening on %s' % self.target)
		self.started_evt.set()
		try:
			while self.server.is_serving():
				connection = await self.connection_queue.get()
				yield connection
		finally:
			self.server.close()
