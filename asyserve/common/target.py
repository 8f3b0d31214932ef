import ipaddress

from asyserve.common.exceptions import StartupError

class ServerTarget:
	def __init__(self, ip:str, port:int):
		self.port = port

		try:
			self.ip = str(ipaddress.ip_address(ip))
		except ValueError:
			raise StartupError('Invalid listening address "%s"' % ip)

		if not isinstance(port, int) or port < 0 or port > 65535:
			raise StartupError('Port must be between 0 and 65535, got %s' % port)

	def get_ip_or_hostname(self):
		return self.ip

	def is_ipv6(self):
		return ipaddress.ip_address(self.ip).version == 6

	def get_url(self, port:int = None):
		if port is None:
			port = self.port
		host = self.ip
		if self.is_ipv6() is True:
			host = '[%s]' % host
		return 'http://%s:%s/' % (host, port)

	def __str__(self):
		return '%s:%s' % (self.ip, self.port)
