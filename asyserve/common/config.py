import os
from typing import NamedTuple

from asyserve.common.exceptions import StartupError

DEFAULT_MAX_UPLOAD_SIZE = 500*1024*1024

class ServerConfig(NamedTuple):
	"""
	Process-wide, read-only settings shared by every request handler.
	The root is always canonical and absolute.
	"""
	root: str
	allow_upload: bool = True
	max_upload_size: int = DEFAULT_MAX_UPLOAD_SIZE

	@staticmethod
	def from_directory(directory:str, allow_upload:bool = True, max_upload_size:int = DEFAULT_MAX_UPLOAD_SIZE):
		if directory is None:
			directory = '.'
		root = os.path.realpath(os.path.expanduser(directory))
		if not os.path.exists(root):
			raise StartupError('Path Error: %s does not exist' % root)
		if not os.path.isdir(root):
			raise StartupError('Path Error: %s is not a directory' % root)
		if max_upload_size < 0:
			raise StartupError('Maximum upload size must not be negative, got %s' % max_upload_size)
		return ServerConfig(root, allow_upload, max_upload_size)
