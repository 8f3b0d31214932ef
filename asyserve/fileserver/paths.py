"""
Mapping of request targets onto the served directory tree.

The resolution itself never fails and does not normalise ``.``/``..``;
callers check the result with ``is_within_root`` before touching the
filesystem.
"""
import os
import urllib.parse


def split_target_path(target):
	"""Returns the path component of a request target, without query and fragment."""
	if isinstance(target, str):
		target = target.encode('utf-8')
	for sep in (b'?', b'#'):
		target = target.split(sep, 1)[0]
	return target

def decode_request_path(target):
	"""
	Strips one leading '/' and percent-decodes the rest.
	Invalid UTF-8 sequences become U+FFFD.
	"""
	path = split_target_path(target)
	if path.startswith(b'/'):
		path = path[1:]
	return urllib.parse.unquote_to_bytes(path).decode('utf-8', errors='replace')

def resolve_request_path(root:str, target):
	return os.path.join(root, decode_request_path(target))

def is_within_root(root:str, path:str):
	root = os.path.normpath(root)
	path = os.path.normpath(os.path.join(root, path))
	try:
		return os.path.commonpath([root, path]) == root
	except ValueError:
		# different drives
		return False

def listing_link_prefix(target):
	"""
	Prefix for relative links on a listing page. A directory requested
	without a trailing slash needs its own name in front of every link,
	otherwise the browser resolves them against the parent.
	"""
	path = split_target_path(target)
	if path == b'' or path.endswith(b'/'):
		return ''
	segment = path.rsplit(b'/', 1)[-1]
	name = urllib.parse.unquote_to_bytes(segment).decode('utf-8', errors='replace')
	return urllib.parse.quote(name) + '/'
