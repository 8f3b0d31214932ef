import os
import asyncio
from typing import List, NamedTuple


class EntryInfo(NamedTuple):
	name: str
	is_dir: bool


def lossy_name(name:str):
	# undecodable bytes are kept as surrogates by os, replace them
	return name.encode('utf-8', 'surrogateescape').decode('utf-8', 'replace')

def scan_directory(path:str) -> List[EntryInfo]:
	entries = []
	with os.scandir(path) as it:
		for entry in it:
			entries.append(EntryInfo(lossy_name(entry.name), entry.is_dir(follow_symlinks=False)))
	return entries

async def list_entries(path:str):
	"""
	Lists the immediate children of a directory in enumeration order.
	Returns (entries, None) on success, (None, err) if the directory could not be read.
	"""
	try:
		loop = asyncio.get_running_loop()
		entries = await loop.run_in_executor(None, scan_directory, path)
		return entries, None
	except OSError as e:
		return None, e
