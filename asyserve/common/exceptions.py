
class FileServerError(Exception):
	pass

class StartupError(FileServerError):
	def __init__(self, message, innerexception = None):
		self.innerexception = innerexception
		self.message = message
		super().__init__(self.message)

class RenderError(FileServerError):
	pass

class UploadError(FileServerError):
	pass
