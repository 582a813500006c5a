class ConfigurationError(Exception):
	pass


class ResourceAcquisitionError(Exception):
	pass


class DeviceNotReadyError(Exception):
	pass


class ToolInvocationError(Exception):
	def __init__(
		self,
		message: str,
		cmd: list[str] | None = None,
		exit_code: int | None = None,
		worker_log: bytes = b'',
	) -> None:
		super().__init__(message)
		self.message = message
		self.cmd = cmd or []
		self.exit_code = exit_code
		self.worker_log = worker_log
