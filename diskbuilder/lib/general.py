from __future__ import annotations

import os
import stat
import subprocess
import sys
import time
from pathlib import Path
from shutil import which
if sys.version_info >= (3, 12):
	from typing import override
else:
	from typing_extensions import override

from .exceptions import ToolInvocationError
from .output import debug, logger


def locate_binary(name: str) -> str:
	if path := which(name):
		return path
	raise ToolInvocationError(f'Binary {name} does not exist.', cmd=[name])


class SysCommand:
	"""
	Runs an external command to completion and keeps its combined output.
	The command is always an argument list, it never passes through a shell.
	A non-zero exit raises ToolInvocationError carrying the command,
	the exit code and the captured output.
	"""

	def __init__(
		self,
		cmd: list[str],
		environment_vars: dict[str, str] | None = None,
		working_directory: Path | str | None = None,
		input_data: bytes | None = None,
	):
		if isinstance(cmd, str):
			raise ValueError(f'SysCommand() expects an argument list, got a string: {cmd!r}')

		self.cmd = [str(arg) for arg in cmd]

		if self.cmd and not self.cmd[0].startswith(('/', './')):
			self.cmd[0] = locate_binary(self.cmd[0])

		# define the standard locale for command outputs. For now the C ascii one. Can be overridden
		self.environment_vars = {'LC_ALL': 'C'}
		if environment_vars:
			self.environment_vars.update(environment_vars)

		self.working_directory = working_directory
		self.input_data = input_data

		self.exit_code: int | None = None
		self.started: float | None = None
		self.ended: float | None = None
		self._trace_log = b''

		self._execute()

	def _execute(self) -> None:
		_log_cmd(self.cmd)

		self.started = time.time()

		try:
			proc = subprocess.Popen(
				self.cmd,
				stdin=subprocess.PIPE if self.input_data is not None else subprocess.DEVNULL,
				stdout=subprocess.PIPE,
				stderr=subprocess.STDOUT,
				cwd=self.working_directory,
				env={**os.environ, **self.environment_vars},
			)
		except OSError as err:
			self.ended = time.time()
			raise ToolInvocationError(f'{self.cmd} could not be started: {err}', cmd=self.cmd) from err

		if self.input_data is not None and proc.stdin:
			proc.stdin.write(self.input_data)
			proc.stdin.close()

		if proc.stdout:
			for chunk in iter(lambda: proc.stdout.read1(8192), b''):  # type: ignore[union-attr]
				self._trace_log += chunk

		self.exit_code = proc.wait()
		self.ended = time.time()

		if self.exit_code != 0:
			raise ToolInvocationError(
				f'{self.cmd} exited with abnormal exit code [{self.exit_code}]: {str(self)[-500:]}',
				cmd=self.cmd,
				exit_code=self.exit_code,
				worker_log=self._trace_log,
			)

	@override
	def __repr__(self) -> str:
		return self.decode('UTF-8', errors='backslashreplace') or ''

	@override
	def __str__(self) -> str:
		try:
			return self._trace_log.decode('utf-8')
		except UnicodeDecodeError:
			return str(self._trace_log)

	def decode(self, encoding: str = 'utf-8', errors: str = 'backslashreplace', strip: bool = True) -> str:
		val = self._trace_log.decode(encoding, errors=errors)

		if strip:
			return val.strip()
		return val

	def output(self, remove_cr: bool = True) -> bytes:
		if remove_cr:
			return self._trace_log.replace(b'\r\n', b'\n')

		return self._trace_log


def _log_cmd(cmd: list[str]) -> None:
	history_logfile = logger.directory / 'cmd_history.txt'

	change_perm = False
	if history_logfile.exists() is False:
		change_perm = True

	try:
		with history_logfile.open('a') as cmd_log:
			cmd_log.write(f'{time.time()} {cmd}\n')

		if change_perm:
			history_logfile.chmod(stat.S_IRUSR | stat.S_IWUSR | stat.S_IRGRP)
	except (PermissionError, FileNotFoundError):
		# If history_logfile does not exist, ignore the error
		pass

	debug(f'Executing: {" ".join(cmd)}')


def invoking_user() -> tuple[int, int]:
	"""
	The uid/gid of the user that started the build, looking through sudo.
	"""
	uid = int(os.environ.get('SUDO_UID', os.getuid()))
	gid = int(os.environ.get('SUDO_GID', os.getgid()))
	return uid, gid
