from __future__ import annotations

import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from ..exceptions import ResourceAcquisitionError, ToolInvocationError
from ..general import SysCommand
from ..output import debug, warn


class LsblkInfo(BaseModel):
	name: str
	path: Path
	pkname: str | None = None
	size: int
	type: str | None = None
	label: str | None = None
	partlabel: str | None = None
	fstype: str | None = None
	mountpoints: list[Path] = Field(default_factory=list)
	children: list[LsblkInfo] = Field(default_factory=list)

	@field_validator('mountpoints', mode='before')
	@classmethod
	def remove_none(cls, v: list[Path | None] | None) -> list[Path]:
		return [item for item in v or [] if item is not None]

	@property
	def size_mib(self) -> int:
		return self.size // (1024 * 1024)

	@classmethod
	def fields(cls) -> list[str]:
		return [name for name in cls.model_fields if name != 'children']


class LsblkOutput(BaseModel):
	blockdevices: list[LsblkInfo]


def _fetch_lsblk_info(dev_path: Path | str) -> LsblkOutput:
	cmd = ['lsblk', '--json', '--bytes', '--output', ','.join(LsblkInfo.fields()), str(dev_path)]

	try:
		worker = SysCommand(cmd)
	except ToolInvocationError as err:
		if err.worker_log:
			debug(f'Error calling lsblk: {err.worker_log.decode()}')

		raise ResourceAcquisitionError(f'Failed to read device "{dev_path}" with lsblk') from err

	return LsblkOutput.model_validate_json(worker.output(remove_cr=False))


def get_lsblk_info(dev_path: Path | str) -> LsblkInfo:
	infos = _fetch_lsblk_info(dev_path)

	if infos.blockdevices:
		return infos.blockdevices[0]

	raise ResourceAcquisitionError(f'lsblk failed to retrieve information for "{dev_path}"')


def mount(dev_path: Path, target_mountpoint: Path, options: list[str] = []) -> None:
	if not target_mountpoint.exists():
		raise ValueError(f'Target mountpoint {target_mountpoint} does not exist')

	cmd = ['mount']

	if options:
		cmd.extend(('-o', ','.join(options)))

	cmd.extend((str(dev_path), str(target_mountpoint)))

	debug(f'Mounting {dev_path} at {target_mountpoint}')
	SysCommand(cmd)


def umount(mountpoint: Path) -> None:
	debug(f'Unmounting mountpoint: {mountpoint}')
	SysCommand(['umount', str(mountpoint)])


@contextmanager
def mounted(dev_path: Path, options: list[str] = []) -> Iterator[Path]:
	"""
	Mounts a device on a temporary directory for the duration of the block.
	The device is unmounted and the directory removed on every exit path.
	An unmount failure is only raised when the block itself succeeded.
	"""
	mountdir = Path(tempfile.mkdtemp(prefix='diskbuilder-mnt-'))

	try:
		mount(dev_path, mountdir, options=options)
	except BaseException:
		mountdir.rmdir()
		raise

	try:
		yield mountdir
	except BaseException:
		try:
			umount(mountdir)
		except ToolInvocationError as err:
			warn(f'Could not unmount {dev_path} from {mountdir}: {err.message}')
		raise
	else:
		umount(mountdir)
	finally:
		# rmdir refuses a directory that still holds a mounted filesystem
		try:
			mountdir.rmdir()
		except OSError as err:
			warn(f'Could not remove mount directory {mountdir}: {err}')


def sync() -> None:
	SysCommand(['sync'])
