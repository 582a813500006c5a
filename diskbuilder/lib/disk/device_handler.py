from __future__ import annotations

import os
import tempfile
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from ..exceptions import DeviceNotReadyError, ResourceAcquisitionError, ToolInvocationError
from ..general import SysCommand
from ..models.device import DeviceHandle, DeviceState, fslabel_path
from ..models.layout import PartitionSpec
from ..output import Observer, debug, default_observer, warn
from .utils import get_lsblk_info, mounted
from .validators import lvm_required_mb

FIRST_PARTITION_OFFSET_MB = 1  # offset from start of disk (in MiB)
END_MARGIN_MB = 1  # parted treats END as inclusive
OPEN_ENDED_FLOOR_MB = 1
SCRATCH_SLACK_MB = 16

T = TypeVar('T')


def compute_total_disk_size(spec: PartitionSpec) -> int:
	"""
	Total disk size (MiB) needed for a layout
	= all fixed partition sizes
	+ the offset of the first partition
	+ 1MiB for the end since parted uses END as inclusive

	Open-ended entries only count with a small floor, a physical
	device has to be sized generously enough to absorb them. An
	open-ended LVM partition counts its fixed volumes plus metadata
	and one extent per open-ended volume.
	"""
	total = FIRST_PARTITION_OFFSET_MB + END_MARGIN_MB

	for part in spec:
		if part.lvm is not None and part.size_mb is None:
			# an open-ended PV has to hold at least its fixed volumes
			total += lvm_required_mb(part.lvm)
		elif part.size_mb is None:
			total += OPEN_ENDED_FLOOR_MB
		else:
			total += part.size_mb

	return total


def wait_for_device(dev_path: Path, timeout: float = 5.0, interval: float = 0.5) -> None:
	"""
	Waits for a device node (or udev symlink) to show up.
	Raises DeviceNotReadyError once at least `timeout` seconds went by without it.
	"""
	try:
		SysCommand(['udevadm', 'trigger'])
	except ToolInvocationError as err:
		warn(f'udevadm trigger failed, waiting for {dev_path} anyway: {err.message}')

	started = time.monotonic()

	while True:
		if dev_path.exists():
			return

		elapsed = time.monotonic() - started
		if elapsed >= timeout:
			break

		time.sleep(min(interval, timeout - elapsed))

	raise DeviceNotReadyError(f'Timed out after {timeout}s waiting for {dev_path}')


@contextmanager
def mounted_by_label(label: str, timeout: float = 5.0) -> Iterator[Path]:
	"""
	Mounts a filesystem through its /dev/disk/by-label link,
	waiting for udev to create the link first.
	"""
	dev_path = fslabel_path(label)
	wait_for_device(dev_path, timeout=timeout)

	with mounted(dev_path) as mountdir:
		yield mountdir


class DeviceHandler:
	def __init__(
		self,
		tmpfs_dir: Path | None = None,
		tmpfs_size: str | None = None,
		observer: Observer | None = None,
	) -> None:
		self._tmpfs_dir = tmpfs_dir
		self._tmpfs_size = tmpfs_size
		self._observer = observer or default_observer

	@contextmanager
	def _scratch_dir(self, size_mb: int) -> Iterator[Path]:
		if self._tmpfs_dir is not None and self._tmpfs_dir.is_dir():
			# We're already on a tmpfs, so no need to mount tmpfs on a
			# temp dir, just use the dir instead
			self._observer.notice(f'Using {self._tmpfs_dir} for tmpfs')
			yield self._tmpfs_dir
			return

		size = self._tmpfs_size or f'{size_mb + SCRATCH_SLACK_MB}M'
		tempdir = Path(tempfile.mkdtemp(prefix='diskbuilder-tmpfs-'))

		self._observer.notice(f'Mounting tmpfs (size: {size})')

		try:
			SysCommand(['mount', '-t', 'tmpfs', '-o', f'size={size}', 'diskbuilder-tmpfs', str(tempdir)])
		except ToolInvocationError as err:
			tempdir.rmdir()
			raise ResourceAcquisitionError(f'Could not mount tmpfs on {tempdir}: {err.message}') from err

		try:
			yield tempdir
		finally:
			try:
				SysCommand(['umount', str(tempdir)])
				tempdir.rmdir()
			except (ToolInvocationError, OSError) as err:
				warn(f'Could not clean up tmpfs {tempdir}: {err}')

	def _attach_loop_device(self, backing_file: Path) -> Path:
		try:
			output = SysCommand(['losetup', '--find', '--show', '--partscan', str(backing_file)]).decode()
		except ToolInvocationError as err:
			raise ResourceAcquisitionError(f'Failed to find a free loop device: {err.message}') from err

		if not output:
			raise ResourceAcquisitionError('losetup did not report a loop device')

		return Path(output.splitlines()[-1].strip())

	def release(self, handle: DeviceHandle) -> None:
		"""
		Detaches an engine owned loop device and deletes its backing file.
		Releasing twice is a no-op, caller supplied devices are left alone.
		"""
		if handle.is_released():
			debug(f'Device {handle.path} already released')
			return

		if not handle.owned:
			debug(f'Device {handle.path} is caller supplied, leaving it attached')
			handle.state = DeviceState.Released
			return

		self._observer.notice(f'Deleting loop device {handle.path} (and its backing file)')

		try:
			SysCommand(['losetup', '--detach', str(handle.path)])
		except ToolInvocationError as err:
			warn(f'Could not detach loop device {handle.path}: {err.message}')

		if handle.backing_file is not None:
			try:
				handle.backing_file.unlink(missing_ok=True)
			except OSError as err:
				warn(f'Could not delete backing file {handle.backing_file}: {err}')

		handle.state = DeviceState.Released

	@contextmanager
	def loopback_device(self, total_size_mb: int) -> Iterator[DeviceHandle]:
		self._observer.notice(f'Creating disk file ({total_size_mb}MiB) and loopback device')

		with self._scratch_dir(total_size_mb) as scratch:
			backing_file = scratch / f'diskbuilder-{os.getpid()}.img'

			try:
				with backing_file.open('wb') as fp:
					fp.truncate(total_size_mb * 1024 * 1024)
			except OSError as err:
				raise ResourceAcquisitionError(f'Could not allocate backing file {backing_file}: {err}') from err

			try:
				loop_dev = self._attach_loop_device(backing_file)
			except ResourceAcquisitionError:
				backing_file.unlink(missing_ok=True)
				raise

			handle = DeviceHandle(path=loop_dev, owned=True, backing_file=backing_file)
			debug(f'Loop device {loop_dev} attached to {backing_file}')

			try:
				yield handle
			finally:
				self.release(handle)

	def with_loopback_device(self, total_size_mb: int, work_fn: Callable[[DeviceHandle], T]) -> T:
		with self.loopback_device(total_size_mb) as handle:
			return work_fn(handle)

	def physical_device(self, dev_path: Path, needed_mib: int) -> DeviceHandle:
		"""
		Wraps a caller supplied block device after making sure it is
		larger than the layout needs. The engine never destroys it.
		"""
		if not dev_path.exists():
			raise ResourceAcquisitionError(f'Block device {dev_path} does not exist')

		dev_mib = get_lsblk_info(dev_path).size_mib

		if needed_mib >= dev_mib:
			warn(f'Insufficient space! need MiB: {needed_mib}, device MiB: {dev_mib}')
			raise ResourceAcquisitionError(f'Total size {needed_mib}MiB does not fit block device {dev_path} ({dev_mib}MiB)')

		return DeviceHandle(path=dev_path, owned=False)
