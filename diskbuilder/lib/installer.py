from __future__ import annotations

import os
from pathlib import Path

from .disk.device_handler import mounted_by_label
from .disk.utils import sync
from .exceptions import ConfigurationError, ToolInvocationError
from .fstab import fstab_entries, render_fstab
from .general import SysCommand
from .models.device import DeviceHandle
from .models.layout import PartitionSpec
from .output import Observer, debug, default_observer, warn

# suffix -> tar decompression flag
_TAR_COMPRESSION = {
	'.gz': '--gzip',
	'.tgz': '--gzip',
	'.bz2': '--bzip2',
	'.tbz2': '--bzip2',
	'.xz': '--xz',
	'.txz': '--xz',
	'.lzma': '--lzma',
	'.lz': '--lzip',
	'.lzo': '--lzop',
}


def tar_compression_flag(tarball: Path) -> str | None:
	return _TAR_COMPRESSION.get(tarball.suffix.lower())


def tar_extract_command(tarball: Path, target: Path) -> list[str]:
	cmd = ['tar', '--extract', f'--file={tarball}', '--preserve-permissions', '--numeric-owner']

	if flag := tar_compression_flag(tarball):
		cmd.append(flag)

	return cmd + ['-C', str(target), '.']


class ImageInstaller:
	def __init__(self, observer: Observer | None = None, device_timeout: float = 5.0) -> None:
		self._observer = observer or default_observer
		self._device_timeout = device_timeout

	def install_image(self, device: DeviceHandle, spec: PartitionSpec, tarball: Path) -> None:
		"""
		Unpacks the root filesystem tarball onto the first OS partition
		and adds an fstab when the image ships none.
		"""
		if not tarball.is_file():
			raise ConfigurationError(f'Missing image file: {tarball}')

		os_part = spec.first_os_entry()

		self._observer.notice(f'Installing {tarball.name} to {os_part.label} on {device.path}')

		try:
			with mounted_by_label(os_part.label, timeout=self._device_timeout) as mountdir:
				self._observer.info(f'Extracting {tarball.name}')
				SysCommand(tar_extract_command(tarball, mountdir))

				self._write_fstab(mountdir, spec)
		except BaseException:
			try:
				sync()
			except ToolInvocationError as err:
				warn(f'sync failed after an aborted install: {err.message}')
			raise

		sync()

	def _write_fstab(self, mountdir: Path, spec: PartitionSpec) -> None:
		fstab_path = mountdir / 'etc' / 'fstab'

		if fstab_path.exists():
			self._observer.info('Image provides /etc/fstab, leaving it untouched')
			return

		contents = render_fstab(fstab_entries(spec.first_os_entry(), spec.grub_cfg_entry()))

		self._observer.info('Writing /etc/fstab')
		debug(f'fstab:\n{contents}')

		fstab_path.parent.mkdir(parents=True, exist_ok=True)
		with fstab_path.open('w') as fp:
			fp.write(contents)
			fp.flush()
			os.fsync(fp.fileno())
