from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from types import TracebackType

from .disk.device_handler import DeviceHandler, compute_total_disk_size
from .disk.partitioning import PartitionProvisioner
from .disk.validators import validate_layout
from .exceptions import ConfigurationError
from .general import SysCommand, invoking_user
from .installer import ImageInstaller
from .models.bootloader import Bootloader
from .models.device import DeviceHandle
from .models.layout import PartitionSpec
from .output import FormattedOutput, Observer, debug, default_observer, info

DEFAULT_IMAGE_FORMAT = 'vmdk'

# output suffix -> qemu-img format
IMAGE_FORMATS = {
	'.vmdk': 'vmdk',
	'.qcow2': 'qcow2',
	'.vdi': 'vdi',
	'.vhd': 'vpc',
	'.vpc': 'vpc',
	'.img': 'raw',
	'.raw': 'raw',
}


class BuildState(Enum):
	Created = 'created'
	PartitionsReady = 'partitions ready'
	BootloaderInstalled = 'bootloader installed'
	BootConfigWritten = 'boot config written'
	ImageInstalled = 'image installed'
	Converted = 'converted'
	TornDown = 'torn down'


def image_format(output: Path) -> str:
	return IMAGE_FORMATS.get(output.suffix.lower(), DEFAULT_IMAGE_FORMAT)


class DiskBuilder:
	"""
	Builds a bootable disk from a root filesystem tarball and a partition
	layout, either on a caller supplied block device or on a loopback device
	that is converted into an image file at the end.

	Everything that can be checked without touching a device is checked
	on construction. Use as a context manager to guarantee teardown.
	"""

	def __init__(
		self,
		image: Path,
		layout: Path,
		bootloader: Bootloader,
		output: Path | None = None,
		device: Path | None = None,
		use_system_grub_tools: bool = False,
		tmpfs_dir: Path | None = None,
		tmpfs_size: str | None = None,
		observer: Observer | None = None,
		device_timeout: float = 5.0,
	) -> None:
		if output is None and device is None:
			raise ConfigurationError('No output file or device specified')

		if not image.is_file():
			raise ConfigurationError(f'Missing image file: {image}')

		self.image = image
		self.output = output
		self.bootloader = bootloader
		self.state = BuildState.Created

		self._observer = observer or default_observer
		self._strategy = bootloader.strategy(use_system_tools=use_system_grub_tools, observer=self._observer)

		user_spec = PartitionSpec.from_file(layout)
		self.spec = user_spec.with_partitions(self._strategy.required_partitions())

		validate_layout(self.spec)

		self.total_size_mb = compute_total_disk_size(self.spec)

		self._device_handler = DeviceHandler(tmpfs_dir=tmpfs_dir, tmpfs_size=tmpfs_size, observer=self._observer)
		self._provisioner = PartitionProvisioner(observer=self._observer, device_timeout=device_timeout)
		self._installer = ImageInstaller(observer=self._observer, device_timeout=device_timeout)

		self._device: DeviceHandle | None = None
		self._caller_device: DeviceHandle | None = None

		if device is not None:
			self._caller_device = self._device_handler.physical_device(device, self.total_size_mb)

	def __enter__(self) -> DiskBuilder:
		return self

	def __exit__(
		self,
		exc_type: type[BaseException] | None,
		exc_value: BaseException | None,
		traceback: TracebackType | None,
	) -> bool | None:
		self.teardown()

		# Return None to propagate the exception, the caller reports it
		return None

	def build(self) -> None:
		self._observer.notice(f'Building disk ({self.bootloader.value}, {self.total_size_mb}MiB)')
		debug(f'Partition layout:\n{FormattedOutput.as_table(list(self.spec))}')

		if self._caller_device is not None:
			self._build_on_device(self._caller_device)
		else:
			self._device_handler.with_loopback_device(self.total_size_mb, self._build_on_device)

		info('Disk build completed without any errors')

	def _build_on_device(self, device: DeviceHandle) -> None:
		self._device = device

		try:
			self._observer.notice('Creating partitions on disk')
			self._provisioner.provision(device, self.spec)
			self._advance(BuildState.PartitionsReady)

			self._observer.notice('Installing bootloader on disk')
			self._strategy.install_bootloader(device, self.spec)
			self._advance(BuildState.BootloaderInstalled)

			self._observer.notice('Generating bootloader config')
			self._strategy.configure_bootloader(self.spec)
			self._advance(BuildState.BootConfigWritten)

			self._observer.notice('Installing system image on disk partitions')
			self._installer.install_image(device, self.spec, self.image)
			self._advance(BuildState.ImageInstalled)

			self.create_image()
			self._advance(BuildState.Converted)
		finally:
			self.teardown()

	def _advance(self, state: BuildState) -> None:
		debug(f'Build state: {self.state.value} -> {state.value}')
		self.state = state

	def create_image(self) -> Path | None:
		"""
		Converts the raw disk into the output image file, the format
		follows the file suffix. The file is handed to the invoking user.
		"""
		if self.output is None:
			self._observer.info('No output file specified, skipping image conversion')
			return None

		if self._device is None:
			raise ConfigurationError('No device to convert, build() has not run')

		fmt = image_format(self.output)

		self._observer.notice(f'Creating {fmt} image {self.output} from raw disk')
		SysCommand(['qemu-img', 'convert', '-f', 'raw', '-O', fmt, str(self._device.path), str(self.output)])

		uid, gid = invoking_user()
		os.chown(self.output, uid, gid)

		return self.output

	def teardown(self) -> None:
		"""
		Deactivates the partitions and releases an engine owned loop device.
		Safe to call any number of times, failures are only logged.
		"""
		if self.state == BuildState.TornDown:
			return

		self.state = BuildState.TornDown

		if self._device is None:
			return

		self._provisioner.deprovision(self._device, self.spec)

		if self._device.owned:
			self._device_handler.release(self._device)
