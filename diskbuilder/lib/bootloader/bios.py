from __future__ import annotations

import shutil

from ..disk.device_handler import mounted_by_label
from ..exceptions import ToolInvocationError
from ..general import SysCommand
from ..models.bootloader import Bootloader
from ..models.device import DeviceHandle
from ..models.layout import FilesystemType, PartitionEntry, PartitionSpec
from ..output import Observer, debug, default_observer
from .base import build_grub_image, grub_binary, grub_cfg_partition, grub_lib_dir, grub_tools, write_grub_cfg
from .config import BIOS_GRUB_MODULES, GRUB_CFG_DIR, grub_modules

GRUB_EMBED_LABEL = 'GRUB_EMBED'
GRUB_EMBED_SIZE_MB = 31


class BiosBootloader:
	"""
	GRUB for legacy BIOS boot on a GPT disk. The core image is embedded
	into the bios_grub partition by grub-bios-setup.
	"""

	packages = ['grub-common', 'grub-pc-bin']

	def __init__(self, use_system_tools: bool = False, observer: Observer | None = None) -> None:
		self._use_system_tools = use_system_tools
		self._observer = observer or default_observer
		self.architecture = Bootloader.Bios.grub_architecture

	def required_partitions(self) -> list[PartitionEntry]:
		return [
			PartitionEntry(
				label=GRUB_EMBED_LABEL,
				filesystem=FilesystemType.Ext4,
				size_mb=GRUB_EMBED_SIZE_MB,
				flags={'bios_grub': True},
			),
			grub_cfg_partition(),
		]

	def install_bootloader(self, device: DeviceHandle, spec: PartitionSpec) -> None:
		grub_part = spec.grub_cfg_entry()

		self._observer.notice(f'Installing BIOS bootloader on {device.path}')

		with (
			grub_tools(self.packages, self._use_system_tools, self._observer) as tools_dir,
			mounted_by_label(grub_part.label) as mountdir,
		):
			grub_dir = mountdir / GRUB_CFG_DIR
			imgs_dir = grub_dir / 'imgs'
			mods_dir = grub_dir / self.architecture
			lib_dir = grub_lib_dir(tools_dir, self.architecture)

			imgs_dir.mkdir(parents=True, exist_ok=True)
			mods_dir.mkdir(parents=True, exist_ok=True)

			self._observer.info('Creating core.img (with embedded load.cfg)')
			build_grub_image(
				tools_dir,
				self.architecture,
				imgs_dir / 'core.img',
				f'/{GRUB_CFG_DIR}',
				grub_modules(BIOS_GRUB_MODULES, spec),
				spec,
			)

			boot_img = lib_dir / 'boot.img'
			if not boot_img.is_file():
				raise ToolInvocationError(f'Missing {boot_img} in grub tools')

			shutil.copy2(boot_img, imgs_dir / 'boot.img')

			modules = [*lib_dir.glob('*.mod'), *lib_dir.glob('*.lst')]
			debug(f'Copying {len(modules)} grub modules to {GRUB_CFG_DIR}/{self.architecture}')
			for module in modules:
				shutil.copy2(module, mods_dir)

			self._observer.info(f'Installing grub to {device.path}')
			SysCommand([
				grub_binary(tools_dir, 'grub-bios-setup', self.architecture),
				'--boot-image=boot.img',
				'--core-image=core.img',
				f'--directory={imgs_dir}',
				'--device-map=/dev/null',
				'--skip-fs-probe',
				str(device.path),
			])

	def configure_bootloader(self, spec: PartitionSpec) -> None:
		write_grub_cfg(spec, self._observer)
