from __future__ import annotations

from ..disk.device_handler import mounted_by_label
from ..models.bootloader import Bootloader
from ..models.device import DeviceHandle
from ..models.layout import FilesystemType, PartitionEntry, PartitionSpec
from ..output import Observer, default_observer
from .base import build_grub_image, grub_cfg_partition, grub_tools, write_grub_cfg
from .config import UEFI_GRUB_MODULES, grub_modules

ESP_LABEL = 'ESP'
ESP_SIZE_MB = 512

EFI_BOOT_DIR = 'EFI/BOOT'
EFI_BOOT_IMAGE = 'bootx64.efi'


class UefiBootloader:
	packages = ['grub-common', 'grub-efi-amd64-bin']

	def __init__(self, use_system_tools: bool = False, observer: Observer | None = None) -> None:
		self._use_system_tools = use_system_tools
		self._observer = observer or default_observer
		self.architecture = Bootloader.Uefi.grub_architecture

	def required_partitions(self) -> list[PartitionEntry]:
		return [
			PartitionEntry(
				label=ESP_LABEL,
				filesystem=FilesystemType.Fat32,
				size_mb=ESP_SIZE_MB,
				flags={'boot': True},
				is_esp=True,
			),
			grub_cfg_partition(),
		]

	def install_bootloader(self, device: DeviceHandle, spec: PartitionSpec) -> None:
		esp = spec.esp_entry()

		self._observer.notice(f'Installing UEFI bootloader on {device.path}')

		with (
			grub_tools(self.packages, self._use_system_tools, self._observer) as tools_dir,
			mounted_by_label(esp.label) as mountdir,
		):
			boot_dir = mountdir / EFI_BOOT_DIR
			boot_dir.mkdir(parents=True, exist_ok=True)

			self._observer.info(f'Creating {EFI_BOOT_DIR}/{EFI_BOOT_IMAGE} (with embedded load.cfg)')
			build_grub_image(
				tools_dir,
				self.architecture,
				boot_dir / EFI_BOOT_IMAGE,
				f'/{EFI_BOOT_DIR}',
				grub_modules(UEFI_GRUB_MODULES, spec),
				spec,
			)

	def configure_bootloader(self, spec: PartitionSpec) -> None:
		write_grub_cfg(spec, self._observer)
