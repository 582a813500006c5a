from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
	from ..bootloader.base import BootloaderStrategy
	from ..output import Observer


class Bootloader(Enum):
	Bios = 'bios'
	Uefi = 'uefi'

	@property
	def grub_architecture(self) -> str:
		match self:
			case Bootloader.Bios:
				return 'i386-pc'
			case Bootloader.Uefi:
				return 'x86_64-efi'

	def strategy(
		self,
		use_system_tools: bool = False,
		observer: Observer | None = None,
	) -> BootloaderStrategy:
		from ..bootloader.bios import BiosBootloader
		from ..bootloader.uefi import UefiBootloader

		match self:
			case Bootloader.Bios:
				return BiosBootloader(use_system_tools=use_system_tools, observer=observer)
			case Bootloader.Uefi:
				return UefiBootloader(use_system_tools=use_system_tools, observer=observer)

	@classmethod
	def from_arg(cls, bootloader: str) -> Bootloader:
		try:
			return Bootloader(bootloader.lower())
		except ValueError:
			values = ', '.join(e.value for e in Bootloader)
			raise ValueError(f'Invalid bootloader value "{bootloader}". Allowed values: {values}')
