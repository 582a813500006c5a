from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .layout import LogicalVolumeEntry, PartitionEntry

PARTLABEL_DIR = Path('/dev/disk/by-partlabel')
FSLABEL_DIR = Path('/dev/disk/by-label')


class DeviceState(Enum):
	Unattached = 'unattached'
	Attached = 'attached'
	Partitioned = 'partitioned'
	Provisioned = 'provisioned'
	Released = 'released'


@dataclass
class DeviceHandle:
	path: Path
	# engine owned handles are loop devices the engine created and will destroy
	owned: bool = False
	backing_file: Path | None = None
	state: DeviceState = DeviceState.Attached

	def is_loopback(self) -> bool:
		return self.backing_file is not None

	def is_released(self) -> bool:
		return self.state == DeviceState.Released

	def table_data(self) -> dict[str, str]:
		return {
			'Device': str(self.path),
			'Backing file': str(self.backing_file) if self.backing_file else '',
			'Owned': 'yes' if self.owned else 'no',
			'State': self.state.value,
		}


@dataclass
class ProvisionedPartition:
	label: str
	entry: PartitionEntry | LogicalVolumeEntry
	dev_path: Path
	partn: int | None = None
	vg_name: str | None = None
	volumes: list[ProvisionedPartition] = field(default_factory=list)

	def is_volume(self) -> bool:
		return self.vg_name is not None

	def table_data(self) -> dict[str, str]:
		return {
			'Label': self.label,
			'Device': str(self.dev_path),
			'Number': str(self.partn) if self.partn is not None else '',
			'VG': self.vg_name or '',
			'FS type': self.entry.filesystem.value if self.entry.filesystem else '',
			'Size': self.entry.format_size(),
		}


def partlabel_path(label: str) -> Path:
	return PARTLABEL_DIR / label


def fslabel_path(label: str) -> Path:
	return FSLABEL_DIR / label


def volume_path(vg_name: str, lv_name: str) -> Path:
	return Path('/dev') / vg_name / lv_name
