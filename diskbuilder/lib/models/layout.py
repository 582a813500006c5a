from __future__ import annotations

import json
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, TypeAdapter, ValidationError, field_validator, model_validator

from ..exceptions import ConfigurationError


class FilesystemType(Enum):
	Btrfs = 'btrfs'
	Ext2 = 'ext2'
	Ext3 = 'ext3'
	Ext4 = 'ext4'
	Fat16 = 'fat16'
	Fat32 = 'fat32'
	Xfs = 'xfs'
	Swap = 'swap'

	@property
	def fs_type_mount(self) -> str:
		match self:
			case FilesystemType.Fat16 | FilesystemType.Fat32:
				return 'vfat'
			case _:
				return self.value

	@property
	def parted_value(self) -> str:
		return 'linux-swap' if self == FilesystemType.Swap else self.value

	def is_fat(self) -> bool:
		return self in (FilesystemType.Fat16, FilesystemType.Fat32)


class _LayoutEntry(BaseModel):
	model_config = ConfigDict(extra='forbid', frozen=True, populate_by_name=True)

	label: str = Field(min_length=1)
	filesystem: FilesystemType | None = Field(default=None, alias='fs')
	# None marks an open-ended entry, it takes whatever space remains
	size_mb: PositiveInt | None = None
	is_os: bool = Field(default=False, alias='os')
	is_grub_cfg: bool = Field(default=False, alias='grub_cfg')
	is_esp: bool = Field(default=False, alias='esp')

	@field_validator('filesystem', mode='before')
	@classmethod
	def normalize_filesystem(cls, v: Any) -> Any:
		if isinstance(v, str):
			v = v.lower()
			if v in ('', 'none'):
				return None
			if v == 'linux-swap':
				return FilesystemType.Swap.value
		return v

	@property
	def is_open_ended(self) -> bool:
		return self.size_mb is None

	def format_size(self) -> str:
		return f'{self.size_mb}MiB' if self.size_mb is not None else 'remaining'

	def table_data(self) -> dict[str, str]:
		roles = [
			name for name, marked in (('os', self.is_os), ('grub_cfg', self.is_grub_cfg), ('esp', self.is_esp))
			if marked
		]

		return {
			'Label': self.label,
			'FS type': self.filesystem.value if self.filesystem else '',
			'Size': self.format_size(),
			'Roles': ', '.join(roles),
		}


class LogicalVolumeEntry(_LayoutEntry):
	@model_validator(mode='after')
	def check_roles(self) -> LogicalVolumeEntry:
		# grub and the firmware look these up as plain partitions
		if self.is_grub_cfg:
			raise ValueError(f'Logical volume {self.label} cannot be a grub_cfg partition')
		if self.is_esp:
			raise ValueError(f'Logical volume {self.label} cannot be an ESP')
		return self


class LvmSpec(BaseModel):
	model_config = ConfigDict(extra='forbid', frozen=True)

	vg_name: str
	volumes: tuple[LogicalVolumeEntry, ...] = ()

	def open_ended_volumes(self) -> list[LogicalVolumeEntry]:
		return [v for v in self.volumes if v.is_open_ended]

	def fixed_volumes(self) -> list[LogicalVolumeEntry]:
		return [v for v in self.volumes if not v.is_open_ended]

	def fixed_size_mb(self) -> int:
		return sum(v.size_mb for v in self.volumes if v.size_mb is not None)


class PartitionEntry(_LayoutEntry):
	flags: dict[str, bool] = Field(default_factory=dict)
	lvm: LvmSpec | None = None

	@field_validator('flags', mode='before')
	@classmethod
	def convert_flags(cls, v: Any) -> Any:
		if v is None:
			return {}

		if not isinstance(v, dict):
			return v

		converted = {}
		for name, state in v.items():
			if isinstance(state, str):
				match state.lower():
					case 'on':
						state = True
					case 'off':
						state = False
					case _:
						raise ValueError(f'Flag {name} must be "on" or "off", got "{state}"')
			converted[name] = state

		return converted

	@property
	def is_lvm(self) -> bool:
		return self.lvm is not None

	def table_data(self) -> dict[str, str]:
		data = super().table_data()
		data['Flags'] = ', '.join(f'{k}={"on" if v else "off"}' for k, v in self.flags.items())
		data['LVM'] = self.lvm.vg_name if self.lvm else ''
		return data


_entries_adapter = TypeAdapter(list[PartitionEntry])


@dataclass(frozen=True)
class PartitionSpec:
	"""
	The partition layout of a disk, in table order.
	Built once per build and never mutated afterwards.
	"""
	entries: tuple[PartitionEntry, ...]

	def __iter__(self) -> Iterator[PartitionEntry]:
		return iter(self.entries)

	def __len__(self) -> int:
		return len(self.entries)

	@classmethod
	def parse_arg(cls, arg: Any) -> PartitionSpec:
		if not isinstance(arg, list):
			raise ConfigurationError('Partition layout is not a list of partitions')

		try:
			entries = _entries_adapter.validate_python(arg)
		except ValidationError as err:
			raise ConfigurationError(f'Invalid partition layout: {err}') from err

		return cls(tuple(entries))

	@classmethod
	def from_file(cls, path: Path) -> PartitionSpec:
		if not path.is_file():
			raise ConfigurationError(f'Missing layout file: {path}')

		try:
			arg = json.loads(path.read_text())
		except json.JSONDecodeError as err:
			raise ConfigurationError(f'Layout file {path} is not valid JSON: {err}') from err

		return cls.parse_arg(arg)

	def json(self) -> list[dict[str, Any]]:
		return [
			entry.model_dump(mode='json', by_alias=True, exclude_defaults=True)
			for entry in self.entries
		]

	def with_partitions(self, partitions: Sequence[PartitionEntry]) -> PartitionSpec:
		"""
		Returns a new layout with the given partitions placed in front
		"""
		return PartitionSpec(tuple(partitions) + self.entries)

	def lvm_entries(self) -> list[PartitionEntry]:
		return [p for p in self.entries if p.lvm is not None]

	def has_lvm(self) -> bool:
		return len(self.lvm_entries()) > 0

	def volumes(self) -> list[LogicalVolumeEntry]:
		return [vol for p in self.entries if p.lvm is not None for vol in p.lvm.volumes]

	def open_ended_entries(self) -> list[PartitionEntry]:
		return [p for p in self.entries if p.is_open_ended]

	def grub_cfg_entries(self) -> list[PartitionEntry]:
		return [p for p in self.entries if p.is_grub_cfg]

	def grub_cfg_entry(self) -> PartitionEntry:
		if grub_part := next(iter(self.grub_cfg_entries()), None):
			return grub_part
		raise ConfigurationError('Missing grub_cfg partition in layout')

	def esp_entry(self) -> PartitionEntry:
		if esp_part := next(filter(lambda p: p.is_esp, self.entries), None):
			return esp_part
		raise ConfigurationError('Missing ESP partition in layout')

	def os_entries(self) -> list[PartitionEntry | LogicalVolumeEntry]:
		os_parts: list[PartitionEntry | LogicalVolumeEntry] = [p for p in self.entries if p.is_os]
		os_parts += [v for v in self.volumes() if v.is_os]
		return os_parts

	def first_os_entry(self) -> PartitionEntry | LogicalVolumeEntry:
		if os_part := next(iter(self.os_entries()), None):
			return os_part
		raise ConfigurationError('No partitions marked as OS')
