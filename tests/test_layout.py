import json
from pathlib import Path

import pytest

from diskbuilder.lib.exceptions import ConfigurationError
from diskbuilder.lib.models.layout import FilesystemType, LogicalVolumeEntry, PartitionEntry, PartitionSpec


def test_parse_layout_file(simple_spec: PartitionSpec) -> None:
	assert len(simple_spec) == 2

	grub_part, os_part = simple_spec
	assert grub_part.label == 'GRUB_CFG'
	assert grub_part.filesystem == FilesystemType.Ext4
	assert grub_part.size_mb == 32
	assert grub_part.is_grub_cfg
	assert not grub_part.is_os

	assert os_part.is_os
	assert os_part.size_mb == 768
	assert os_part.flags == {}
	assert os_part.lvm is None


def test_parse_lvm_layout(lvm_spec: PartitionSpec) -> None:
	data_part = lvm_spec.entries[2]

	assert data_part.is_lvm
	assert data_part.is_open_ended
	assert data_part.filesystem is None
	assert data_part.lvm is not None
	assert data_part.lvm.vg_name == 'vg_data'

	swap, var = data_part.lvm.volumes
	assert swap.filesystem == FilesystemType.Swap
	assert var.is_open_ended
	assert data_part.lvm.fixed_size_mb() == 256
	assert data_part.lvm.open_ended_volumes() == [var]

	assert lvm_spec.entries[1].flags == {'legacy_boot': True}


def test_flags_accept_booleans_and_on_off() -> None:
	spec = PartitionSpec.parse_arg([
		{'label': 'A', 'size_mb': 1, 'flags': {'boot': 'on', 'esp': 'OFF', 'hidden': True}},
	])

	assert spec.entries[0].flags == {'boot': True, 'esp': False, 'hidden': True}


def test_invalid_flag_state() -> None:
	with pytest.raises(ConfigurationError, match='Invalid partition layout'):
		PartitionSpec.parse_arg([{'label': 'A', 'size_mb': 1, 'flags': {'boot': 'maybe'}}])


def test_unknown_keys_are_rejected() -> None:
	with pytest.raises(ConfigurationError):
		PartitionSpec.parse_arg([{'label': 'A', 'size_mb': 1, 'mountpoint': '/'}])


@pytest.mark.parametrize('size', [0, -5])
def test_sizes_must_be_positive(size: int) -> None:
	with pytest.raises(ConfigurationError):
		PartitionSpec.parse_arg([{'label': 'A', 'size_mb': size}])


def test_empty_label_is_rejected() -> None:
	with pytest.raises(ConfigurationError):
		PartitionSpec.parse_arg([{'label': '', 'size_mb': 10}])


@pytest.mark.parametrize(
	'fs, expected',
	[
		('linux-swap', FilesystemType.Swap),
		('EXT4', FilesystemType.Ext4),
		('none', None),
		('', None),
		('fat32', FilesystemType.Fat32),
	],
)
def test_filesystem_normalization(fs: str, expected: FilesystemType | None) -> None:
	spec = PartitionSpec.parse_arg([{'label': 'A', 'size_mb': 1, 'fs': fs}])
	assert spec.entries[0].filesystem == expected


def test_fat_mounts_as_vfat() -> None:
	assert FilesystemType.Fat16.fs_type_mount == 'vfat'
	assert FilesystemType.Fat32.fs_type_mount == 'vfat'
	assert FilesystemType.Ext4.fs_type_mount == 'ext4'
	assert FilesystemType.Swap.parted_value == 'linux-swap'


def test_layout_must_be_a_list() -> None:
	with pytest.raises(ConfigurationError, match='not a list'):
		PartitionSpec.parse_arg({'label': 'A'})


def test_missing_layout_file(tmp_path: Path) -> None:
	with pytest.raises(ConfigurationError, match='Missing layout file'):
		PartitionSpec.from_file(tmp_path / 'missing.json')


def test_layout_file_with_invalid_json(tmp_path: Path) -> None:
	layout = tmp_path / 'layout.json'
	layout.write_text('[{"label": "A",')

	with pytest.raises(ConfigurationError, match='not valid JSON'):
		PartitionSpec.from_file(layout)


def test_json_output_uses_file_keys(lvm_spec: PartitionSpec) -> None:
	data = lvm_spec.json()

	assert data[0] == {'label': 'GRUB_CFG', 'fs': 'ext4', 'size_mb': 32, 'grub_cfg': True}
	assert data[2]['lvm']['vg_name'] == 'vg_data'
	assert PartitionSpec.parse_arg(json.loads(json.dumps(data))) == lvm_spec


def test_with_partitions_prepends(simple_spec: PartitionSpec) -> None:
	embed = PartitionEntry(label='GRUB_EMBED', filesystem=FilesystemType.Ext4, size_mb=31, flags={'bios_grub': True})

	merged = simple_spec.with_partitions([embed])

	assert [p.label for p in merged] == ['GRUB_EMBED', 'GRUB_CFG', 'OS']
	# the layout it was built from is unchanged
	assert len(simple_spec) == 2


def test_os_entries_include_volumes() -> None:
	spec = PartitionSpec.parse_arg([
		{'label': 'GRUB_CFG', 'fs': 'ext4', 'size_mb': 32, 'grub_cfg': True},
		{
			'label': 'PV',
			'size_mb': 500,
			'lvm': {'vg_name': 'vg0', 'volumes': [{'label': 'ROOT', 'fs': 'ext4', 'size_mb': 400, 'os': True}]},
		},
	])

	os_entries = spec.os_entries()

	assert len(os_entries) == 1
	assert isinstance(os_entries[0], LogicalVolumeEntry)
	assert spec.first_os_entry().label == 'ROOT'
	assert spec.has_lvm()


def test_lookup_errors() -> None:
	spec = PartitionSpec.parse_arg([{'label': 'DATA', 'size_mb': 10}])

	with pytest.raises(ConfigurationError, match='grub_cfg'):
		spec.grub_cfg_entry()

	with pytest.raises(ConfigurationError, match='ESP'):
		spec.esp_entry()

	with pytest.raises(ConfigurationError, match='OS'):
		spec.first_os_entry()
