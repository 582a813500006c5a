from pathlib import Path
from typing import Any

import pytest

from diskbuilder.lib.disk.device_handler import compute_total_disk_size
from diskbuilder.lib.disk.validators import validate_layout
from diskbuilder.lib.exceptions import ConfigurationError
from diskbuilder.lib.models.layout import PartitionSpec

GRUB_CFG = {'label': 'GRUB_CFG', 'fs': 'ext4', 'size_mb': 32, 'grub_cfg': True}


def _lvm_part(volumes: list[dict[str, Any]], size_mb: int | None = 500, vg_name: str = 'vg0', label: str = 'PV') -> dict[str, Any]:
	return {'label': label, 'size_mb': size_mb, 'lvm': {'vg_name': vg_name, 'volumes': volumes}}


def test_simple_layout_is_valid(simple_spec: PartitionSpec) -> None:
	validate_layout(simple_spec)
	assert compute_total_disk_size(simple_spec) == 802


def test_lvm_layout_is_valid(lvm_spec: PartitionSpec) -> None:
	validate_layout(lvm_spec)


def test_two_open_ended_partitions(data_dir: Path) -> None:
	spec = PartitionSpec.from_file(data_dir / 'layout_two_open_ended.json')

	with pytest.raises(ConfigurationError, match='Only one open-ended partition allowed'):
		validate_layout(spec)


def test_volume_group_over_capacity(data_dir: Path) -> None:
	spec = PartitionSpec.from_file(data_dir / 'layout_lvm_overcommit.json')

	with pytest.raises(ConfigurationError, match='Volume group vg0 on PV exceeds capacity'):
		validate_layout(spec)


def test_missing_grub_cfg_partition(data_dir: Path) -> None:
	spec = PartitionSpec.from_file(data_dir / 'layout_no_grub_cfg.json')

	with pytest.raises(ConfigurationError, match='Missing grub_cfg partition'):
		validate_layout(spec)


def test_multiple_grub_cfg_partitions() -> None:
	spec = PartitionSpec.parse_arg([
		GRUB_CFG,
		{'label': 'GRUB_CFG2', 'fs': 'ext4', 'size_mb': 32, 'grub_cfg': True},
		{'label': 'OS', 'fs': 'ext4', 'size_mb': 100, 'os': True},
	])

	with pytest.raises(ConfigurationError, match='Multiple grub_cfg partitions'):
		validate_layout(spec)


def test_missing_os_partition() -> None:
	spec = PartitionSpec.parse_arg([GRUB_CFG, {'label': 'DATA', 'fs': 'ext4', 'size_mb': 100}])

	with pytest.raises(ConfigurationError, match=r'Missing OS partition in layout \(non LVM\)'):
		validate_layout(spec)


def test_missing_os_partition_with_lvm() -> None:
	spec = PartitionSpec.parse_arg([GRUB_CFG, _lvm_part([{'label': 'DATA', 'fs': 'ext4', 'size_mb': 100}])])

	with pytest.raises(ConfigurationError, match=r'Missing OS partition in layout \(LVM\)'):
		validate_layout(spec)


def test_os_volume_satisfies_os_requirement() -> None:
	spec = PartitionSpec.parse_arg([GRUB_CFG, _lvm_part([{'label': 'ROOT', 'fs': 'ext4', 'size_mb': 100, 'os': True}])])

	validate_layout(spec)


def test_empty_vg_name() -> None:
	spec = PartitionSpec.parse_arg([
		GRUB_CFG,
		{'label': 'OS', 'fs': 'ext4', 'size_mb': 100, 'os': True},
		_lvm_part([{'label': 'DATA', 'size_mb': 10}], vg_name=' '),
	])

	with pytest.raises(ConfigurationError, match='missing vg_name'):
		validate_layout(spec)


def test_two_open_ended_volumes() -> None:
	spec = PartitionSpec.parse_arg([
		GRUB_CFG,
		_lvm_part([
			{'label': 'ROOT', 'fs': 'ext4', 'os': True},
			{'label': 'VAR', 'fs': 'ext4'},
		]),
	])

	with pytest.raises(ConfigurationError, match='Only one open-ended volume allowed in volume group vg0'):
		validate_layout(spec)


def test_volumes_filling_the_group_exactly() -> None:
	# 4MiB stay free for LVM metadata
	spec = PartitionSpec.parse_arg([
		GRUB_CFG,
		_lvm_part([{'label': 'ROOT', 'fs': 'ext4', 'size_mb': 96, 'os': True}], size_mb=100),
	])

	validate_layout(spec)


def test_volumes_one_mib_too_large() -> None:
	spec = PartitionSpec.parse_arg([
		GRUB_CFG,
		_lvm_part([{'label': 'ROOT', 'fs': 'ext4', 'size_mb': 97, 'os': True}], size_mb=100),
	])

	with pytest.raises(ConfigurationError, match='exceeds capacity'):
		validate_layout(spec)


def test_open_ended_volume_needs_a_free_extent() -> None:
	spec = PartitionSpec.parse_arg([
		GRUB_CFG,
		_lvm_part([
			{'label': 'ROOT', 'fs': 'ext4', 'size_mb': 96, 'os': True},
			{'label': 'VAR', 'fs': 'ext4'},
		], size_mb=100),
	])

	with pytest.raises(ConfigurationError, match='Volume group vg0 on PV exceeds capacity'):
		validate_layout(spec)


def test_open_ended_volume_with_one_free_extent() -> None:
	spec = PartitionSpec.parse_arg([
		GRUB_CFG,
		_lvm_part([
			{'label': 'ROOT', 'fs': 'ext4', 'size_mb': 92, 'os': True},
			{'label': 'VAR', 'fs': 'ext4'},
		], size_mb=100),
	])

	validate_layout(spec)


@pytest.mark.parametrize('role, message', [('grub_cfg', 'cannot be a grub_cfg partition'), ('esp', 'cannot be an ESP')])
def test_volume_cannot_hold_boot_roles(role: str, message: str) -> None:
	# the bootloader adds its own GRUB_CFG partition in front of user layouts
	layout = [
		GRUB_CFG,
		_lvm_part([
			{'label': 'ROOT', 'fs': 'ext4', 'size_mb': 100, 'os': True},
			{'label': 'BOOT', 'fs': 'ext4', 'size_mb': 32, role: True},
		]),
	]

	with pytest.raises(ConfigurationError, match=f'Logical volume BOOT {message}'):
		PartitionSpec.parse_arg(layout)


def test_open_ended_lvm_partition_skips_capacity_check() -> None:
	spec = PartitionSpec.parse_arg([
		GRUB_CFG,
		_lvm_part([{'label': 'ROOT', 'fs': 'ext4', 'size_mb': 4096, 'os': True}], size_mb=None),
	])

	validate_layout(spec)


def test_duplicate_partition_labels() -> None:
	spec = PartitionSpec.parse_arg([
		GRUB_CFG,
		{'label': 'OS', 'fs': 'ext4', 'size_mb': 100, 'os': True},
		{'label': 'OS', 'fs': 'ext4', 'size_mb': 100},
	])

	with pytest.raises(ConfigurationError, match='Duplicate partition label OS'):
		validate_layout(spec)


def test_duplicate_volume_labels() -> None:
	spec = PartitionSpec.parse_arg([
		GRUB_CFG,
		_lvm_part([{'label': 'ROOT', 'size_mb': 10, 'os': True}], vg_name='vg0', label='PV0'),
		_lvm_part([{'label': 'ROOT', 'size_mb': 10}], vg_name='vg1', label='PV1'),
	])

	with pytest.raises(ConfigurationError, match='Duplicate volume label ROOT'):
		validate_layout(spec)


def test_duplicate_volume_group_names() -> None:
	spec = PartitionSpec.parse_arg([
		GRUB_CFG,
		_lvm_part([{'label': 'ROOT', 'size_mb': 10, 'os': True}], label='PV0'),
		_lvm_part([{'label': 'VAR', 'size_mb': 10}], label='PV1'),
	])

	with pytest.raises(ConfigurationError, match='Duplicate volume group name vg0'):
		validate_layout(spec)


def test_grub_cfg_check_runs_first() -> None:
	# violates several rules, the grub_cfg one is reported
	spec = PartitionSpec.parse_arg([
		{'label': 'A', 'fs': 'ext4'},
		{'label': 'A', 'fs': 'ext4'},
	])

	with pytest.raises(ConfigurationError, match='Missing grub_cfg partition'):
		validate_layout(spec)
