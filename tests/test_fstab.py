from pathlib import Path

import pytest

from diskbuilder.lib.exceptions import ConfigurationError
from diskbuilder.lib.fstab import FstabEntry, fstab_entries, parse_fstab, render_fstab
from diskbuilder.lib.models.layout import LogicalVolumeEntry, PartitionEntry, PartitionSpec


def test_render_fstab(simple_spec: PartitionSpec) -> None:
	contents = render_fstab(fstab_entries(simple_spec.first_os_entry(), simple_spec.grub_cfg_entry()))

	assert contents.splitlines() == [
		'# This file is autogenerated',
		'# <filesystem>\t<mnt>\t<type>\t<opts>\t<dump>\t<pass>',
		'LABEL=OS\t/\text4\tdefaults,errors=remount-ro\t0\t1',
		'LABEL=GRUB_CFG\t/grub\text4\tdefaults,errors=remount-ro\t0\t1',
	]


def test_fstab_round_trip(simple_spec: PartitionSpec) -> None:
	entries = fstab_entries(simple_spec.first_os_entry(), simple_spec.grub_cfg_entry())

	parsed = parse_fstab(render_fstab(entries))

	assert parsed == entries
	assert {e.label: e.mountpoint for e in parsed} == {'OS': Path('/'), 'GRUB_CFG': Path('/grub')}


def test_fstab_uses_mount_type() -> None:
	os_entry = LogicalVolumeEntry(label='ROOT', fs='xfs', os=True)
	grub_entry = PartitionEntry(label='BOOT', fs='fat32', size_mb=64, grub_cfg=True)

	os_line, grub_line = fstab_entries(os_entry, grub_entry)

	assert os_line.fs_type == 'xfs'
	assert grub_line.fs_type == 'vfat'


def test_fstab_needs_filesystem() -> None:
	os_entry = PartitionEntry(label='OS', size_mb=10, os=True)
	grub_entry = PartitionEntry(label='GRUB_CFG', fs='ext4', size_mb=32, grub_cfg=True)

	with pytest.raises(ConfigurationError, match='no filesystem'):
		fstab_entries(os_entry, grub_entry)


def test_parse_foreign_fstab() -> None:
	contents = '\n'.join([
		'# /etc/fstab: static file system information.',
		'',
		'UUID=1234-ABCD  /boot/efi  vfat  umask=0077  0  1',
		'proc /proc proc defaults',
	])

	efi, proc = parse_fstab(contents)

	assert efi == FstabEntry(spec='UUID=1234-ABCD', mountpoint=Path('/boot/efi'), fs_type='vfat', options='umask=0077', dump=0, pass_no=1)
	assert efi.label is None
	assert (proc.dump, proc.pass_no) == (0, 0)


def test_parse_malformed_fstab() -> None:
	with pytest.raises(ValueError, match='line 2'):
		parse_fstab('# header\nLABEL=OS /\n')
