from collections.abc import Iterable

from ..exceptions import ConfigurationError
from ..models.layout import LvmSpec, PartitionSpec, _LayoutEntry

# room kept free in a volume group for LVM metadata, one default extent
LVM_METADATA_MARGIN_MB = 4


def lvm_required_mb(lvm: LvmSpec) -> int:
	"""
	Smallest physical volume that holds the fixed volumes, the metadata
	and one extent for every open-ended volume.
	"""
	return lvm.fixed_size_mb() + LVM_METADATA_MARGIN_MB * (1 + len(lvm.open_ended_volumes()))


def _check_unique_labels(entries: Iterable[_LayoutEntry], kind: str) -> None:
	labels: set[str] = set()
	for entry in entries:
		if entry.label in labels:
			raise ConfigurationError(f'Duplicate {kind} label {entry.label}')
		labels.add(entry.label)


def validate_layout(spec: PartitionSpec) -> None:
	"""
	Checks that a partition layout is usable before anything touches a device.
	The checks run in a fixed order and the first violation raises ConfigurationError.
	"""
	grub_parts = spec.grub_cfg_entries()
	if not grub_parts:
		raise ConfigurationError('Missing grub_cfg partition in layout')
	elif len(grub_parts) > 1:
		raise ConfigurationError('Multiple grub_cfg partitions in layout')

	lvm_parts = spec.lvm_entries()

	if not lvm_parts:
		if not any(p.is_os for p in spec):
			raise ConfigurationError('Missing OS partition in layout (non LVM)')

		if len(spec.open_ended_entries()) > 1:
			raise ConfigurationError('Only one open-ended partition allowed in layout')

		_check_unique_labels(spec, 'partition')
		return

	# --- What follows are LVM specific checks ---

	if any(not p.lvm.vg_name.strip() for p in lvm_parts if p.lvm is not None):
		raise ConfigurationError('One or more LVM partitions are missing vg_name')

	if not spec.os_entries():
		raise ConfigurationError('Missing OS partition in layout (LVM)')

	if len(spec.open_ended_entries()) > 1:
		raise ConfigurationError('Only one open-ended partition allowed in layout')

	for part in lvm_parts:
		if part.lvm is not None and len(part.lvm.open_ended_volumes()) > 1:
			raise ConfigurationError(f'Only one open-ended volume allowed in volume group {part.lvm.vg_name}')

	for part in lvm_parts:
		if part.lvm is None or part.size_mb is None:
			continue

		needed_mb = lvm_required_mb(part.lvm)
		if needed_mb > part.size_mb:
			raise ConfigurationError(
				f'Volume group {part.lvm.vg_name} on {part.label} exceeds capacity: '
				f'volumes need {needed_mb}MiB including metadata, partition has {part.size_mb}MiB'
			)

	_check_unique_labels(spec, 'partition')
	_check_unique_labels(spec.volumes(), 'volume')

	vg_names: set[str] = set()
	for part in lvm_parts:
		if part.lvm is None:
			continue
		if part.lvm.vg_name in vg_names:
			raise ConfigurationError(f'Duplicate volume group name {part.lvm.vg_name}')
		vg_names.add(part.lvm.vg_name)
