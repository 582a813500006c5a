from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

from ..exceptions import ToolInvocationError
from ..general import SysCommand
from ..models.device import DeviceHandle, DeviceState, ProvisionedPartition, partlabel_path, volume_path
from ..models.layout import PartitionEntry, PartitionSpec
from ..output import FormattedOutput, Observer, debug, default_observer, warn
from .device_handler import FIRST_PARTITION_OFFSET_MB, wait_for_device
from .filesystem import format_device
from .lvm import lvm_export_vg, lvm_group_info, lvm_pv_create, lvm_vg_change, lvm_vg_create, lvm_vol_change, lvm_vol_create

PARTITION_TABLE_TYPE = 'gpt'


class PartitionProvisioner:
	def __init__(self, observer: Observer | None = None, device_timeout: float = 5.0) -> None:
		self._observer = observer or default_observer
		self._device_timeout = device_timeout

	def provision(self, device: DeviceHandle, spec: PartitionSpec) -> list[ProvisionedPartition]:
		"""
		Writes a fresh partition table and creates every partition of the layout,
		including filesystems and LVM volumes. The open-ended partition, if any,
		is created last and spans the rest of the device.
		"""
		dev = str(device.path)

		self._observer.info(f'Creating disk with {PARTITION_TABLE_TYPE} partition table')
		SysCommand(['parted', '-s', dev, 'mklabel', PARTITION_TABLE_TYPE])
		device.state = DeviceState.Partitioned

		provisioned: list[ProvisionedPartition] = []
		deferred: PartitionEntry | None = None
		end_mb = FIRST_PARTITION_OFFSET_MB

		for part in spec:
			if part.size_mb is None:
				deferred = part
				continue

			start_mb = end_mb
			end_mb += part.size_mb

			provisioned.append(
				self._create_partition(device, part, len(provisioned) + 1, f'{start_mb}MiB', f'{end_mb}MiB'),
			)

		if deferred is not None:
			provisioned.append(
				self._create_partition(device, deferred, len(provisioned) + 1, f'{end_mb}MiB', '100%'),
			)

		device.state = DeviceState.Provisioned

		rows = provisioned + [vol for p in provisioned for vol in p.volumes]
		debug(f'Provisioned partitions on {dev}:\n{FormattedOutput.as_table(rows)}')

		return provisioned

	def _create_partition(
		self,
		device: DeviceHandle,
		part: PartitionEntry,
		partn: int,
		start: str,
		end: str,
	) -> ProvisionedPartition:
		dev = str(device.path)
		fs_type = part.filesystem.value if part.filesystem else 'none'

		self._observer.info(f'Creating partition {part.label} ({fs_type}, {part.format_size()})')

		fs_arg = [part.filesystem.parted_value] if part.filesystem else []
		SysCommand(['parted', '-s', dev, 'mkpart', part.label, *fs_arg, start, end])

		for flag, state in part.flags.items():
			value = 'on' if state else 'off'
			self._observer.info(f'Setting partition flag {flag} to {value}')
			SysCommand(['parted', '-s', dev, 'set', str(partn), flag, value])

		label_path = partlabel_path(part.label)
		wait_for_device(label_path, timeout=self._device_timeout)

		if part.filesystem is None:
			self._observer.warn(f'No filesystem specified for {part.label}. Skipping FS')
		else:
			format_device(part.filesystem, part.label, label_path)

		provisioned = ProvisionedPartition(label=part.label, entry=part, dev_path=label_path, partn=partn)

		if part.lvm is not None:
			self._observer.notice(f'Setting up LVM on {part.label}')
			provisioned.volumes = self._setup_lvm(part, label_path)

		return provisioned

	def _setup_lvm(self, part: PartitionEntry, pv_path: Path) -> list[ProvisionedPartition]:
		"""
		Single PV, single VG and multiple LVs. Fixed size volumes are
		created first, the open-ended volume takes all remaining extents.
		"""
		if part.lvm is None:
			return []

		vg_name = part.lvm.vg_name

		lvm_pv_create(pv_path)
		lvm_vg_create(pv_path, vg_name)

		if vg_info := lvm_group_info(vg_name):
			debug(f'Volume group {vg_name}: {vg_info.vg_size_mb}MiB, {vg_info.vg_free_mb}MiB free')

		self._observer.notice('Creating LVM volumes')

		volumes = []
		for vol in part.lvm.fixed_volumes() + part.lvm.open_ended_volumes():
			self._observer.info(f'Creating {vol.label} volume ({vol.format_size()})')

			vol_path = lvm_vol_create(vg_name, vol.label, vol.size_mb)
			wait_for_device(vol_path, timeout=self._device_timeout)

			if vol.filesystem is not None:
				format_device(vol.filesystem, vol.label, vol_path)

			volumes.append(ProvisionedPartition(label=vol.label, entry=vol, dev_path=vol_path, vg_name=vg_name))

		return volumes

	def deprovision(self, device: DeviceHandle, spec: PartitionSpec) -> bool:
		"""
		Deactivates LVM volumes and groups, then makes the kernel forget the
		partitions of the device (else we leak /dev/loop0p{1,2,3}).
		Every step runs even if an earlier one failed, failures are only logged.
		Returns True when all steps succeeded.
		"""
		self._observer.notice('Deactivating partitions')

		lvm_specs = [p.lvm for p in spec.lvm_entries() if p.lvm is not None]
		ok = True

		for lvm in lvm_specs:
			for vol in lvm.volumes:
				ok &= self._best_effort(lvm_vol_change, volume_path(lvm.vg_name, vol.label), False)

		for lvm in reversed(lvm_specs):
			ok &= self._best_effort(lvm_vg_change, lvm.vg_name, False)

		# This allows the PVs to be disconnected
		for lvm in reversed(lvm_specs):
			ok &= self._best_effort(lvm_export_vg, lvm.vg_name)

		ok &= self._best_effort(SysCommand, ['partx', '-d', '-v', str(device.path)])

		return ok

	@staticmethod
	def _best_effort(fn: Callable[..., Any], *args: Any) -> bool:
		try:
			fn(*args)
		except ToolInvocationError as err:
			warn(f'Teardown step failed (continuing): {err.message}')
			return False
		return True
