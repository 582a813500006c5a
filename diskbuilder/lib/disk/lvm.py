import json
from dataclasses import dataclass
from pathlib import Path

from ..exceptions import ToolInvocationError
from ..general import SysCommand
from ..models.device import volume_path
from ..output import debug


@dataclass
class LvmGroupInfo:
	vg_name: str
	vg_size_mb: int
	vg_free_mb: int


def lvm_pv_create(pv: Path) -> None:
	cmd = ['pvcreate', '-y', str(pv)]

	debug(f'Creating LVM PV: {cmd}')
	SysCommand(cmd)


def lvm_vg_create(pv: Path, vg_name: str) -> None:
	cmd = ['vgcreate', '-y', vg_name, str(pv)]

	debug(f'Creating LVM group: {cmd}')
	SysCommand(cmd)


def lvm_vol_create(vg_name: str, lv_name: str, size_mb: int | None) -> Path:
	"""
	Creates a logical volume of a fixed size, or spanning all free
	extents of the group when no size is given.
	"""
	if size_mb is None:
		size_args = ['-l', '100%FREE']
	else:
		size_args = ['-L', f'{size_mb}m']

	cmd = ['lvcreate', '-y', '-n', lv_name, *size_args, vg_name]

	debug(f'Creating volume: {cmd}')
	SysCommand(cmd)

	return volume_path(vg_name, lv_name)


def lvm_vol_change(vol_path: Path, activate: bool) -> None:
	active_flag = 'y' if activate else 'n'
	cmd = ['lvchange', '-a', active_flag, str(vol_path)]

	debug(f'lvchange volume: {cmd}')
	SysCommand(cmd)


def lvm_vg_change(vg_name: str, activate: bool) -> None:
	active_flag = 'y' if activate else 'n'
	cmd = ['vgchange', '-a', active_flag, vg_name]

	debug(f'vgchange group: {cmd}')
	SysCommand(cmd)


def lvm_export_vg(vg_name: str) -> None:
	cmd = ['vgexport', vg_name]

	debug(f'vgexport: {cmd}')
	SysCommand(cmd)


def lvm_group_info(vg_name: str) -> LvmGroupInfo | None:
	cmd = [
		'vgs', '--reportformat', 'json', '--units', 'm', '--nosuffix',
		'-o', 'vg_name,vg_size,vg_free', '-S', f'vg_name={vg_name}',
	]

	try:
		raw_info = SysCommand(cmd).decode().split('\n')
	except ToolInvocationError as err:
		debug(f'Could not query volume group {vg_name}: {err.message}')
		return None

	# for whatever reason the output sometimes contains
	# "File descriptor X leaked on vgs invocation"
	data = '\n'.join(raw for raw in raw_info if 'File descriptor' not in raw)

	debug(f'LVM info: {data}')

	try:
		reports = json.loads(data)['report']
	except (json.JSONDecodeError, KeyError) as err:
		debug(f'Unexpected vgs output for {vg_name}: {err}')
		return None

	for report in reports:
		for entry in report['vg']:
			return LvmGroupInfo(
				vg_name=entry['vg_name'],
				vg_size_mb=int(float(entry['vg_size'])),
				vg_free_mb=int(float(entry['vg_free'])),
			)

	return None
