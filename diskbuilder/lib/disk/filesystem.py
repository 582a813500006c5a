from pathlib import Path

from ..exceptions import ToolInvocationError
from ..general import SysCommand
from ..models.layout import FilesystemType
from ..output import debug, error


def mkfs_command(fs_type: FilesystemType, label: str, path: Path) -> list[str]:
	match fs_type:
		case FilesystemType.Fat16 | FilesystemType.Fat32:
			# -F selects the FAT size, -I allows formatting a whole device
			fat_size = fs_type.value.removeprefix('fat')
			return ['mkfs.fat', '-I', '-F', fat_size, '-n', label, str(path)]
		case FilesystemType.Swap:
			return ['mkswap', '-f', '-L', label, str(path)]
		case FilesystemType.Btrfs | FilesystemType.Xfs:
			# Force overwrite
			return [f'mkfs.{fs_type.value}', '-f', '-L', label, str(path)]
		case FilesystemType.Ext2 | FilesystemType.Ext3 | FilesystemType.Ext4:
			# Force create
			return [f'mkfs.{fs_type.value}', '-F', '-L', label, str(path)]
		case _:
			return [f'mkfs.{fs_type.value}', '-L', label, str(path)]


def format_device(fs_type: FilesystemType, label: str, path: Path) -> None:
	cmd = mkfs_command(fs_type, label, path)

	debug('Formatting filesystem:', ' '.join(cmd))

	try:
		SysCommand(cmd)
	except ToolInvocationError as err:
		msg = f'Could not format {path} with {fs_type.value}: {err.message}'
		error(msg)
		raise ToolInvocationError(msg, cmd=err.cmd, exit_code=err.exit_code, worker_log=err.worker_log) from err
