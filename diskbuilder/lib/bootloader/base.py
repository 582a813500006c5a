from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

from ..disk.device_handler import mounted_by_label
from ..exceptions import ToolInvocationError
from ..general import SysCommand
from ..models.device import DeviceHandle
from ..models.layout import FilesystemType, PartitionEntry, PartitionSpec
from ..output import Observer, debug, warn
from .config import GRUB_CFG_DIR, grub_cfg_contents, load_cfg_contents

SYSTEM_TOOLS_DIR = Path('/')
GRUB_LIB_DIR = Path('usr/lib/grub')

GRUB_CFG_LABEL = 'GRUB_CFG'
GRUB_CFG_SIZE_MB = 32


class BootloaderStrategy(Protocol):
	def required_partitions(self) -> list[PartitionEntry]: ...

	def install_bootloader(self, device: DeviceHandle, spec: PartitionSpec) -> None: ...

	def configure_bootloader(self, spec: PartitionSpec) -> None: ...


def grub_cfg_partition() -> PartitionEntry:
	return PartitionEntry(
		label=GRUB_CFG_LABEL,
		filesystem=FilesystemType.Ext4,
		size_mb=GRUB_CFG_SIZE_MB,
		is_grub_cfg=True,
	)


def download_grub_tools(tools_dir: Path, packages: list[str], observer: Observer) -> None:
	"""
	Fetches the grub packages with apt and unpacks them into tools_dir,
	nothing gets installed on the host.
	"""
	observer.info(f'Downloading grub tools ({", ".join(packages)})')
	SysCommand(['apt-get', 'download', *packages], working_directory=tools_dir)

	debs = sorted(tools_dir.glob('*.deb'))
	if not debs:
		raise ToolInvocationError(f'apt-get did not download any of {packages}', cmd=['apt-get', 'download', *packages])

	for deb in debs:
		debug(f'Extracting {deb.name}')
		SysCommand(['dpkg-deb', '--extract', str(deb), str(tools_dir)])


@contextmanager
def grub_tools(packages: list[str], use_system_tools: bool, observer: Observer) -> Iterator[Path]:
	"""
	Yields the root under which the grub binaries and module
	directories live. Downloaded tools are removed on exit.
	"""
	if use_system_tools:
		observer.info('Using system-wide grub tools')
		yield SYSTEM_TOOLS_DIR
		return

	tools_dir = Path(tempfile.mkdtemp(prefix='diskbuilder-grub-'))

	try:
		download_grub_tools(tools_dir, packages, observer)
		yield tools_dir
	finally:
		try:
			shutil.rmtree(tools_dir)
		except OSError as err:
			warn(f'Could not remove grub tools directory {tools_dir}: {err}')


def grub_lib_dir(tools_dir: Path, architecture: str) -> Path:
	return tools_dir / GRUB_LIB_DIR / architecture


def grub_binary(tools_dir: Path, name: str, architecture: str) -> str:
	# system-wide binaries are looked up through PATH by SysCommand
	if tools_dir == SYSTEM_TOOLS_DIR:
		return name

	candidates = [
		tools_dir / 'usr' / 'bin' / name,
		tools_dir / 'usr' / 'sbin' / name,
		grub_lib_dir(tools_dir, architecture) / name,
	]

	for candidate in candidates:
		if candidate.is_file():
			return str(candidate)

	raise ToolInvocationError(f'{name} not found in downloaded grub tools at {tools_dir}', cmd=[name])


def build_grub_image(
	tools_dir: Path,
	architecture: str,
	output: Path,
	prefix: str,
	modules: list[str],
	spec: PartitionSpec,
) -> None:
	"""
	Runs grub-mkimage with the load.cfg of the layout embedded.
	Raises ToolInvocationError if no image was produced.
	"""
	with tempfile.NamedTemporaryFile('w', prefix='diskbuilder-load-', suffix='.cfg') as load_cfg:
		load_cfg.write(load_cfg_contents(spec))
		load_cfg.flush()

		cmd = [
			grub_binary(tools_dir, 'grub-mkimage', architecture),
			f'--config={load_cfg.name}',
			f'--output={output}',
			f'--directory={grub_lib_dir(tools_dir, architecture)}',
			f'--prefix={prefix}',
			f'--format={architecture}',
			*modules,
		]

		SysCommand(cmd)

	if not output.is_file():
		raise ToolInvocationError(f'No file output from grub-mkimage: {output}', cmd=cmd)


def write_grub_cfg(spec: PartitionSpec, observer: Observer) -> Path:
	"""
	Writes the boot menu into the grub_cfg partition and returns
	its path relative to the partition root.
	"""
	grub_part = spec.grub_cfg_entry()
	cfg_path = Path(GRUB_CFG_DIR) / 'grub.cfg'
	contents = grub_cfg_contents(spec)

	observer.info(f'Writing /{cfg_path} to {grub_part.label}')
	debug(f'grub.cfg:\n{contents}')

	with mounted_by_label(grub_part.label) as mountdir:
		(mountdir / GRUB_CFG_DIR).mkdir(parents=True, exist_ok=True)

		with (mountdir / cfg_path).open('w') as fp:
			fp.write(contents)
			fp.flush()
			os.fsync(fp.fileno())

	return cfg_path
