"""Bootable disk image builder - partitions, LVM, grub and root filesystem."""

import os
import sys
import traceback

from .lib.args import DiskBuilderArgsHandler
from .lib.builder import BuildState, DiskBuilder
from .lib.exceptions import ConfigurationError, DeviceNotReadyError, ResourceAcquisitionError, ToolInvocationError
from .lib.models.bootloader import Bootloader
from .lib.models.layout import PartitionSpec
from .lib.output import FormattedOutput, debug, error, info, logger, warn

_BUILD_ERRORS = (ConfigurationError, ResourceAcquisitionError, DeviceNotReadyError, ToolInvocationError)


def main(argv: list[str] | None = None) -> int:
	"""
	This can either be run as the installed console script: diskbuilder
	OR straight as a module: python -m diskbuilder
	"""
	if argv is None:
		argv = sys.argv[1:]

	handler = DiskBuilderArgsHandler(argv)
	args = handler.args

	if os.getuid() != 0:
		error('diskbuilder requires root privileges to run. See --help for more.')
		return 1

	debug(f'Arguments: {args}')

	with DiskBuilder(
		image=args.image,
		layout=args.layout,
		bootloader=args.bootloader,
		output=args.output,
		device=args.device,
		use_system_grub_tools=args.system_grub_tools,
		tmpfs_dir=args.tmpfs_dir,
		tmpfs_size=args.tmpfs_size,
	) as builder:
		builder.build()

	if args.output is not None:
		info(f'Disk image written to {args.output}')
	else:
		info(f'Disk written to {args.device}')

	return 0


def run_as_a_module() -> None:
	rc = 0

	try:
		rc = main()
	except _BUILD_ERRORS as err:
		error(str(err))

		if isinstance(err, ToolInvocationError) and err.worker_log:
			debug(err.worker_log.decode('utf-8', errors='backslashreplace'))

		warn(f'Build failed, see {logger.path} for details')
		rc = 1
	except Exception as err:
		error(''.join(traceback.format_exception(err)))
		warn(f'diskbuilder experienced the above error, see {logger.path} for details')
		rc = 1

	sys.exit(rc)


__all__ = [
	'BuildState',
	'Bootloader',
	'DiskBuilder',
	'FormattedOutput',
	'PartitionSpec',
	'debug',
	'error',
	'info',
	'main',
	'run_as_a_module',
	'warn',
]
