import argparse
import os
from argparse import ArgumentParser
from importlib.metadata import version
from pathlib import Path

from pydantic.dataclasses import dataclass as p_dataclass

from .exceptions import ConfigurationError
from .models.bootloader import Bootloader
from .output import logger


@p_dataclass
class Arguments:
	image: Path
	layout: Path
	output: Path | None = None
	device: Path | None = None
	bootloader: Bootloader = Bootloader.Bios
	system_grub_tools: bool = False
	tmpfs_dir: Path | None = None
	tmpfs_size: str | None = None
	log_dir: Path | None = None
	debug: bool = False


class DiskBuilderArgsHandler:
	def __init__(self, argv: list[str] | None = None) -> None:
		self._parser: ArgumentParser = self._define_arguments()
		self._args = self._parse_args(argv)

	@property
	def args(self) -> Arguments:
		return self._args

	def print_help(self) -> None:
		self._parser.print_help()

	def _get_version(self) -> str:
		try:
			return version('diskbuilder')
		except Exception:
			return 'diskbuilder version not found'

	def _define_arguments(self) -> ArgumentParser:
		parser = ArgumentParser(
			prog='diskbuilder',
			description='Builds a bootable disk image from a root filesystem tarball',
			formatter_class=argparse.ArgumentDefaultsHelpFormatter,
		)
		parser.add_argument(
			'-v',
			'--version',
			action='version',
			version='%(prog)s ' + self._get_version(),
		)
		parser.add_argument(
			'--image',
			type=Path,
			required=True,
			help='Root filesystem tarball to install',
		)
		parser.add_argument(
			'--layout',
			type=Path,
			required=True,
			help='JSON partition layout file',
		)
		parser.add_argument(
			'--output',
			type=Path,
			default=None,
			help='Image file to create, the format follows the suffix (.vmdk, .qcow2, .vdi, .vhd, .img)',
		)
		parser.add_argument(
			'--device',
			type=Path,
			default=None,
			help='Block device to build on instead of a loopback device. Everything on it is destroyed',
		)
		parser.add_argument(
			'--bootloader',
			type=str,
			choices=[b.value for b in Bootloader],
			default=Bootloader.Bios.value,
			help='Firmware type to install grub for',
		)
		parser.add_argument(
			'--system-grub-tools',
			action='store_true',
			default=False,
			help='Use the grub tools installed on this system instead of downloading them',
		)
		parser.add_argument(
			'--tmpfs-dir',
			type=Path,
			default=os.environ.get('TMPFSDIR'),
			help='Existing directory to hold the loopback backing file (env: TMPFSDIR)',
		)
		parser.add_argument(
			'--tmpfs-size',
			type=str,
			default=os.environ.get('TMPFSSIZE'),
			help='Size of the tmpfs mounted for the backing file, e.g. 2G (env: TMPFSSIZE)',
		)
		parser.add_argument(
			'--log-dir',
			type=Path,
			default=None,
			help=f'Directory for build.log and cmd_history.txt (default: {logger.directory})',
		)
		parser.add_argument(
			'--debug',
			action='store_true',
			default=False,
			help='Print debug messages and executed commands',
		)

		return parser

	def _parse_args(self, argv: list[str] | None) -> Arguments:
		argparse_args = vars(self._parser.parse_args(argv))
		argparse_args['bootloader'] = Bootloader.from_arg(argparse_args['bootloader'])

		args = Arguments(**argparse_args)

		if args.output is None and args.device is None:
			raise ConfigurationError('Either --output or --device is required')

		if args.log_dir is not None:
			logger.directory = args.log_dir

		if args.debug:
			logger.verbose = True

		return args
