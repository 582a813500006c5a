from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from pytest import MonkeyPatch

from diskbuilder.lib.exceptions import ToolInvocationError
from diskbuilder.lib.models.layout import PartitionSpec
from diskbuilder.lib.output import logger

# every module that runs external commands through SysCommand
_SYSCOMMAND_USERS = [
	'diskbuilder.lib.disk.device_handler',
	'diskbuilder.lib.disk.utils',
	'diskbuilder.lib.disk.filesystem',
	'diskbuilder.lib.disk.lvm',
	'diskbuilder.lib.disk.partitioning',
	'diskbuilder.lib.bootloader.base',
	'diskbuilder.lib.bootloader.bios',
	'diskbuilder.lib.installer',
	'diskbuilder.lib.builder',
]


class CommandRecorder:
	"""
	Stands in for SysCommand, records every command instead of running it.
	"""

	def __init__(self) -> None:
		self.commands: list[list[str]] = []
		self.responses: dict[str, str] = {}
		self.failures: set[str] = set()
		self.side_effects: dict[str, Callable[[list[str], dict[str, Any]], None]] = {}

	def __call__(self, cmd: list[str], **kwargs: Any) -> MagicMock:
		cmd = [str(arg) for arg in cmd]
		self.commands.append(cmd)

		program = Path(cmd[0]).name

		if program in self.side_effects:
			self.side_effects[program](cmd, kwargs)

		if program in self.failures:
			raise ToolInvocationError(f'{cmd} failed', cmd=cmd, exit_code=1, worker_log=b'failed')

		output = self.responses.get(program, '')

		worker = MagicMock()
		worker.decode.return_value = output
		worker.output.return_value = output.encode()
		return worker

	def programs(self) -> list[str]:
		return [Path(cmd[0]).name for cmd in self.commands]

	def find(self, program: str) -> list[list[str]]:
		return [cmd for cmd in self.commands if Path(cmd[0]).name == program]


@pytest.fixture(autouse=True)
def log_dir(tmp_path: Path, monkeypatch: MonkeyPatch) -> Path:
	log_dir = tmp_path / 'logs'
	monkeypatch.setattr(logger, 'directory', log_dir)
	monkeypatch.setattr(logger, 'verbose', False)
	return log_dir


@pytest.fixture
def sys_command(monkeypatch: MonkeyPatch) -> CommandRecorder:
	recorder = CommandRecorder()

	for module in _SYSCOMMAND_USERS:
		monkeypatch.setattr(f'{module}.SysCommand', recorder)

	return recorder


@pytest.fixture
def observer() -> MagicMock:
	return MagicMock()


@pytest.fixture(scope='session')
def data_dir() -> Path:
	return Path(__file__).parent / 'data'


@pytest.fixture(scope='session')
def simple_layout_fixture(data_dir: Path) -> Path:
	return data_dir / 'layout_simple.json'


@pytest.fixture(scope='session')
def lvm_layout_fixture(data_dir: Path) -> Path:
	return data_dir / 'layout_lvm.json'


@pytest.fixture(scope='session')
def user_layout_fixture(data_dir: Path) -> Path:
	return data_dir / 'layout_user.json'


@pytest.fixture
def simple_spec(simple_layout_fixture: Path) -> PartitionSpec:
	return PartitionSpec.from_file(simple_layout_fixture)


@pytest.fixture
def lvm_spec(lvm_layout_fixture: Path) -> PartitionSpec:
	return PartitionSpec.from_file(lvm_layout_fixture)
