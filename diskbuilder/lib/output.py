import logging
import os
import sys
from dataclasses import asdict, is_dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Protocol


class FormattedOutput:
	@classmethod
	def _get_values(cls, o: Any) -> dict[str, Any]:
		if hasattr(o, 'table_data'):
			return o.table_data()
		elif is_dataclass(o) and not isinstance(o, type):
			return asdict(o)
		else:
			return o.__dict__

	@classmethod
	def as_table(cls, obj: list[Any]) -> str:
		"""
		Formats a list of records as a plain text table, one line per record.
		Records providing table_data() are rendered through it.
		"""
		raw_data = [cls._get_values(o) for o in obj]

		# determine the maximum column size
		column_width: dict[str, int] = {}
		for o in raw_data:
			for k, v in o.items():
				column_width.setdefault(k, 0)
				column_width[k] = max([column_width[k], len(str(v)), len(k)])

		keys = list(column_width.keys())

		output = ''
		key_list = []
		for key in keys:
			title = key.replace('_', ' ')
			key_list.append(title.ljust(column_width[key]))

		output += ' | '.join(key_list) + '\n'
		output += '-' * len(output) + '\n'

		for record in raw_data:
			obj_data = []
			for key in keys:
				value = record.get(key, '')

				if isinstance(value, int | float) and not isinstance(value, bool):
					obj_data.append(str(value).rjust(column_width[key]))
				else:
					obj_data.append(str(value).ljust(column_width[key]))

			output += ' | '.join(obj_data) + '\n'

		return output


class Journald:
	@staticmethod
	def log(message: str, level: int = logging.DEBUG) -> None:
		try:
			import systemd.journal  # type: ignore[import-not-found]
		except ModuleNotFoundError:
			return None

		log_adapter = logging.getLogger('diskbuilder')
		log_fmt = logging.Formatter('[%(levelname)s]: %(message)s')
		log_ch = systemd.journal.JournalHandler()
		log_ch.setFormatter(log_fmt)
		log_adapter.addHandler(log_ch)
		log_adapter.setLevel(logging.DEBUG)

		log_adapter.log(level, message)


class Logger:
	def __init__(self, path: Path = Path('/var/log/diskbuilder')) -> None:
		self._path = path
		self.verbose = False

	@property
	def path(self) -> Path:
		return self._path / 'build.log'

	@property
	def directory(self) -> Path:
		return self._path

	@directory.setter
	def directory(self, path: Path) -> None:
		self._path = path

	def _check_permissions(self) -> None:
		log_file = self.path

		try:
			self._path.mkdir(exist_ok=True, parents=True)
			log_file.touch(exist_ok=True)

			with log_file.open('a') as f:
				f.write('')
		except PermissionError:
			# Fallback to creating the log file in the current folder
			self._path = Path('./').absolute()

			warn(f'Not enough permission to place log file at {log_file}, creating it in {self.path} instead')

	def log(self, level: int, content: str) -> None:
		self._check_permissions()

		with self.path.open('a') as f:
			ts = _timestamp()
			level_name = logging.getLevelName(level)
			f.write(f'[{ts}] - {level_name} - {content}\n')


logger = Logger()


def _supports_color() -> bool:
	"""
	Return True if the running system's terminal supports color,
	and False otherwise.
	"""
	supported_platform = sys.platform != 'win32' or 'ANSICON' in os.environ

	is_a_tty = hasattr(sys.stdout, 'isatty') and sys.stdout.isatty()
	return supported_platform and is_a_tty


class Font(Enum):
	bold = '1'


def _stylize_output(
	text: str,
	fg: str,
	bg: str | None,
	font: list[Font] = [],
) -> str:
	"""
	Adds styling to a text given a set of color arguments.
	"""
	colors = {
		'black': '0',
		'red': '1',
		'green': '2',
		'yellow': '3',
		'blue': '4',
		'magenta': '5',
		'cyan': '6',
		'white': '7',
		'gray': '8;5;246',
	}

	foreground = {key: f'3{colors[key]}' for key in colors}
	background = {key: f'4{colors[key]}' for key in colors}
	code_list = []

	code_list.append(foreground[str(fg)])

	if bg:
		code_list.append(background[str(bg)])

	for o in font:
		code_list.append(o.value)

	ansi = ';'.join(code_list)

	return f'\033[{ansi}m{text}\033[0m'


def _timestamp() -> str:
	now = datetime.now(tz=UTC)
	return now.strftime('%Y-%m-%d %H:%M:%S')


def info(
	*msgs: str,
	level: int = logging.INFO,
	fg: str = 'green',
	bg: str | None = None,
	font: list[Font] = [],
) -> None:
	log(*msgs, level=level, fg=fg, bg=bg, font=font)


def notice(
	*msgs: str,
	level: int = logging.INFO,
	fg: str = 'blue',
	bg: str | None = None,
	font: list[Font] = [Font.bold],
) -> None:
	log(*msgs, level=level, fg=fg, bg=bg, font=font)


def debug(
	*msgs: str,
	level: int = logging.DEBUG,
	fg: str = 'white',
	bg: str | None = None,
	font: list[Font] = [],
) -> None:
	log(*msgs, level=level, fg=fg, bg=bg, font=font)


def error(
	*msgs: str,
	level: int = logging.ERROR,
	fg: str = 'red',
	bg: str | None = None,
	font: list[Font] = [],
) -> None:
	log(*msgs, level=level, fg=fg, bg=bg, font=font)


def warn(
	*msgs: str,
	level: int = logging.WARNING,
	fg: str = 'yellow',
	bg: str | None = None,
	font: list[Font] = [],
) -> None:
	log(*msgs, level=level, fg=fg, bg=bg, font=font)


def log(
	*msgs: str,
	level: int = logging.INFO,
	fg: str = 'white',
	bg: str | None = None,
	font: list[Font] = [],
) -> None:
	text = ' '.join([str(x) for x in msgs])

	logger.log(level, text)

	if _supports_color():
		text = _stylize_output(text, fg, bg, font)

	Journald.log(text, level=level)

	if level != logging.DEBUG or logger.verbose:
		print(text, flush=True)


class Observer(Protocol):
	def info(self, msg: str) -> None: ...

	def warn(self, msg: str) -> None: ...

	def notice(self, msg: str) -> None: ...


class LogObserver:
	"""
	Default build observer, forwards progress reports to the module logger.
	"""

	def info(self, msg: str) -> None:
		info(msg)

	def warn(self, msg: str) -> None:
		warn(msg)

	def notice(self, msg: str) -> None:
		notice(msg)


default_observer = LogObserver()
