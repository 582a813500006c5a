from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .exceptions import ConfigurationError
from .models.layout import LogicalVolumeEntry, PartitionEntry

FSTAB_COLUMNS = ['<filesystem>', '<mnt>', '<type>', '<opts>', '<dump>', '<pass>']
FSTAB_DEFAULT_OPTIONS = 'defaults,errors=remount-ro'

GRUB_CFG_MOUNTPOINT = Path('/grub')


@dataclass(frozen=True)
class FstabEntry:
	spec: str
	mountpoint: Path
	fs_type: str
	options: str = FSTAB_DEFAULT_OPTIONS
	dump: int = 0
	pass_no: int = 1

	@property
	def label(self) -> str | None:
		return self.spec.removeprefix('LABEL=') if self.spec.startswith('LABEL=') else None

	def line(self) -> str:
		return '\t'.join([
			self.spec,
			str(self.mountpoint),
			self.fs_type,
			self.options,
			str(self.dump),
			str(self.pass_no),
		])


def _label_entry(entry: PartitionEntry | LogicalVolumeEntry, mountpoint: Path) -> FstabEntry:
	if entry.filesystem is None:
		raise ConfigurationError(f'Partition {entry.label} has no filesystem and cannot be mounted at {mountpoint}')

	return FstabEntry(
		spec=f'LABEL={entry.label}',
		mountpoint=mountpoint,
		fs_type=entry.filesystem.fs_type_mount,
	)


def fstab_entries(
	os_entry: PartitionEntry | LogicalVolumeEntry,
	grub_entry: PartitionEntry,
) -> list[FstabEntry]:
	return [
		_label_entry(os_entry, Path('/')),
		_label_entry(grub_entry, GRUB_CFG_MOUNTPOINT),
	]


def render_fstab(entries: list[FstabEntry]) -> str:
	lines = [
		'# This file is autogenerated',
		'# ' + '\t'.join(FSTAB_COLUMNS),
	]
	lines += [entry.line() for entry in entries]

	return '\n'.join(lines) + '\n'


def parse_fstab(contents: str) -> list[FstabEntry]:
	"""
	Reads fstab lines back into entries, comments and blank lines are skipped.
	Fields may be separated by tabs or spaces.
	"""
	entries = []

	for lineno, raw in enumerate(contents.splitlines(), start=1):
		line = raw.strip()
		if not line or line.startswith('#'):
			continue

		fields = line.split()
		if len(fields) < 4:
			raise ValueError(f'Malformed fstab line {lineno}: {raw!r}')

		dump = int(fields[4]) if len(fields) > 4 else 0
		pass_no = int(fields[5]) if len(fields) > 5 else 0

		entries.append(
			FstabEntry(
				spec=fields[0],
				mountpoint=Path(fields[1]),
				fs_type=fields[2],
				options=fields[3],
				dump=dump,
				pass_no=pass_no,
			)
		)

	return entries
