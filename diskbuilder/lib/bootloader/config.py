from ..models.layout import PartitionSpec

KERNEL_OPTS = ['ro', 'net.ifnames=0', 'biosdevname=0']
KERNEL_OPTS_NORMAL = KERNEL_OPTS + ['quiet', 'splash']
KERNEL_OPTS_DEBUG = KERNEL_OPTS + ['debug', 'console=tty0']

GRUB_CFG_DIR = 'boot/grub'

BIOS_GRUB_MODULES = ['biosdisk', 'ext2', 'part_gpt', 'search']
UEFI_GRUB_MODULES = [
	'cat', 'echo', 'ext2', 'fat', 'search', 'part_gpt', 'part_msdos',
	'efifwsetup', 'efi_gop', 'efi_uga', 'gfxterm', 'gfxterm_background',
	'gfxterm_menu', 'test', 'all_video', 'loadenv', 'normal', 'boot',
	'configfile', 'linux',
]


def grub_modules(base_modules: list[str], spec: PartitionSpec) -> list[str]:
	if spec.has_lvm():
		return base_modules + ['lvm']
	return list(base_modules)


def load_cfg_contents(spec: PartitionSpec) -> str:
	"""
	The configuration embedded into the boot image. It only finds the
	grub_cfg partition by its label and points grub at its grub.cfg.
	"""
	grub_part = spec.grub_cfg_entry()

	return '\n'.join([
		f'search.fs_label {grub_part.label} root',
		f'set prefix=($root)/{GRUB_CFG_DIR}',
	]) + '\n'


def _menuentry(title: str, label: str, kernel_opts: list[str]) -> list[str]:
	return [
		f'# {title}',
		f'menuentry "{title}" {{',
		'  insmod ext2',
		f'  search  --label --set=root --no-floppy {label}',
		f'  linux   /vmlinuz root=LABEL={label} {" ".join(kernel_opts)}',
		'  initrd  /initrd.img',
		'}',
		'',
	]


def grub_cfg_contents(spec: PartitionSpec) -> str:
	"""
	One normal and one debug entry per OS partition or volume.
	Entries find their root by filesystem label, never by device path.
	"""
	lines = [
		'set default=0',
		'set gfxpayload=1024x768x24',
		'set timeout=5',
		'',
	]

	for os_part in spec.os_entries():
		lines += _menuentry(os_part.label, os_part.label, KERNEL_OPTS_NORMAL)
		lines += _menuentry(f'{os_part.label} (debug)', os_part.label, KERNEL_OPTS_DEBUG)

	return '\n'.join(lines)
