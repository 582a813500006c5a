from .base import BootloaderStrategy
from .bios import BiosBootloader
from .uefi import UefiBootloader
