from .bootloader import Bootloader
from .device import DeviceHandle, DeviceState, ProvisionedPartition
from .layout import FilesystemType, LogicalVolumeEntry, LvmSpec, PartitionEntry, PartitionSpec
