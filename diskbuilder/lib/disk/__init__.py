from .device_handler import DeviceHandler, compute_total_disk_size, mounted_by_label, wait_for_device
from .partitioning import PartitionProvisioner
from .utils import LsblkInfo, get_lsblk_info, mounted
from .validators import validate_layout
