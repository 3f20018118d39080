"""
Device registry for Sonix SN32 bootloaders.

Provides a single source of truth for:
- Supported bootloader variants (USB vendor/product identifiers)
- Firmware size ceilings per chip family
- Firmware load offset inside device flash

Usage:
    from sonix_flasher.models import lookup, list_devices, get_device

    descriptor = lookup(0x0C45, 0x7040)
    descriptor = get_device("SN32F248B")
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

SONIX_VENDOR_ID = 0x0C45  # Sonix Technology Co., Ltd

MAX_FIRMWARE_SN32F260 = 30 * 1024
MAX_FIRMWARE_SN32F240 = 64 * 1024  # also SN32F240B


@dataclass(frozen=True)
class DeviceDescriptor:
    """A supported bootloader variant."""
    vendor_id: int
    product_id: int
    description: str
    qmk_offset: int
    size_limit: int

    @property
    def key(self) -> Tuple[int, int]:
        return (self.vendor_id, self.product_id)

    @property
    def max_firmware_size(self) -> int:
        """Largest image that fits above the load offset."""
        return self.size_limit - self.qmk_offset

    @property
    def chip(self) -> str:
        """Chip name without the mode suffix, e.g. ``SN32F248B``."""
        return self.description.split(" ", 1)[0]

    def to_dict(self) -> Dict:
        """Convert to JSON-serializable dict."""
        return {
            "vendor_id": f"0x{self.vendor_id:04x}",
            "product_id": f"0x{self.product_id:04x}",
            "description": self.description,
            "qmk_offset": f"0x{self.qmk_offset:X}",
            "size_limit": self.size_limit,
        }


# Only keyboards already in bootloader mode are supported
SUPPORTED_DEVICES: Tuple[DeviceDescriptor, ...] = (
    DeviceDescriptor(
        vendor_id=SONIX_VENDOR_ID,
        product_id=0x7010,
        description="SN32F268F (bootloader)",
        qmk_offset=0x200,
        size_limit=MAX_FIRMWARE_SN32F260,
    ),
    DeviceDescriptor(
        vendor_id=SONIX_VENDOR_ID,
        product_id=0x7040,
        description="SN32F248B (bootloader)",
        qmk_offset=0x0,
        size_limit=MAX_FIRMWARE_SN32F240,
    ),
    DeviceDescriptor(
        vendor_id=SONIX_VENDOR_ID,
        product_id=0x7900,
        description="SN32F248 (bootloader)",
        qmk_offset=0x0,
        size_limit=MAX_FIRMWARE_SN32F240,
    ),
)

_BY_ID: Mapping[Tuple[int, int], DeviceDescriptor] = MappingProxyType(
    {d.key: d for d in SUPPORTED_DEVICES}
)


def lookup(vendor_id: int, product_id: int) -> Optional[DeviceDescriptor]:
    """Return the descriptor for a (VID, PID) pair, or None if unsupported."""
    return _BY_ID.get((vendor_id, product_id))


def is_supported(vendor_id: int, product_id: int) -> bool:
    return (vendor_id, product_id) in _BY_ID


def list_devices() -> List[DeviceDescriptor]:
    """List all supported devices in table order."""
    return list(SUPPORTED_DEVICES)


def get_device(name: str) -> Optional[DeviceDescriptor]:
    """
    Find a descriptor by chip name or product id.

    Accepts "SN32F248B", "sn32f248b (bootloader)", "0x7040" or "7040".
    Matching is case-insensitive; chip names must match exactly so that
    "SN32F248" does not pick up "SN32F248B".
    """
    needle = name.strip().lower()
    if not needle:
        return None

    for device in SUPPORTED_DEVICES:
        if needle in (device.chip.lower(), device.description.lower()):
            return device

    try:
        product_id = int(needle, 16)
    except ValueError:
        return None
    return lookup(SONIX_VENDOR_ID, product_id)
