"""
Device registry for Sonix bootloaders.

Provides a read-only table of supported devices and lookup helpers.
"""

from .registry import (
    DeviceDescriptor,
    SUPPORTED_DEVICES,
    SONIX_VENDOR_ID,
    lookup,
    is_supported,
    list_devices,
    get_device,
)

__all__ = [
    "DeviceDescriptor",
    "SUPPORTED_DEVICES",
    "SONIX_VENDOR_ID",
    "lookup",
    "is_supported",
    "list_devices",
    "get_device",
]
