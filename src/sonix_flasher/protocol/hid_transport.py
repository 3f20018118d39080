"""
SN32 HID Transport Layer

Handles low-level feature report exchange with Sonix SN32 bootloaders.

This module provides:
- Lazy, idempotent opening of the HID handle
- Fixed-size (64-byte) feature report writes, zero-padded
- Fixed-size feature report reads with length checking
- Mapping of HID library failures onto DeviceLost
"""

import logging
from typing import Optional

# hid also raises ImportError when the hidapi shared library is missing;
# open() reports that as DeviceOpenError
try:
    import hid
except ImportError:
    hid = None

from sonix_flasher.errors import SonixFlasherError
from .codec import REPORT_ID, REPORT_SIZE, pad

logger = logging.getLogger(__name__)

if hid is not None:
    _IO_ERRORS = (hid.HIDException, OSError)
else:
    _IO_ERRORS = (OSError,)


class TransportError(SonixFlasherError):
    """Base exception for transport layer errors"""
    pass


class OversizedReport(TransportError):
    """Payload does not fit in a single report"""

    def __init__(self, size: int, limit: int = REPORT_SIZE):
        self.size = size
        self.limit = limit
        super().__init__(f"Report must be at most {limit} bytes, got {size}")


class ShortRead(TransportError):
    """Feature report read back with an unexpected length"""

    def __init__(self, got: int, expected: int = REPORT_SIZE):
        self.got = got
        self.expected = expected
        super().__init__(f"Got response of length {got}, expected {expected}")


class DeviceLost(TransportError):
    """Device disconnected or stopped responding mid-operation"""
    pass


class DeviceOpenError(TransportError):
    """HID handle could not be opened"""
    pass


class HIDTransport:
    """
    Feature report transport for one SN32 bootloader.

    The transport owns at most one handle. ``open()`` is idempotent and is
    called implicitly before the first exchange; closing is left to the
    caller.

    Example:
        transport = HIDTransport(0x0C45, 0x7040)
        transport.send_report(pack(CMD_INIT))
        response = transport.receive_report()
        transport.close()

    Any object exposing ``send_feature_report``, ``get_feature_report`` and
    ``close`` in the manner of ``hid.Device`` can be passed as ``device``.
    """

    def __init__(
        self,
        vendor_id: Optional[int] = None,
        product_id: Optional[int] = None,
        path: Optional[bytes] = None,
        device=None,
    ):
        """
        Initialize transport layer.

        Args:
            vendor_id: USB vendor id used to open the device
            product_id: USB product id used to open the device
            path: Platform HID path, takes precedence over VID/PID
            device: Already-open handle to drive instead of opening one
        """
        self.vendor_id = vendor_id
        self.product_id = product_id
        self.path = path
        self.device = device

    def __repr__(self) -> str:
        target = self.path or f"{self.vendor_id or 0:04x}:{self.product_id or 0:04x}"
        return f"<HIDTransport {target} open={self.is_open}>"

    @property
    def is_open(self) -> bool:
        return self.device is not None

    def open(self) -> None:
        """
        Open the HID handle unless it is already open.

        Raises:
            DeviceOpenError: If the device cannot be opened
        """
        if self.device is not None:
            return

        if hid is None:
            raise DeviceOpenError("hidapi required: pip install hid")

        try:
            if self.path is not None:
                self.device = hid.Device(path=self.path)
            else:
                self.device = hid.Device(vid=self.vendor_id, pid=self.product_id)
        except _IO_ERRORS as e:
            raise DeviceOpenError(f"Cannot open HID device {self!r}: {e}") from e

        logger.debug(f"Opened HID device {self!r}")

    def close(self) -> None:
        """Close the HID handle."""
        if self.device is not None:
            try:
                self.device.close()
            finally:
                self.device = None
            logger.debug("Closed HID device")

    def send_report(self, payload: bytes) -> None:
        """
        Write one feature report (report id 0), zero-padded to 64 bytes.

        Args:
            payload: Up to 64 bytes

        Raises:
            OversizedReport: If the payload exceeds 64 bytes
            DeviceLost: If the write fails
        """
        if len(payload) > REPORT_SIZE:
            raise OversizedReport(len(payload))

        self.open()
        report = pad(payload, REPORT_SIZE)

        try:
            self.device.send_feature_report(bytes([REPORT_ID]) + report)
        except _IO_ERRORS as e:
            raise DeviceLost(f"Write error: {e}") from e

        logger.debug(f">>> {report.hex()}")

    def receive_report(self) -> bytes:
        """
        Read one feature report (report id 0).

        Returns:
            Exactly 64 bytes, report id stripped

        Raises:
            ShortRead: If the report is not 64 bytes long
            DeviceLost: If the read fails
        """
        self.open()

        try:
            data = self.device.get_feature_report(REPORT_ID, REPORT_SIZE + 1)
        except _IO_ERRORS as e:
            raise DeviceLost(f"Read error: {e}") from e

        # hidapi prefixes the returned buffer with the report id
        report = bytes(data[1:])
        logger.debug(f"<<< {report.hex()}")

        if len(report) != REPORT_SIZE:
            raise ShortRead(len(report))
        return report

