"""
In-memory SN32 bootloader.

Stands in for ``hid.Device`` in dry runs and tests. Answers INIT and
PREPARE like the ROM bootloader, stores streamed chunks into a flash
buffer at the prepared offset and records every report it receives.
Faults (bad echo, bad status, short reads, disconnects) can be injected.
"""

import logging
from typing import Dict, List, Optional

from .codec import (
    CMD_INIT,
    CMD_PREPARE,
    CMD_REBOOT,
    EXPECTED_STATUS,
    REPORT_SIZE,
    pack,
    pad,
    unpack,
)

logger = logging.getLogger(__name__)


class SimulatedDevice:
    """
    Fake bootloader handle.

    Args:
        flash_size: Size of the simulated flash in bytes
        echo_overrides: {command: word0} to answer with a wrong echo
        status_overrides: {command: status} to answer with a wrong status
        response_len: Length of responses (64 unless testing short reads)
        disconnect_after: Fail every write after this many reports
    """

    def __init__(
        self,
        flash_size: int = 64 * 1024,
        echo_overrides: Optional[Dict[int, int]] = None,
        status_overrides: Optional[Dict[int, int]] = None,
        response_len: int = REPORT_SIZE,
        disconnect_after: Optional[int] = None,
    ):
        self.flash = bytearray(b"\xff" * flash_size)
        self.echo_overrides = echo_overrides or {}
        self.status_overrides = status_overrides or {}
        self.response_len = response_len
        self.disconnect_after = disconnect_after

        self.reports: List[bytes] = []
        self.commands: List[int] = []
        self.rebooted = False
        self.closed = False

        self._pending: Optional[int] = None
        self._write_addr = 0
        self._remaining = 0

    @property
    def receiving(self) -> bool:
        """True while PREPARE'd data is still expected."""
        return self._remaining > 0

    def send_feature_report(self, data: bytes) -> int:
        if self.closed:
            raise OSError("device closed")
        if self.disconnect_after is not None and len(self.reports) >= self.disconnect_after:
            raise OSError("device disconnected")

        report = bytes(data[1:])
        self.reports.append(report)

        if self.receiving:
            size = min(len(report), self._remaining)
            self.flash[self._write_addr:self._write_addr + size] = report[:size]
            self._write_addr += size
            self._remaining -= size
            return len(data)

        command = unpack(report[:4])[0]
        self.commands.append(command)

        if command == CMD_PREPARE:
            offset, length = unpack(report[4:12])
            self._write_addr = offset
            self._remaining = length
            logger.debug(f"Simulated PREPARE offset=0x{offset:X} length={length}")
        elif command == CMD_REBOOT:
            self.rebooted = True
        self._pending = command
        return len(data)

    def get_feature_report(self, report_id: int, size: int) -> bytes:
        if self.closed:
            raise OSError("device closed")

        command = self._pending if self._pending is not None else 0
        self._pending = None
        echo = self.echo_overrides.get(command, command)
        status = self.status_overrides.get(command, EXPECTED_STATUS)

        if command not in (CMD_INIT, CMD_PREPARE):
            status = 0
        body = pad(pack(echo, status), max(REPORT_SIZE, self.response_len))[:self.response_len]
        return bytes([report_id]) + body

    def close(self) -> None:
        self.closed = True

    def written_image(self, offset: int, length: int) -> bytes:
        """Return the flash contents for a range."""
        return bytes(self.flash[offset:offset + length])
