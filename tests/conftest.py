import pytest

from sonix_flasher.models import lookup
from sonix_flasher.protocol import HIDTransport, SimulatedDevice
from sonix_flasher.protocol.codec import pack


def make_firmware(size=256, sp=0x20000400, vectors=(0x00000101, 0x00000103, 0x00000105)) -> bytes:
    """Build a synthetic image with a plausible vector table."""
    header = pack(sp, *vectors)
    body = bytes((i * 7) & 0xFF for i in range(max(size - len(header), 0)))
    return (header + body)[:size]


@pytest.fixture
def sn32f248b():
    return lookup(0x0C45, 0x7040)


@pytest.fixture
def sn32f268f():
    return lookup(0x0C45, 0x7010)


@pytest.fixture
def sim_device():
    return SimulatedDevice()


@pytest.fixture
def sim_transport(sim_device):
    return HIDTransport(0x0C45, 0x7040, device=sim_device)
