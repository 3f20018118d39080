"""Tests for the SN32 update state machine."""

import threading
from unittest.mock import MagicMock

import pytest

from conftest import make_firmware
from sonix_flasher.firmware_tools import validate_firmware
from sonix_flasher.models import DeviceDescriptor
from sonix_flasher.protocol import (
    CMD_INIT,
    CMD_PREPARE,
    CMD_REBOOT,
    EXPECTED_STATUS,
    DeviceLost,
    FlashCancelled,
    HIDTransport,
    ProgressEvent,
    ProgressStep,
    ProtocolMismatch,
    ShortRead,
    SimulatedDevice,
    SN32Updater,
    UpdateState,
    run_update,
)
from sonix_flasher.protocol.codec import pack, pad


def _run(descriptor, transport, firmware, **kwargs):
    sleeps = []
    kwargs.setdefault("sleep", sleeps.append)
    events = list(run_update(descriptor, transport, firmware, **kwargs))
    return events, sleeps


def _steps(events):
    return [(e.step.value, e.progress) for e in events]


class TestHappyPath:
    def test_progress_sequence_for_200_byte_image(self, sn32f248b, sim_transport):
        events, _ = _run(sn32f248b, sim_transport, make_firmware(200))

        assert _steps(events) == [
            ("initialize", 0.0),
            ("prepare", 0.0),
            ("flash", 0.0),
            ("flash", 0.25),
            ("flash", 0.5),
            ("flash", 0.75),
            ("flash", 1.0),
            ("reboot", 1.0),
            ("complete", 1.0),
        ]
        chunk_events = [e for e in events if e.step is ProgressStep.FLASH and e.progress > 0]
        assert [e.progress for e in chunk_events] == [0.25, 0.5, 0.75, 1.0]

    def test_wire_traffic(self, sn32f248b, sim_device, sim_transport):
        firmware = make_firmware(200)
        padded = pad(firmware)

        _run(sn32f248b, sim_transport, firmware)

        reports = sim_device.reports
        assert len(reports) == 1 + 1 + 4 + 1
        assert reports[0] == pad(pack(CMD_INIT))
        assert reports[1] == pad(pack(CMD_PREPARE, 0, 256))
        assert reports[2:6] == [padded[i:i + 64] for i in range(0, 256, 64)]
        assert reports[6] == pad(pack(CMD_REBOOT))
        assert sim_device.commands == [CMD_INIT, CMD_PREPARE, CMD_REBOOT]
        assert sim_device.rebooted

    def test_prepare_uses_load_offset_and_padded_length(self, sn32f268f):
        device = SimulatedDevice(flash_size=sn32f268f.size_limit)
        transport = HIDTransport(device=device)
        firmware = make_firmware(1000)

        _run(sn32f268f, transport, firmware)

        assert device.reports[1][:12] == pack(CMD_PREPARE, 0x200, 1024)
        assert device.written_image(0x200, 1024) == pad(firmware)
        assert device.written_image(0, 0x200) == b"\xff" * 0x200

    def test_reboot_waits_settle_delay(self, sn32f248b, sim_transport):
        _, sleeps = _run(sn32f248b, sim_transport, make_firmware())
        assert sleeps == [5.0]

        _, sleeps = _run(sn32f248b, HIDTransport(device=SimulatedDevice()), make_firmware(), settle_delay=0.5)
        assert sleeps == [0.5]

    def test_full_64k_image(self):
        descriptor = DeviceDescriptor(
            vendor_id=0x0C45,
            product_id=0x7040,
            description="SN32F248B (bootloader)",
            qmk_offset=0x0,
            size_limit=65536,
        )
        firmware = make_firmware(64 * 1024, sp=0x20000400, vectors=(0x101, 0x103, 0x105))
        validate_firmware(descriptor, firmware)

        device = SimulatedDevice()
        events, _ = _run(descriptor, HIDTransport(device=device), firmware)

        chunk_events = [e for e in events if e.step is ProgressStep.FLASH and e.progress > 0]
        assert len(chunk_events) == 1024
        progress = [e.progress for e in chunk_events]
        assert progress == sorted(progress)
        assert progress[-1] == 1.0
        assert events[-1] == ProgressEvent(ProgressStep.COMPLETE, 1.0)
        assert device.written_image(0, 65536) == firmware

    def test_generator_is_lazy(self, sn32f248b, sim_device, sim_transport):
        events = run_update(sn32f248b, sim_transport, make_firmware(), sleep=lambda s: None)

        assert sim_device.reports == []
        assert next(events) == ProgressEvent(ProgressStep.INITIALIZE, 0.0)
        assert sim_device.reports == []
        next(events)
        assert sim_device.commands == [CMD_INIT]

    def test_opens_but_never_closes_transport(self, sn32f248b):
        transport = MagicMock()
        transport.receive_report.side_effect = [
            pad(pack(CMD_INIT, EXPECTED_STATUS)),
            pad(pack(CMD_PREPARE, EXPECTED_STATUS)),
        ]

        _run(sn32f248b, transport, make_firmware(128))

        transport.open.assert_called_once_with()
        transport.close.assert_not_called()
        assert transport.send_report.call_count == 1 + 1 + 2 + 1


class TestFailures:
    def test_init_echo_mismatch_stops_update(self, sn32f248b):
        device = SimulatedDevice(echo_overrides={CMD_INIT: 0x55AA02})
        updater = SN32Updater(HIDTransport(device=device), sn32f248b, make_firmware(), sleep=lambda s: None)
        events = updater.run()

        assert next(events).step is ProgressStep.INITIALIZE
        with pytest.raises(ProtocolMismatch) as ei:
            next(events)

        error = ei.value
        assert error.phase == "initialize"
        assert error.field == "cmd"
        assert error.expected == CMD_INIT
        assert error.actual == 0x55AA02
        assert str(error) == (
            "Failed to initialize: response cmd is 0x0055aa02, expected 0x0055aa01"
        )
        assert device.commands == [CMD_INIT]
        assert updater.state is UpdateState.FAILED
        with pytest.raises(StopIteration):
            next(events)

    def test_init_status_mismatch(self, sn32f248b):
        device = SimulatedDevice(status_overrides={CMD_INIT: 0})
        with pytest.raises(ProtocolMismatch) as ei:
            _run(sn32f248b, HIDTransport(device=device), make_firmware())

        assert ei.value.field == "status"
        assert ei.value.expected == EXPECTED_STATUS
        assert "0xfafafafa" in str(ei.value)
        assert "0x00000000" in str(ei.value)

    def test_prepare_status_mismatch_sends_no_chunks(self, sn32f248b):
        device = SimulatedDevice(status_overrides={CMD_PREPARE: 0xDEADBEEF})
        with pytest.raises(ProtocolMismatch) as ei:
            _run(sn32f248b, HIDTransport(device=device), make_firmware())

        assert ei.value.phase == "prepare"
        assert str(ei.value) == (
            "Failed to prepare: response status is 0xdeadbeef, expected 0xfafafafa"
        )
        assert len(device.reports) == 2

    def test_short_response(self, sn32f248b):
        device = SimulatedDevice(response_len=32)
        with pytest.raises(ShortRead):
            _run(sn32f248b, HIDTransport(device=device), make_firmware())

    def test_disconnect_mid_flash(self, sn32f248b):
        device = SimulatedDevice(disconnect_after=4)
        updater = SN32Updater(HIDTransport(device=device), sn32f248b, make_firmware(512), sleep=lambda s: None)

        with pytest.raises(DeviceLost):
            list(updater.run())

        assert updater.state is UpdateState.FAILED
        assert updater.flash_started
        assert updater.bytes_sent == 128
        assert isinstance(updater.error, DeviceLost)

    def test_cancel_between_chunks(self, sn32f248b, sim_device, sim_transport):
        cancel = threading.Event()
        updater = SN32Updater(sim_transport, sn32f248b, make_firmware(512), cancel_event=cancel, sleep=lambda s: None)

        seen = []
        with pytest.raises(FlashCancelled) as ei:
            for event in updater.run():
                seen.append(event)
                if event.step is ProgressStep.FLASH and event.progress >= 0.25:
                    cancel.set()

        assert ei.value.bytes_sent == 128
        assert ei.value.total == 512
        assert seen[-1] == ProgressEvent(ProgressStep.FLASH, 0.25)
        assert CMD_REBOOT not in sim_device.commands

    def test_run_is_single_use(self, sn32f248b, sim_transport):
        updater = SN32Updater(sim_transport, sn32f248b, make_firmware(), sleep=lambda s: None)
        list(updater.run())
        assert updater.state is UpdateState.COMPLETE

        with pytest.raises(RuntimeError):
            next(updater.run())

    def test_abandoned_run_is_marked_failed(self, sn32f248b, sim_transport):
        updater = SN32Updater(sim_transport, sn32f248b, make_firmware(), sleep=lambda s: None)
        events = updater.run()
        next(events)
        events.close()

        assert updater.state is UpdateState.FAILED
