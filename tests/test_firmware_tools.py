"""Tests for firmware loading and structural validation."""

import hashlib

import pytest

from conftest import make_firmware
from sonix_flasher.firmware_tools import (
    CorruptImage,
    ImageTooLarge,
    ImageTooSmall,
    ValidationError,
    describe_firmware,
    load_firmware,
    parse_vector_table,
    validate_firmware,
)


class TestSizeChecks:
    def test_exact_ceiling_passes(self, sn32f248b):
        validate_firmware(sn32f248b, make_firmware(64 * 1024))

    def test_one_byte_over_ceiling_fails(self, sn32f248b):
        with pytest.raises(ImageTooLarge) as ei:
            validate_firmware(sn32f248b, make_firmware(64 * 1024 + 1))
        assert ei.value.got == 64 * 1024 + 1
        assert ei.value.max_allowed == 64 * 1024

    def test_ceiling_includes_load_offset(self, sn32f268f):
        limit = 30 * 1024 - 0x200
        validate_firmware(sn32f268f, make_firmware(limit))

        with pytest.raises(ImageTooLarge) as ei:
            validate_firmware(sn32f268f, make_firmware(limit + 1))
        assert ei.value.max_allowed == limit
        assert str(ei.value) == "Firmware is too large: 0x7601 max allowed is 0x7600"

    def test_minimum_size_boundary(self, sn32f248b):
        validate_firmware(sn32f248b, make_firmware(256))

        with pytest.raises(ImageTooSmall) as ei:
            validate_firmware(sn32f248b, make_firmware(255))
        assert ei.value.got == 255
        assert str(ei.value) == "Firmware is too small"

    def test_size_checked_before_vector_table(self, sn32f248b):
        image = make_firmware(64 * 1024 + 64, sp=0)
        with pytest.raises(ImageTooLarge):
            validate_firmware(sn32f248b, image)

    def test_empty_image_is_too_small(self, sn32f248b):
        with pytest.raises(ImageTooSmall):
            validate_firmware(sn32f248b, b"")


class TestVectorTable:
    @pytest.mark.parametrize("sp", [0x20000000, 0x20000400, 0x20000800])
    def test_stack_pointer_in_sram_passes(self, sn32f248b, sp):
        validate_firmware(sn32f248b, make_firmware(sp=sp))

    @pytest.mark.parametrize("sp", [0x1FFFFFFF, 0x20000801, 0x00000000, 0xFFFFFFFF])
    def test_stack_pointer_outside_sram_fails(self, sn32f248b, sp):
        with pytest.raises(CorruptImage) as ei:
            validate_firmware(sn32f248b, make_firmware(sp=sp))
        assert str(ei.value).startswith("Firmware appears to be corrupted")

    @pytest.mark.parametrize("index", [0, 1, 2])
    def test_vector_without_thumb_bit_fails(self, sn32f248b, index):
        vectors = [0x101, 0x103, 0x105]
        vectors[index] &= ~1
        with pytest.raises(CorruptImage):
            validate_firmware(sn32f248b, make_firmware(vectors=tuple(vectors)))

    def test_errors_share_validation_base(self, sn32f248b):
        with pytest.raises(ValidationError):
            validate_firmware(sn32f248b, make_firmware(vectors=(0, 0, 0)))

    def test_image_not_modified(self, sn32f248b):
        image = bytearray(make_firmware(300))
        before = bytes(image)
        validate_firmware(sn32f248b, image)
        assert bytes(image) == before

    def test_parse_vector_table(self):
        table = parse_vector_table(make_firmware())
        assert table.stack_pointer == 0x20000400
        assert table.vectors == (0x101, 0x103, 0x105)
        assert table.stack_pointer_valid
        assert table.thumb_bits_valid

    def test_parse_vector_table_too_short(self):
        with pytest.raises(ValueError):
            parse_vector_table(b"\x00" * 15)


def test_load_firmware_reads_bytes(tmp_path):
    image = make_firmware(1000)
    path = tmp_path / "fw.bin"
    path.write_bytes(image)

    assert load_firmware(path) == image
    assert load_firmware(str(path)) == image


def test_load_firmware_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_firmware(tmp_path / "missing.bin")


def test_describe_firmware(sn32f268f):
    image = make_firmware(200)
    info = describe_firmware(sn32f268f, image)

    assert info["size"] == 200
    assert info["padded_size"] == 256
    assert info["chunks"] == 4
    assert info["load_offset"] == 0x200
    assert info["free"] == 30 * 1024 - 0x200 - 200
    assert info["sha256"] == hashlib.sha256(image).hexdigest()
    assert info["stack_pointer"] == "0x20000400"
    assert info["vectors"] == ["0x00000101", "0x00000103", "0x00000105"]
