import struct

import pytest

from x86boot.bios_common import BiosPixelFormat
from x86boot.vesa import (
    VbeInfoBlock,
    VesaError,
    VesaModeInfo,
    mode_numbers,
    select_best_mode,
)


def info_block(mode_ptr=0, version=0x0300, total_memory=16):
    raw = bytearray(512)
    struct.pack_into("<4sHIIIH", raw, 0, b"VESA", version, 0, 0, mode_ptr, total_memory)
    return bytes(raw)


def mode_block(
    width=800,
    height=600,
    attributes=0x9B,
    memory_model=6,
    bits_per_pixel=32,
    positions=(16, 8, 0),
    framebuffer=0xFD000000,
    scanline=3200,
):
    raw = bytearray(256)
    struct.pack_into("<H", raw, 0, attributes)
    struct.pack_into("<HHH", raw, 16, scanline, width, height)
    raw[25] = bits_per_pixel
    raw[27] = memory_model
    raw[32], raw[34], raw[36] = positions
    struct.pack_into("<I", raw, 40, framebuffer)
    return bytes(raw)


def mode(**kwargs):
    return VesaModeInfo.parse(0x100, mode_block(**kwargs))


def test_info_block_fields():
    block = VbeInfoBlock.parse(info_block(mode_ptr=0x2000, total_memory=64))
    assert block.signature == b"VESA"
    assert block.version == 0x0300
    assert block.total_memory == 64
    assert len(block.oem) == 512 - 0x14


def test_video_mode_address_with_zero_segment_is_offset():
    block = VbeInfoBlock.parse(info_block(mode_ptr=0x1234))
    assert block.video_mode_address() == 0x1234


def test_video_mode_address_segment_shift():
    block = VbeInfoBlock.parse(info_block(mode_ptr=0x0001_0000))
    assert block.video_mode_address() == 0x10


def test_info_block_too_short():
    with pytest.raises(VesaError):
        VbeInfoBlock.parse(bytes(100))


def test_mode_numbers_stop_at_terminator():
    data = struct.pack("<HHHH", 0x100, 0x101, 0xFFFF, 0x102)
    assert list(mode_numbers(data)) == [0x100, 0x101]


def test_mode_numbers_empty_list():
    assert list(mode_numbers(b"\xff\xff")) == []


def test_mode_numbers_unterminated():
    with pytest.raises(VesaError):
        list(mode_numbers(struct.pack("<H", 0x100)))


def test_parse_mode_fields():
    info = VesaModeInfo.parse(0x118, mode_block(width=1024, height=768, scanline=4096))
    assert info.mode == 0x118
    assert (info.width, info.height) == (1024, 768)
    assert info.bytes_per_scanline == 4096
    assert info.bytes_per_pixel == 4
    assert info.framebuffer_start == 0xFD000000
    assert info.pixel_format == BiosPixelFormat.BGR


def test_parse_pixel_formats():
    assert mode(positions=(0, 8, 16)).pixel_format == BiosPixelFormat.RGB
    odd = mode(positions=(11, 5, 0)).pixel_format
    assert odd.is_unknown()
    assert (odd.red_position, odd.green_position, odd.blue_position) == (11, 5, 0)


def test_parse_mode_too_short():
    with pytest.raises(VesaError):
        VesaModeInfo.parse(0x100, bytes(64))


def test_is_supported():
    assert mode().is_supported()
    assert not mode(attributes=0x10).is_supported()
    assert not mode(memory_model=3).is_supported()
    assert mode(memory_model=4).is_supported()


def test_select_prefers_wider_then_taller():
    small = mode(width=640, height=480)
    wide = mode(width=1024, height=600)
    tall = mode(width=1024, height=768)
    assert select_best_mode([small, tall, wide], 1280, 720 + 100) is tall
    assert select_best_mode([small, wide], 1280, 720) is wide


def test_select_skips_too_large_and_unsupported():
    big = mode(width=1920, height=1080)
    unsupported = mode(width=1024, height=768, attributes=0)
    ok = mode(width=640, height=480)
    assert select_best_mode([big, unsupported, ok], 1280, 720) is ok


def test_select_replaces_unknown_format():
    unknown = mode(width=1280, height=720, positions=(11, 5, 0))
    known = mode(width=640, height=480)
    assert select_best_mode([unknown, known], 1280, 720) is known


def test_select_none_when_nothing_fits():
    assert select_best_mode([mode(width=1920, height=1080)], 1280, 720) is None
    assert select_best_mode([], 1280, 720) is None