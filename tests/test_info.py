import pytest

from x86boot.config import ApiVersion
from x86boot.info import (
    BootInfo,
    FrameBuffer,
    FrameBufferInfo,
    MemoryRegion,
    MemoryRegionKind,
    PixelFormat,
    TlsTemplate,
)


def _info(byte_len=16):
    return FrameBufferInfo(
        byte_len=byte_len,
        width=2,
        height=2,
        pixel_format=PixelFormat.RGB,
        bytes_per_pixel=4,
        stride=2,
    )


def test_empty_region_is_zero_length_bootloader_memory():
    region = MemoryRegion.empty()
    assert region == MemoryRegion(0, 0, MemoryRegionKind.bootloader())
    assert len(region) == 0


def test_region_kinds_distinguish_firmware():
    assert MemoryRegionKind.unknown_bios(5) == MemoryRegionKind.unknown_bios(5)
    assert MemoryRegionKind.unknown_bios(5) != MemoryRegionKind.unknown_uefi(5)
    assert MemoryRegionKind.unknown_bios(5).code == 5


def test_usable_flag():
    assert MemoryRegionKind.usable().is_usable is True
    assert MemoryRegionKind.bootloader().is_usable is False


def test_unknown_kind_rejects_out_of_range_code():
    with pytest.raises(ValueError):
        MemoryRegionKind.unknown_bios(1 << 32)


def test_pixel_format_unknown():
    fmt = PixelFormat.unknown(1, 2, 3)
    assert fmt.is_unknown() is True
    assert (fmt.red_position, fmt.green_position, fmt.blue_position) == (1, 2, 3)


@pytest.mark.parametrize("fmt", [PixelFormat.RGB, PixelFormat.BGR, PixelFormat.U8])
def test_known_pixel_formats(fmt):
    assert fmt.is_unknown() is False


def test_pixel_format_rejects_large_position():
    with pytest.raises(ValueError):
        PixelFormat.unknown(0, 8, 256)


def test_framebuffer_buffer_length_matches_info():
    fb = FrameBuffer(0xB8000, _info())
    assert len(fb.buffer()) == fb.info().byte_len
    assert fb.info() == _info()


def test_framebuffer_writes_reach_memory():
    memory = bytearray(16)
    fb = FrameBuffer(0x1000, _info(), memory)
    fb.buffer()[3] = 0x7F
    assert memory[3] == 0x7F
    assert bytes(fb.buffer())[3] == 0x7F


def test_framebuffer_rejects_wrong_memory_size():
    with pytest.raises(ValueError):
        FrameBuffer(0x1000, _info(16), bytearray(8))


def test_boot_info_defaults():
    regions = [MemoryRegion(0, 4096, MemoryRegionKind.usable())]
    info = BootInfo(regions)
    assert info.api_version == ApiVersion.new_default()
    assert info.memory_regions == regions
    assert info.framebuffer is None
    assert info.ramdisk_addr is None
    assert (info.ramdisk_len, info.kernel_addr, info.kernel_len) == (0, 0, 0)


def test_tls_template_equality():
    assert TlsTemplate(0x1000, 8, 16) == TlsTemplate(0x1000, 8, 16)
    assert TlsTemplate(0x1000, 8, 16).mem_size == 16