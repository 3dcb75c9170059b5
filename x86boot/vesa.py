"""Decoding of VESA BIOS extension info blocks and choice of a video mode."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from x86boot.bios_common import BiosPixelFormat

VBE_SUCCESS = 0x4F
INFO_BLOCK_SIZE = 512
MODE_INFO_SIZE = 256
MODE_LIST_END = 0xFFFF

# graphics mode with linear framebuffer support
REQUIRED_ATTRIBUTES = 0x90
# packed pixel graphics and direct colour
SUPPORTED_MEMORY_MODELS = (4, 6)

_INFO_HEADER = "<4sHIIIH"
_INFO_HEADER_SIZE = struct.calcsize(_INFO_HEADER)


class VesaError(Exception):
    """Raised when VESA data is malformed or a VESA call reports failure."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class VbeInfoBlock:
    """The 512-byte controller information returned by VBE function 0x4F00."""

    signature: bytes
    version: int
    oem_string_ptr: int
    capabilities: int
    video_mode_ptr: int
    total_memory: int
    oem: bytes

    @classmethod
    def parse(cls, raw: bytes) -> VbeInfoBlock:
        raw = bytes(raw)
        if len(raw) < INFO_BLOCK_SIZE:
            raise VesaError(f"VBE info block of {len(raw)} bytes is too short")
        signature, version, oem_ptr, caps, mode_ptr, total = struct.unpack_from(
            _INFO_HEADER, raw, 0
        )
        return cls(
            signature=signature,
            version=version,
            oem_string_ptr=oem_ptr,
            capabilities=caps,
            video_mode_ptr=mode_ptr,
            total_memory=total,
            oem=raw[_INFO_HEADER_SIZE:INFO_BLOCK_SIZE],
        )

    def video_mode_address(self) -> int:
        """Linear address of the mode list, from its segment:offset far pointer."""
        segment = self.video_mode_ptr >> 16
        offset = self.video_mode_ptr & 0xFFFF
        return (segment << 4) + offset


def mode_numbers(data: bytes) -> Iterator[int]:
    """Yield the 16-bit mode numbers of a mode list up to its 0xFFFF terminator."""
    data = bytes(data)
    for start in range(0, len(data) - 1, 2):
        mode = int.from_bytes(data[start : start + 2], "little")
        if mode == MODE_LIST_END:
            return
        yield mode
    raise VesaError("video mode list is not terminated")


def _pixel_format(red: int, green: int, blue: int) -> BiosPixelFormat:
    if (red, green, blue) == (0, 8, 16):
        return BiosPixelFormat.RGB
    if (red, green, blue) == (16, 8, 0):
        return BiosPixelFormat.BGR
    return BiosPixelFormat.unknown(red, green, blue)


@dataclass(frozen=True)
class VesaModeInfo:
    """What VBE function 0x4F01 reports about one video mode."""

    mode: int
    width: int
    height: int
    framebuffer_start: int
    bytes_per_scanline: int
    bytes_per_pixel: int
    pixel_format: BiosPixelFormat
    memory_model: int
    attributes: int

    @classmethod
    def parse(cls, mode: int, raw: bytes) -> VesaModeInfo:
        """Decode a 256-byte mode information block for mode number ``mode``."""
        raw = bytes(raw)
        if len(raw) < MODE_INFO_SIZE:
            raise VesaError(f"VBE mode info block of {len(raw)} bytes is too short")
        (attributes,) = struct.unpack_from("<H", raw, 0)
        scanline, width, height = struct.unpack_from("<HHH", raw, 16)
        bits_per_pixel = raw[25]
        memory_model = raw[27]
        (framebuffer,) = struct.unpack_from("<I", raw, 40)
        return cls(
            mode=mode,
            width=width,
            height=height,
            framebuffer_start=framebuffer,
            bytes_per_scanline=scanline,
            bytes_per_pixel=bits_per_pixel // 8,
            pixel_format=_pixel_format(raw[32], raw[34], raw[36]),
            memory_model=memory_model,
            attributes=attributes,
        )

    def is_supported(self) -> bool:
        """True for linear-framebuffer graphics modes in a usable memory model."""
        return (
            self.attributes & REQUIRED_ATTRIBUTES == REQUIRED_ATTRIBUTES
            and self.memory_model in SUPPORTED_MEMORY_MODELS
        )


def select_best_mode(
    modes: Iterable[VesaModeInfo], max_width: int, max_height: int
) -> Optional[VesaModeInfo]:
    """Pick the widest, then tallest, supported mode within the given bounds."""
    best: Optional[VesaModeInfo] = None
    for mode in modes:
        if not mode.is_supported():
            continue
        if mode.width > max_width or mode.height > max_height:
            continue
        if (
            best is None
            or best.pixel_format.is_unknown()
            or best.width < mode.width
            or (best.width == mode.width and best.height < mode.height)
        ):
            best = mode
    return best