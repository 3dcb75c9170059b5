"""Data shared between the BIOS boot stages, including the E820 memory map."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from x86boot.info import MemoryRegionKind

_U8_MAX = 0xFF
_U16_MAX = 0xFFFF

E820_USABLE = 1
MEMORY_MAP_CAPACITY = 100


@dataclass(frozen=True)
class Region:
    """A contiguous physical memory range."""

    start: int
    length: int


class _BiosLayout(enum.Enum):
    RGB = "rgb"
    BGR = "bgr"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class BiosPixelFormat:
    """Pixel format of a VESA framebuffer."""

    layout: _BiosLayout
    red_position: Optional[int] = None
    green_position: Optional[int] = None
    blue_position: Optional[int] = None

    RGB = None  # type: BiosPixelFormat
    BGR = None  # type: BiosPixelFormat

    def __post_init__(self) -> None:
        positions = (self.red_position, self.green_position, self.blue_position)
        if self.layout is _BiosLayout.UNKNOWN:
            for pos in positions:
                if pos is None or not 0 <= pos <= _U8_MAX:
                    raise ValueError(f"bit position {pos!r} is not an 8-bit value")
        elif any(pos is not None for pos in positions):
            raise ValueError("only unknown pixel formats carry bit positions")

    @classmethod
    def unknown(
        cls, red_position: int, green_position: int, blue_position: int
    ) -> BiosPixelFormat:
        return cls(_BiosLayout.UNKNOWN, red_position, green_position, blue_position)

    def is_unknown(self) -> bool:
        return self.layout is _BiosLayout.UNKNOWN


BiosPixelFormat.RGB = BiosPixelFormat(_BiosLayout.RGB)
BiosPixelFormat.BGR = BiosPixelFormat(_BiosLayout.BGR)


@dataclass(frozen=True)
class BiosFramebufferInfo:
    """The framebuffer set up through VESA."""

    region: Region
    width: int
    height: int
    bytes_per_pixel: int
    stride: int
    pixel_format: BiosPixelFormat


@dataclass(frozen=True)
class E820MemoryRegion:
    """A physical memory region reported by the E820 BIOS call."""

    start_addr: int
    len: int
    region_type: int
    acpi_extended_attributes: int = 0

    def end(self) -> int:
        """Exclusive end address of the region."""
        return self.start_addr + self.len

    def kind(self) -> MemoryRegionKind:
        if self.region_type == E820_USABLE:
            return MemoryRegionKind.usable()
        return MemoryRegionKind.unknown_bios(self.region_type)

    def usable_after_bootloader_exit(self) -> bool:
        return self.kind().is_usable


@dataclass
class BiosInfo:
    """Everything the early stages hand on to the later ones."""

    stage_4: Region
    kernel: Region
    ramdisk: Region
    config_file: Region
    last_used_addr: int
    framebuffer: BiosFramebufferInfo
    memory_map: List[E820MemoryRegion] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.memory_map) > _U16_MAX:
            raise ValueError("memory map has too many entries")


def parse_e820_entry(buf: bytes) -> Optional[E820MemoryRegion]:
    """Decode the bytes one E820 call wrote; return None for empty or zero-length entries."""
    buf = bytes(buf)
    if not buf:
        return None
    if len(buf) < 20:
        raise ValueError(f"E820 entry of {len(buf)} bytes is too short")
    base = int.from_bytes(buf[0:8], "little")
    length = int.from_bytes(buf[8:16], "little")
    kind = int.from_bytes(buf[16:20], "little")
    rest = buf[20:]
    acpi = int.from_bytes(rest, "little") if len(rest) == 4 else 0
    if length == 0:
        return None
    return E820MemoryRegion(base, length, kind, acpi)


def collect_memory_map(entries: Iterable[bytes]) -> List[E820MemoryRegion]:
    """Decode a sequence of raw E820 entries into at most 100 non-empty regions."""
    regions: List[E820MemoryRegion] = []
    for raw in entries:
        region = parse_e820_entry(raw)
        if region is None:
            continue
        if len(regions) >= MEMORY_MAP_CAPACITY:
            raise ValueError(
                f"memory map holds more than {MEMORY_MAP_CAPACITY} regions"
            )
        regions.append(region)
    return regions