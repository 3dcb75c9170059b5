"""Boot information handed from the bootloader to the kernel."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional

from x86boot.config import ApiVersion

_U32_MAX = 0xFFFF_FFFF
_U8_MAX = 0xFF


class _KindTag(enum.Enum):
    USABLE = "usable"
    BOOTLOADER = "bootloader"
    UNKNOWN_UEFI = "unknown_uefi"
    UNKNOWN_BIOS = "unknown_bios"


@dataclass(frozen=True)
class MemoryRegionKind:
    """The type of a physical memory region, with the firmware tag for unknown kinds."""

    tag: _KindTag
    code: Optional[int] = None

    def __post_init__(self) -> None:
        needs_code = self.tag in (_KindTag.UNKNOWN_UEFI, _KindTag.UNKNOWN_BIOS)
        if needs_code:
            if self.code is None or not 0 <= self.code <= _U32_MAX:
                raise ValueError(f"memory type code {self.code!r} is not a 32-bit value")
        elif self.code is not None:
            raise ValueError(f"{self.tag.value} regions carry no type code")

    @classmethod
    def usable(cls) -> MemoryRegionKind:
        """Unused conventional memory that the kernel may use."""
        return cls(_KindTag.USABLE)

    @classmethod
    def bootloader(cls) -> MemoryRegionKind:
        """Memory used by the bootloader's own mappings."""
        return cls(_KindTag.BOOTLOADER)

    @classmethod
    def unknown_uefi(cls, code: int) -> MemoryRegionKind:
        """A region with a UEFI memory type that has no dedicated kind."""
        return cls(_KindTag.UNKNOWN_UEFI, code)

    @classmethod
    def unknown_bios(cls, code: int) -> MemoryRegionKind:
        """A region with an E820 memory type that has no dedicated kind."""
        return cls(_KindTag.UNKNOWN_BIOS, code)

    @property
    def is_usable(self) -> bool:
        return self.tag is _KindTag.USABLE


@dataclass(frozen=True)
class MemoryRegion:
    """A physical memory region; ``end`` is exclusive."""

    start: int
    end: int
    kind: MemoryRegionKind

    @classmethod
    def empty(cls) -> MemoryRegion:
        """Return a zero-length region marked as bootloader memory."""
        return cls(0, 0, MemoryRegionKind.bootloader())

    def __len__(self) -> int:
        return max(self.end - self.start, 0)


class _Layout(enum.Enum):
    RGB = "rgb"
    BGR = "bgr"
    U8 = "u8"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PixelFormat:
    """Colour layout of the pixels in a framebuffer."""

    layout: _Layout
    red_position: Optional[int] = None
    green_position: Optional[int] = None
    blue_position: Optional[int] = None

    RGB = None  # type: PixelFormat
    BGR = None  # type: PixelFormat
    U8 = None  # type: PixelFormat

    def __post_init__(self) -> None:
        positions = (self.red_position, self.green_position, self.blue_position)
        if self.layout is _Layout.UNKNOWN:
            for pos in positions:
                if pos is None or not 0 <= pos <= _U8_MAX:
                    raise ValueError(f"bit position {pos!r} is not an 8-bit value")
        elif any(pos is not None for pos in positions):
            raise ValueError("only unknown pixel formats carry bit positions")

    @classmethod
    def unknown(
        cls, red_position: int, green_position: int, blue_position: int
    ) -> PixelFormat:
        """A format described only by the bit offsets of its colour channels."""
        return cls(_Layout.UNKNOWN, red_position, green_position, blue_position)

    def is_unknown(self) -> bool:
        return self.layout is _Layout.UNKNOWN


PixelFormat.RGB = PixelFormat(_Layout.RGB)
PixelFormat.BGR = PixelFormat(_Layout.BGR)
PixelFormat.U8 = PixelFormat(_Layout.U8)


@dataclass(frozen=True)
class FrameBufferInfo:
    """Layout and pixel format of a framebuffer."""

    byte_len: int
    width: int
    height: int
    pixel_format: PixelFormat
    bytes_per_pixel: int
    stride: int


class FrameBuffer:
    """A pixel framebuffer backed by a byte array of ``info.byte_len`` bytes."""

    def __init__(
        self,
        buffer_start: int,
        info: FrameBufferInfo,
        memory: Optional[bytearray] = None,
    ) -> None:
        if memory is None:
            memory = bytearray(info.byte_len)
        elif len(memory) != info.byte_len:
            raise ValueError(
                f"framebuffer memory has {len(memory)} bytes, expected {info.byte_len}"
            )
        self.buffer_start = buffer_start
        self._info = info
        self._memory = memory

    def buffer(self) -> memoryview:
        """Return a writable view of the raw framebuffer bytes."""
        return memoryview(self._memory)

    def info(self) -> FrameBufferInfo:
        return self._info

    def __repr__(self) -> str:
        return f"FrameBuffer(buffer_start={self.buffer_start:#x}, info={self._info!r})"


@dataclass(frozen=True)
class TlsTemplate:
    """The thread-local storage template of the kernel executable."""

    start_addr: int
    file_size: int
    mem_size: int


@dataclass
class BootInfo:
    """Information the bootloader passes to the kernel on entry."""

    memory_regions: List[MemoryRegion]
    api_version: ApiVersion = field(default_factory=ApiVersion.new_default)
    framebuffer: Optional[FrameBuffer] = None
    physical_memory_offset: Optional[int] = None
    recursive_index: Optional[int] = None
    rsdp_addr: Optional[int] = None
    tls_template: Optional[TlsTemplate] = None
    ramdisk_addr: Optional[int] = None
    ramdisk_len: int = 0
    kernel_addr: int = 0
    kernel_len: int = 0
    kernel_image_offset: int = 0