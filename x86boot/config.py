"""Kernel-side bootloader configuration and its fixed-size binary encoding."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

VERSION_MAJOR = 0
VERSION_MINOR = 11
VERSION_PATCH = 10
VERSION_PRE = False

_U16_MAX = 0xFFFF
_U64_MAX = 0xFFFF_FFFF_FFFF_FFFF


class ConfigError(ValueError):
    """Raised when a serialized configuration cannot be decoded or encoded."""


def _u16_bytes(value: int) -> bytes:
    if not 0 <= value <= _U16_MAX:
        raise ConfigError(f"value {value} does not fit in 16 bits")
    return value.to_bytes(2, "little")


def _u64_bytes(value: int) -> bytes:
    if not 0 <= value <= _U64_MAX:
        raise ConfigError(f"value {value} does not fit in 64 bits")
    return value.to_bytes(8, "little")


def _optional_u64_bytes(value: Optional[int]) -> bytes:
    if value is None:
        return bytes(9)
    return b"\x01" + _u64_bytes(value)


class _Reader:
    """Consumes a byte string front to back in fixed-size pieces."""

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    def take(self, size: int) -> bytes:
        chunk = self._data[self._pos : self._pos + size]
        if len(chunk) != size:
            raise ConfigError("unexpected end of data")
        self._pos += size
        return chunk

    def u16(self) -> int:
        return int.from_bytes(self.take(2), "little")

    def u64(self) -> int:
        return int.from_bytes(self.take(8), "little")

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos


def _decode_optional_u64(flag: bytes, raw: bytes, error: str) -> Optional[int]:
    if flag == b"\x00" and raw == bytes(8):
        return None
    if flag == b"\x01":
        return int.from_bytes(raw, "little")
    raise ConfigError(error)


@dataclass(frozen=True)
class ApiVersion:
    """A semver-compatible version of the boot API."""

    version_major: int = VERSION_MAJOR
    version_minor: int = VERSION_MINOR
    version_patch: int = VERSION_PATCH
    pre_release: bool = VERSION_PRE

    @classmethod
    def new_default(cls) -> ApiVersion:
        """Return the version of this package's boot API."""
        return cls()


@dataclass(frozen=True)
class Mapping:
    """How a memory region is mapped: dynamically, or at a fixed virtual address."""

    address: Optional[int] = None

    def __post_init__(self) -> None:
        if self.address is not None and not 0 <= self.address <= _U64_MAX:
            raise ConfigError(f"address {self.address} does not fit in 64 bits")

    @classmethod
    def dynamic(cls) -> Mapping:
        return cls(None)

    @classmethod
    def fixed(cls, address: int) -> Mapping:
        return cls(address)

    def is_dynamic(self) -> bool:
        return self.address is None

    def serialize(self) -> bytes:
        """Encode as 9 bytes: a variant tag followed by a little-endian address."""
        if self.address is None:
            return bytes(9)
        return b"\x01" + _u64_bytes(self.address)

    @classmethod
    def deserialize(cls, serialized: bytes) -> Mapping:
        serialized = bytes(serialized)
        if len(serialized) != 9:
            raise ConfigError("invalid mapping format")
        variant, addr = serialized[:1], serialized[1:]
        if variant == b"\x00" and addr == bytes(8):
            return cls.dynamic()
        if variant == b"\x01":
            return cls.fixed(int.from_bytes(addr, "little"))
        raise ConfigError("invalid mapping value")


def _optional_mapping_bytes(mapping: Optional[Mapping]) -> bytes:
    if mapping is None:
        return bytes(10)
    return b"\x01" + mapping.serialize()


def _decode_optional_mapping(flag: bytes, raw: bytes, error: str) -> Optional[Mapping]:
    if flag == b"\x00" and raw == bytes(9):
        return None
    if flag == b"\x01":
        return Mapping.deserialize(raw)
    raise ConfigError(error)


@dataclass
class Mappings:
    """Virtual memory mappings the bootloader should set up."""

    kernel_stack: Mapping = field(default_factory=Mapping.dynamic)
    kernel_base: Mapping = field(default_factory=Mapping.dynamic)
    boot_info: Mapping = field(default_factory=Mapping.dynamic)
    framebuffer: Mapping = field(default_factory=Mapping.dynamic)
    physical_memory: Optional[Mapping] = None
    page_table_recursive: Optional[Mapping] = None
    aslr: bool = False
    dynamic_range_start: Optional[int] = None
    dynamic_range_end: Optional[int] = None
    ramdisk_memory: Mapping = field(default_factory=Mapping.dynamic)


@dataclass
class FrameBuffer:
    """Minimum framebuffer dimensions requested by the kernel."""

    minimum_framebuffer_height: Optional[int] = None
    minimum_framebuffer_width: Optional[int] = None


@dataclass
class BootloaderConfig:
    """Configuration a kernel embeds to control how it is booted."""

    UUID = bytes(
        [
            0x74, 0x3C, 0xA9, 0x61, 0x09, 0x36, 0x46, 0xA0,
            0xBB, 0x55, 0x5C, 0x15, 0x89, 0x15, 0x25, 0x3D,
        ]
    )
    SERIALIZED_LEN = 133

    version: ApiVersion = field(default_factory=ApiVersion.new_default)
    mappings: Mappings = field(default_factory=Mappings)
    kernel_stack_size: int = 80 * 1024
    frame_buffer: FrameBuffer = field(default_factory=FrameBuffer)

    @classmethod
    def new_default(cls) -> BootloaderConfig:
        """Return the default configuration: an 80 KiB stack and dynamic mappings."""
        return cls()

    def serialize(self) -> bytes:
        """Encode the configuration into its fixed 133-byte form."""
        version = self.version
        mappings = self.mappings
        parts = [
            self.UUID,
            _u16_bytes(version.version_major),
            _u16_bytes(version.version_minor),
            _u16_bytes(version.version_patch),
            bytes([1 if version.pre_release else 0]),
            _u64_bytes(self.kernel_stack_size),
            mappings.kernel_stack.serialize(),
            mappings.kernel_base.serialize(),
            mappings.boot_info.serialize(),
            mappings.framebuffer.serialize(),
            _optional_mapping_bytes(mappings.physical_memory),
            _optional_mapping_bytes(mappings.page_table_recursive),
            bytes([1 if mappings.aslr else 0]),
            _optional_u64_bytes(mappings.dynamic_range_start),
            _optional_u64_bytes(mappings.dynamic_range_end),
            mappings.ramdisk_memory.serialize(),
            _optional_u64_bytes(self.frame_buffer.minimum_framebuffer_height),
            _optional_u64_bytes(self.frame_buffer.minimum_framebuffer_width),
        ]
        return b"".join(parts)

    @classmethod
    def deserialize(cls, serialized: bytes) -> BootloaderConfig:
        """Decode bytes produced by :meth:`serialize`."""
        if len(serialized) != cls.SERIALIZED_LEN:
            raise ConfigError("invalid len")
        r = _Reader(serialized)

        if r.take(16) != cls.UUID:
            raise ConfigError("invalid UUID")

        major, minor, patch = r.u16(), r.u16(), r.u16()
        pre = r.take(1)
        if pre == b"\x00":
            pre_release = False
        elif pre == b"\x01":
            pre_release = True
        else:
            raise ConfigError("invalid pre version")
        version = ApiVersion(major, minor, patch, pre_release)

        kernel_stack_size = r.u64()

        kernel_stack = r.take(9)
        kernel_base = r.take(9)
        boot_info = r.take(9)
        framebuffer = r.take(9)
        phys_flag, phys = r.take(1), r.take(9)
        rec_flag, rec = r.take(1), r.take(9)
        aslr_raw = r.take(1)[0]
        start_flag, start = r.take(1), r.take(8)
        end_flag, end = r.take(1), r.take(8)
        ramdisk = r.take(9)

        kernel_stack_m = Mapping.deserialize(kernel_stack)
        kernel_base_m = Mapping.deserialize(kernel_base)
        boot_info_m = Mapping.deserialize(boot_info)
        framebuffer_m = Mapping.deserialize(framebuffer)
        physical_memory = _decode_optional_mapping(
            phys_flag, phys, "invalid phys memory value"
        )
        page_table_recursive = _decode_optional_mapping(
            rec_flag, rec, "invalid page table recursive value"
        )
        if aslr_raw not in (0, 1):
            raise ConfigError("invalid aslr value")
        dynamic_range_start = _decode_optional_u64(
            start_flag, start, "invalid dynamic range start value"
        )
        dynamic_range_end = _decode_optional_u64(
            end_flag, end, "invalid dynamic range end value"
        )
        mappings = Mappings(
            kernel_stack=kernel_stack_m,
            kernel_base=kernel_base_m,
            boot_info=boot_info_m,
            framebuffer=framebuffer_m,
            physical_memory=physical_memory,
            page_table_recursive=page_table_recursive,
            aslr=aslr_raw == 1,
            dynamic_range_start=dynamic_range_start,
            dynamic_range_end=dynamic_range_end,
            ramdisk_memory=Mapping.deserialize(ramdisk),
        )

        height_flag, height = r.take(1), r.take(8)
        width_flag, width = r.take(1), r.take(8)
        frame_buffer = FrameBuffer(
            minimum_framebuffer_height=_decode_optional_u64(
                height_flag, height, "minimum_framebuffer_height invalid"
            ),
            minimum_framebuffer_width=_decode_optional_u64(
                width_flag, width, "minimum_framebuffer_width invalid"
            ),
        )

        if r.remaining:
            raise ConfigError("unexpected rest")

        return cls(
            version=version,
            mappings=mappings,
            kernel_stack_size=kernel_stack_size,
            frame_buffer=frame_buffer,
        )