"""Global descriptor tables and identity-mapping page tables for the boot stages."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import List, Sequence

PAGE_SIZE = 4096
ENTRIES_PER_TABLE = 512
HUGE_PAGE_SIZE = 2 * 1024 * 1024
GIGABYTE = 1024 * 1024 * 1024

PRESENT = 1 << 0
WRITABLE = 1 << 1
HUGE_PAGE = 1 << 7

_U32_MAX = 0xFFFF_FFFF


@dataclass(frozen=True)
class GlobalDescriptorTable:
    """A three-entry GDT: null, code and data segment descriptors."""

    zero: int
    code: int
    data: int

    def to_bytes(self) -> bytes:
        return struct.pack("<QQQ", self.zero, self.code, self.data)

    def pointer(self, base: int) -> bytes:
        """The 6-byte operand of ``lgdt`` for this table placed at ``base``."""
        if not 0 <= base <= _U32_MAX:
            raise ValueError(f"GDT base {base:#x} does not fit in 32 bits")
        return struct.pack("<HI", len(self.to_bytes()) - 1, base)


def protected_mode_gdt() -> GlobalDescriptorTable:
    """Flat 4 GiB code and data segments for 32-bit protected (and unreal) mode."""
    limit = (0xF << 48) | 0xFFFF
    access_common = (1 << 47) | (1 << 44) | (1 << 41)  # present, user segment, read/write
    protected_mode = 1 << 54
    granularity = 1 << 55
    base_flags = protected_mode | granularity | access_common | limit
    executable = 1 << 43
    return GlobalDescriptorTable(zero=0, code=base_flags | executable, data=base_flags)


def long_mode_gdt() -> GlobalDescriptorTable:
    """Code and data segments for 64-bit long mode."""
    common = (1 << 44) | (1 << 47) | (1 << 41) | (1 << 40)  # user, present, writable, accessed
    return GlobalDescriptorTable(
        zero=0,
        code=common | (1 << 43) | (1 << 53),  # executable, long mode
        data=common,
    )


@dataclass(frozen=True)
class IdentityMapping:
    """Page tables identity-mapping the low gigabytes with 2 MiB huge pages."""

    level_4: List[int]
    level_3: List[int]
    level_2: List[List[int]]


def _check_table_address(address: int) -> None:
    if address < 0 or address % PAGE_SIZE:
        raise ValueError(f"page table address {address:#x} is not page aligned")


def build_identity_mapping(
    level_3_address: int, level_2_addresses: Sequence[int]
) -> IdentityMapping:
    """Fill one level-4, one level-3 and one level-2 table per mapped gigabyte."""
    if len(level_2_addresses) > ENTRIES_PER_TABLE:
        raise ValueError(
            f"at most {ENTRIES_PER_TABLE} level-2 tables fit in one level-3 table"
        )
    _check_table_address(level_3_address)
    common_flags = PRESENT | WRITABLE

    level_4 = [0] * ENTRIES_PER_TABLE
    level_4[0] = level_3_address | common_flags
    level_3 = [0] * ENTRIES_PER_TABLE
    level_2: List[List[int]] = []
    for i, address in enumerate(level_2_addresses):
        _check_table_address(address)
        level_3[i] = address | common_flags
        offset = i * GIGABYTE
        level_2.append(
            [
                (offset + j * HUGE_PAGE_SIZE) | common_flags | HUGE_PAGE
                for j in range(ENTRIES_PER_TABLE)
            ]
        )
    return IdentityMapping(level_4=level_4, level_3=level_3, level_2=level_2)