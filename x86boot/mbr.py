"""Master boot record partition table entries and boot-sector failure codes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

ENTRY_SIZE = 16
MAX_ENTRIES = 4
BOOTABLE_FLAG = 0x80


class BootFailure(RuntimeError):
    """An unrecoverable boot error, identified by a single-character code."""

    def __init__(self, code: str) -> None:
        if len(code) != 1:
            raise ValueError(f"failure code must be one character, got {code!r}")
        super().__init__(f"boot failure !{code}")
        self.code = code


@dataclass(frozen=True)
class PartitionTableEntry:
    """One entry of an MBR partition table."""

    bootable: bool
    partition_type: int
    logical_block_address: int
    sector_count: int


def get_partition(partitions_raw: bytes, index: int) -> PartitionTableEntry:
    """Decode the partition entry at ``index`` from raw partition table bytes."""
    raw = bytes(partitions_raw)
    offset = index * ENTRY_SIZE
    if index < 0 or offset > len(raw):
        raise BootFailure("c")
    buffer = raw[offset:]

    if not buffer:
        raise BootFailure("d")
    bootable = buffer[0] == BOOTABLE_FLAG

    if len(buffer) < 5:
        raise BootFailure("e")
    partition_type = buffer[4]

    if len(buffer) < 12:
        raise BootFailure("f")
    lba = int.from_bytes(buffer[8:12], "little")

    if len(buffer) < 16:
        raise BootFailure("g")
    sector_count = int.from_bytes(buffer[12:16], "little")

    return PartitionTableEntry(bootable, partition_type, lba, sector_count)


def parse_partition_table(raw: bytes) -> List[PartitionTableEntry]:
    """Decode all four primary entries of an MBR partition table."""
    return [get_partition(raw, index) for index in range(MAX_ENTRIES)]