"""Sector-based disk access through BIOS disk address packets."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator, List, Union

from x86boot.mbr import BootFailure, get_partition

SECTOR_SIZE = 512
MAX_SECTORS_PER_TRANSFER = 32
DAP_SIZE = 0x10
TMP_BUFFER_SIZE = 2 * SECTOR_SIZE

_DAP_FORMAT = "<BBHHHQ"
_U16_MAX = 0xFFFF
_U64_MAX = 0xFFFF_FFFF_FFFF_FFFF

ByteImage = Union[bytes, bytearray, memoryview]


@dataclass(frozen=True)
class DiskAddressPacket:
    """The 16-byte structure passed to the extended BIOS read call."""

    number_of_sectors: int
    offset: int
    segment: int
    start_lba: int
    packet_size: int = DAP_SIZE
    zero: int = 0

    def __post_init__(self) -> None:
        for name in ("number_of_sectors", "offset", "segment"):
            value = getattr(self, name)
            if not 0 <= value <= _U16_MAX:
                raise ValueError(f"{name} {value} does not fit in 16 bits")
        if not 0 <= self.start_lba <= _U64_MAX:
            raise ValueError(f"start_lba {self.start_lba} does not fit in 64 bits")
        if self.packet_size != DAP_SIZE or self.zero != 0:
            raise ValueError("malformed disk address packet header")

    @classmethod
    def from_lba(
        cls, start_lba: int, number_of_sectors: int, target_offset: int, target_segment: int
    ) -> DiskAddressPacket:
        return cls(number_of_sectors, target_offset, target_segment, start_lba)

    def to_bytes(self) -> bytes:
        """Encode the packet in its packed little-endian layout."""
        return struct.pack(
            _DAP_FORMAT,
            self.packet_size,
            self.zero,
            self.number_of_sectors,
            self.offset,
            self.segment,
            self.start_lba,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> DiskAddressPacket:
        data = bytes(data)
        if len(data) != DAP_SIZE:
            raise ValueError(f"disk address packet must be {DAP_SIZE} bytes, got {len(data)}")
        size, zero, sectors, offset, segment, lba = struct.unpack(_DAP_FORMAT, data)
        return cls(sectors, offset, segment, lba, packet_size=size, zero=zero)


def transfer_packets(
    start_lba: int, sector_count: int, target_addr: int
) -> Iterator[DiskAddressPacket]:
    """Split a load of ``sector_count`` sectors into packets of at most 32 sectors."""
    remaining = sector_count
    while True:
        sectors = min(remaining, MAX_SECTORS_PER_TRANSFER)
        segment = target_addr >> 4
        if segment > _U16_MAX:
            raise BootFailure("a")
        yield DiskAddressPacket.from_lba(start_lba, sectors, target_addr & 0b1111, segment)
        start_lba += sectors
        remaining -= sectors
        target_addr += sectors * SECTOR_SIZE
        if remaining == 0:
            break


def second_stage_packets(
    partition_table: bytes, entry_point_address: int
) -> List[DiskAddressPacket]:
    """The packets the boot sector issues to load the first partition to the entry point."""
    partition = get_partition(partition_table, 0)
    return list(
        transfer_packets(
            partition.logical_block_address, partition.sector_count, entry_point_address
        )
    )


@dataclass
class DiskAccess:
    """Reads whole sectors from a disk image, relative to a partition's base offset."""

    image: ByteImage
    base_offset: int = 0
    current_offset: int = 0

    def seek(self, offset: int) -> int:
        """Move to ``offset`` from the start of the partition and return it."""
        self.current_offset = offset
        return self.current_offset

    def _load_sectors(self, start_lba: int, count: int) -> bytes:
        start = start_lba * SECTOR_SIZE
        end = start + count * SECTOR_SIZE
        if end > len(self.image):
            raise BootFailure("z")
        return bytes(self.image[start:end])

    def read_exact_into(self, length: int) -> bytes:
        """Read ``length`` bytes of whole sectors, starting at the current sector."""
        if length <= 0 or length % SECTOR_SIZE:
            raise ValueError(f"length {length} is not a positive multiple of {SECTOR_SIZE}")
        start_addr = self.base_offset + self.current_offset
        end_addr = start_addr + length
        start_lba = start_addr // SECTOR_SIZE
        end_lba = (end_addr - 1) // SECTOR_SIZE
        data = self._load_sectors(start_lba, end_lba + 1 - start_lba)
        # the position advances to the absolute end address, as the stage-2 reader does
        self.current_offset = end_addr
        return data[:length]

    def read_exact(self, length: int) -> bytes:
        """Read ``length`` bytes at the current offset through a two-sector buffer."""
        sector_offset = self.current_offset % SECTOR_SIZE
        if length < 0 or sector_offset + length > TMP_BUFFER_SIZE:
            raise ValueError(f"cannot read {length} bytes at sector offset {sector_offset}")
        buffer = self.read_exact_into(TMP_BUFFER_SIZE)
        return buffer[sector_offset : sector_offset + length]