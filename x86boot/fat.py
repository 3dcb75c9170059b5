"""Read-only access to files in the root directory of a FAT12/FAT16 volume."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Iterator, Optional, Union

from x86boot.disk import DiskAccess

DIRECTORY_ENTRY_BYTES = 32
UNUSED_ENTRY_PREFIX = 0xE5
END_OF_DIRECTORY_PREFIX = 0
BOOT_SECTOR_SIZE = 512

ATTR_READ_ONLY = 0x01
ATTR_HIDDEN = 0x02
ATTR_SYSTEM = 0x04
ATTR_VOLUME_ID = 0x08
ATTR_DIRECTORY = 0x10
ATTR_LONG_NAME = ATTR_READ_ONLY | ATTR_HIDDEN | ATTR_SYSTEM | ATTR_VOLUME_ID

_SPACE = 0x20


class FatLookupError(enum.Enum):
    """Why a FAT entry does not continue a cluster chain."""

    FREE_CLUSTER = "free cluster"
    DEFECTIVE_CLUSTER = "defective cluster"
    UNSPECIFIED_ENTRY_ONE = "unspecified entry one"
    RESERVED_ENTRY = "reserved entry"


class FatError(Exception):
    """Raised when a FAT volume or one of its structures cannot be read."""

    def __init__(self, message: str, reason: Optional[FatLookupError] = None) -> None:
        super().__init__(message)
        self.reason = reason


class FatType(enum.Enum):
    FAT12 = 12
    FAT16 = 16
    FAT32 = 32

    def fat_entry_defective(self) -> int:
        """The FAT entry value that marks a defective cluster."""
        return {
            FatType.FAT12: 0xFF7,
            FatType.FAT16: 0xFFF7,
            FatType.FAT32: 0x0FFFFFF7,
        }[self]


def _u16(raw: bytes, offset: int) -> int:
    return int.from_bytes(raw[offset : offset + 2], "little")


def _u32(raw: bytes, offset: int) -> int:
    return int.from_bytes(raw[offset : offset + 4], "little")


@dataclass(frozen=True)
class BiosParameterBlock:
    """The geometry fields of a FAT boot sector."""

    bytes_per_sector: int
    sectors_per_cluster: int
    reserved_sector_count: int
    num_fats: int
    root_entry_count: int
    total_sectors_16: int
    fat_size_16: int
    total_sectors_32: int
    fat_size_32: int
    root_cluster: int

    @classmethod
    def parse(cls, raw: bytes) -> BiosParameterBlock:
        """Decode the parameter block from the first sector of the volume."""
        raw = bytes(raw)
        if len(raw) < BOOT_SECTOR_SIZE:
            raise FatError(f"boot sector of {len(raw)} bytes is too short")
        total_sectors_16 = _u16(raw, 19)
        total_sectors_32 = _u32(raw, 32)
        if total_sectors_16 == 0 and total_sectors_32 != 0:
            fat_size_32 = _u32(raw, 36)
            root_cluster = _u32(raw, 44)
        elif total_sectors_16 != 0 and total_sectors_32 == 0:
            fat_size_32 = 0
            root_cluster = 0
        else:
            raise FatError("ExactlyOneTotalSectorsFieldMustBeZero")
        return cls(
            bytes_per_sector=_u16(raw, 11),
            sectors_per_cluster=raw[13],
            reserved_sector_count=_u16(raw, 14),
            num_fats=raw[16],
            root_entry_count=_u16(raw, 17),
            total_sectors_16=total_sectors_16,
            fat_size_16=_u16(raw, 22),
            total_sectors_32=total_sectors_32,
            fat_size_32=fat_size_32,
            root_cluster=root_cluster,
        )

    def fat_size_in_sectors(self) -> int:
        if self.fat_size_16 != 0 and self.fat_size_32 == 0:
            return self.fat_size_16
        return self.fat_size_32

    def count_of_clusters(self) -> int:
        if self.bytes_per_sector == 0 or self.sectors_per_cluster == 0:
            raise FatError("sector and cluster sizes must be non-zero")
        root_dir_sectors = (
            self.root_entry_count * 32 + self.bytes_per_sector - 1
        ) // self.bytes_per_sector
        total_sectors = self.total_sectors_16 or self.total_sectors_32
        data_sectors = total_sectors - (
            self.reserved_sector_count
            + self.num_fats * self.fat_size_in_sectors()
            + root_dir_sectors
        )
        if data_sectors < 0:
            raise FatError("volume has fewer sectors than its metadata needs")
        return data_sectors // self.sectors_per_cluster

    def fat_type(self) -> FatType:
        clusters = self.count_of_clusters()
        if clusters < 4085:
            return FatType.FAT12
        if clusters < 65525:
            return FatType.FAT16
        return FatType.FAT32

    def root_directory_size(self) -> int:
        return self.root_entry_count * DIRECTORY_ENTRY_BYTES

    def root_directory_offset(self) -> int:
        return (
            self.reserved_sector_count + self.num_fats * self.fat_size_16
        ) * self.bytes_per_sector

    def maximum_valid_cluster(self) -> int:
        return self.count_of_clusters() + 1

    def fat_offset(self) -> int:
        return self.reserved_sector_count * self.bytes_per_sector

    def data_offset(self) -> int:
        return self.root_directory_size() + (
            self.reserved_sector_count + self.fat_size_in_sectors() * self.num_fats
        ) * self.bytes_per_sector

    def bytes_per_cluster(self) -> int:
        return self.bytes_per_sector * self.sectors_per_cluster


@dataclass(frozen=True)
class File:
    """A regular file found in a directory."""

    first_cluster: int
    file_size: int


@dataclass(frozen=True)
class Cluster:
    """One cluster of a file's chain and where its bytes lie on the volume."""

    index: int
    start_offset: int
    len_bytes: int


@dataclass(frozen=True)
class NormalEntry:
    """A short-name (8.3) directory entry."""

    short_filename_main: str
    short_filename_extension: str
    attributes: int
    first_cluster: int
    file_size: int

    def is_directory(self) -> bool:
        return bool(self.attributes & ATTR_DIRECTORY)

    def eq_name(self, name: str) -> bool:
        """Compare with ``name`` against the main name and extension joined without a dot."""
        return self.short_filename_main + self.short_filename_extension == name


@dataclass(frozen=True)
class LongNameEntry:
    """A VFAT long-file-name directory entry holding up to 13 UTF-16 units."""

    order: int
    name_1: bytes
    name_2: bytes
    name_3: bytes
    attributes: int
    checksum: int

    def name(self) -> str:
        """Decode the name part stored in this entry, up to its terminating zero."""
        data = self.name_1 + self.name_2 + self.name_3
        units = []
        for (unit,) in struct.iter_unpack("<H", data):
            if unit == 0:
                break
            units.append(unit)
        encoded = struct.pack(f"<{len(units)}H", *units)
        try:
            return encoded.decode("utf-16-le")
        except UnicodeDecodeError as exc:
            raise FatError("long file name is not valid UTF-16") from exc

    def eq_name(self, name: str) -> bool:
        try:
            return self.name() == name
        except FatError:
            return False


DirectoryEntry = Union[NormalEntry, LongNameEntry]


def _short_name_part(raw: bytes) -> str:
    start = next((i for i, c in enumerate(raw) if c != _SPACE), None)
    if start is None:
        return ""
    end = raw.find(_SPACE, start)
    if end == -1:
        end = len(raw)
    try:
        return raw[start:end].decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FatError("short file name is not valid UTF-8") from exc


def parse_directory_entry(raw: bytes) -> DirectoryEntry:
    """Decode one 32-byte directory entry."""
    raw = bytes(raw)
    if len(raw) < DIRECTORY_ENTRY_BYTES:
        raise FatError(f"directory entry of {len(raw)} bytes is too short")
    attributes = raw[11]
    if attributes == ATTR_LONG_NAME:
        return LongNameEntry(
            order=raw[0],
            name_1=raw[1:11],
            name_2=raw[14:26],
            name_3=raw[28:32],
            attributes=attributes,
            checksum=raw[13],
        )
    first_cluster = (_u16(raw, 20) << 16) | _u16(raw, 26)
    return NormalEntry(
        short_filename_main=_short_name_part(raw[0:8]),
        short_filename_extension=_short_name_part(raw[8:11]),
        attributes=attributes,
        first_cluster=first_cluster,
        file_size=_u32(raw, 28),
    )


def classify_fat_entry(
    fat_type: FatType, entry: int, maximum_valid_cluster: int
) -> Optional[int]:
    """Return the cluster ``entry`` points to, or None at end of file."""
    if entry == 0:
        raise FatError("free cluster in chain", FatLookupError.FREE_CLUSTER)
    if entry == 1:
        raise FatError("unspecified entry one in chain", FatLookupError.UNSPECIFIED_ENTRY_ONE)
    if entry <= maximum_valid_cluster:
        return entry
    defective = fat_type.fat_entry_defective()
    if entry < defective:
        raise FatError("reserved entry in chain", FatLookupError.RESERVED_ENTRY)
    if entry == defective:
        raise FatError("defective cluster in chain", FatLookupError.DEFECTIVE_CLUSTER)
    return None


def fat_entry_of_nth_cluster(
    disk: DiskAccess, fat_type: FatType, fat_start: int, n: int
) -> int:
    """Read the FAT entry for cluster ``n``."""
    if fat_type is FatType.FAT32:
        disk.seek(fat_start + n * 4)
        return _u32(disk.read_exact(4), 0) & 0x0FFFFFFF
    if fat_type is FatType.FAT16:
        disk.seek(fat_start + n * 2)
        return _u16(disk.read_exact(2), 0)
    disk.seek(fat_start + n + n // 2)
    entry16 = _u16(disk.read_exact(2), 0)
    if n & 1 == 0:
        return entry16 & 0xFFF
    return entry16 >> 4


class FileSystem:
    """A FAT volume read through a :class:`DiskAccess`."""

    def __init__(self, disk: DiskAccess) -> None:
        self.disk = disk
        disk.seek(0)
        self.bpb = BiosParameterBlock.parse(disk.read_exact(BOOT_SECTOR_SIZE))

    def _read_root_dir(self) -> Iterator[DirectoryEntry]:
        if self.bpb.fat_type() is FatType.FAT32:
            raise FatError("FAT32 root directories are not supported")
        self.disk.seek(self.bpb.root_directory_offset())
        data = self.disk.read_exact_into(self.bpb.root_directory_size())
        for start in range(0, len(data) - DIRECTORY_ENTRY_BYTES + 1, DIRECTORY_ENTRY_BYTES):
            raw = data[start : start + DIRECTORY_ENTRY_BYTES]
            if raw[0] == END_OF_DIRECTORY_PREFIX:
                return
            if raw[0] == UNUSED_ENTRY_PREFIX:
                continue
            try:
                yield parse_directory_entry(raw)
            except FatError:
                continue

    def find_file_in_root_dir(self, name: str) -> Optional[File]:
        """Look up a regular file by long or short name; None if absent or a directory."""
        entries = self._read_root_dir()
        match = next((e for e in entries if e.eq_name(name)), None)
        if match is None:
            return None
        if isinstance(match, LongNameEntry):
            following = next(entries, None)
            if following is None:
                raise FatError("long name entry is not followed by a short entry")
            if isinstance(following, LongNameEntry):
                raise FatError("multi-entry long file names are not supported")
            match = following
        if match.is_directory():
            return None
        return File(first_cluster=match.first_cluster, file_size=match.file_size)

    def file_clusters(self, file: File) -> Iterator[Cluster]:
        """Yield the clusters of ``file`` in chain order."""
        bpb = self.bpb
        fat_type = bpb.fat_type()
        current = file.first_cluster
        while True:
            entry = classify_fat_entry(fat_type, current, bpb.maximum_valid_cluster())
            if entry is None:
                return
            start = bpb.data_offset() + (entry - 2) * bpb.bytes_per_cluster()
            next_entry = fat_entry_of_nth_cluster(self.disk, fat_type, bpb.fat_offset(), entry)
            yield Cluster(index=current, start_offset=start, len_bytes=bpb.bytes_per_cluster())
            current = next_entry