"""Boot planning: locating boot files on the FAT partition and laying them out in memory."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Union

from x86boot.bios_common import (
    BiosFramebufferInfo,
    BiosInfo,
    BiosPixelFormat,
    E820MemoryRegion,
    Region,
)
from x86boot.disk import SECTOR_SIZE, DiskAccess
from x86boot.fat import FileSystem
from x86boot.info import FrameBufferInfo, PixelFormat
from x86boot.mbr import PartitionTableEntry, parse_partition_table
from x86boot.vesa import VesaModeInfo

BOOTLOADER_SECOND_STAGE_PARTITION_TYPE = 0x20
FAT_PARTITION_TYPES = frozenset({0x01, 0x04, 0x06, 0x0E, 0x0B, 0x0C, 0x1B, 0x1C})

STAGE_3_DST = 0x0010_0000
STAGE_4_DST = 0x0013_0000
KERNEL_DST = 0x0100_0000

DISK_BUFFER_SIZE = 0x4000
PAGE_SIZE = 4096
GIGABYTE = 4096 * 512 * 512

STAGE_3_FILE = "boot-stage-3"
STAGE_4_FILE = "boot-stage-4"
KERNEL_FILE = "kernel-x86_64"
RAMDISK_FILE = "ramdisk"
CONFIG_FILE = "boot.json"

ByteImage = Union[bytes, bytearray, memoryview]


class LoadError(Exception):
    """Raised when the boot files cannot be found or laid out."""


@dataclass(frozen=True)
class LoadedFile:
    """A file read from the boot partition."""

    name: str
    data: bytes
    size: int


@dataclass(frozen=True)
class BootLayout:
    """Where each boot file is placed in physical memory, with the files' contents."""

    stage_3: Region
    stage_4: Region
    kernel: Region
    ramdisk: Region
    config_file: Region
    contents: Dict[str, bytes] = field(default_factory=dict)

    @property
    def last_used_addr(self) -> int:
        """The last physical address occupied by the loaded files."""
        return self.config_file.start + self.config_file.length - 1


def find_fat_partition(partitions: Sequence[PartitionTableEntry]) -> PartitionTableEntry:
    """Return the FAT partition that follows the second-stage partition."""
    index = next(
        (
            i
            for i, entry in enumerate(partitions)
            if entry.partition_type == BOOTLOADER_SECOND_STAGE_PARTITION_TYPE
        ),
        None,
    )
    if index is None:
        raise LoadError("no second stage partition found")
    if index + 1 >= len(partitions):
        raise LoadError("no partition follows the second stage partition")
    fat_partition = partitions[index + 1]
    if fat_partition.partition_type not in FAT_PARTITION_TYPES:
        raise LoadError(
            f"partition type {fat_partition.partition_type:#x} is not a FAT partition"
        )
    return fat_partition


def try_load_file(fs: FileSystem, disk: DiskAccess, file_name: str) -> Optional[LoadedFile]:
    """Read a file from the root directory; None if it does not exist."""
    file = fs.find_file_in_root_dir(file_name)
    if file is None:
        return None
    chunks: List[bytes] = []
    for cluster in fs.file_clusters(file):
        cluster_end = cluster.start_offset + cluster.len_bytes
        offset = cluster.start_offset
        while offset < cluster_end:
            length = min(DISK_BUFFER_SIZE, cluster_end - offset)
            disk.seek(offset)
            # reads stay in whole sectors, never past the cluster
            read_len = -(-length // SECTOR_SIZE) * SECTOR_SIZE
            chunks.append(disk.read_exact_into(read_len)[:length])
            offset += length
    data = b"".join(chunks)[: file.file_size]
    return LoadedFile(name=file_name, data=data, size=file.file_size)


def load_file(fs: FileSystem, disk: DiskAccess, file_name: str) -> LoadedFile:
    """Read a file that must exist."""
    loaded = try_load_file(fs, disk, file_name)
    if loaded is None:
        raise LoadError(f"file not found: {file_name}")
    return loaded


def plan_boot_layout(image: ByteImage, partition_table: bytes) -> BootLayout:
    """Load the later stages, kernel, ramdisk and config from the disk image."""
    partitions = parse_partition_table(partition_table)
    fat_partition = find_fat_partition(partitions)
    base_offset = fat_partition.logical_block_address * SECTOR_SIZE
    disk = DiskAccess(image, base_offset=base_offset)
    fs = FileSystem(DiskAccess(image, base_offset=base_offset))

    stage_3 = load_file(fs, disk, STAGE_3_FILE)
    stage_3_end = STAGE_3_DST + stage_3.size
    if not STAGE_4_DST > stage_3_end:
        raise LoadError("stage 3 overlaps the stage 4 load address")
    stage_4 = load_file(fs, disk, STAGE_4_FILE)

    kernel = load_file(fs, disk, KERNEL_FILE)
    if kernel.size == 0:
        raise LoadError("kernel file is empty")
    kernel_pages = (kernel.size - 1) // PAGE_SIZE + 1
    ramdisk_start = KERNEL_DST + kernel_pages * PAGE_SIZE

    ramdisk = try_load_file(fs, disk, RAMDISK_FILE)
    ramdisk_len = ramdisk.size if ramdisk is not None else 0
    config_start = ramdisk_start + ramdisk_len
    config = try_load_file(fs, disk, CONFIG_FILE)
    config_len = config.size if config is not None else 0

    contents = {
        f.name: f.data
        for f in (stage_3, stage_4, kernel, ramdisk, config)
        if f is not None
    }
    return BootLayout(
        stage_3=Region(STAGE_3_DST, stage_3.size),
        stage_4=Region(STAGE_4_DST, stage_4.size),
        kernel=Region(KERNEL_DST, kernel.size),
        ramdisk=Region(ramdisk_start, ramdisk_len),
        config_file=Region(config_start, config_len),
        contents=contents,
    )


def build_bios_info(
    layout: BootLayout,
    memory_map: Iterable[E820MemoryRegion],
    vesa_mode: VesaModeInfo,
) -> BiosInfo:
    """Assemble the information handed from the second stage to the later stages."""
    if vesa_mode.bytes_per_pixel == 0:
        raise LoadError("VESA mode reports zero bytes per pixel")
    framebuffer = BiosFramebufferInfo(
        region=Region(
            vesa_mode.framebuffer_start,
            vesa_mode.height * vesa_mode.bytes_per_scanline,
        ),
        width=vesa_mode.width,
        height=vesa_mode.height,
        bytes_per_pixel=vesa_mode.bytes_per_pixel,
        stride=vesa_mode.bytes_per_scanline // vesa_mode.bytes_per_pixel,
        pixel_format=vesa_mode.pixel_format,
    )
    return BiosInfo(
        stage_4=layout.stage_4,
        kernel=layout.kernel,
        ramdisk=layout.ramdisk,
        config_file=layout.config_file,
        last_used_addr=layout.last_used_addr,
        framebuffer=framebuffer,
        memory_map=list(memory_map),
    )


def max_physical_address(memory_map: Iterable[E820MemoryRegion]) -> int:
    """The highest end address of the memory map, capped at 4 GiB."""
    regions = sorted(memory_map, key=lambda r: r.start_addr)
    if not regions:
        raise LoadError("no physical memory regions found")
    highest = max(region.end() for region in regions)
    # addresses above 4 GiB are out of reach from protected mode
    return min(highest, 4 * GIGABYTE)


def framebuffer_info_from_bios(info: BiosFramebufferInfo) -> FrameBufferInfo:
    """Translate the VESA framebuffer description into the kernel-facing one."""
    fmt = info.pixel_format
    if fmt == BiosPixelFormat.RGB:
        pixel_format = PixelFormat.RGB
    elif fmt == BiosPixelFormat.BGR:
        pixel_format = PixelFormat.BGR
    else:
        pixel_format = PixelFormat.unknown(
            fmt.red_position, fmt.green_position, fmt.blue_position
        )
    return FrameBufferInfo(
        byte_len=info.region.length,
        width=info.width,
        height=info.height,
        pixel_format=pixel_format,
        bytes_per_pixel=info.bytes_per_pixel,
        stride=info.stride,
    )


def ramdisk_address(info: BiosInfo) -> Optional[int]:
    """The ramdisk's physical address, or None when no ramdisk was loaded."""
    if info.ramdisk.length == 0:
        return None
    return info.ramdisk.start