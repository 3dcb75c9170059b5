# x86boot

Pure-Python models of the data structures and boot-time decisions of an
x86_64 bootloader that boots from BIOS. It lets you build and check kernel
configuration blobs, read the partition table and FAT boot partition of a
disk image, and work out where the boot files would be placed in memory,
all without running any firmware.

## Modules

- `x86boot.config`: the configuration a kernel embeds
  (`BootloaderConfig`, `Mappings`, `Mapping`, `FrameBuffer`, `ApiVersion`).
  `BootloaderConfig.serialize()` gives the fixed 133-byte encoding and
  `BootloaderConfig.deserialize()` reads it back. Bad input, such as a wrong
  length, a wrong UUID or an invalid flag byte, raises `ConfigError`.
  `Mapping.dynamic()` and `Mapping.fixed(address)` build mappings, and each
  has its own 9-byte `serialize()` and `deserialize()`.
- `x86boot.info`: the boot information handed to a kernel: `BootInfo`,
  `MemoryRegion` (with `MemoryRegion.empty()`), `MemoryRegionKind`
  (`usable()`, `bootloader()`, `unknown_uefi(code)`, `unknown_bios(code)`),
  `PixelFormat` (`PixelFormat.RGB`, `BGR`, `U8`, `unknown(...)`),
  `FrameBufferInfo`, `FrameBuffer` and `TlsTemplate`.
- `x86boot.bios_common`: data passed between the BIOS stages (`BiosInfo`,
  `Region`, `BiosFramebufferInfo`, `BiosPixelFormat`, `E820MemoryRegion`).
  `parse_e820_entry` decodes the bytes of one E820 call and skips empty or
  zero-length entries. `collect_memory_map` decodes a sequence of them into
  at most 100 regions. `E820MemoryRegion.kind()` maps type 1 to usable
  memory and every other type to `MemoryRegionKind.unknown_bios`.
- `x86boot.mbr`: `get_partition` and `parse_partition_table` read MBR
  entries into `PartitionTableEntry`. A truncated table raises
  `BootFailure`, whose `code` is a one-character failure code.
- `x86boot.disk`: `DiskAddressPacket` with its 16-byte `to_bytes()` and
  `from_bytes()`. `transfer_packets` splits a load into packets of at most
  32 sectors. `second_stage_packets` gives the packets that load the first
  partition. `DiskAccess` reads whole sectors from an in-memory image,
  relative to a partition's base offset.
- `x86boot.fat`: `FileSystem` reads a FAT12 or FAT16 volume through a
  `DiskAccess`. `find_file_in_root_dir(name)` looks up a regular file by
  its long name, or by its short name written without a dot. It returns
  `None` when the file is missing or is a directory. `file_clusters(file)`
  yields the file's `Cluster`s. The module also exposes
  `BiosParameterBlock`, `parse_directory_entry`, `classify_fat_entry` and
  `fat_entry_of_nth_cluster`. Errors raise `FatError`, and for a broken
  cluster chain its `reason` is a `FatLookupError`.
- `x86boot.vesa`: `VbeInfoBlock.parse`, `mode_numbers` for a
  0xFFFF-terminated mode list, and `VesaModeInfo.parse`.
  `select_best_mode` picks the widest, then tallest, linear-framebuffer
  graphics mode within the given bounds.
- `x86boot.descriptors`: `protected_mode_gdt()` and `long_mode_gdt()`
  return a `GlobalDescriptorTable` with `to_bytes()` and `pointer(base)`.
  `build_identity_mapping` fills the page-table entries that identity-map
  the low gigabytes with 2 MiB pages.
- `x86boot.loader`: `find_fat_partition` finds the FAT partition that
  follows the partition of type 0x20. `try_load_file` and `load_file` read
  a file from the partition. `plan_boot_layout` loads `boot-stage-3`,
  `boot-stage-4`, `kernel-x86_64`, and `ramdisk` and `boot.json` when they
  are present, and returns a `BootLayout` of their memory regions and
  contents. `build_bios_info`, `max_physical_address`,
  `framebuffer_info_from_bios` and `ramdisk_address` cover the remaining
  hand-over steps. Failures raise `LoadError`.

## Installing

    pip install x86boot

## Examples

Encoding a kernel configuration:

    from x86boot.config import BootloaderConfig, Mapping

    config = BootloaderConfig.new_default()
    config.kernel_stack_size = 90 * 1024
    config.mappings.physical_memory = Mapping.dynamic()

    blob = config.serialize()
    assert len(blob) == 133
    assert BootloaderConfig.deserialize(blob) == config

Laying out the boot files of a disk image:

    from x86boot.loader import plan_boot_layout

    with open("boot.img", "rb") as f:
        image = f.read()
    partition_table = image[446:446 + 64]
    layout = plan_boot_layout(image, partition_table)
    print(hex(layout.kernel.start), layout.kernel.length)
    kernel_bytes = layout.contents["kernel-x86_64"]

## What it does not do

- It has no command-line program. Everything is used as a library.
- It does not create disk images, partition tables or FAT volumes. It only
  reads them.
- It makes no firmware calls. E820 entries, VESA blocks and mode lists
  have to be supplied as bytes.
- It does not parse the kernel's ELF file, read `boot.json` as settings,
  map the kernel or jump to it. `plan_boot_layout` returns the raw bytes
  of these files.
- It cannot read FAT32 root directories, and it rejects long file names
  that span more than one directory entry.

## Running the tests

    pip install "x86boot[test]"
    pytest