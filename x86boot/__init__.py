"""Data structures and boot-time logic of an x86_64 BIOS bootloader."""

__version__ = "0.11.10"