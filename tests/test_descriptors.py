import struct

import pytest

from x86boot.descriptors import (
    GlobalDescriptorTable,
    build_identity_mapping,
    long_mode_gdt,
    protected_mode_gdt,
)

ADDR_MASK = ~0xFFF


def test_protected_mode_descriptors():
    gdt = protected_mode_gdt()
    assert gdt.zero == 0
    assert gdt.code == 0x00CF9A000000FFFF
    assert gdt.data == 0x00CF92000000FFFF


def test_long_mode_descriptors():
    gdt = long_mode_gdt()
    assert gdt.zero == 0
    assert gdt.code == 0x00209B0000000000
    assert gdt.code ^ gdt.data == (1 << 43) | (1 << 53)


def test_to_bytes_round_trip():
    gdt = protected_mode_gdt()
    raw = gdt.to_bytes()
    assert len(raw) == 24
    assert raw[:8] == bytes(8)
    assert GlobalDescriptorTable(*struct.unpack("<QQQ", raw)) == gdt


def test_pointer_layout():
    gdt = long_mode_gdt()
    pointer = gdt.pointer(0x5000)
    assert len(pointer) == 6
    limit, base = struct.unpack("<HI", pointer)
    assert limit == len(gdt.to_bytes()) - 1
    assert base == 0x5000


def test_pointer_base_out_of_range():
    with pytest.raises(ValueError):
        protected_mode_gdt().pointer(1 << 32)


def test_identity_mapping_links_tables():
    l3 = 0x10000
    l2s = [0x11000 + i * 0x1000 for i in range(10)]
    mapping = build_identity_mapping(l3, l2s)
    assert mapping.level_4[0] & ADDR_MASK == l3
    assert mapping.level_4[0] & 0xFFF == 0b11
    assert all(e == 0 for e in mapping.level_4[1:])
    assert [e & ADDR_MASK for e in mapping.level_3[:10]] == l2s
    assert all(e == 0 for e in mapping.level_3[10:])
    assert len(mapping.level_2) == 10


def test_identity_mapping_is_identity():
    mapping = build_identity_mapping(0x10000, [0x11000, 0x12000])
    virtual = 0
    for table in mapping.level_2:
        assert len(table) == 512
        for entry in table:
            assert entry & (1 << 7)
            assert entry & 0b11 == 0b11
            assert entry & ~0xFFF == virtual
            virtual += 2 * 1024 * 1024
    assert virtual == 2 * 1024 * 1024 * 1024


def test_identity_mapping_rejects_unaligned():
    with pytest.raises(ValueError):
        build_identity_mapping(0x10001, [0x11000])
    with pytest.raises(ValueError):
        build_identity_mapping(0x10000, [0x11800])


def test_identity_mapping_rejects_too_many_tables():
    with pytest.raises(ValueError):
        build_identity_mapping(0x1000, [0x2000] * 513)