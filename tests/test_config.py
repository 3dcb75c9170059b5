import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from x86boot.config import (
    ApiVersion,
    BootloaderConfig,
    ConfigError,
    FrameBuffer,
    Mapping,
    Mappings,
)

U64 = st.integers(min_value=0, max_value=2**64 - 1)
U16 = st.integers(min_value=0, max_value=2**16 - 1)

mappings_st = st.one_of(st.just(Mapping.dynamic()), U64.map(Mapping.fixed))
opt_u64 = st.one_of(st.none(), U64)
opt_mapping = st.one_of(st.none(), mappings_st)

config_st = st.builds(
    BootloaderConfig,
    version=st.builds(ApiVersion, U16, U16, U16, st.booleans()),
    mappings=st.builds(
        Mappings,
        kernel_stack=mappings_st,
        kernel_base=mappings_st,
        boot_info=mappings_st,
        framebuffer=mappings_st,
        physical_memory=opt_mapping,
        page_table_recursive=opt_mapping,
        aslr=st.booleans(),
        dynamic_range_start=opt_u64,
        dynamic_range_end=opt_u64,
        ramdisk_memory=mappings_st,
    ),
    kernel_stack_size=U64,
    frame_buffer=st.builds(FrameBuffer, opt_u64, opt_u64),
)


@settings(max_examples=500)
@given(mappings_st)
def test_mapping_serde(mapping):
    assert Mapping.deserialize(mapping.serialize()) == mapping


@settings(max_examples=500)
@given(config_st)
def test_config_serde(config):
    data = config.serialize()
    assert len(data) == BootloaderConfig.SERIALIZED_LEN
    assert BootloaderConfig.deserialize(data) == config


def test_default_values():
    config = BootloaderConfig.new_default()
    assert config.kernel_stack_size == 80 * 1024
    assert config.version == ApiVersion(0, 11, 10, False)
    assert config.mappings.kernel_stack.is_dynamic()
    assert config.mappings.physical_memory is None
    assert config.mappings.aslr is False


def test_default_serialization_bytes():
    data = BootloaderConfig.new_default().serialize()
    assert data[:16] == BootloaderConfig.UUID
    assert data[16:23] == bytes([0, 0, 11, 0, 10, 0, 0])
    assert data[23:31] == bytes([0x00, 0x40, 0x01, 0, 0, 0, 0, 0])
    assert data[31:] == bytes(133 - 31)


def test_mapping_serialize_values():
    assert Mapping.dynamic().serialize() == bytes(9)
    assert Mapping.fixed(0x1000).serialize() == bytes([1, 0x00, 0x10, 0, 0, 0, 0, 0, 0])


def test_mapping_invalid_value():
    with pytest.raises(ConfigError, match="invalid mapping value"):
        Mapping.deserialize(bytes([2] + [0] * 8))
    with pytest.raises(ConfigError, match="invalid mapping value"):
        Mapping.deserialize(bytes([0, 1] + [0] * 7))


def test_mapping_invalid_format():
    with pytest.raises(ConfigError, match="invalid mapping format"):
        Mapping.deserialize(bytes(8))


def test_invalid_len():
    with pytest.raises(ConfigError, match="invalid len"):
        BootloaderConfig.deserialize(bytes(132))


def test_invalid_uuid():
    data = bytearray(BootloaderConfig.new_default().serialize())
    data[0] ^= 0xFF
    with pytest.raises(ConfigError, match="invalid UUID"):
        BootloaderConfig.deserialize(bytes(data))


def test_invalid_pre_release():
    data = bytearray(BootloaderConfig.new_default().serialize())
    data[22] = 2
    with pytest.raises(ConfigError, match="invalid pre version"):
        BootloaderConfig.deserialize(bytes(data))


def test_invalid_aslr():
    data = bytearray(BootloaderConfig.new_default().serialize())
    data[87] = 3
    with pytest.raises(ConfigError, match="invalid aslr value"):
        BootloaderConfig.deserialize(bytes(data))


def test_invalid_physical_memory():
    data = bytearray(BootloaderConfig.new_default().serialize())
    data[68] = 1  # flag says None, payload non-zero
    with pytest.raises(ConfigError, match="invalid phys memory value"):
        BootloaderConfig.deserialize(bytes(data))


def test_invalid_minimum_width():
    data = bytearray(BootloaderConfig.new_default().serialize())
    data[124] = 5
    with pytest.raises(ConfigError, match="minimum_framebuffer_width invalid"):
        BootloaderConfig.deserialize(bytes(data))


def test_fixed_mapping_out_of_range():
    with pytest.raises(ConfigError):
        Mapping.fixed(2**64)


def test_stack_size_out_of_range():
    config = BootloaderConfig.new_default()
    config.kernel_stack_size = -1
    with pytest.raises(ConfigError):
        config.serialize()


def test_physical_memory_roundtrip_bytes():
    config = BootloaderConfig.new_default()
    config.mappings.physical_memory = Mapping.fixed(0x10_0000_0000)
    data = config.serialize()
    assert data[67] == 1
    assert data[68] == 1
    assert BootloaderConfig.deserialize(data).mappings.physical_memory == Mapping.fixed(
        0x10_0000_0000
    )