import pytest

from python.hsxtree.memory import SegmentImage
from python.hsxtree.types import TypeSystem
from python.hsxtree.values import INVALID_ADDRESS, AccessorConfig, MemoryImageAccessor


def _point_image(byte_order="little"):
    ts = TypeSystem(pointer_width=8, byte_order=byte_order)
    point = ts.create_struct("point", [("x", ts.basic("int")), ("y", ts.basic("short")), ("ok", ts.basic("bool"))])
    holder = ts.create_struct("holder", [("tag", ts.basic("unsigned int")), ("where", ts.pointer_to(point))])
    image = SegmentImage()
    image.map(0x1000, 0x40)
    image.write(0x1000, (-5).to_bytes(4, byte_order, signed=True))
    image.write(0x1004, (300).to_bytes(2, byte_order, signed=True))
    image.write(0x1006, b"\x01")
    image.map(0x2000, 0x20)
    image.write(0x2000, (7).to_bytes(4, byte_order))
    image.write(0x2008, (0x1000).to_bytes(8, byte_order))
    accessor = MemoryImageAccessor(image, ts, AccessorConfig(cache_memory=False))
    return ts, image, accessor, point, holder


def test_struct_members_and_python_view():
    _, _, accessor, point, _ = _point_image()
    value = accessor.value_at(0x1000, point, "p")
    assert value.child_member("x").as_python() == -5
    assert value.as_python() == {"x": -5, "y": 300, "ok": True}
    assert [child.name for child in value.children()] == ["x", "y", "ok"]


def test_big_endian_decoding():
    _, _, accessor, point, holder = _point_image("big")
    value = accessor.value_at(0x2000, holder, "h")
    assert value.child_member("tag").unsigned_value() == 7
    assert value.value_for_path(".where->x").as_python() == -5


def test_member_lookup_looks_through_pointers():
    _, _, accessor, _, holder = _point_image()
    value = accessor.value_at(0x2000, holder, "h")
    where = value.child_member("where")
    assert where.pointer_value() == 0x1000
    assert where.child_member("y").as_python() == 300
    assert where.num_children() == 3
    assert value.value_for_path("where.ok").as_python() is True
    assert value.value_for_path(".where->missing") is None


def test_children_are_cached_per_generation():
    _, _, accessor, point, _ = _point_image()
    value = accessor.value_at(0x1000, point, "p")
    first = value.child_member("x")
    assert value.child_member("x") is first
    assert value.child_at_offset(0, point.field_named("x").type) is value.child_at_offset(0, point.field_named("x").type)

    accessor.invalidate()
    assert value.child_member("x") is not first


def test_invalidate_rereads_memory():
    _, image, _, point, _ = _point_image()
    ts = TypeSystem()
    accessor = MemoryImageAccessor(image, ts)
    value = accessor.value_at(0x1000, point, "p")
    assert value.child_member("x").as_python() == -5

    image.write(0x1000, (11).to_bytes(4, "little", signed=True))
    assert value.child_member("x").as_python() == -5
    accessor.invalidate()
    assert value.child_member("x").as_python() == 11


def test_unreadable_memory_becomes_error_handle():
    ts, _, accessor, point, _ = _point_image()
    value = accessor.value_at(0x9000, point, "ghost")
    assert value.is_error
    assert value.as_python() is None
    assert value.child_member("x").is_error
    assert accessor.unsigned_value(value.child_member("x"), 42) == 42
    assert accessor.read_raw(0x9000, 4) is None


def test_null_pointer_dereference_is_an_error():
    ts, image, accessor, point, holder = _point_image()
    image.write(0x2008, bytes(8))
    value = accessor.value_at(0x2000, holder, "h")
    target = value.child_member("where").dereference()
    assert target is not None and target.is_error
    assert "null" in target.error


def test_offset_children_of_pointers_are_relative_to_pointee():
    ts, _, accessor, point, holder = _point_image()
    where = accessor.value_at(0x2000, holder, "h").child_member("where")
    y = accessor.read_field_by_offset(where, 4, ts.basic("short"))
    assert y.address == 0x1004
    assert y.as_python() == 300


def test_data_backed_values_slice_their_buffer():
    ts, _, accessor, point, _ = _point_image()
    data = (9).to_bytes(4, "little") + (2).to_bytes(2, "little") + b"\x00\x00"
    value = accessor.value_from_data("tmp", data, point)
    assert value.address is None
    assert value.as_python() == {"x": 9, "y": 2, "ok": False}
    assert value.child_at_offset(6, ts.basic("long")).is_error
    clone = value.clone("copy")
    assert clone.name == "copy" and clone.as_python() == value.as_python()


def test_accessor_refuses_oversized_and_invalid_reads():
    ts, _, accessor, point, _ = _point_image()
    assert accessor.read_raw(0x1000, accessor.config.max_read_size + 1) is None
    assert accessor.read_raw(INVALID_ADDRESS, 1) is None
    assert accessor.read_raw(0x1000, 0) == b""
    assert accessor.pointer_width == 8
    assert accessor.byte_order == "little"


@pytest.mark.parametrize("path", ["", ".x", "->x"])
def test_value_for_path_simple_forms(path):
    _, _, accessor, point, _ = _point_image()
    value = accessor.value_at(0x1000, point, "p")
    resolved = value.value_for_path(path)
    if path:
        assert resolved.as_python() == -5
    else:
        assert resolved is value
