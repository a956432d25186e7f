import pytest

from python.hsxtree.layout import payload_offset, synthesize_node_type
from python.hsxtree.types import LayoutError, TypeSystem, align_up


def test_struct_layout_inserts_padding():
    ts = TypeSystem(pointer_width=8)
    record = ts.create_struct(
        "record",
        [("flag", ts.basic("bool")), ("count", ts.basic("int")), ("next", ts.pointer_to(ts.basic("void")))],
    )
    offsets = [entry.offset for entry in record.fields]
    assert offsets == [0, 4, 8]
    assert record.byte_size == 16
    assert record.alignment == 8
    assert ts.lookup("record") is record


def test_empty_struct_occupies_one_byte():
    ts = TypeSystem()
    empty = ts.create_struct("std::less<int>", [])
    assert empty.byte_size == 1


def test_explicit_offsets_are_kept():
    ts = TypeSystem()
    base = ts.create_struct("base", [("a", ts.basic("long")), ("b", ts.basic("bool"))])
    derived = ts.create_struct("derived", [("tail", ts.basic("int"), 12)], bases=[base])
    assert derived.field_named("tail").offset == 12
    assert derived.fields[0].is_base
    assert derived.byte_size == 16


def test_recursive_struct_through_pointer():
    ts = TypeSystem()
    node = ts.declare_struct("node")
    ts.complete_struct(node, [("next", ts.pointer_to(node)), ("value", ts.basic("int"))])
    assert ts.lookup("node *").pointee is node
    assert node.byte_size == 16


def test_incomplete_or_void_members_are_rejected():
    ts = TypeSystem()
    forward = ts.declare_struct("forward")
    with pytest.raises(LayoutError):
        ts.create_struct("holder", [("inner", forward)])
    with pytest.raises(LayoutError):
        ts.create_struct("bad", [("nothing", ts.basic("void"))])


def test_typedef_resolution_and_template_arguments():
    ts = TypeSystem()
    pair = ts.create_struct("pair", [("first", ts.basic("int"))], template_args=[ts.basic("int")])
    alias = ts.typedef("value_type", pair)
    assert alias.resolved() is pair
    assert alias.typedefed_type() is pair
    assert pair.typedefed_type() is pair
    assert alias.template_argument(0).name == "int"
    assert alias.template_argument(3) is None


def test_unsupported_targets_raise():
    with pytest.raises(LayoutError):
        TypeSystem(pointer_width=3)
    with pytest.raises(LayoutError):
        TypeSystem(byte_order="middle")


@pytest.mark.parametrize(
    "width,payload,expected",
    [
        (8, "int", 28),
        (8, "long", 32),
        (8, "char", 25),
        (4, "int", 16),
        (4, "double", 16),
    ],
)
def test_synthetic_node_payload_offset(width, payload, expected):
    ts = TypeSystem(pointer_width=width)
    assert payload_offset(ts, ts.basic(payload)) == expected


def test_synthetic_node_type_size_covers_payload():
    ts = TypeSystem(pointer_width=8)
    pair = ts.create_struct("pair", [("first", ts.basic("int")), ("second", ts.basic("int"))])
    node = synthesize_node_type(ts, pair)
    assert [entry.name for entry in node.fields] == ["ptr0", "ptr1", "ptr2", "cw", "payload"]
    assert node.byte_size == align_up(28 + 8, 8)
    assert ts.lookup("") is None


def test_payload_offset_of_incomplete_type_is_none():
    ts = TypeSystem()
    assert payload_offset(ts, ts.declare_struct("opaque")) is None
