"""Node handles over remote ``__tree_node`` pointers."""

from __future__ import annotations

from typing import Optional

from .values import ValueHandle


class NodeHandle:
    """Non-owning reference to one tree node.

    Wraps a pointer-typed ``ValueHandle``. ``left``, ``right`` and ``parent``
    are the pointer-sized words at offsets 0, 1 and 2 words into the node, read
    with the node pointer's own type. An empty handle reads as null and error.
    """

    __slots__ = ("_value",)

    def __init__(self, value: Optional[ValueHandle] = None) -> None:
        self._value = value

    @property
    def value(self) -> Optional[ValueHandle]:
        return self._value

    def _word(self, index: int) -> "NodeHandle":
        value = self._value
        if value is None:
            return NodeHandle()
        accessor = value.accessor
        return NodeHandle(accessor.read_field_by_offset(value, index * accessor.pointer_width, value.type))

    def left(self) -> "NodeHandle":
        return self._word(0)

    def right(self) -> "NodeHandle":
        return self._word(1)

    def parent(self) -> "NodeHandle":
        return self._word(2)

    def identity_value(self) -> int:
        if self._value is None:
            return 0
        return self._value.unsigned_value(0)

    def is_error(self) -> bool:
        if self._value is None:
            return True
        return self._value.is_error

    def is_null(self) -> bool:
        return self.identity_value() == 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NodeHandle):
            return NotImplemented
        return self._value is other._value

    def __hash__(self) -> int:
        return id(self._value)

    def __repr__(self) -> str:
        if self._value is None:
            return "NodeHandle(empty)"
        return f"NodeHandle(0x{self.identity_value():X})"
