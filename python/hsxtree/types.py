"""Compiler-level type descriptors and C struct layout."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union


class LayoutError(RuntimeError):
    """Raised when a type cannot be declared or laid out."""


KIND_VOID = "void"
KIND_BOOL = "bool"
KIND_INT = "int"
KIND_FLOAT = "float"
KIND_POINTER = "pointer"
KIND_TYPEDEF = "typedef"
KIND_STRUCT = "struct"

SCALAR_KINDS = frozenset({KIND_BOOL, KIND_INT, KIND_POINTER})
BYTE_ORDERS = ("little", "big")

# Typedef chains longer than this are treated as cyclic declarations.
_MAX_TYPEDEF_DEPTH = 32

Member = Union[Tuple[str, "TypeInfo"], Tuple[str, "TypeInfo", int]]


def align_up(value: int, alignment: int) -> int:
    if alignment <= 1:
        return value
    return (value + alignment - 1) // alignment * alignment


@dataclass(eq=False)
class Field:
    name: str
    type: "TypeInfo"
    offset: int
    is_base: bool = False


@dataclass(eq=False, repr=False)
class TypeInfo:
    """One compiler-level type.

    Struct types keep their fields in declaration order with byte offsets;
    typedefs point at their target and report its size through ``resolved()``.
    """

    name: str
    kind: str
    byte_size: int = 0
    alignment: int = 1
    signed: bool = False
    pointee: Optional["TypeInfo"] = None
    target: Optional["TypeInfo"] = None
    fields: List[Field] = field(default_factory=list)
    template_args: List["TypeInfo"] = field(default_factory=list)
    complete: bool = True

    def __repr__(self) -> str:
        return f"TypeInfo({self.name!r}, {self.kind})"

    @property
    def is_pointer(self) -> bool:
        return self.resolved().kind == KIND_POINTER

    @property
    def is_struct(self) -> bool:
        return self.resolved().kind == KIND_STRUCT

    @property
    def is_scalar(self) -> bool:
        return self.resolved().kind in SCALAR_KINDS

    def resolved(self) -> "TypeInfo":
        current = self
        for _ in range(_MAX_TYPEDEF_DEPTH):
            if current.kind != KIND_TYPEDEF or current.target is None:
                return current
            current = current.target
        raise LayoutError(f"typedef chain too deep for {self.name!r}")

    def typedefed_type(self) -> "TypeInfo":
        """Strip one typedef level; non-typedefs are returned unchanged."""
        if self.kind == KIND_TYPEDEF and self.target is not None:
            return self.target
        return self

    def field_at_index(self, index: int) -> Optional[Field]:
        fields = self.resolved().fields
        if 0 <= index < len(fields):
            return fields[index]
        return None

    def field_named(self, name: str) -> Optional[Field]:
        for entry in self.resolved().fields:
            if entry.name == name:
                return entry
        return None

    def template_argument(self, index: int) -> Optional["TypeInfo"]:
        # template arguments live on the named type, not on a typedef alias
        args = self.template_args or self.resolved().template_args
        if 0 <= index < len(args):
            return args[index]
        return None


# (name, kind, size, signed); a size of None means "pointer width"
_BASIC_TYPES: Sequence[Tuple[str, str, Optional[int], bool]] = (
    ("void", KIND_VOID, 0, False),
    ("bool", KIND_BOOL, 1, False),
    ("char", KIND_INT, 1, True),
    ("signed char", KIND_INT, 1, True),
    ("unsigned char", KIND_INT, 1, False),
    ("short", KIND_INT, 2, True),
    ("unsigned short", KIND_INT, 2, False),
    ("int", KIND_INT, 4, True),
    ("unsigned int", KIND_INT, 4, False),
    ("long", KIND_INT, None, True),
    ("unsigned long", KIND_INT, None, False),
    ("long long", KIND_INT, 8, True),
    ("unsigned long long", KIND_INT, 8, False),
    ("int8_t", KIND_INT, 1, True),
    ("uint8_t", KIND_INT, 1, False),
    ("int16_t", KIND_INT, 2, True),
    ("uint16_t", KIND_INT, 2, False),
    ("int32_t", KIND_INT, 4, True),
    ("uint32_t", KIND_INT, 4, False),
    ("int64_t", KIND_INT, 8, True),
    ("uint64_t", KIND_INT, 8, False),
    ("size_t", KIND_INT, None, False),
    ("float", KIND_FLOAT, 4, True),
    ("double", KIND_FLOAT, 8, True),
)


class TypeSystem:
    """Registry of types for one target (pointer width and byte order)."""

    def __init__(self, pointer_width: int = 8, byte_order: str = "little") -> None:
        if pointer_width not in (2, 4, 8):
            raise LayoutError(f"unsupported pointer width {pointer_width}")
        if byte_order not in BYTE_ORDERS:
            raise LayoutError(f"unsupported byte order {byte_order!r}")
        self.pointer_width = pointer_width
        self.byte_order = byte_order
        self._types: Dict[str, TypeInfo] = {}
        self._pointers: Dict[int, TypeInfo] = {}
        for name, kind, size, signed in _BASIC_TYPES:
            width = pointer_width if size is None else size
            self._types[name] = TypeInfo(
                name=name,
                kind=kind,
                byte_size=width,
                alignment=max(1, width),
                signed=signed,
            )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def lookup(self, name: str) -> Optional[TypeInfo]:
        name = name.strip()
        found = self._types.get(name)
        if found is not None:
            return found
        if name.endswith("*"):
            pointee = self.lookup(name[:-1])
            return self.pointer_to(pointee) if pointee is not None else None
        return None

    def basic(self, name: str) -> TypeInfo:
        found = self._types.get(name)
        if found is None or found.kind in (KIND_STRUCT, KIND_TYPEDEF):
            raise KeyError(f"unknown basic type {name!r}")
        return found

    def register(self, type_info: TypeInfo) -> TypeInfo:
        if type_info.name:
            self._types[type_info.name] = type_info
        return type_info

    def names(self) -> List[str]:
        return sorted(self._types)

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------
    def pointer_to(self, pointee: TypeInfo) -> TypeInfo:
        cached = self._pointers.get(id(pointee))
        if cached is not None:
            return cached
        pointer = TypeInfo(
            name=f"{pointee.name} *",
            kind=KIND_POINTER,
            byte_size=self.pointer_width,
            alignment=self.pointer_width,
            pointee=pointee,
        )
        self._pointers[id(pointee)] = pointer
        if pointee.name:
            self._types.setdefault(pointer.name, pointer)
        return pointer

    def typedef(self, name: str, target: TypeInfo) -> TypeInfo:
        alias = TypeInfo(name=name, kind=KIND_TYPEDEF, target=target)
        return self.register(alias)

    def declare_struct(self, name: str, *, template_args: Sequence[TypeInfo] = ()) -> TypeInfo:
        """Register an incomplete struct so that pointers to it can be formed."""
        struct = TypeInfo(name=name, kind=KIND_STRUCT, template_args=list(template_args), complete=False)
        return self.register(struct)

    def complete_struct(
        self,
        struct: TypeInfo,
        members: Sequence[Member],
        *,
        bases: Sequence[TypeInfo] = (),
    ) -> TypeInfo:
        """Lay out ``struct`` with natural C alignment.

        Members given as ``(name, type, offset)`` keep the explicit offset, as
        debug info reports it; ``(name, type)`` members are placed at the next
        aligned offset. Base classes come first and are named after their type.
        """

        if struct.kind != KIND_STRUCT:
            raise LayoutError(f"{struct.name!r} is not a struct")
        layout: List[Field] = []
        offset = 0
        max_align = 1
        entries: List[Tuple[str, TypeInfo, Optional[int], bool]] = [(base.name, base, None, True) for base in bases]
        for member in members:
            if len(member) == 3:
                name, member_type, explicit = member  # type: ignore[misc]
            else:
                name, member_type = member  # type: ignore[misc]
                explicit = None
            entries.append((name, member_type, explicit, False))
        for name, member_type, explicit, is_base in entries:
            resolved = member_type.resolved()
            if resolved.kind == KIND_VOID:
                raise LayoutError(f"field {name!r} of {struct.name!r} has void type")
            if not resolved.complete:
                raise LayoutError(f"field {name!r} of {struct.name!r} has incomplete type {resolved.name!r}")
            align = max(1, resolved.alignment)
            position = align_up(offset, align) if explicit is None else int(explicit)
            if position < 0:
                raise LayoutError(f"field {name!r} of {struct.name!r} has negative offset")
            layout.append(Field(name=name, type=member_type, offset=position, is_base=is_base))
            offset = max(offset, position + resolved.byte_size)
            max_align = max(max_align, align)
        struct.fields = layout
        struct.alignment = max_align
        # empty structs still occupy one byte
        struct.byte_size = align_up(offset, max_align) if offset else 1
        struct.complete = True
        return struct

    def create_struct(
        self,
        name: str,
        members: Sequence[Member],
        *,
        bases: Sequence[TypeInfo] = (),
        template_args: Sequence[TypeInfo] = (),
    ) -> TypeInfo:
        """Declare and lay out a struct; anonymous structs are not registered."""
        struct = TypeInfo(name=name, kind=KIND_STRUCT, template_args=list(template_args), complete=False)
        self.complete_struct(struct, members, bases=bases)
        if name:
            self.register(struct)
        return struct
