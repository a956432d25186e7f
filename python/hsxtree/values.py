"""Typed views of remote memory.

``MemoryImageAccessor`` is the only place that talks to a memory source. It
turns ``MemoryReadError`` into an error string on the ``ValueHandle`` that asked
for the bytes, so nothing above this module sees read exceptions.

Handles read lazily and remember both their bytes and the children derived
from them. Asking the same handle for the same child twice returns the same
object until ``MemoryImageAccessor.invalidate()`` starts a new generation.
"""

from __future__ import annotations

import logging
import re
import struct
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from .memory import CachedMemory, MemoryReadError
from .types import (
    KIND_BOOL,
    KIND_FLOAT,
    KIND_INT,
    KIND_POINTER,
    KIND_STRUCT,
    KIND_VOID,
    SCALAR_KINDS,
    Field,
    TypeInfo,
    TypeSystem,
)


logger = logging.getLogger(__name__)

INVALID_ADDRESS = (1 << 64) - 1

_PATH_TOKEN = re.compile(r"(\.|->)?([A-Za-z_][A-Za-z0-9_]*)")


@dataclass
class AccessorConfig:
    cache_memory: bool = True
    max_read_size: int = 1 << 20


class ValueHandle:
    """A typed value located in remote memory or backed by a byte buffer."""

    def __init__(
        self,
        accessor: "MemoryImageAccessor",
        type_info: TypeInfo,
        *,
        name: str = "",
        address: Optional[int] = None,
        data: Optional[bytes] = None,
        error: Optional[str] = None,
    ) -> None:
        self.accessor = accessor
        self.type = type_info
        self.name = name
        self.address = address
        self._constant = data is not None
        self._data: Optional[bytes] = bytes(data) if data is not None else None
        self._error = error
        self._generation = accessor.generation
        self._children: Dict[Hashable, "ValueHandle"] = {}

    def __repr__(self) -> str:
        where = f"0x{self.address:X}" if self.address is not None else "data"
        return f"ValueHandle({self.name!r}, {self.type.name!r}, {where})"

    # ------------------------------------------------------------------
    # Raw state
    # ------------------------------------------------------------------
    def _sync(self) -> None:
        if self._generation == self.accessor.generation:
            return
        self._generation = self.accessor.generation
        self._children.clear()
        if not self._constant and self.address is not None:
            self._data = None
            self._error = None

    def _load(self) -> Optional[bytes]:
        self._sync()
        if self._error is not None:
            return None
        if self._data is None:
            if self.address is None:
                self._error = "value has no location"
                return None
            size = self.type.resolved().byte_size
            try:
                self._data = self.accessor.read(self.address, size)
            except MemoryReadError as exc:
                logger.debug("read of %s failed: %s", self, exc)
                self._error = str(exc)
                return None
        return self._data

    @property
    def error(self) -> Optional[str]:
        self._load()
        return self._error

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def data(self) -> Optional[bytes]:
        return self._load()

    def unsigned_value(self, default: int = 0) -> int:
        if self.type.resolved().kind not in SCALAR_KINDS:
            return default
        data = self._load()
        if data is None:
            return default
        return self.accessor.decode_unsigned(data)

    def pointer_value(self) -> Optional[int]:
        if not self.type.is_pointer or self.is_error:
            return None
        return self.unsigned_value(0)

    # ------------------------------------------------------------------
    # Children
    # ------------------------------------------------------------------
    def _cached(self, key: Hashable, factory: Callable[[], Optional["ValueHandle"]]) -> Optional["ValueHandle"]:
        self._sync()
        child = self._children.get(key)
        if child is None:
            child = factory()
            if child is not None:
                self._children[key] = child
        return child

    def _failed_child(self, type_info: TypeInfo, name: str, reason: str) -> "ValueHandle":
        return ValueHandle(self.accessor, type_info, name=name, error=reason)

    def _make_child(self, offset: int, type_info: TypeInfo, name: str) -> "ValueHandle":
        if self.type.is_pointer:
            # offsets are relative to the pointee, as for a synthetic child of a pointer
            data = self._load()
            if data is None:
                return self._failed_child(type_info, name, self._error or "unreadable pointer")
            target = self.accessor.decode_unsigned(data)
            if target == 0:
                return self._failed_child(type_info, name, "null pointer dereference")
            return ValueHandle(self.accessor, type_info, name=name, address=target + offset)
        if self._constant or self.address is None:
            data = self._load()
            if data is None:
                return self._failed_child(type_info, name, self._error or "unreadable value")
            size = type_info.resolved().byte_size
            chunk = data[offset : offset + size]
            if offset < 0 or len(chunk) < size:
                return self._failed_child(type_info, name, f"offset {offset} outside {self.type.name!r}")
            return ValueHandle(self.accessor, type_info, name=name, data=chunk)
        return ValueHandle(self.accessor, type_info, name=name, address=self.address + offset)

    def child_at_offset(self, offset: int, type_info: TypeInfo, name: Optional[str] = None) -> "ValueHandle":
        label = name or f"@{offset}"
        child = self._cached(("offset", offset, id(type_info)), lambda: self._make_child(offset, type_info, label))
        assert child is not None  # mypy guard
        return child

    def dereference(self) -> Optional["ValueHandle"]:
        resolved = self.type.resolved()
        if resolved.kind != KIND_POINTER or resolved.pointee is None:
            return None
        pointee = resolved.pointee
        if pointee.resolved().kind == KIND_VOID:
            return None
        return self._cached(("deref",), lambda: self._make_child(0, pointee, f"*{self.name}"))

    @staticmethod
    def _find_field(type_info: TypeInfo, name: str) -> Optional[Tuple[Field, int]]:
        resolved = type_info.resolved()
        direct = resolved.field_named(name)
        if direct is not None:
            return direct, direct.offset
        for entry in resolved.fields:
            if not entry.is_base:
                continue
            found = ValueHandle._find_field(entry.type, name)
            if found is not None:
                return found[0], entry.offset + found[1]
        return None

    def child_member(self, name: str) -> Optional["ValueHandle"]:
        """Member lookup by name; pointers are looked through and base classes searched."""
        resolved = self.type.resolved()
        if resolved.kind == KIND_POINTER:
            target = self.dereference()
            return target.child_member(name) if target is not None else None
        if resolved.kind != KIND_STRUCT:
            return None
        found = self._find_field(self.type, name)
        if found is None:
            return None
        entry, offset = found
        return self._cached(("member", name), lambda: self._make_child(offset, entry.type, name))

    def num_children(self) -> int:
        resolved = self.type.resolved()
        if resolved.kind == KIND_POINTER:
            target = self.dereference()
            return target.num_children() if target is not None else 0
        if resolved.kind == KIND_STRUCT:
            return len(resolved.fields)
        return 0

    def child_at_index(self, index: int) -> Optional["ValueHandle"]:
        resolved = self.type.resolved()
        if resolved.kind == KIND_POINTER:
            target = self.dereference()
            return target.child_at_index(index) if target is not None else None
        entry = resolved.field_at_index(index) if resolved.kind == KIND_STRUCT else None
        if entry is None:
            return None
        return self._cached(("member", entry.name), lambda: self._make_child(entry.offset, entry.type, entry.name))

    def children(self) -> List["ValueHandle"]:
        result: List[ValueHandle] = []
        for index in range(self.num_children()):
            child = self.child_at_index(index)
            if child is not None:
                result.append(child)
        return result

    def value_for_path(self, path: str) -> Optional["ValueHandle"]:
        """Follow a member path such as ``.__i_.__ptr_->__value_``.

        ``.`` and ``->`` are interchangeable since member lookup already looks
        through pointers.
        """

        current: Optional[ValueHandle] = self
        position = 0
        path = path.strip()
        while position < len(path):
            match = _PATH_TOKEN.match(path, position)
            if match is None:
                logger.debug("bad expression path %r at %d", path, position)
                return None
            position = match.end()
            if current is None:
                return None
            current = current.child_member(match.group(2))
        return current

    def clone(self, name: str) -> "ValueHandle":
        if self._constant:
            return ValueHandle(self.accessor, self.type, name=name, data=self._data)
        if self.address is None:
            return ValueHandle(self.accessor, self.type, name=name, error=self.error or "value has no location")
        return ValueHandle(self.accessor, self.type, name=name, address=self.address)

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------
    def as_python(self) -> Any:
        """Decode into plain Python values; structs become dicts, failures None."""
        resolved = self.type.resolved()
        if resolved.kind == KIND_STRUCT:
            if self.is_error:
                return None
            result: Dict[str, Any] = {}
            for child in self.children():
                value = child.as_python()
                if isinstance(value, dict) and child.type.resolved().kind == KIND_STRUCT and self._is_base(child.name):
                    result.update(value)
                else:
                    result[child.name] = value
            return result
        data = self._load()
        if data is None:
            return None
        if resolved.kind == KIND_BOOL:
            return any(data)
        if resolved.kind == KIND_POINTER:
            return self.accessor.decode_unsigned(data)
        if resolved.kind == KIND_INT:
            return int.from_bytes(data, self.accessor.byte_order, signed=resolved.signed)
        if resolved.kind == KIND_FLOAT:
            prefix = "<" if self.accessor.byte_order == "little" else ">"
            code = "f" if resolved.byte_size == 4 else "d"
            return struct.unpack(prefix + code, data)[0]
        return None

    def _is_base(self, name: str) -> bool:
        entry = self.type.field_named(name)
        return bool(entry and entry.is_base)


class MemoryImageAccessor:
    """Typed reads of a remote memory image."""

    def __init__(self, memory: Any, types: TypeSystem, config: Optional[AccessorConfig] = None) -> None:
        self.config = config or AccessorConfig()
        self.types = types
        self.source = memory
        self.memory = CachedMemory(memory) if self.config.cache_memory else memory
        self.generation = 0

    @property
    def pointer_width(self) -> int:
        return self.types.pointer_width

    @property
    def byte_order(self) -> str:
        return self.types.byte_order

    def decode_unsigned(self, data: bytes) -> int:
        return int.from_bytes(data, self.byte_order, signed=False)

    def invalidate(self) -> None:
        """Forget cached bytes; every handle re-reads on next use."""
        self.generation += 1
        if isinstance(self.memory, CachedMemory):
            self.memory.invalidate()

    # ------------------------------------------------------------------
    # Raw reads
    # ------------------------------------------------------------------
    def read(self, address: int, length: int) -> bytes:
        if address < 0 or address >= INVALID_ADDRESS:
            raise MemoryReadError(f"invalid address {address:#x}")
        if length < 0 or length > self.config.max_read_size:
            raise MemoryReadError(f"refusing read of {length} bytes at 0x{address:X}")
        if length == 0:
            return b""
        return self.memory.read(address, length)

    def read_raw(self, address: int, length: int) -> Optional[bytes]:
        try:
            return self.read(address, length)
        except MemoryReadError as exc:
            logger.debug("raw read failed: %s", exc)
            return None

    # ------------------------------------------------------------------
    # Handles
    # ------------------------------------------------------------------
    def value_at(self, address: int, type_info: TypeInfo, name: str = "") -> ValueHandle:
        return ValueHandle(self, type_info, name=name, address=address)

    def value_from_data(self, name: str, data: bytes, type_info: TypeInfo) -> ValueHandle:
        return ValueHandle(self, type_info, name=name, data=data)

    def read_field_by_name(self, handle: Optional[ValueHandle], name: str) -> Optional[ValueHandle]:
        if handle is None:
            return None
        return handle.child_member(name)

    def read_field_by_offset(self, handle: Optional[ValueHandle], offset: int, type_info: TypeInfo) -> Optional[ValueHandle]:
        if handle is None:
            return None
        return handle.child_at_offset(offset, type_info)

    def unsigned_value(self, handle: Optional[ValueHandle], default: int = 0) -> int:
        if handle is None:
            return default
        return handle.unsigned_value(default)

    def is_error(self, handle: Optional[ValueHandle]) -> bool:
        return handle is None or handle.is_error
