"""Type and variable tables loaded from a JSON symbol file.

Expected shape::

    {
      "target": {"pointer_width": 8, "byte_order": "little"},
      "types": [
        {"name": "pair", "kind": "struct", "template_args": ["int", "int"],
         "bases": [], "fields": [{"name": "first", "type": "int", "offset": 0}]},
        {"name": "value_type", "kind": "typedef", "type": "pair"}
      ],
      "variables": [{"name": "m", "address": "0x1000", "type": "std::map<int, int>"}]
    }

Field offsets are optional; without one the field is placed at the next
naturally aligned offset. ``T *`` spellings name pointer types.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .types import KIND_STRUCT, KIND_TYPEDEF, LayoutError, TypeInfo, TypeSystem
from .values import MemoryImageAccessor, ValueHandle


def _parse_address(value: Any) -> Optional[int]:
    try:
        return int(value, 0) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        return None


class TypeCatalog:
    """Types and global variable locations for one target image."""

    def __init__(self, path: Path, types: Optional[TypeSystem] = None) -> None:
        self.path = Path(path)
        self.types = types
        self._variables: Dict[str, Tuple[int, str]] = {}
        self._load()

    def _load(self) -> None:
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if self.types is None:
            target = data.get("target") or {}
            self.types = TypeSystem(
                pointer_width=int(target.get("pointer_width", 8)),
                byte_order=str(target.get("byte_order", "little")),
            )
        entries = [entry for entry in data.get("types") or [] if isinstance(entry, dict) and entry.get("name")]
        self._declare_structs(entries)
        self._load_typedefs([entry for entry in entries if entry.get("kind") == KIND_TYPEDEF])
        self._complete_structs([entry for entry in entries if entry.get("kind", KIND_STRUCT) == KIND_STRUCT])
        self._load_variables(data.get("variables") or [])

    def _declare_structs(self, entries: Sequence[dict]) -> None:
        assert self.types is not None  # mypy guard
        for entry in entries:
            if entry.get("kind", KIND_STRUCT) != KIND_STRUCT:
                continue
            if self.types.lookup(entry["name"]) is None:
                self.types.declare_struct(entry["name"])

    def _load_typedefs(self, entries: Sequence[dict]) -> None:
        assert self.types is not None  # mypy guard
        pending = list(entries)
        # typedefs may name each other in any order
        while pending:
            remaining = []
            for entry in pending:
                target = self.types.lookup(str(entry.get("type") or ""))
                if target is None:
                    remaining.append(entry)
                    continue
                self.types.typedef(entry["name"], target)
            if len(remaining) == len(pending):
                names = ", ".join(entry["name"] for entry in remaining)
                raise KeyError(f"unresolved typedef targets: {names}")
            pending = remaining

    def _resolve(self, name: Any, owner: str) -> TypeInfo:
        assert self.types is not None  # mypy guard
        found = self.types.lookup(str(name or ""))
        if found is None:
            raise KeyError(f"unknown type {name!r} referenced by {owner!r}")
        return found

    def _complete_structs(self, entries: Sequence[dict]) -> None:
        assert self.types is not None  # mypy guard
        pending = list(entries)
        # structs embedding other structs by value must be laid out after them
        while pending:
            remaining = []
            for entry in pending:
                owner = entry["name"]
                struct = self._resolve(owner, owner)
                bases = [self._resolve(base, owner) for base in entry.get("bases") or []]
                members: List[Any] = []
                for field_entry in entry.get("fields") or []:
                    member_type = self._resolve(field_entry.get("type"), owner)
                    if "offset" in field_entry:
                        members.append((field_entry["name"], member_type, int(field_entry["offset"])))
                    else:
                        members.append((field_entry["name"], member_type))
                by_value = bases + [member[1] for member in members]
                if any(not item.resolved().complete for item in by_value):
                    remaining.append(entry)
                    continue
                struct.template_args = [self._resolve(arg, owner) for arg in entry.get("template_args") or []]
                self.types.complete_struct(struct, members, bases=bases)
            if len(remaining) == len(pending):
                names = ", ".join(entry["name"] for entry in remaining)
                raise LayoutError(f"cannot lay out recursive or incomplete structs: {names}")
            pending = remaining

    def _load_variables(self, entries: Sequence[dict]) -> None:
        for entry in entries:
            name = entry.get("name")
            addr = _parse_address(entry.get("address"))
            type_name = entry.get("type")
            if not isinstance(name, str) or addr is None or not isinstance(type_name, str):
                continue
            self._variables[name] = (addr, type_name)

    def lookup_type(self, name: str) -> TypeInfo:
        return self._resolve(name, "lookup")

    def type_names(self) -> List[str]:
        assert self.types is not None  # mypy guard
        return self.types.names()

    def variable_names(self) -> List[str]:
        return sorted(self._variables)

    def variable(self, accessor: MemoryImageAccessor, name: str) -> Optional[ValueHandle]:
        entry = self._variables.get(name)
        if entry is None:
            return None
        addr, type_name = entry
        return accessor.value_at(addr, self.lookup_type(type_name), name)
