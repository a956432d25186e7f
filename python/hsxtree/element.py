"""Children of a single ``std::map`` iterator."""

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass
from typing import Optional, Tuple

from .layout import PAYLOAD_INDEX, synthesize_node_type
from .types import LayoutError
from .values import INVALID_ADDRESS, ValueHandle


logger = logging.getLogger(__name__)


@dataclass
class IteratorViewConfig:
    iterator_member: str = "__i_"
    node_pointer_member: str = "__ptr_"
    value_member: str = "__value_"
    child_names: Tuple[str, str] = ("first", "second")


class SingleElementResolver:
    """Resolves the pair a map iterator points at.

    The symbolic path ``.__i_.__ptr_->__value_`` is tried first. Its result is
    a child of the iterator value and stays owned by it; only a weak reference
    is kept here. When ``__ptr_`` is typed as an end-node pointer the path has
    no ``__value_`` to reach, so the node is read raw and reinterpreted through
    the synthetic node layout instead.
    """

    def __init__(self, backend: Optional[ValueHandle], config: Optional[IteratorViewConfig] = None) -> None:
        self.backend = backend
        self.config = config or IteratorViewConfig()
        self._pair_ref: Optional[weakref.ReferenceType] = None
        self._pair: Optional[ValueHandle] = None
        if backend is not None:
            self.refresh()

    @property
    def pointer_path(self) -> str:
        return f".{self.config.iterator_member}.{self.config.node_pointer_member}"

    @property
    def value_path(self) -> str:
        return f"{self.pointer_path}->{self.config.value_member}"

    @property
    def pair(self) -> Optional[ValueHandle]:
        if self._pair_ref is not None:
            pair = self._pair_ref()
            if pair is not None:
                return pair
        return self._pair

    @property
    def used_fallback(self) -> bool:
        return self._pair is not None

    def refresh(self) -> None:
        """Resolve the pair again from a new accessor generation."""
        self._pair_ref = None
        self._pair = None
        if self.backend is None:
            return
        self.backend.accessor.invalidate()
        pair = self.backend.value_for_path(self.value_path)
        if pair is not None and not pair.is_error:
            self._pair_ref = weakref.ref(pair)
            return
        logger.debug("%s unavailable on %r; reading node memory directly", self.value_path, self.backend)
        self._pair = self._read_raw_pair(self.backend)

    def _read_raw_pair(self, backend: ValueHandle) -> Optional[ValueHandle]:
        pointer = backend.value_for_path(self.pointer_path)
        if pointer is None:
            return None
        iterator = backend.child_member(self.config.iterator_member)
        if iterator is None:
            return None
        node_value_type = iterator.type.template_argument(0)
        entry = node_value_type.field_at_index(0) if node_value_type is not None else None
        if entry is None:
            logger.debug("no pair type on %r", iterator.type)
            return None
        address = pointer.unsigned_value(INVALID_ADDRESS)
        if not address or address == INVALID_ADDRESS:
            return None
        accessor = backend.accessor
        try:
            node_type = synthesize_node_type(accessor.types, entry.type)
        except LayoutError as exc:
            logger.debug("cannot synthesize node layout: %s", exc)
            return None
        if not node_type.byte_size:
            return None
        data = accessor.read_raw(address, node_type.byte_size)
        if data is None:
            return None
        node = accessor.value_from_data("pair", data, node_type)
        return node.child_at_index(PAYLOAD_INDEX)

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------
    def num_children(self) -> int:
        return 2

    def might_have_children(self) -> bool:
        return True

    def child_at_index(self, index: int) -> Optional[ValueHandle]:
        pair = self.pair
        if pair is None:
            return None
        return pair.child_at_index(index)

    def index_of_child_with_name(self, name: str) -> Optional[int]:
        try:
            return self.config.child_names.index(name)
        except ValueError:
            return None
