"""Index-addressable view of a remote ``std::map`` / ``std::set``.

``SortedContainerView.element_at(i)`` walks the tree in order from
``__begin_node_`` and returns the payload of the i-th node. Each successful
lookup stores a snapshot of the iterator, so reading indices 0, 1, 2, ... in
order costs one successor step per element.

The element layout is only discoverable from a real node, so index 0 is the
one that bootstraps it; later indices resolve index 0 first when needed.

Any failed traversal disables the view until ``refresh()``: the tree is
treated as garbage for the current stop and later lookups fail fast.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .iterator import BoundedInorderIterator
from .layout import element_type_for_tree, first_value_of_compressed_pair, payload_offset
from .node import NodeHandle
from .types import TypeInfo
from .values import ValueHandle


logger = logging.getLogger(__name__)

_INDEX_NAME = re.compile(r"^\[(\d+)\]$")


@dataclass
class MapViewConfig:
    tree_member: str = "__tree_"
    begin_node_member: str = "__begin_node_"
    size_member: str = "__pair3_"
    value_wrappers: Tuple[str, ...] = ("__cc_", "__cc")
    wrapper_companion: str = "__nc"
    child_name_format: str = "[{index}]"


@dataclass
class ElementLayout:
    """Where the key/value payload sits inside a node."""

    skip_offset: int
    element_type: TypeInfo


class SortedContainerView:
    def __init__(self, backend: Optional[ValueHandle], config: Optional[MapViewConfig] = None) -> None:
        self.backend = backend
        self.config = config or MapViewConfig()
        self._tree: Optional[ValueHandle] = None
        self._begin: Optional[ValueHandle] = None
        self._count: Optional[int] = None
        self._element_type: Optional[TypeInfo] = None
        self._layout: Optional[ElementLayout] = None
        self._iterators: Dict[int, BoundedInorderIterator] = {}
        if backend is not None:
            self.refresh()

    @property
    def usable(self) -> bool:
        return self._tree is not None and self._begin is not None

    @property
    def layout(self) -> Optional[ElementLayout]:
        return self._layout

    def cached_indices(self) -> List[int]:
        return sorted(self._iterators)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def refresh(self) -> None:
        """Re-read the tree from target memory and drop every memo.

        Starts a new accessor generation, so handles and cached blocks read
        before this call are fetched again.
        """
        self._count = None
        self._element_type = None
        self._layout = None
        self._iterators.clear()
        self._tree = None
        self._begin = None
        if self.backend is None:
            return
        self.backend.accessor.invalidate()
        self._tree = self.backend.child_member(self.config.tree_member)
        if self._tree is None:
            logger.debug("%r has no %s member", self.backend, self.config.tree_member)
            return
        self._begin = self._tree.child_member(self.config.begin_node_member)

    def count(self) -> int:
        if self._count is not None:
            return self._count
        if self._tree is None:
            return 0
        size_node = first_value_of_compressed_pair(self._tree.child_member(self.config.size_member))
        if size_node is None or size_node.is_error:
            return 0
        self._count = size_node.unsigned_value(0)
        return self._count

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------
    def layout_ready(self) -> bool:
        return self._layout is not None

    def _resolve_element_type(self) -> Optional[TypeInfo]:
        if self._element_type is not None:
            return self._element_type
        if self.backend is None:
            return None
        self._element_type = element_type_for_tree(
            self.backend,
            self._begin,
            size_path=(self.config.tree_member, self.config.size_member),
        )
        return self._element_type

    def resolve_layout(self, node: Optional[ValueHandle]) -> bool:
        """Compute the payload offset from a representative node (pointer or struct)."""
        if self._layout is not None:
            return True
        if node is None:
            return False
        if node.type.is_pointer:
            node = node.dereference()
            if node is None:
                return False
        if node.is_error:
            return False
        element_type = self._resolve_element_type()
        if element_type is None:
            return False
        offset = payload_offset(node.accessor.types, element_type)
        if offset is None:
            return False
        self._layout = ElementLayout(skip_offset=offset, element_type=element_type)
        logger.debug("payload of %r at node offset %d", element_type, offset)
        return True

    # ------------------------------------------------------------------
    # Element access
    # ------------------------------------------------------------------
    def element_at(self, index: int, count_hint: Optional[int] = None) -> Optional[ValueHandle]:
        """Payload of the ``index``-th element in key order, or None."""
        if index < 0 or index >= self.count():
            return None
        if not self.usable:
            return None
        max_depth = self.count() if count_hint is None else count_hint
        payload = self._key_value_pair(index, max_depth)
        if payload is None:
            if self.usable:
                logger.debug("element %d unreachable; disabling view until refresh", index)
            self._tree = None
            return None
        return payload

    def _key_value_pair(self, index: int, max_depth: int) -> Optional[ValueHandle]:
        iterator = BoundedInorderIterator(NodeHandle(self._begin), max_depth)
        steps = index
        if index > 0:
            cached = self._iterators.get(index - 1)
            if cached is not None:
                iterator = cached.restart(max_depth)
                steps = 1

        node = iterator.advance(steps)
        if node is None or node.value is None:
            return None
        if self._resolve_element_type() is None:
            return None

        if index == 0:
            struct_node = node.value.dereference()
            if struct_node is None or struct_node.is_error:
                return None
            if not self.resolve_layout(struct_node):
                return None
            payload = struct_node.child_at_offset(self._layout.skip_offset, self._layout.element_type)
        else:
            if self._layout is None:
                self.element_at(0, max_depth)
            if self._layout is None:
                return None
            payload = node.value.child_at_offset(self._layout.skip_offset, self._layout.element_type)

        if payload.is_error:
            logger.debug("payload of element %d unreadable: %s", index, payload.error)
            return None
        self._iterators[index] = iterator.snapshot()
        return payload

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------
    def num_children(self) -> int:
        return self.count()

    def might_have_children(self) -> bool:
        return True

    def child_at_index(self, index: int) -> Optional[ValueHandle]:
        payload = self.element_at(index)
        if payload is None:
            return None
        name = self.config.child_name_format.format(index=index)
        child = payload.clone(name)
        # show the std::pair directly rather than its __value_type wrapper
        wrapped = child.num_children()
        if wrapped == 1:
            first = child.child_at_index(0)
            if first is not None and first.name in self.config.value_wrappers:
                child = first.clone(name)
        elif wrapped == 2:
            first = child.child_at_index(0)
            second = child.child_at_index(1)
            if (
                first is not None
                and first.name in self.config.value_wrappers
                and second is not None
                and second.name == self.config.wrapper_companion
            ):
                child = first.clone(name)
        return child

    def index_of_child_with_name(self, name: str) -> Optional[int]:
        match = _INDEX_NAME.match(name.strip())
        if match is None:
            return None
        return int(match.group(1))

    def children(self) -> List[ValueHandle]:
        result: List[ValueHandle] = []
        for index in range(self.count()):
            child = self.child_at_index(index)
            if child is None:
                break
            result.append(child)
        return result
