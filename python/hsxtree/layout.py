"""libc++ tree layout helpers.

The debug info for ``__tree_node`` does not describe where the payload sits
once the compiler reuses the tail padding of ``__tree_node_base``. The payload
offset is recovered instead from a synthetic plain struct with the same leading
members::

    +-----------------------------+ __tree_end_node
    | pointer __left_;            |
    +-----------------------------+ __tree_node_base
    | pointer __right_;           |
    | __parent_pointer __parent_; |
    | bool __is_black_;           |
    +-----------------------------+ __tree_node
    | __node_value_type __value_; |  <- payload
    +-----------------------------+
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from .types import LayoutError, TypeInfo, TypeSystem
from .values import ValueHandle


logger = logging.getLogger(__name__)

NODE_FIELD_NAMES = ("ptr0", "ptr1", "ptr2", "cw", "payload")
PAYLOAD_INDEX = 4

COMPRESSED_PAIR_VALUE = "__value_"
LEGACY_COMPRESSED_PAIR_VALUE = "__first_"


def synthesize_node_type(types: TypeSystem, payload_type: TypeInfo) -> TypeInfo:
    """Anonymous ``{ptr0, ptr1, ptr2, cw, payload}`` struct for ``payload_type``."""
    void_ptr = types.pointer_to(types.basic("void"))
    flag = types.basic("bool")
    return types.create_struct(
        "",
        [
            ("ptr0", void_ptr),
            ("ptr1", void_ptr),
            ("ptr2", void_ptr),
            ("cw", flag),
            ("payload", payload_type),
        ],
    )


def payload_offset(types: TypeSystem, payload_type: TypeInfo) -> Optional[int]:
    try:
        node_type = synthesize_node_type(types, payload_type)
    except LayoutError as exc:
        logger.debug("cannot lay out node for %r: %s", payload_type, exc)
        return None
    entry = node_type.field_at_index(PAYLOAD_INDEX)
    return entry.offset if entry is not None else None


def first_value_of_compressed_pair(pair: Optional[ValueHandle]) -> Optional[ValueHandle]:
    """First element of a libc++ ``__compressed_pair``.

    Current layouts keep it in a ``__compressed_pair_elem`` base as ``__value_``;
    older ones store it directly as ``__first_``.
    """

    if pair is None:
        return None
    value = pair.child_member(COMPRESSED_PAIR_VALUE)
    if value is None:
        first_child = pair.child_at_index(0)
        if first_child is not None:
            value = first_child.child_member(COMPRESSED_PAIR_VALUE)
    if value is None:
        value = pair.child_member(LEGACY_COMPRESSED_PAIR_VALUE)
    return value


def element_type_for_tree(
    backend: ValueHandle,
    begin_node: Optional[ValueHandle],
    *,
    size_path: Sequence[str],
) -> Optional[TypeInfo]:
    """Payload type of a map or set.

    Maps carry it as the ``__value_type`` wrapped inside the value comparator
    (``__pair3_`` template argument 1, then its template argument 1); the
    wrapper's first field is the ``pair`` typedef. Sets fall back to the
    container's first template argument.
    """

    if begin_node is None:
        return None
    node = begin_node.dereference()
    if node is None or node.is_error:
        logger.debug("begin node %r is not dereferenceable", begin_node)
        return None
    size_node: Optional[ValueHandle] = backend
    for member in size_path:
        size_node = size_node.child_member(member) if size_node is not None else None
    if size_node is None:
        return None
    compare = size_node.type.template_argument(1)
    wrapper = compare.template_argument(1) if compare is not None else None
    if wrapper is not None:
        entry = wrapper.field_at_index(0)
        if entry is None:
            return None
        return entry.type.typedefed_type()
    return backend.type.template_argument(0)
