"""Bounded in-order traversal of a remote red-black tree.

The successor logic follows libc++'s ``__tree_next`` / ``__tree_min`` so that
the walk visits nodes the way ``__tree_iterator::operator++`` does. Every loop
is capped by ``max_depth`` because the links come from untrusted memory.
"""

from __future__ import annotations

import copy
import logging
from typing import Optional, Union

from .node import NodeHandle
from .values import ValueHandle


logger = logging.getLogger(__name__)

STATE_ACTIVE = "active"
STATE_EXHAUSTED = "exhausted"
STATE_ERRORED = "errored"


class BoundedInorderIterator:
    """In-order walk over tree nodes where every step is counted against ``max_depth``."""

    def __init__(self, start: Union[NodeHandle, ValueHandle, None] = None, max_depth: int = 0) -> None:
        self._entry = start if isinstance(start, NodeHandle) else NodeHandle(start)
        self.max_depth = max(0, int(max_depth))
        self._error = False

    def __repr__(self) -> str:
        return f"BoundedInorderIterator({self._entry!r}, max_depth={self.max_depth}, state={self.state})"

    @property
    def current(self) -> NodeHandle:
        return self._entry

    @property
    def error(self) -> bool:
        return self._error

    @property
    def state(self) -> str:
        if self._error:
            return STATE_ERRORED
        if self._entry.is_null():
            return STATE_EXHAUSTED
        return STATE_ACTIVE

    def value(self) -> Optional[ValueHandle]:
        return self._entry.value

    def snapshot(self) -> "BoundedInorderIterator":
        # node handles are immutable, so a shallow copy is independent
        return copy.copy(self)

    def restart(self, max_depth: int) -> "BoundedInorderIterator":
        """Copy of this iterator bounded by a new ceiling."""
        clone = self.snapshot()
        clone.max_depth = max(0, int(max_depth))
        return clone

    def advance(self, count: int) -> Optional[NodeHandle]:
        """Move ``count`` nodes forward; None when the walk fails or runs out."""
        if count < 0:
            raise ValueError("count must be non-negative")
        if self._error:
            return None
        steps = 0
        while count > 0:
            self._next()
            count -= 1
            steps += 1
            if self._error or self._entry.is_null() or steps > self.max_depth:
                return None
        return self._entry

    # ------------------------------------------------------------------
    # libc++ tree algorithms
    # ------------------------------------------------------------------
    def _next(self) -> None:
        if self._entry.is_null():
            return
        right = self._entry.right()
        if not right.is_null():
            self._entry = self._tree_min(right)
            return
        steps = 0
        while not self._is_left_child(self._entry):
            if self._entry.is_error():
                logger.debug("unreadable ancestor while searching successor of %r", self._entry)
                self._error = True
                return
            self._entry = self._entry.parent()
            steps += 1
            if steps > self.max_depth:
                logger.debug("ancestor walk exceeded %d steps", self.max_depth)
                self._entry = NodeHandle()
                return
        self._entry = self._entry.parent()

    def _tree_min(self, node: NodeHandle) -> NodeHandle:
        if node.is_null():
            return NodeHandle()
        left = node.left()
        steps = 0
        while not left.is_null():
            if left.is_error():
                self._error = True
                return NodeHandle()
            node = left
            left = node.left()
            steps += 1
            if steps > self.max_depth:
                logger.debug("left descent exceeded %d steps", self.max_depth)
                return NodeHandle()
        return node

    @staticmethod
    def _is_left_child(node: NodeHandle) -> bool:
        if node.is_null():
            return False
        sibling = node.parent().left()
        return node.identity_value() == sibling.identity_value()
