"""Tests for node handles and the bounded in-order iterator."""

from python.hsxtree.iterator import STATE_ACTIVE, STATE_ERRORED, STATE_EXHAUSTED, BoundedInorderIterator
from python.hsxtree.node import NodeHandle
from python.tests.tree_image import LEFT, PARENT, RIGHT


def _begin(tree):
    return tree.value.value_for_path(".__tree_.__begin_node_")


def _walk(tree, count):
    iterator = BoundedInorderIterator(_begin(tree), max_depth=count)
    visited = [iterator.current.identity_value()]
    for _ in range(count - 1):
        node = iterator.advance(1)
        assert node is not None
        visited.append(node.identity_value())
    return visited


def test_node_handle_links(build_map):
    tree = build_map([1, 2, 3])
    root = NodeHandle(tree.value.value_for_path(".__tree_.__pair1_.__value_.__left_"))
    assert root.identity_value() == tree.address_of(2)
    assert root.left().identity_value() == tree.address_of(1)
    assert root.right().identity_value() == tree.address_of(3)
    assert root.left().parent().identity_value() == tree.address_of(2)
    assert root.parent().identity_value() == tree.end_node
    assert root.left().left().is_null()
    assert not root.is_error()


def test_node_handle_equality_is_identity(build_map):
    tree = build_map([1, 2, 3])
    root = NodeHandle(tree.value.value_for_path(".__tree_.__pair1_.__value_.__left_"))
    assert root.left() == root.left()
    assert root.left() != root.right()
    # same address reached another way is a different reference
    assert root.left().parent() != root


def test_empty_node_handle_is_null_and_error():
    empty = NodeHandle()
    assert empty.is_null()
    assert empty.is_error()
    assert empty.identity_value() == 0
    assert empty.left().is_null() and empty.parent().is_error()


def test_three_node_tree_visits_in_key_order(build_map):
    tree = build_map([(2, 20), (1, 10), (3, 30)])
    assert tree.level_order == [2, 1, 3]
    assert _walk(tree, 3) == [tree.address_of(1), tree.address_of(2), tree.address_of(3)]


def test_larger_tree_visits_every_node_once(build_map):
    keys = list(range(0, 62, 2))
    tree = build_map(keys)
    assert _walk(tree, len(keys)) == [tree.address_of(key) for key in keys]


def test_advance_many_steps_matches_repeated_single_steps(build_map):
    tree = build_map(range(10))
    iterator = BoundedInorderIterator(_begin(tree), max_depth=10)
    node = iterator.advance(7)
    assert node is not None and node.identity_value() == tree.address_of(7)
    assert iterator.state == STATE_ACTIVE


def test_advance_zero_returns_start(build_map):
    tree = build_map([5])
    iterator = BoundedInorderIterator(_begin(tree), max_depth=1)
    assert iterator.advance(0).identity_value() == tree.address_of(5)


def test_snapshot_is_independent(build_map):
    tree = build_map(range(5))
    iterator = BoundedInorderIterator(_begin(tree), max_depth=5)
    iterator.advance(1)
    saved = iterator.snapshot()
    iterator.advance(2)
    assert saved.current.identity_value() == tree.address_of(1)
    assert iterator.current.identity_value() == tree.address_of(3)
    assert saved.restart(9).max_depth == 9 and saved.max_depth == 5


def test_ceiling_stops_walk_past_declared_count(build_map):
    tree = build_map(range(4))
    iterator = BoundedInorderIterator(_begin(tree), max_depth=2)
    assert iterator.advance(3) is None


def test_self_looping_left_link_terminates(build_map):
    tree = build_map([1, 2, 3])
    one, three = tree.address_of(1), tree.address_of(3)
    tree.set_link(one, RIGHT, three)
    tree.set_link(three, LEFT, three)
    iterator = BoundedInorderIterator(_begin(tree), max_depth=3)
    assert iterator.advance(1) is None
    assert iterator.state == STATE_EXHAUSTED


def test_cyclic_parent_chain_terminates(build_map):
    tree = build_map([1, 2, 3])
    one = tree.address_of(1)
    tree.set_link(one, PARENT, one)
    iterator = BoundedInorderIterator(_begin(tree), max_depth=3)
    assert iterator.advance(1) is None
    assert iterator.current.is_null()
    assert not iterator.error


def test_unreadable_parent_sets_sticky_error(build_map):
    tree = build_map([1, 2, 3])
    tree.set_link(tree.address_of(1), PARENT, 0xDEAD0000)
    iterator = BoundedInorderIterator(_begin(tree), max_depth=3)
    assert iterator.advance(1) is None
    assert iterator.state == STATE_ERRORED
    assert iterator.advance(0) is None
    assert iterator.advance(1) is None
