"""
hsxtree - Remote sorted-container inspection for HSX debugger front-ends.

Reconstructs the key-ordered contents of a libc++-style red-black tree
(``std::map`` / ``std::set``) living in another process's memory, reading it
only through a memory source and never trusting its links. Modules:

    memory.py     → memory sources (segment image, executive peek RPC, block cache)
    types.py      → type descriptors and C struct layout
    catalog.py    → type/variable tables from a JSON symbol file
    values.py     → typed value handles over remote memory
    layout.py     → libc++ node layout and element type discovery
    node.py       → node handles (left/right/parent links)
    iterator.py   → bounded in-order traversal
    container.py  → index-addressable map/set view with iterator cache
    element.py    → children of a single map iterator
"""

from .memory import CachedMemory, MemoryBlock, MemoryReadError, PeekMemorySource, SegmentImage  # noqa: F401
from .types import Field, LayoutError, TypeInfo, TypeSystem  # noqa: F401
from .values import INVALID_ADDRESS, AccessorConfig, MemoryImageAccessor, ValueHandle  # noqa: F401
from .catalog import TypeCatalog  # noqa: F401
from .node import NodeHandle  # noqa: F401
from .iterator import BoundedInorderIterator  # noqa: F401
from .container import ElementLayout, MapViewConfig, SortedContainerView  # noqa: F401
from .element import IteratorViewConfig, SingleElementResolver  # noqa: F401

__all__ = [
    "CachedMemory",
    "MemoryBlock",
    "MemoryReadError",
    "PeekMemorySource",
    "SegmentImage",
    "Field",
    "LayoutError",
    "TypeInfo",
    "TypeSystem",
    "INVALID_ADDRESS",
    "AccessorConfig",
    "MemoryImageAccessor",
    "ValueHandle",
    "TypeCatalog",
    "NodeHandle",
    "BoundedInorderIterator",
    "ElementLayout",
    "MapViewConfig",
    "SortedContainerView",
    "IteratorViewConfig",
    "SingleElementResolver",
]

__version__ = "0.1.0-dev"
