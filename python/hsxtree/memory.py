"""Byte-level access to a remote memory image."""

from __future__ import annotations

import bisect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union


logger = logging.getLogger(__name__)


class MemoryReadError(RuntimeError):
    """Raised when a memory source cannot return the requested bytes."""


def _now() -> float:
    return time.time()


@dataclass
class MemoryBlock:
    """Contiguous run of bytes starting at ``base``."""

    base: int
    data: bytes
    readonly: bool = True
    timestamp: float = field(default_factory=_now)

    @property
    def end(self) -> int:
        return self.base + len(self.data)

    def contains(self, addr: int, length: int) -> bool:
        return self.base <= addr and (addr + length) <= self.end

    def slice(self, addr: int, length: int) -> bytes:
        offset = addr - self.base
        return self.data[offset : offset + length]


class SegmentImage:
    """In-process memory image assembled from mapped segments.

    Reads must fall entirely inside one segment; anything else is treated as
    unmapped memory.
    """

    def __init__(self) -> None:
        self._segments: Dict[int, bytearray] = {}

    def map(self, base: int, data: Union[bytes, int]) -> None:
        """Map ``data`` (or that many zero bytes when given an int) at ``base``."""
        if base < 0:
            raise ValueError("segment base must be non-negative")
        self._segments[int(base)] = bytearray(data)

    def unmap(self, base: int) -> None:
        self._segments.pop(int(base), None)

    def _find(self, addr: int, length: int) -> Optional[Tuple[int, bytearray]]:
        for base, buffer in self._segments.items():
            if base <= addr and (addr + length) <= base + len(buffer):
                return base, buffer
        return None

    def read(self, addr: int, length: int) -> bytes:
        if length < 0:
            raise MemoryReadError(f"invalid read length {length}")
        hit = self._find(addr, length)
        if hit is None:
            raise MemoryReadError(f"unmapped read at 0x{addr:X} (+{length})")
        base, buffer = hit
        offset = addr - base
        return bytes(buffer[offset : offset + length])

    def write(self, addr: int, data: bytes) -> None:
        hit = self._find(addr, len(data))
        if hit is None:
            raise MemoryReadError(f"unmapped write at 0x{addr:X} (+{len(data)})")
        base, buffer = hit
        offset = addr - base
        buffer[offset : offset + len(data)] = data

    def segments(self) -> List[MemoryBlock]:
        return [MemoryBlock(base=base, data=bytes(buf), readonly=False) for base, buf in sorted(self._segments.items())]


class PeekMemorySource:
    """Reads task memory through the executive ``peek`` RPC.

    ``request`` is any callable taking a JSON-ready payload and returning the
    decoded response, typically the debugger transport's request method.
    """

    def __init__(self, request: Callable[[Dict[str, Any]], Dict[str, Any]], pid: int, *, session_id: Optional[str] = None) -> None:
        self.request = request
        self.pid = int(pid)
        self.session_id = session_id

    def read(self, addr: int, length: int) -> bytes:
        payload: Dict[str, Any] = {"cmd": "peek", "pid": self.pid, "addr": int(addr), "length": int(length)}
        if self.session_id:
            payload["session"] = self.session_id
        response = self.request(payload)
        if not isinstance(response, dict) or response.get("status") != "ok":
            raise MemoryReadError(f"peek failed at 0x{addr:X}: {response}")
        data_hex = response.get("data")
        if not isinstance(data_hex, str):
            raise MemoryReadError("peek returned invalid payload")
        try:
            raw = bytes.fromhex(data_hex)
        except ValueError as exc:
            raise MemoryReadError(f"peek returned malformed hex: {exc}") from exc
        if len(raw) < length:
            raise MemoryReadError(f"short read at 0x{addr:X}: wanted {length}, got {len(raw)}")
        return raw[:length]


class CachedMemory:
    """Block cache in front of another memory source.

    Blocks are keyed by base address. A lookup only checks the block with the
    greatest base at or below the requested address.
    """

    def __init__(self, source: Any) -> None:
        self.source = source
        self.blocks: Dict[int, MemoryBlock] = {}
        self._bases: List[int] = []
        self.hits = 0
        self.misses = 0

    def cache_block(self, base: int, data: bytes) -> MemoryBlock:
        block = MemoryBlock(base=base, data=bytes(data))
        if block.base not in self.blocks:
            bisect.insort(self._bases, block.base)
        self.blocks[block.base] = block
        return block

    def lookup(self, addr: int, length: int) -> Optional[bytes]:
        idx = bisect.bisect_right(self._bases, addr) - 1
        if idx < 0:
            return None
        block = self.blocks[self._bases[idx]]
        if not block.contains(addr, length):
            return None
        return block.slice(addr, length)

    def read(self, addr: int, length: int) -> bytes:
        data = self.lookup(addr, length)
        if data is not None:
            self.hits += 1
            return data
        self.misses += 1
        data = self.source.read(addr, length)
        self.cache_block(addr, data)
        return data

    def invalidate(self) -> None:
        if self.blocks:
            logger.debug("dropping %d cached memory blocks", len(self.blocks))
        self.blocks.clear()
        self._bases.clear()
