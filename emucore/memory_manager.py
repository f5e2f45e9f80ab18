"""Bookkeeping of reserved and committed memory regions on top of a mapping backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from .address_utils import page_align_up, regions_with_length_intersect
from .memory import BasicMemoryRegion, MemoryPermission
from .serialization import BufferDeserializer, BufferSerializer

MIN_ALLOCATION_ADDRESS = 0x0000000000010000
MAX_ALLOCATION_ADDRESS = 0x00007FFFFFFEFFFF
DEFAULT_ALLOCATION_START = 0x100000000

MmioReadCallback = Callable[[int, int], int]
MmioWriteCallback = Callable[[int, int, int], None]


class MemoryManagerError(RuntimeError):
    """Raised for memory operations that are not supported."""


@dataclass
class RegionInfo(BasicMemoryRegion):
    """Description of the region an address falls into."""

    allocation_base: int = 0
    allocation_length: int = 0
    is_reserved: bool = False
    is_committed: bool = False


@dataclass
class CommittedRegion:
    """A committed range inside a reservation."""

    length: int = 0
    permissions: MemoryPermission = MemoryPermission.NONE


@dataclass
class ReservedRegion:
    """A reserved address range and the committed ranges inside it."""

    length: int = 0
    committed_regions: dict[int, CommittedRegion] = field(default_factory=dict)
    is_mmio: bool = False


def _split_regions(regions: dict[int, CommittedRegion], split_points: Iterable[int]) -> None:
    for point in split_points:
        for start, region in list(regions.items()):
            if start < point < start + region.length:
                first_length = point - start
                regions[point] = CommittedRegion(region.length - first_length, region.permissions)
                region.length = first_length
                break


def _merge_regions(regions: dict[int, CommittedRegion]) -> None:
    merged: list[tuple[int, CommittedRegion]] = []
    for start, region in sorted(regions.items()):
        if merged:
            previous_start, previous = merged[-1]
            if previous_start + previous.length == start and previous.permissions == region.permissions:
                previous.length += region.length
                continue
        merged.append((start, region))
    regions.clear()
    regions.update(merged)


def _write_u64(buffer: BufferSerializer, value: int) -> None:
    buffer.write_uint(value, 8)


def _read_u64(buffer: BufferDeserializer) -> int:
    return buffer.read_uint(8)


def _write_committed(buffer: BufferSerializer, region: CommittedRegion) -> None:
    buffer.write_uint(region.length, 8)
    buffer.write_uint(int(region.permissions), 1)


def _read_committed(buffer: BufferDeserializer) -> CommittedRegion:
    length = buffer.read_uint(8)
    return CommittedRegion(length, MemoryPermission(buffer.read_uint(1)))


def _write_reserved(buffer: BufferSerializer, region: ReservedRegion) -> None:
    buffer.write_bool(region.is_mmio)
    buffer.write_uint(region.length, 8)
    buffer.write_mapping(dict(sorted(region.committed_regions.items())), _write_u64, _write_committed)


def _read_reserved(buffer: BufferDeserializer) -> ReservedRegion:
    is_mmio = buffer.read_bool()
    length = buffer.read_uint(8)
    committed = buffer.read_mapping(_read_u64, _read_committed)
    return ReservedRegion(length=length, committed_regions=committed, is_mmio=is_mmio)


class MemoryManager(ABC):
    """Tracks reservations and commitments; subclasses do the actual mapping."""

    def __init__(self) -> None:
        self._reserved_regions: dict[int, ReservedRegion] = {}

    @abstractmethod
    def read_memory(self, address: int, size: int) -> bytes:
        """Read ``size`` bytes at ``address``."""

    @abstractmethod
    def try_read_memory(self, address: int, size: int) -> Optional[bytes]:
        """Read ``size`` bytes at ``address``, or return None if that fails."""

    @abstractmethod
    def write_memory(self, address: int, data: bytes) -> None:
        """Write ``data`` at ``address``."""

    @abstractmethod
    def map_mmio(self, address: int, size: int, read_cb: MmioReadCallback, write_cb: MmioWriteCallback) -> None:
        """Map a range served by callbacks."""

    @abstractmethod
    def map_memory(self, address: int, size: int, permissions: MemoryPermission) -> None:
        """Map a range of plain memory."""

    @abstractmethod
    def unmap_memory(self, address: int, size: int) -> None:
        """Unmap a range."""

    @abstractmethod
    def apply_memory_protection(self, address: int, size: int, permissions: MemoryPermission) -> None:
        """Change the permissions of a mapped range."""

    def _sorted_reserved(self) -> list[tuple[int, ReservedRegion]]:
        return sorted(self._reserved_regions.items())

    def _find_reserved_region(self, address: int) -> Optional[int]:
        keys = sorted(self._reserved_regions)
        index = bisect_right(keys, address)
        if index == 0:
            return None
        base = keys[index - 1]
        if base + self._reserved_regions[base].length <= address:
            return None
        return base

    def _overlaps_reserved_region(self, address: int, size: int) -> bool:
        return any(
            regions_with_length_intersect(address, size, start, region.length)
            for start, region in self._reserved_regions.items()
        )

    def protect_memory(self, address: int, size: int, permissions: MemoryPermission) -> Optional[MemoryPermission]:
        """Change permissions of committed memory.

        Returns the previous permissions of the first affected committed range
        (``MemoryPermission.NONE`` if none was affected), or None if the address
        is not reserved.
        """
        base = self._find_reserved_region(address)
        if base is None:
            return None
        reserved = self._reserved_regions[base]
        end = address + size
        if base + reserved.length < end:
            raise MemoryManagerError("Cross region protect not supported yet!")

        committed = reserved.committed_regions
        _split_regions(committed, (address, end))

        old_permissions: Optional[MemoryPermission] = None
        for start, region in sorted(committed.items()):
            if start >= end:
                break
            if start >= address and start + region.length <= end:
                if old_permissions is None:
                    old_permissions = region.permissions
                self.apply_memory_protection(start, region.length, permissions)
                region.permissions = permissions

        _merge_regions(committed)
        return MemoryPermission.NONE if old_permissions is None else old_permissions

    def allocate_mmio(self, address: int, size: int, read_cb: MmioReadCallback, write_cb: MmioWriteCallback) -> bool:
        """Reserve and map a callback-backed range; False if it overlaps a reservation."""
        if self._overlaps_reserved_region(address, size):
            return False
        self.map_mmio(address, size, read_cb, write_cb)
        region = self._reserved_regions.setdefault(address, ReservedRegion(length=size, is_mmio=True))
        region.committed_regions[address] = CommittedRegion(size, MemoryPermission.READ_WRITE)
        return True

    def allocate_memory(
        self, address: int, size: int, permissions: MemoryPermission, reserve_only: bool = False
    ) -> bool:
        """Reserve, and unless ``reserve_only`` also commit, a range; False if it overlaps."""
        if self._overlaps_reserved_region(address, size):
            return False
        region = self._reserved_regions.setdefault(address, ReservedRegion(length=size))
        if not reserve_only:
            self.map_memory(address, size, permissions)
            region.committed_regions[address] = CommittedRegion(size, MemoryPermission.READ_WRITE)
        return True

    def allocate_memory_anywhere(
        self, size: int, permissions: MemoryPermission, reserve_only: bool = False
    ) -> Optional[int]:
        """Allocate at the first free base; return that base or None."""
        base = self.find_free_allocation_base(size)
        if base is None or not self.allocate_memory(base, size, permissions, reserve_only):
            return None
        return base

    def commit_memory(self, address: int, size: int, permissions: MemoryPermission) -> bool:
        """Commit the uncommitted parts of a range inside one reservation."""
        base = self._find_reserved_region(address)
        if base is None:
            return False
        reserved = self._reserved_regions[base]
        end = address + size
        if base + reserved.length < end:
            raise MemoryManagerError("Cross region commit not supported yet!")

        committed = reserved.committed_regions
        _split_regions(committed, (address, end))

        last_end: Optional[int] = None
        for start, region in sorted(committed.items()):
            if start >= end:
                break
            if start >= address and start + region.length <= end:
                map_start = address if last_end is None else last_end
                gap = start - map_start
                if gap > 0:
                    self.map_memory(map_start, gap, permissions)
                    committed[map_start] = CommittedRegion(gap, permissions)
                last_end = start + region.length

        if last_end is None or last_end < end:
            map_start = address if last_end is None else last_end
            self.map_memory(map_start, end - map_start, permissions)
            committed[map_start] = CommittedRegion(end - map_start, permissions)

        _merge_regions(committed)
        return True

    def decommit_memory(self, address: int, size: int) -> bool:
        """Unmap the committed parts of a range inside one reservation."""
        base = self._find_reserved_region(address)
        if base is None:
            return False
        reserved = self._reserved_regions[base]
        if reserved.is_mmio:
            raise MemoryManagerError("Not allowed to decommit MMIO!")
        end = address + size
        if base + reserved.length < end:
            raise MemoryManagerError("Cross region decommit not supported yet!")

        committed = reserved.committed_regions
        _split_regions(committed, (address, end))

        for start, region in sorted(committed.items()):
            if start >= end:
                break
            if start >= address and start + region.length <= end:
                self.unmap_memory(start, region.length)
                del committed[start]
        return True

    def release_memory(self, address: int, size: int = 0) -> bool:
        """Release the start of a reservation; a size of 0 releases all of it."""
        reserved = self._reserved_regions.get(address)
        if reserved is None:
            return False
        if not size:
            size = reserved.length
        if size > reserved.length:
            raise MemoryManagerError("Cross region release not supported yet!")

        end = address + size
        committed = reserved.committed_regions
        _split_regions(committed, (end,))

        for start, region in sorted(committed.items()):
            if start >= end:
                break
            if start >= address and start + region.length <= end:
                self.unmap_memory(start, region.length)
                del committed[start]

        reserved.length -= size
        del self._reserved_regions[address]
        if reserved.length > 0:
            self._reserved_regions[address + size] = reserved
        return True

    def find_free_allocation_base(self, size: int, start: int = 0) -> Optional[int]:
        """Return the first page-aligned free base at or after ``start``, or None."""
        start_address = max(MIN_ALLOCATION_ADDRESS, start if start else DEFAULT_ALLOCATION_START)
        for base, region in self._sorted_reserved():
            region_end = base + region.length
            if region_end < start_address:
                continue
            if not regions_with_length_intersect(start_address, size, base, region.length):
                return start_address
            start_address = page_align_up(region_end)

        if start_address + size <= MAX_ALLOCATION_ADDRESS:
            return start_address
        return None

    def get_region_info(self, address: int) -> RegionInfo:
        """Describe the free, reserved or committed region containing ``address``."""
        result = RegionInfo(
            start=MIN_ALLOCATION_ADDRESS,
            length=MAX_ALLOCATION_ADDRESS - MIN_ALLOCATION_ADDRESS,
            permissions=MemoryPermission.NONE,
            allocation_base=0,
            allocation_length=MAX_ALLOCATION_ADDRESS - MIN_ALLOCATION_ADDRESS,
        )
        if not self._reserved_regions:
            return result

        keys = sorted(self._reserved_regions)
        index = bisect_right(keys, address)
        if index == 0:
            result.length = keys[0] - result.start
            return result

        base = keys[index - 1]
        reserved = self._reserved_regions[base]
        lower_end = base + reserved.length
        if lower_end <= address:
            result.start = lower_end
            result.length = MAX_ALLOCATION_ADDRESS - lower_end
            return result

        result.is_reserved = True
        result.allocation_base = base
        result.allocation_length = reserved.length
        result.start = base
        result.length = reserved.length

        committed = reserved.committed_regions
        if not committed:
            return result

        committed_keys = sorted(committed)
        committed_index = bisect_right(committed_keys, address)
        if committed_index == 0:
            result.length = committed_keys[0] - result.start
            return result

        committed_start = committed_keys[committed_index - 1]
        region = committed[committed_start]
        committed_end = committed_start + region.length
        if committed_end <= address:
            result.start = committed_end
            result.length = lower_end - committed_end
            return result

        result.is_committed = True
        result.start = committed_start
        result.length = region.length
        result.permissions = region.permissions
        return result

    def serialize_memory_state(self, buffer: BufferSerializer, is_snapshot: bool) -> None:
        """Write the region bookkeeping and, unless a snapshot, the memory contents."""
        buffer.write_mapping(dict(self._sorted_reserved()), _write_u64, _write_reserved)
        if is_snapshot:
            return

        for _, reserved in self._sorted_reserved():
            if reserved.is_mmio:
                continue
            for start, region in sorted(reserved.committed_regions.items()):
                buffer.write_bytes(self.read_memory(start, region.length))

    def deserialize_memory_state(self, buffer: BufferDeserializer, is_snapshot: bool) -> None:
        """Read state written by :meth:`serialize_memory_state`."""
        if not is_snapshot:
            for _, reserved in self._sorted_reserved():
                for start, region in sorted(reserved.committed_regions.items()):
                    self.unmap_memory(start, region.length)

        self._reserved_regions = buffer.read_mapping(_read_u64, _read_reserved)
        if is_snapshot:
            return

        for base, reserved in self._sorted_reserved():
            if reserved.is_mmio:
                del self._reserved_regions[base]
                continue
            for start, region in sorted(reserved.committed_regions.items()):
                data = buffer.read_bytes(region.length)
                self.map_memory(start, region.length, region.permissions)
                self.write_memory(start, data)