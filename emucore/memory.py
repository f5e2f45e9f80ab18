"""Memory permission flags and region descriptions."""

from dataclasses import dataclass
from enum import IntFlag


class MemoryPermission(IntFlag):
    """Access rights of a memory range; also used to describe a memory operation."""

    NONE = 0
    READ = 1 << 0
    WRITE = 1 << 1
    EXEC = 1 << 2
    READ_WRITE = READ | WRITE
    ALL = READ | WRITE | EXEC


@dataclass
class BasicMemoryRegion:
    """A range of memory with its permissions."""

    start: int = 0
    length: int = 0
    permissions: MemoryPermission = MemoryPermission.NONE


@dataclass
class MemoryRegion(BasicMemoryRegion):
    """A memory range that also records whether it is committed."""

    committed: bool = False