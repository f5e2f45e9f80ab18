"""Debugger stub interface and its implementation for an x86-64 emulator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .emulator import ScopedHook
from .memory import MemoryPermission
from .x64 import X64Emulator, X64Register


class GdbAction(Enum):
    """What the debugger stub does after a command."""

    NONE = 0
    RESUME = 1
    SHUTDOWN = 2


class BreakpointType(Enum):
    """Kinds of breakpoints a debugger can request."""

    SOFTWARE = 0
    HARDWARE_EXEC = 1
    HARDWARE_WRITE = 2
    HARDWARE_READ = 3
    HARDWARE_READ_WRITE = 4


GDB_REGISTERS = (
    X64Register.RAX, X64Register.RBX, X64Register.RCX, X64Register.RDX,
    X64Register.RSI, X64Register.RDI, X64Register.RBP, X64Register.RSP,
    X64Register.R8, X64Register.R9, X64Register.R10, X64Register.R11,
    X64Register.R12, X64Register.R13, X64Register.R14, X64Register.R15,
    X64Register.RIP, X64Register.RFLAGS,
)


def map_breakpoint_type(type: BreakpointType) -> MemoryPermission:
    """Return the memory operation a breakpoint kind watches."""
    if type in (BreakpointType.SOFTWARE, BreakpointType.HARDWARE_EXEC):
        return MemoryPermission.EXEC
    if type == BreakpointType.HARDWARE_READ:
        return MemoryPermission.READ
    if type == BreakpointType.HARDWARE_WRITE:
        return MemoryPermission.WRITE
    if type == BreakpointType.HARDWARE_READ_WRITE:
        return MemoryPermission.READ_WRITE
    raise ValueError("Bad bp type")


@dataclass(frozen=True)
class BreakpointKey:
    """Identifies an installed breakpoint."""

    addr: int
    size: int
    type: BreakpointType


class GdbStubHandler(ABC):
    """Target operations a debugger stub calls."""

    @abstractmethod
    def cont(self) -> GdbAction: ...

    @abstractmethod
    def stepi(self) -> GdbAction: ...

    @abstractmethod
    def read_reg(self, regno: int) -> int: ...

    @abstractmethod
    def write_reg(self, regno: int, value: int) -> bool: ...

    @abstractmethod
    def read_mem(self, addr: int, length: int) -> Optional[bytes]: ...

    @abstractmethod
    def write_mem(self, addr: int, data: bytes) -> bool: ...

    @abstractmethod
    def set_bp(self, type: BreakpointType, addr: int, size: int) -> bool: ...

    @abstractmethod
    def del_bp(self, type: BreakpointType, addr: int, size: int) -> bool: ...

    @abstractmethod
    def on_interrupt(self) -> None: ...


class X64GdbStubHandler(GdbStubHandler):
    """Serves debugger requests from an :class:`X64Emulator`."""

    def __init__(self, emu: X64Emulator) -> None:
        self._emu = emu
        self._hooks: dict[BreakpointKey, ScopedHook] = {}

    def cont(self) -> GdbAction:
        """Run until something stops the emulator; errors are printed."""
        try:
            self._emu.start_from_ip()
        except Exception as error:
            print(error)
        return GdbAction.RESUME

    def stepi(self) -> GdbAction:
        """Run a single instruction; errors are printed."""
        try:
            self._emu.start_from_ip(None, 1)
        except Exception as error:
            print(error)
        return GdbAction.RESUME

    def read_reg(self, regno: int) -> int:
        """Return the register with debugger number ``regno``, or 0 if unknown or unreadable."""
        if not 0 <= regno < len(GDB_REGISTERS):
            return 0
        try:
            return self._emu.read_register(GDB_REGISTERS[regno], 8)
        except Exception:
            return 0

    def write_reg(self, regno: int, value: int) -> bool:
        """Write a register; unknown numbers are ignored and count as success."""
        if not 0 <= regno < len(GDB_REGISTERS):
            return True
        try:
            self._emu.write_register(GDB_REGISTERS[regno], value, 8)
            return True
        except Exception:
            return False

    def read_mem(self, addr: int, length: int) -> Optional[bytes]:
        return self._emu.try_read_memory(addr, length)

    def write_mem(self, addr: int, data: bytes) -> bool:
        try:
            self._emu.write_memory(addr, data)
            return True
        except Exception:
            return False

    def set_bp(self, type: BreakpointType, addr: int, size: int) -> bool:
        """Install a breakpoint, replacing one with the same key."""
        try:
            hook = self._emu.hook_memory_access(
                addr, size, map_breakpoint_type(type), lambda *_: self.on_interrupt()
            )
            key = BreakpointKey(addr, size, type)
            previous = self._hooks.pop(key, None)
            if previous is not None:
                previous.remove()
            self._hooks[key] = ScopedHook(self._emu, hook)
            return True
        except Exception:
            return False

    def del_bp(self, type: BreakpointType, addr: int, size: int) -> bool:
        """Remove a breakpoint; False if there was none."""
        try:
            scoped = self._hooks.pop(BreakpointKey(addr, size, type), None)
            if scoped is None:
                return False
            scoped.remove()
            return True
        except Exception:
            return False

    def on_interrupt(self) -> None:
        self._emu.stop()