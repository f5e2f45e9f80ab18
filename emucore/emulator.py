"""Abstract CPU emulator interface with hooks, serialization and snapshots."""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Optional

from .memory import MemoryPermission
from .memory_manager import MemoryManager
from .serialization import BufferDeserializer, BufferSerializer

MemoryOperation = MemoryPermission

#: Opaque handle returned by the hook methods and accepted by ``delete_hook``.
EmulatorHook = Any

MAX_HOOK_SIZE = (1 << 64) - 1


class InstructionHookContinuation(Enum):
    """What to do with an instruction after its hook ran."""

    RUN_INSTRUCTION = False
    SKIP_INSTRUCTION = True


class MemoryViolationContinuation(Enum):
    """Whether emulation continues after a memory violation hook ran."""

    STOP = False
    RESUME = True


class MemoryViolationType(Enum):
    """Why a memory access failed."""

    UNMAPPED = 0
    PROTECTION = 1


@dataclass
class BasicBlock:
    """A translated block of instructions."""

    address: int = 0
    instruction_count: int = 0
    size: int = 0


EdgeGenerationHookCallback = Callable[[BasicBlock, BasicBlock], None]
BasicBlockHookCallback = Callable[[BasicBlock], None]
InstructionHookCallback = Callable[[], InstructionHookContinuation]
InterruptHookCallback = Callable[[int], None]
SimpleMemoryHookCallback = Callable[[int, int, int], None]
ComplexMemoryHookCallback = Callable[[int, int, int, MemoryOperation], None]
MemoryViolationHookCallback = Callable[
    [int, int, MemoryOperation, MemoryViolationType], MemoryViolationContinuation
]


class Emulator(MemoryManager):
    """A CPU emulator on top of the memory bookkeeping of :class:`MemoryManager`."""

    def __init__(self) -> None:
        super().__init__()
        self._last_snapshot_data = b""

    @abstractmethod
    def start(self, start: int, end: int = 0, timeout: Optional[timedelta] = None, count: int = 0) -> None:
        """Run from ``start`` until ``end``, the timeout or ``count`` instructions (0 means no limit)."""

    @abstractmethod
    def stop(self) -> None:
        """Stop a running emulation."""

    @abstractmethod
    def read_raw_register(self, reg: int, size: int) -> bytes:
        """Read ``size`` bytes of a register."""

    @abstractmethod
    def write_raw_register(self, reg: int, value: bytes) -> None:
        """Write raw bytes to a register."""

    @abstractmethod
    def save_registers(self) -> bytes:
        """Return the complete register state."""

    @abstractmethod
    def restore_registers(self, register_data: bytes) -> None:
        """Restore a register state returned by :meth:`save_registers`."""

    @abstractmethod
    def _add_memory_violation_hook(
        self, address: int, size: int, callback: MemoryViolationHookCallback
    ) -> EmulatorHook:
        """Install a memory violation hook for a range."""

    @abstractmethod
    def hook_memory_access(
        self, address: int, size: int, filter: MemoryOperation, callback: ComplexMemoryHookCallback
    ) -> EmulatorHook:
        """Hook the operations in ``filter`` on a range; None if ``filter`` is empty."""

    @abstractmethod
    def hook_instruction(self, instruction_type: int, callback: InstructionHookCallback) -> EmulatorHook:
        """Hook an instruction kind."""

    @abstractmethod
    def hook_interrupt(self, callback: InterruptHookCallback) -> EmulatorHook:
        """Hook interrupts."""

    @abstractmethod
    def hook_edge_generation(self, callback: EdgeGenerationHookCallback) -> EmulatorHook:
        """Hook the creation of edges between basic blocks."""

    @abstractmethod
    def hook_basic_block(self, callback: BasicBlockHookCallback) -> EmulatorHook:
        """Hook the execution of basic blocks."""

    @abstractmethod
    def delete_hook(self, hook: EmulatorHook) -> None:
        """Remove a hook returned by one of the hook methods."""

    @abstractmethod
    def has_violation(self) -> bool:
        """Return True if the last run was redirected by a memory violation hook."""

    @abstractmethod
    def serialize_state(self, buffer: BufferSerializer, is_snapshot: bool) -> None:
        """Write the CPU state."""

    @abstractmethod
    def deserialize_state(self, buffer: BufferDeserializer, is_snapshot: bool) -> None:
        """Read the CPU state."""

    def hook_memory_violation(
        self, callback: MemoryViolationHookCallback, address: int = 0, size: int = MAX_HOOK_SIZE
    ) -> EmulatorHook:
        """Hook memory violations, by default anywhere in the address space."""
        return self._add_memory_violation_hook(address, size, callback)

    def hook_memory_read(self, address: int, size: int, callback: SimpleMemoryHookCallback) -> EmulatorHook:
        """Hook reads of a range."""
        return self._hook_simple_memory_access(address, size, callback, MemoryOperation.READ)

    def hook_memory_write(self, address: int, size: int, callback: SimpleMemoryHookCallback) -> EmulatorHook:
        """Hook writes to a range."""
        return self._hook_simple_memory_access(address, size, callback, MemoryOperation.WRITE)

    def hook_memory_execution(self, address: int, size: int, callback: SimpleMemoryHookCallback) -> EmulatorHook:
        """Hook execution in a range."""
        return self._hook_simple_memory_access(address, size, callback, MemoryOperation.EXEC)

    def _hook_simple_memory_access(
        self, address: int, size: int, callback: SimpleMemoryHookCallback, operation: MemoryOperation
    ) -> EmulatorHook:
        value = int(operation)
        if value & (value - 1):
            raise ValueError("A simple memory hook takes a single operation")

        def forward(hook_address: int, hook_size: int, hook_value: int, _operation: MemoryOperation) -> None:
            callback(hook_address, hook_size, hook_value)

        return self.hook_memory_access(address, size, operation, forward)

    def serialize(self, buffer: BufferSerializer) -> None:
        """Write the complete emulator state, memory contents included."""
        self._perform_serialization(buffer, False)

    def deserialize(self, buffer: BufferDeserializer) -> None:
        """Read a state written by :meth:`serialize`."""
        self._perform_deserialization(buffer, False)

    def save_snapshot(self) -> None:
        """Keep a snapshot of the CPU state and region bookkeeping."""
        serializer = BufferSerializer()
        self._perform_serialization(serializer, True)
        self._last_snapshot_data = serializer.getvalue()

    def restore_snapshot(self) -> None:
        """Return to the last snapshot; does nothing if none was taken."""
        if not self._last_snapshot_data:
            return
        self._perform_deserialization(BufferDeserializer(self._last_snapshot_data), True)

    def _perform_serialization(self, buffer: BufferSerializer, is_snapshot: bool) -> None:
        self.serialize_state(buffer, is_snapshot)
        self.serialize_memory_state(buffer, is_snapshot)

    def _perform_deserialization(self, buffer: BufferDeserializer, is_snapshot: bool) -> None:
        self.deserialize_state(buffer, is_snapshot)
        self.deserialize_memory_state(buffer, is_snapshot)


class ScopedHook:
    """Owns an emulator hook and deletes it on :meth:`remove` or when leaving a ``with`` block."""

    def __init__(self, emu: Optional[Emulator] = None, hook: EmulatorHook = None) -> None:
        self._emu = emu
        self._hook = hook

    @property
    def active(self) -> bool:
        """True while the hook is still installed."""
        return self._emu is not None and self._hook is not None

    def remove(self) -> None:
        """Delete the hook if it is still installed."""
        if self._emu is not None and self._hook is not None:
            self._emu.delete_hook(self._hook)
            self._hook = None

    def __enter__(self) -> "ScopedHook":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.remove()