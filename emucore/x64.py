"""x86-64 register numbering and an emulator with typed register and stack access."""

from __future__ import annotations

from datetime import timedelta
from enum import IntEnum
from typing import Optional, Union

from .emulator import Emulator

_U64_MASK = (1 << 64) - 1


def _numbered(prefix: str, count: int, suffix: str = "", first: int = 0) -> str:
    return " ".join(f"{prefix}{i}{suffix}" for i in range(first, first + count))


def _register_numbers() -> dict[str, int]:
    numbers: dict[str, int] = {}
    next_value = 0

    def run(names: str, start: Optional[int] = None) -> None:
        nonlocal next_value
        if start is not None:
            next_value = start
        for name in names.split():
            numbers[name] = next_value
            next_value += 1

    run("INVALID AH AL AX BH BL BP BPL BX CH CL CS CX DH DI DIL DL DS DX "
        "EAX EBP EBX ECX EDI EDX EFLAGS EIP")
    run("ES ESI ESP FPSW FS GS IP RAX RBP RBX RCX RDI RDX RIP", start=numbers["EIP"] + 2)
    run("RSI RSP SI SIL SP SPL SS CR0 CR1 CR2 CR3 CR4", start=numbers["RIP"] + 2)
    run("CR8", start=numbers["CR4"] + 4)
    run(_numbered("DR", 8), start=numbers["CR8"] + 8)
    run(
        " ".join(
            (
                _numbered("FP", 8),
                _numbered("K", 8),
                _numbered("MM", 8),
                _numbered("R", 8, first=8),
                _numbered("ST", 8),
                _numbered("XMM", 32),
                _numbered("YMM", 32),
                _numbered("ZMM", 32),
                _numbered("R", 8, "B", first=8),
                _numbered("R", 8, "D", first=8),
                _numbered("R", 8, "W", first=8),
                "IDTR GDTR LDTR TR FPCW FPTAG MSR MXCSR FS_BASE GS_BASE FLAGS RFLAGS FIP FCS FDP FDS FOP END",
            )
        ),
        start=numbers["DR7"] + 9,
    )
    return numbers


X64Register = IntEnum("X64Register", _register_numbers(), module=__name__)
X64Register.__doc__ = "Register numbers of the x86-64 CPU; END is one past the last register."


class X64HookableInstructions(IntEnum):
    """Instructions that can be hooked."""

    INVALID = 0
    SYSCALL = 1
    CPUID = 2
    RDTSC = 3
    RDTSCP = 4


class X64Emulator(Emulator):
    """An emulator with 64-bit pointers, RIP as instruction pointer and RSP as stack pointer."""

    POINTER_SIZE = 8
    INSTRUCTION_POINTER = X64Register.RIP
    STACK_POINTER = X64Register.RSP

    def start_from_ip(self, timeout: Optional[timedelta] = None, count: int = 0) -> None:
        """Run from the current instruction pointer."""
        self.start(self.read_instruction_pointer(), 0, timeout, count)

    def read_register(self, reg: int, size: int = POINTER_SIZE) -> int:
        """Read ``size`` bytes of a register as an unsigned little-endian integer."""
        return int.from_bytes(self.read_raw_register(int(reg), size), "little")

    def write_register(self, reg: int, value: Union[int, bytes], size: int = POINTER_SIZE) -> None:
        """Write an integer truncated to ``size`` bytes, or raw bytes, to a register."""
        if isinstance(value, (bytes, bytearray)):
            data = bytes(value)
        else:
            data = (value & ((1 << (8 * size)) - 1)).to_bytes(size, "little")
        self.write_raw_register(int(reg), data)

    def read_instruction_pointer(self) -> int:
        return self.read_register(self.INSTRUCTION_POINTER)

    def read_stack_pointer(self) -> int:
        return self.read_register(self.STACK_POINTER)

    def read_stack(self, index: int) -> int:
        """Read the pointer-sized stack slot ``index`` above the stack pointer."""
        address = self.read_stack_pointer() + index * self.POINTER_SIZE
        return int.from_bytes(self.read_memory(address, self.POINTER_SIZE), "little")

    def push_stack(self, value: int) -> None:
        """Push a pointer-sized value."""
        sp = (self.read_stack_pointer() - self.POINTER_SIZE) & _U64_MASK
        self.write_register(self.STACK_POINTER, sp)
        self.write_memory(sp, (value & _U64_MASK).to_bytes(self.POINTER_SIZE, "little"))

    def pop_stack(self) -> int:
        """Pop a pointer-sized value."""
        sp = self.read_stack_pointer()
        result = int.from_bytes(self.read_memory(sp, self.POINTER_SIZE), "little")
        self.write_register(self.STACK_POINTER, sp + self.POINTER_SIZE)
        return result