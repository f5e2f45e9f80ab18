import pytest

from emucore.gdbstub import (
    GDB_REGISTERS,
    BreakpointKey,
    BreakpointType,
    GdbAction,
    X64GdbStubHandler,
    map_breakpoint_type,
)
from emucore.memory import MemoryPermission
from emucore.x64 import X64Emulator, X64Register


class FakeX64(X64Emulator):
    def __init__(self):
        super().__init__()
        self.memory = {}
        self.registers = {}
        self.started = []
        self.hooks = {}
        self.stops = 0
        self.start_error = None
        self.register_error = False

    def read_memory(self, address, size):
        return bytes(self.memory[a] for a in range(address, address + size))

    def try_read_memory(self, address, size):
        try:
            return self.read_memory(address, size)
        except KeyError:
            return None

    def write_memory(self, address, data):
        for offset, byte in enumerate(data):
            if address + offset not in self.memory:
                raise KeyError(address + offset)
            self.memory[address + offset] = byte

    def map_mmio(self, address, size, read_cb, write_cb):
        pass

    def map_memory(self, address, size, permissions):
        for a in range(address, address + size):
            self.memory[a] = 0

    def unmap_memory(self, address, size):
        for a in range(address, address + size):
            self.memory.pop(a, None)

    def apply_memory_protection(self, address, size, permissions):
        pass

    def start(self, start, end=0, timeout=None, count=0):
        self.started.append((start, end, timeout, count))
        if self.start_error:
            raise RuntimeError(self.start_error)

    def stop(self):
        self.stops += 1

    def read_raw_register(self, reg, size):
        if self.register_error:
            raise RuntimeError("register failure")
        return (self.registers.get(int(reg), b"") + bytes(size))[:size]

    def write_raw_register(self, reg, value):
        if self.register_error:
            raise RuntimeError("register failure")
        self.registers[int(reg)] = bytes(value)

    def save_registers(self):
        return b""

    def restore_registers(self, register_data):
        pass

    def _add_memory_violation_hook(self, address, size, callback):
        return object()

    def hook_memory_access(self, address, size, filter, callback):
        token = object()
        self.hooks[token] = (address, size, filter, callback)
        return token

    def hook_instruction(self, instruction_type, callback):
        return object()

    def hook_interrupt(self, callback):
        return object()

    def hook_edge_generation(self, callback):
        return object()

    def hook_basic_block(self, callback):
        return object()

    def delete_hook(self, hook):
        del self.hooks[hook]

    def has_violation(self):
        return False

    def serialize_state(self, buffer, is_snapshot):
        pass

    def deserialize_state(self, buffer, is_snapshot):
        pass


@pytest.fixture
def emu():
    emulator = FakeX64()
    assert emulator.allocate_memory(0x10000, 0x1000, MemoryPermission.READ_WRITE)
    return emulator


@pytest.mark.parametrize(
    "bp_type, operation",
    [
        (BreakpointType.SOFTWARE, MemoryPermission.EXEC),
        (BreakpointType.HARDWARE_EXEC, MemoryPermission.EXEC),
        (BreakpointType.HARDWARE_READ, MemoryPermission.READ),
        (BreakpointType.HARDWARE_WRITE, MemoryPermission.WRITE),
        (BreakpointType.HARDWARE_READ_WRITE, MemoryPermission.READ_WRITE),
    ],
)
def test_map_breakpoint_type(bp_type, operation):
    assert map_breakpoint_type(bp_type) == operation


def test_map_breakpoint_type_rejects_unknown():
    with pytest.raises(ValueError):
        map_breakpoint_type("bogus")


def test_register_order(emu):
    assert GDB_REGISTERS[0] == X64Register.RAX
    assert GDB_REGISTERS[7] == X64Register.RSP
    assert GDB_REGISTERS[-2:] == (X64Register.RIP, X64Register.RFLAGS)
    assert len(GDB_REGISTERS) == 18

    handler = X64GdbStubHandler(emu)
    for regno in range(len(GDB_REGISTERS)):
        assert handler.write_reg(regno, regno + 1)
    assert emu.read_register(X64Register.RAX) == 1
    assert emu.read_register(X64Register.RSP) == 8
    assert emu.read_register(X64Register.R8) == 9
    assert emu.read_register(X64Register.RIP) == 17
    assert emu.read_register(X64Register.RFLAGS) == 18


def test_register_read_write(emu):
    handler = X64GdbStubHandler(emu)
    assert handler.write_reg(16, 0x10020)
    assert handler.read_reg(16) == 0x10020
    assert emu.read_instruction_pointer() == 0x10020


@pytest.mark.parametrize("regno", [-1, len(GDB_REGISTERS), 1000])
def test_unknown_register_numbers(emu, regno):
    handler = X64GdbStubHandler(emu)
    assert handler.read_reg(regno) == 0
    assert handler.write_reg(regno, 5) is True


def test_register_failures(emu):
    handler = X64GdbStubHandler(emu)
    emu.register_error = True
    assert handler.read_reg(0) == 0
    assert handler.write_reg(0, 1) is False


def test_memory_access(emu):
    handler = X64GdbStubHandler(emu)
    assert handler.write_mem(0x10100, b"abc") is True
    assert handler.read_mem(0x10100, 3) == b"abc"
    assert handler.read_mem(0x90000, 3) is None
    assert handler.write_mem(0x90000, b"x") is False


def test_breakpoint_lifecycle(emu):
    handler = X64GdbStubHandler(emu)
    assert handler.set_bp(BreakpointType.HARDWARE_WRITE, 0x10200, 4)
    (address, size, filter, callback), = emu.hooks.values()
    assert (address, size, filter) == (0x10200, 4, MemoryPermission.WRITE)

    callback(0x10200, 4, 0, MemoryPermission.WRITE)
    assert emu.stops == 1

    assert handler.del_bp(BreakpointType.HARDWARE_WRITE, 0x10200, 4)
    assert emu.hooks == {}
    assert handler.del_bp(BreakpointType.HARDWARE_WRITE, 0x10200, 4) is False


def test_setting_same_breakpoint_replaces_hook(emu):
    handler = X64GdbStubHandler(emu)
    assert handler.set_bp(BreakpointType.SOFTWARE, 0x10000, 1)
    assert handler.set_bp(BreakpointType.SOFTWARE, 0x10000, 1)
    assert len(emu.hooks) == 1
    assert handler.set_bp(BreakpointType.HARDWARE_READ, 0x10000, 1)
    assert len(emu.hooks) == 2


def test_cont_runs_from_ip(emu):
    handler = X64GdbStubHandler(emu)
    emu.write_register(X64Register.RIP, 0x10010)
    assert handler.cont() == GdbAction.RESUME
    assert emu.started == [(0x10010, 0, None, 0)]


def test_stepi_runs_one_instruction(emu):
    handler = X64GdbStubHandler(emu)
    emu.write_register(X64Register.RIP, 0x10010)
    assert handler.stepi() == GdbAction.RESUME
    assert emu.started == [(0x10010, 0, None, 1)]


def test_cont_prints_errors(emu, capsys):
    handler = X64GdbStubHandler(emu)
    emu.start_error = "emulation broke"
    assert handler.cont() == GdbAction.RESUME
    assert "emulation broke" in capsys.readouterr().out


def test_breakpoint_key_equality():
    first = BreakpointKey(1, 2, BreakpointType.SOFTWARE)
    assert first == BreakpointKey(1, 2, BreakpointType.SOFTWARE)
    assert len({first, BreakpointKey(1, 2, BreakpointType.SOFTWARE)}) == 1
    assert first != BreakpointKey(1, 2, BreakpointType.HARDWARE_EXEC)