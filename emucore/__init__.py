"""Building blocks for a 64-bit CPU emulator: memory bookkeeping, serialization, hooks, a GDB stub handler and a fuzzing loop."""

__version__ = "0.1.0"

__all__ = [
    "address_utils",
    "memory",
    "serialization",
    "memory_manager",
    "emulator",
    "x64",
    "gdbstub",
    "random_generator",
    "input_generator",
    "fuzzer",
    "logger",
]