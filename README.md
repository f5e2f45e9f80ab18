# emucore

Building blocks for a 64-bit CPU emulator in Python. The package has no
dependencies outside the standard library.

## What is in the package

- `emucore.address_utils` has range checks and alignment helpers that work on
  64-bit addresses. Examples are `page_align_up`, `align_down` and
  `regions_with_length_intersect`.
- `emucore.memory` has the `MemoryPermission` flag enum (`NONE`, `READ`,
  `WRITE`, `EXEC`, `READ_WRITE`, `ALL`). It also has the `BasicMemoryRegion`
  and `MemoryRegion` dataclasses.
- `emucore.serialization` has `BufferSerializer` and `BufferDeserializer`,
  which use a little-endian binary format. They handle:
  - integers, booleans and raw bytes
  - UTF-8 and UTF-16 strings
  - optionals, sequences and mappings
  - objects that follow the `Serializable` protocol

  When `checked=True` is passed to both, every raw write carries its offset,
  and a read that does not match raises `SerializationError`. The module also
  has `write_time_point`/`read_time_point` (stored as nanoseconds since the
  Unix epoch, read back with microsecond precision) and
  `write_path`/`read_path`.
- `emucore.memory_manager` has `MemoryManager`, an abstract base class that
  keeps track of reserved, committed and MMIO regions. Its operations are:
  - `allocate_memory`, `allocate_memory_anywhere`, `allocate_mmio`
  - `commit_memory`, `decommit_memory`
  - `protect_memory`, `release_memory`
  - `find_free_allocation_base`, `get_region_info`
  - `serialize_memory_state`, `deserialize_memory_state`

  Operations that cross a reservation boundary raise `MemoryManagerError`.
- `emucore.emulator` has the abstract `Emulator` class, which adds the
  following on top of `MemoryManager`:
  - the run interface: `start`, `stop`
  - register access
  - hook methods for memory access, violations, instructions, interrupts,
    basic blocks and block edges
  - `serialize`/`deserialize`
  - `save_snapshot`/`restore_snapshot`

  `ScopedHook` deletes a hook when `remove()` is called or when its `with`
  block ends.
- `emucore.x64` has:
  - `X64Register`, the register numbering
  - `X64HookableInstructions`
  - `X64Emulator`, which adds `read_register`/`write_register`,
    `read_instruction_pointer`, `read_stack_pointer`, `read_stack`,
    `push_stack`, `pop_stack` and `start_from_ip`
- `emucore.gdbstub` has:
  - `GdbAction`, `BreakpointType` and `BreakpointKey`
  - `map_breakpoint_type`
  - the `GdbStubHandler` interface
  - `X64GdbStubHandler`, which serves register, memory and breakpoint
    requests from an `X64Emulator`
- `emucore.random_generator`, `emucore.input_generator` and `emucore.fuzzer`
  make up a multi-threaded, coverage-guided fuzzing loop:
  - `RandomGenerator` takes an optional seed and is built on a Mersenne
    Twister.
  - `InputGenerator` keeps the 20 best-scoring inputs and mutates them with
    `mutate_input`.
  - `run(handler, concurrency)` drives the worker threads.
- `emucore.logger` has `Logger`, which prints printf-style formatted messages
  in ANSI colours (`Color`) to stdout or to a stream you give it. Output can
  be switched off with `disable_output(True)`.

## What the package does not do

- **No CPU.** `MemoryManager`, `Emulator` and `X64Emulator` are abstract, so
  nothing executes instructions until you subclass them and supply a backend.
  - A `MemoryManager` subclass implements `map_memory`, `unmap_memory`,
    `map_mmio`, `apply_memory_protection`, `read_memory`, `try_read_memory`
    and `write_memory`.
  - An `Emulator` subclass also implements `start`, `stop`,
    `read_raw_register`, `write_raw_register`, `save_registers`,
    `restore_registers`, the hook methods, `delete_hook`, `has_violation`,
    `serialize_state` and `deserialize_state`.
- **No debugger server.** `X64GdbStubHandler` answers individual requests,
  but the package has no network server that speaks the GDB remote protocol.
- **No operating-system emulation and no command-line program.** The package
  is a library only.

## Installation

```
pip install .
```

## Memory bookkeeping

```python
from emucore.memory import MemoryPermission
from emucore.memory_manager import MemoryManager

class FlatMemory(MemoryManager):
    ...  # back the mapped ranges, e.g. with bytearrays

mem = FlatMemory()
base = mem.allocate_memory_anywhere(0x2000, MemoryPermission.READ_WRITE, False)
old = mem.protect_memory(base, 0x1000, MemoryPermission.READ)
info = mem.get_region_info(base)   # RegionInfo with is_reserved / is_committed
mem.release_memory(base, 0)        # a size of 0 releases the whole reservation
```

Return values of these operations:

- `allocate_memory_anywhere` returns the base address, or `None` if no free
  range exists.
- `protect_memory` returns the previous permissions of the first affected
  committed range, or `None` if the address is not reserved.
- `allocate_memory`, `commit_memory`, `decommit_memory` and `release_memory`
  return `False` when the address is not usable.

## Serialization

```python
from emucore.serialization import BufferSerializer, BufferDeserializer

out = BufferSerializer()
out.write_uint(42, 8)
out.write_string("hello")
out.write_optional(None, lambda b, v: b.write_int(v, 4))

inp = BufferDeserializer(out.getvalue())
assert inp.read_uint(8) == 42
assert inp.read_string() == "hello"
assert inp.read_optional(lambda b: b.read_int(4)) is None
```

## Fuzzing

1. Subclass `emucore.fuzzer.Executer` and implement
   `execute(data, coverage_handler)`. It should call `coverage_handler` once
   for each newly covered address and return an `ExecutionResult`.
2. Subclass `emucore.fuzzer.FuzzingHandler` and implement `make_executer()`.
   `run` calls it once per worker thread. You can also override `stop()`.
3. Call `emucore.fuzzer.run(handler, concurrency)`. If `concurrency` is
   `None`, the CPU count is used.

While it runs, `run` prints executions per second, the best score and the
average score once a second. It stops in any of these cases:

- an execution returns `ExecutionResult.ERROR`, in which case it prints
  `Found error!`
- `stop()` returns true
- a worker raises, in which case the exception is raised again from `run`

## Running the tests

```
pip install .[test]
pytest
```