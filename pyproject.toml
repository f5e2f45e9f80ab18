[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "emucore"
version = "0.1.0"
description = "Building blocks for a 64-bit CPU emulator: memory region bookkeeping, binary serialization, hook interfaces, a GDB stub handler and a coverage-guided fuzzing loop."
requires-python = ">=3.10"
dependencies = []
keywords = ["emulator", "x64", "fuzzing", "memory-manager", "serialization", "gdb"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
    "Topic :: Software Development :: Testing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["emucore"]

[tool.pytest.ini_options]
addopts = "-ra"
