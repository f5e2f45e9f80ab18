"""Binary buffer serialization with optional write-position checks."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")
K = TypeVar("K")
V = TypeVar("V")

_MARKER_SIZE = 8
_COUNT_SIZE = 8
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SerializationError(RuntimeError):
    """Raised when a buffer cannot be read as requested."""


@runtime_checkable
class Serializable(Protocol):
    """An object that writes itself to and reads itself from a buffer."""

    def serialize(self, buffer: "BufferSerializer") -> None: ...

    def deserialize(self, buffer: "BufferDeserializer") -> None: ...


class BufferSerializer:
    """Appends little-endian binary data to an in-memory buffer.

    With ``checked`` set, every raw write is followed by the buffer offset it
    started at, so a checked reader can detect mismatched reads.
    """

    def __init__(self, checked: bool = False) -> None:
        self._buffer = bytearray()
        self._checked = checked

    def __len__(self) -> int:
        return len(self._buffer)

    def write_bytes(self, data: bytes) -> None:
        """Write raw bytes."""
        old_size = len(self._buffer)
        self._buffer += data
        if self._checked:
            self._buffer += old_size.to_bytes(_MARKER_SIZE, "little")

    def write_uint(self, value: int, size: int) -> None:
        """Write an unsigned integer of ``size`` bytes."""
        self.write_bytes(value.to_bytes(size, "little", signed=False))

    def write_int(self, value: int, size: int) -> None:
        """Write a signed integer of ``size`` bytes."""
        self.write_bytes(value.to_bytes(size, "little", signed=True))

    def write_bool(self, value: bool) -> None:
        """Write a boolean as one byte."""
        self.write_uint(1 if value else 0, 1)

    def write_object(self, obj: Serializable) -> None:
        """Let ``obj`` write itself."""
        if not isinstance(obj, Serializable):
            raise TypeError(f"{type(obj).__name__} is not serializable")
        obj.serialize(self)

    def write_optional(self, value: Optional[T], writer: Callable[["BufferSerializer", T], Any]) -> None:
        """Write a presence flag, then the value with ``writer`` if present."""
        self.write_bool(value is not None)
        if value is not None:
            writer(self, value)

    def write_sequence(self, items: Iterable[T], writer: Callable[["BufferSerializer", T], Any]) -> None:
        """Write an item count followed by every item."""
        items = list(items)
        self.write_uint(len(items), _COUNT_SIZE)
        for item in items:
            writer(self, item)

    def _write_units(self, encoded: bytes, unit_size: int) -> None:
        self.write_uint(len(encoded) // unit_size, _COUNT_SIZE)
        if self._checked:
            for offset in range(0, len(encoded), unit_size):
                self.write_bytes(encoded[offset : offset + unit_size])
        elif encoded:
            self.write_bytes(encoded)

    def write_string(self, text: str) -> None:
        """Write a UTF-8 string prefixed with its byte count."""
        self._write_units(text.encode("utf-8"), 1)

    def write_u16string(self, text: str) -> None:
        """Write a UTF-16 string prefixed with its code unit count."""
        self._write_units(text.encode("utf-16-le"), 2)

    def write_mapping(
        self,
        mapping: Mapping[K, V],
        key_writer: Callable[["BufferSerializer", K], Any],
        value_writer: Callable[["BufferSerializer", V], Any],
    ) -> None:
        """Write an entry count followed by each key and value in iteration order."""
        self.write_uint(len(mapping), _COUNT_SIZE)
        for key, value in mapping.items():
            key_writer(self, key)
            value_writer(self, value)

    def getvalue(self) -> bytes:
        """Return the data written so far."""
        return bytes(self._buffer)


class BufferDeserializer:
    """Reads little-endian binary data written by :class:`BufferSerializer`."""

    def __init__(self, data: bytes, checked: bool = False) -> None:
        self._data = bytes(data)
        self._offset = 0
        self._checked = checked

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def remaining_size(self) -> int:
        return len(self._data) - self._offset

    def read_bytes(self, length: int) -> bytes:
        """Read ``length`` raw bytes."""
        if length < 0:
            raise ValueError("length must not be negative")
        start = self._offset
        end = start + length
        if end > len(self._data):
            raise SerializationError("Out of bounds read from byte buffer")
        result = self._data[start:end]
        self._offset = end

        if self._checked:
            marker_end = self._offset + _MARKER_SIZE
            if marker_end > len(self._data):
                raise SerializationError("Out of bounds read from byte buffer")
            marker = int.from_bytes(self._data[self._offset : marker_end], "little")
            if marker != start:
                raise SerializationError("Reading from serialized buffer mismatches written data!")
            self._offset = marker_end

        return result

    def read_uint(self, size: int) -> int:
        """Read an unsigned integer of ``size`` bytes."""
        return int.from_bytes(self.read_bytes(size), "little", signed=False)

    def read_int(self, size: int) -> int:
        """Read a signed integer of ``size`` bytes."""
        return int.from_bytes(self.read_bytes(size), "little", signed=True)

    def read_bool(self) -> bool:
        """Read a one-byte boolean."""
        return self.read_uint(1) != 0

    def read_object(self, factory: Callable[[], T]) -> T:
        """Create an object with ``factory`` and let it read itself."""
        obj = factory()
        if not isinstance(obj, Serializable):
            raise TypeError(f"{type(obj).__name__} is not serializable")
        obj.deserialize(self)
        return obj

    def read_optional(self, reader: Callable[["BufferDeserializer"], T]) -> Optional[T]:
        """Read a presence flag and, if set, a value with ``reader``."""
        if self.read_bool():
            return reader(self)
        return None

    def read_sequence(self, reader: Callable[["BufferDeserializer"], T]) -> list[T]:
        """Read an item count followed by that many items."""
        count = self.read_uint(_COUNT_SIZE)
        return [reader(self) for _ in range(count)]

    def _read_units(self, unit_size: int) -> bytes:
        count = self.read_uint(_COUNT_SIZE)
        if self._checked:
            return b"".join(self.read_bytes(unit_size) for _ in range(count))
        return self.read_bytes(count * unit_size) if count else b""

    def read_string(self) -> str:
        """Read a UTF-8 string prefixed with its byte count."""
        return self._read_units(1).decode("utf-8")

    def read_u16string(self) -> str:
        """Read a UTF-16 string prefixed with its code unit count."""
        return self._read_units(2).decode("utf-16-le")

    def read_mapping(
        self,
        key_reader: Callable[["BufferDeserializer"], K],
        value_reader: Callable[["BufferDeserializer"], V],
    ) -> dict[K, V]:
        """Read an entry count followed by that many keys and values."""
        count = self.read_uint(_COUNT_SIZE)
        result: dict[K, V] = {}
        for _ in range(count):
            key = key_reader(self)
            result[key] = value_reader(self)
        return result

    def remaining_data(self) -> bytes:
        """Read and return everything not yet consumed."""
        return self.read_bytes(self.remaining_size)


def write_time_point(buffer: BufferSerializer, value: datetime) -> None:
    """Write a wall-clock time as signed nanoseconds since the Unix epoch; naive times count as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    nanoseconds = ((value - _EPOCH) // timedelta(microseconds=1)) * 1000
    buffer.write_int(nanoseconds, 8)


def read_time_point(buffer: BufferDeserializer) -> datetime:
    """Read a time written by :func:`write_time_point` as an aware UTC datetime."""
    nanoseconds = buffer.read_int(8)
    return _EPOCH + timedelta(microseconds=nanoseconds // 1000)


def write_path(buffer: BufferSerializer, path: "str | Path") -> None:
    """Write a filesystem path as a UTF-16 string."""
    buffer.write_u16string(str(path))


def read_path(buffer: BufferDeserializer) -> Path:
    """Read a path written by :func:`write_path`."""
    return Path(buffer.read_u16string())