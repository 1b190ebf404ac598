"""Data segments of a wasm module."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Hashable, Iterator

from .arena import Arena, Id
from .encoding import Encoder, ValType, Value
from .globals import InitExpr

_U32_MAX = (1 << 32) - 1

_PASSIVE = 0x01
_ACTIVE_MEMORY_ZERO = 0x00
_ACTIVE_EXPLICIT_MEMORY = 0x02


@dataclass(frozen=True)
class ActiveData:
    """Where an active segment is copied at instantiation.

    The location is either an absolute address `offset` or the value of the
    i32 global `global_id`; exactly one of them is given.
    """

    memory: Hashable
    offset: int | None = None
    global_id: Hashable | None = None

    def __post_init__(self) -> None:
        if (self.offset is None) == (self.global_id is None):
            raise ValueError("an active segment has exactly one of an offset or a global")
        if self.offset is not None and not 0 <= self.offset <= _U32_MAX:
            raise ValueError(f"offset out of u32 range: {self.offset}")

    def init_expr(self) -> InitExpr:
        """The constant expression that computes this segment's address."""
        if self.offset is None:
            return InitExpr.global_get(self.global_id)
        signed = self.offset - (1 << 32) if self.offset >= 1 << 31 else self.offset
        return InitExpr.const(Value(ValType.I32, signed))


@dataclass
class Data:
    """A data segment: passive when `kind` is None, else active."""

    id: Id
    kind: ActiveData | None
    value: bytes
    name: str | None = None

    def is_passive(self) -> bool:
        """Whether this segment is passive."""
        return self.kind is None

    def on_delete(self) -> None:
        self.value = b""


class ModuleData:
    """The data segments of a module, in insertion order."""

    def __init__(self) -> None:
        self._arena: Arena[Data] = Arena()

    def get(self, id: Id) -> Data:
        """The segment with this id; KeyError if unknown or deleted."""
        return self._arena.get(id)

    def delete(self, id: Id) -> None:
        """Remove a segment; `memory.init` and `data.drop` users are the caller's concern."""
        self._arena.delete(id)

    def __iter__(self) -> Iterator[Data]:
        return (data for _, data in self._arena.items())

    def __len__(self) -> int:
        return len(self._arena)

    def add(self, kind: ActiveData | None, value: bytes) -> Id:
        """Add a segment (passive when `kind` is None) and return its id."""
        if kind is not None and not isinstance(kind, ActiveData):
            raise TypeError(f"expected ActiveData or None, got {type(kind).__name__}")
        payload = bytes(value)
        return self._arena.alloc_with_id(lambda id: Data(id, kind, payload))

    def emit_data_count(self, indices: Any, segments_used: bool) -> bytes | None:
        """Assign data indices and return the data-count section contents.

        Every segment gets its index through `indices.set_data_index`. The
        section is only needed when some segment is passive or when function
        bodies use data segments (`segments_used`); otherwise None.
        """
        segments = list(self)
        if not segments:
            return None
        for index, data in enumerate(segments):
            indices.set_data_index(data.id, index)
        if not (segments_used or any(d.is_passive() for d in segments)):
            return None
        encoder = Encoder()
        encoder.usize(len(segments))
        return encoder.getvalue()

    def emit(self, indices: Any) -> bytes | None:
        """Contents of the data section, or None when there are no segments."""
        segments = list(self)
        if not segments:
            return None
        encoder = Encoder()
        encoder.usize(len(segments))
        for data in segments:
            if data.kind is None:
                encoder.byte(_PASSIVE)
            else:
                memory_index = indices.get_memory_index(data.kind.memory)
                if memory_index == 0:
                    encoder.byte(_ACTIVE_MEMORY_ZERO)
                else:
                    encoder.byte(_ACTIVE_EXPLICIT_MEMORY)
                    encoder.u32(memory_index)
                data.kind.init_expr().emit(encoder, indices)
            encoder.blob(data.value)
        return encoder.getvalue()