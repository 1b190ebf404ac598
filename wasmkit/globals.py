"""Globals of a wasm module and constant initializer expressions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Hashable, Iterator

from .arena import Arena, Id
from .encoding import Encoder, ValType, Value

_GLOBAL_GET = 0x23
_END = 0x0B


@dataclass(frozen=True)
class InitExpr:
    """A constant expression: either a constant value or a global's value."""

    value: Value | None = None
    global_id: Hashable | None = None

    def __post_init__(self) -> None:
        if (self.value is None) == (self.global_id is None):
            raise ValueError("an init expression holds exactly one of a value or a global")

    @staticmethod
    def const(value: Value) -> InitExpr:
        """An expression producing a constant."""
        return InitExpr(value=value)

    @staticmethod
    def global_get(global_id: Hashable) -> InitExpr:
        """An expression reading a global."""
        return InitExpr(global_id=global_id)

    def emit(self, encoder: Encoder, indices: Any) -> None:
        """Write the expression followed by `end`."""
        if self.value is not None:
            self.value.emit(encoder)
        else:
            index = indices.get_global_index(self.global_id)
            encoder.byte(_GLOBAL_GET)
            encoder.u32(index)
        encoder.byte(_END)


@dataclass
class Global:
    """A wasm global: imported (with `import_id`) or local (with `init`)."""

    id: Id
    ty: ValType
    mutable: bool
    import_id: Hashable | None = None
    init: InitExpr | None = None
    name: str | None = None

    @property
    def is_import(self) -> bool:
        return self.init is None

    def _emit_type(self, encoder: Encoder) -> None:
        self.ty.emit(encoder)
        encoder.byte(int(self.mutable))


class ModuleGlobals:
    """The globals of a module, in insertion order."""

    def __init__(self) -> None:
        self._arena: Arena[Global] = Arena()

    def add_import(self, ty: ValType, mutable: bool, import_id: Hashable) -> Id:
        """Add a global brought in by the import `import_id`."""
        return self._arena.alloc_with_id(
            lambda id: Global(id, ty, mutable, import_id=import_id)
        )

    def add_local(self, ty: ValType, mutable: bool, init: InitExpr) -> Id:
        """Add a global defined in this module with initializer `init`."""
        if not isinstance(init, InitExpr):
            raise TypeError(f"expected an InitExpr, got {type(init).__name__}")
        return self._arena.alloc_with_id(lambda id: Global(id, ty, mutable, init=init))

    def get(self, id: Id) -> Global:
        """The global with this id; KeyError if unknown or deleted."""
        return self._arena.get(id)

    def delete(self, id: Id) -> None:
        """Remove a global; references to it are the caller's concern."""
        self._arena.delete(id)

    def __iter__(self) -> Iterator[Global]:
        return (g for _, g in self._arena.items())

    def __len__(self) -> int:
        return len(self._arena)

    def emit(self, indices: Any) -> bytes | None:
        """Contents of the global section, or None when there are no local globals.

        Each local global is given its index through `indices.push_global`.
        """
        local = [g for g in self if not g.is_import]
        if not local:
            return None
        encoder = Encoder()
        encoder.usize(len(local))
        for global_ in local:
            indices.push_global(global_.id)
            global_._emit_type(encoder)
            global_.init.emit(encoder, indices)
        return encoder.getvalue()