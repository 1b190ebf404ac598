"""Element segments of a wasm module."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Hashable, Iterator, Sequence

from .arena import Arena, Id
from .encoding import Encoder, ValType
from .globals import InitExpr

_EXPRS_BIT = 0x04
_ELEM_KIND_FUNCREF = 0x00
_REF_FUNC = 0xD2
_REF_NULL = 0xD0
_END = 0x0B


class ElementKind(enum.Enum):
    """Element segments that are not active; the value is the flags byte."""

    PASSIVE = 0x01
    DECLARED = 0x03


@dataclass(frozen=True)
class ActiveElements:
    """An active segment: copied into `table` at `offset` at instantiation."""

    table: Hashable
    offset: InitExpr

    def __post_init__(self) -> None:
        if not isinstance(self.offset, InitExpr):
            raise TypeError(f"expected an InitExpr offset, got {type(self.offset).__name__}")


@dataclass
class Element:
    """An element segment of function references; None members are null."""

    id: Id
    kind: ElementKind | ActiveElements
    ty: ValType
    members: list = field(default_factory=list)
    name: str | None = None

    @property
    def is_active(self) -> bool:
        return isinstance(self.kind, ActiveElements)

    def on_delete(self) -> None:
        self.members = []


class ModuleElements:
    """The element segments of a module, in insertion order."""

    def __init__(self) -> None:
        self._arena: Arena[Element] = Arena()

    def get(self, id: Id) -> Element:
        """The segment with this id; KeyError if unknown or deleted."""
        return self._arena.get(id)

    def delete(self, id: Id) -> None:
        """Remove a segment; references to it are the caller's concern."""
        self._arena.delete(id)

    def __iter__(self) -> Iterator[Element]:
        return (element for _, element in self._arena.items())

    def __len__(self) -> int:
        return len(self._arena)

    def add(
        self,
        kind: ElementKind | ActiveElements,
        ty: ValType,
        members: Sequence[Hashable | None],
    ) -> Id:
        """Add a segment and return its id."""
        if not isinstance(kind, (ElementKind, ActiveElements)):
            raise TypeError(f"expected ElementKind or ActiveElements, got {type(kind).__name__}")
        items = list(members)
        return self._arena.alloc_with_id(lambda id: Element(id, kind, ty, items))

    def emit(self, indices: Any) -> bytes | None:
        """Contents of the element section, or None when there are no segments.

        Each segment is given its index through `indices.push_element`.
        """
        segments = list(self._arena.items())
        if not segments:
            return None
        encoder = Encoder()
        encoder.usize(len(segments))
        for element_id, element in segments:
            indices.push_element(element_id)
            exprs = any(member is None for member in element.members)
            exprs_bit = _EXPRS_BIT if exprs else 0
            encode_ty = True
            if isinstance(element.kind, ActiveElements):
                table_index = indices.get_table_index(element.kind.table)
                if table_index == 0:
                    encoder.byte(0x00 | exprs_bit)
                    element.kind.offset.emit(encoder, indices)
                    encode_ty = False
                else:
                    encoder.byte(0x02 | exprs_bit)
                    encoder.u32(table_index)
                    element.kind.offset.emit(encoder, indices)
            else:
                encoder.byte(element.kind.value | exprs_bit)
            if encode_ty:
                if exprs:
                    element.ty.emit(encoder)
                else:
                    encoder.byte(_ELEM_KIND_FUNCREF)

            encoder.usize(len(element.members))
            for func in element.members:
                if func is None:
                    encoder.byte(_REF_NULL)
                    element.ty.emit(encoder)
                    encoder.byte(_END)
                    continue
                index = indices.get_func_index(func)
                if exprs:
                    encoder.byte(_REF_FUNC)
                    encoder.u32(index)
                    encoder.byte(_END)
                else:
                    encoder.u32(index)
        return encoder.getvalue()