"""Functions of a wasm module: imported and locally defined."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Hashable, Iterator, Mapping

from .arena import Arena, Id
from .encoding import Encoder, ValType
from .instructions import LocalFunction


@dataclass(frozen=True)
class ImportedFunction:
    """A function brought in by an import, with its type signature."""

    import_id: Hashable
    ty: Hashable


@dataclass
class Function:
    """A wasm function, either imported or defined locally."""

    id: Id
    kind: ImportedFunction | LocalFunction
    name: str | None = None

    def ty(self) -> Hashable:
        """The id of this function's type."""
        return self.kind.ty

    @property
    def is_local(self) -> bool:
        return isinstance(self.kind, LocalFunction)

    def on_delete(self) -> None:
        self.name = None


@dataclass
class CodeSection:
    """The result of emitting the code section.

    `data` is the section contents (None without local functions).
    `code_transform` pairs each non-default instruction location with its
    offset in `data`. `local_indices` and `used_locals` are keyed by
    function id.
    """

    data: bytes | None
    code_transform: list = field(default_factory=list)
    local_indices: dict = field(default_factory=dict)
    used_locals: dict = field(default_factory=dict)


class ModuleFunctions:
    """The functions of a module, in insertion order."""

    def __init__(self) -> None:
        self._arena: Arena[Function] = Arena()

    def add_import(self, ty: Hashable, import_id: Hashable) -> Id:
        """Add a function brought in by the import `import_id`."""
        return self._arena.alloc_with_id(
            lambda id: Function(id, ImportedFunction(import_id, ty))
        )

    def add_local(self, func: LocalFunction, name: str | None = None) -> Id:
        """Add a locally defined function, optionally named."""
        if not isinstance(func, LocalFunction):
            raise TypeError(f"expected a LocalFunction, got {type(func).__name__}")
        return self._arena.alloc_with_id(lambda id: Function(id, func, name))

    def get(self, id: Id) -> Function:
        """The function with this id; KeyError if unknown or deleted."""
        return self._arena.get(id)

    def by_name(self, name: str) -> Id | None:
        """The id of the first function with this (debug) name, if any."""
        return next((id for id, f in self._arena.items() if f.name == name), None)

    def delete(self, id: Id) -> None:
        """Remove a function; calls, exports and table entries are the caller's concern."""
        self._arena.delete(id)

    def __iter__(self) -> Iterator[Function]:
        return (f for _, f in self._arena.items())

    def __len__(self) -> int:
        return len(self._arena)

    def iter_local(self) -> Iterator[tuple[Id, LocalFunction]]:
        """Locally defined functions with their ids."""
        for id, f in self._arena.items():
            if isinstance(f.kind, LocalFunction):
                yield id, f.kind

    def used_local_functions(self) -> list[tuple[Id, LocalFunction, int]]:
        """Local functions with their sizes, largest first, ties by id."""
        functions = [(id, local, local.size()) for id, local in self.iter_local()]
        functions.sort(key=lambda entry: (-entry[2], entry[0]))
        return functions

    def emit_function_section(self, indices: Any) -> bytes | None:
        """Contents of the function section, or None without local functions.

        Every local function is given its index through `indices.push_func`,
        in emission order.
        """
        functions = self.used_local_functions()
        if not functions:
            return None
        encoder = Encoder()
        encoder.usize(len(functions))
        for id, local, _ in functions:
            encoder.u32(indices.get_type_index(local.ty))
            indices.push_func(id)
        return encoder.getvalue()

    def emit(
        self,
        indices: Any,
        local_types: Mapping[Hashable, ValType],
        preserve_offsets: bool = False,
    ) -> CodeSection:
        """Emit the code section.

        With `preserve_offsets`, the offset of every instruction whose
        location is not None is recorded in the result's `code_transform`.
        """
        functions = self.used_local_functions()
        if not functions:
            return CodeSection(None)

        bodies = []
        for id, local, _ in functions:
            body = Encoder()
            offsets: list | None = [] if preserve_offsets else None
            used, local_map = local.emit_locals(local_types, body)
            local.emit_instructions(indices, local_map, body, offsets)
            bodies.append((id, body.getvalue(), used, local_map, offsets))

        result = CodeSection(None)
        encoder = Encoder()
        encoder.usize(len(bodies))
        for id, wasm, used, local_map, offsets in bodies:
            encoder.usize(len(wasm))
            code_offset = encoder.pos()
            encoder.raw(wasm)
            if offsets is not None:
                result.code_transform.extend(
                    (loc, pos + code_offset) for loc, pos in offsets if loc is not None
                )
            result.local_indices[id] = local_map
            result.used_locals[id] = used
        result.data = encoder.getvalue()
        return result