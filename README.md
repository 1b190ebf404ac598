# wasmkit

wasmkit holds parts of a WebAssembly module as Python objects and writes
them out in the WebAssembly binary format. It covers functions and their
instruction bodies, globals, data segments, element segments and custom
sections.

## Installation

```
pip install wasmkit
```

To run the test suite, install the test extra and run pytest:

```
pip install "wasmkit[test]"
pytest
```

## Layout

- `wasmkit.encoding`: `Encoder` writes bytes, LEB128 integers (`u32`, `i32`,
  `i64`, `usize`), length-prefixed byte strings (`blob`) and names (`string`).
  `ValType`, `Value`, `BinaryOp` and `UnaryOp` each write their own encoding.
  Lane operators take a `lane` argument.
- `wasmkit.instructions`: the instruction classes (`Block`, `Loop`, `IfElse`,
  `Br`, `BrIf`, `BrTable`, `Const`, `Call`, `LocalGet`, `Load`, `Store`,
  `AtomicRmw`, `LoadSimd`, the table and memory instructions, and others). It
  also has `InstrSeq` and `walk`, which visits nested sequences depth first.
  `LocalFunction` holds a function's type, arguments and blocks. It can report
  the body's `size`, the data segments and locals the body uses, and whether
  the entry block `is_const`. Its `emit_locals` and `emit_instructions` write
  the body.
- `wasmkit.arena`: `Arena` and `Id`. Items are kept in allocation order. A
  deleted item keeps its slot, so other ids stay valid, and its `on_delete`
  hook is called.
- `wasmkit.custom`: `CustomSection` is the abstract base. `RawCustomSection`
  holds a name and unparsed bytes. `ModuleCustomSections` stores sections and
  looks them up by id or by type.
- `wasmkit.globals`: `InitExpr` is a constant or `global.get` expression.
  `Global` is a single global, and `ModuleGlobals` holds all of them.
- `wasmkit.data`: `ActiveData`, `Data` and `ModuleData`. `ModuleData` writes
  the data section and the data-count section.
- `wasmkit.elements`: `ElementKind`, `ActiveElements`, `Element` and
  `ModuleElements`.
- `wasmkit.functions`: `Function`, `ImportedFunction`, `ModuleFunctions` and
  `CodeSection`. `ModuleFunctions` writes the function section and the code
  section, with local functions ordered largest first. With
  `preserve_offsets`, it also records the code offset of every instruction
  that has a location.

## Index tables

The `emit` methods take an `indices` object that maps ids to their final
positions in the module. Which methods it needs depends on what is emitted:

- `get_func_index`, `get_table_index`, `get_memory_index`,
  `get_global_index`, `get_type_index`, `get_data_index` and
  `get_element_index` look up indices.
- `push_global`, `push_element`, `push_func` and `set_data_index` assign them.

Each `emit` method returns the contents of its section, without the section
id or size. It returns `None` when the section would be empty.

## Example

```python
from wasmkit.encoding import ValType, Value
from wasmkit.globals import InitExpr, ModuleGlobals


class Indices:
    def __init__(self):
        self.globals = {}

    def push_global(self, id):
        self.globals[id] = len(self.globals)

    def get_global_index(self, id):
        return self.globals[id]


globals_ = ModuleGlobals()
counter = globals_.add_local(ValType.I32, True, InitExpr.const(Value(ValType.I32, 0)))

assert globals_.emit(Indices()) == b"\x01\x7f\x01\x41\x00\x0b"
```

## What it does not do

- It has no exports, imports, types, tables or memories sections.
- It does not read or parse WebAssembly binaries.
- It does not put together a complete module file with the header and
  framed sections. The caller frames the section contents that `emit`
  returns.
- It has no command-line tool.