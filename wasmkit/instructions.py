"""Instruction IR for function bodies: sequences, traversal and binary emission."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Hashable, Iterator, Mapping, MutableSequence, Protocol, Sequence

from .encoding import BinaryOp, Encoder, UnaryOp, ValType, Value

_MULTI_MEMORY_FLAG = 1 << 6
_I32_MAX = (1 << 31) - 1


class _Indices(Protocol):
    """Maps item ids to their final indices in the emitted module."""

    def get_func_index(self, id: Hashable) -> int: ...

    def get_table_index(self, id: Hashable) -> int: ...

    def get_memory_index(self, id: Hashable) -> int: ...

    def get_global_index(self, id: Hashable) -> int: ...

    def get_type_index(self, id: Hashable) -> int: ...

    def get_data_index(self, id: Hashable) -> int: ...

    def get_element_index(self, id: Hashable) -> int: ...


class BlockKind(enum.Enum):
    """The kind of construct an instruction sequence belongs to."""

    BLOCK = "block"
    LOOP = "loop"
    IF = "if"
    ELSE = "else"
    FUNCTION_ENTRY = "function_entry"


_BLOCK_OPCODES = {BlockKind.BLOCK: 0x02, BlockKind.LOOP: 0x03, BlockKind.IF: 0x04}


@dataclass(frozen=True)
class MemArg:
    """Alignment (a power of two, in bytes) and static offset of a memory access."""

    align: int
    offset: int

    def __post_init__(self) -> None:
        if self.align <= 0 or self.align & (self.align - 1):
            raise ValueError(f"alignment must be a positive power of two: {self.align}")
        if self.offset < 0:
            raise ValueError(f"negative offset: {self.offset}")


class ExtendedLoad(enum.Enum):
    """How a narrow load widens its value."""

    SIGN_EXTEND = "sign_extend"
    ZERO_EXTEND = "zero_extend"
    ZERO_EXTEND_ATOMIC = "zero_extend_atomic"


class LoadKind(enum.Enum):
    """The width and type of a load."""

    I32 = "i32"
    I64 = "i64"
    F32 = "f32"
    F64 = "f64"
    V128 = "v128"
    I32_8 = "i32_8"
    I32_16 = "i32_16"
    I64_8 = "i64_8"
    I64_16 = "i64_16"
    I64_32 = "i64_32"


class StoreKind(enum.Enum):
    """The width and type of a store."""

    I32 = "i32"
    I64 = "i64"
    F32 = "f32"
    F64 = "f64"
    V128 = "v128"
    I32_8 = "i32_8"
    I32_16 = "i32_16"
    I64_8 = "i64_8"
    I64_16 = "i64_16"
    I64_32 = "i64_32"


_FULL_LOADS: dict[tuple[LoadKind, bool], bytes] = {
    (LoadKind.I32, False): b"\x28",
    (LoadKind.I32, True): b"\xfe\x10",
    (LoadKind.I64, False): b"\x29",
    (LoadKind.I64, True): b"\xfe\x11",
    (LoadKind.F32, False): b"\x2a",
    (LoadKind.F64, False): b"\x2b",
    (LoadKind.V128, False): b"\xfd\x00",
}

_NARROW_LOADS: dict[tuple[LoadKind, ExtendedLoad], bytes] = {}
for _kind, (_s, _u, _atomic) in {
    LoadKind.I32_8: (0x2C, 0x2D, 0x12),
    LoadKind.I32_16: (0x2E, 0x2F, 0x13),
    LoadKind.I64_8: (0x30, 0x31, 0x14),
    LoadKind.I64_16: (0x32, 0x33, 0x15),
    LoadKind.I64_32: (0x34, 0x35, 0x16),
}.items():
    _NARROW_LOADS[(_kind, ExtendedLoad.SIGN_EXTEND)] = bytes([_s])
    _NARROW_LOADS[(_kind, ExtendedLoad.ZERO_EXTEND)] = bytes([_u])
    _NARROW_LOADS[(_kind, ExtendedLoad.ZERO_EXTEND_ATOMIC)] = bytes([0xFE, _atomic])

_STORES: dict[tuple[StoreKind, bool], bytes] = {
    (StoreKind.I32, False): b"\x36",
    (StoreKind.I32, True): b"\xfe\x17",
    (StoreKind.I64, False): b"\x37",
    (StoreKind.I64, True): b"\xfe\x18",
    (StoreKind.F32, False): b"\x38",
    (StoreKind.F64, False): b"\x39",
    (StoreKind.V128, False): b"\xfd\x0b",
    (StoreKind.I32_8, False): b"\x3a",
    (StoreKind.I32_8, True): b"\xfe\x19",
    (StoreKind.I32_16, False): b"\x3b",
    (StoreKind.I32_16, True): b"\xfe\x1a",
    (StoreKind.I64_8, False): b"\x3c",
    (StoreKind.I64_8, True): b"\xfe\x1b",
    (StoreKind.I64_16, False): b"\x3d",
    (StoreKind.I64_16, True): b"\xfe\x1c",
    (StoreKind.I64_32, False): b"\x3e",
    (StoreKind.I64_32, True): b"\xfe\x1d",
}


class AtomicOp(enum.Enum):
    """Read-modify-write operations; the value is the opcode of the i32 form."""

    ADD = 0x1E
    SUB = 0x25
    AND = 0x2C
    OR = 0x33
    XOR = 0x3A
    XCHG = 0x41


class AtomicWidth(enum.Enum):
    """Widths of atomic accesses; the value is the opcode offset from the i32 form."""

    I32 = 0
    I64 = 1
    I32_8 = 2
    I32_16 = 3
    I64_8 = 4
    I64_16 = 5
    I64_32 = 6


class LoadSimdKind(enum.Enum):
    """SIMD loads and lane stores: (opcode, takes a lane index)."""

    V128_LOAD8X8_S = (1, False)
    V128_LOAD8X8_U = (2, False)
    V128_LOAD16X4_S = (3, False)
    V128_LOAD16X4_U = (4, False)
    V128_LOAD32X2_S = (5, False)
    V128_LOAD32X2_U = (6, False)
    SPLAT8 = (7, False)
    SPLAT16 = (8, False)
    SPLAT32 = (9, False)
    SPLAT64 = (10, False)
    V128_LOAD32_ZERO = (92, False)
    V128_LOAD64_ZERO = (93, False)
    V128_LOAD8_LANE = (84, True)
    V128_LOAD16_LANE = (85, True)
    V128_LOAD32_LANE = (86, True)
    V128_LOAD64_LANE = (87, True)
    V128_STORE8_LANE = (88, True)
    V128_STORE16_LANE = (89, True)
    V128_STORE32_LANE = (90, True)
    V128_STORE64_LANE = (91, True)


@dataclass
class InstrSeq:
    """A sequence of (instruction, location) pairs with a block type.

    `ty` is None for an empty block type, a ValType for a single result,
    or a type id for a multi-value block.
    """

    id: int
    ty: Any = None
    instrs: list = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.instrs)


# --- instructions -----------------------------------------------------------


@dataclass
class Block:
    """A `block` whose body is the sequence `seq`."""

    seq: int

    def _encode(self, e: _Emitter) -> None:
        e.kinds.append(BlockKind.BLOCK)


@dataclass
class Loop:
    """A `loop` whose body is the sequence `seq`."""

    seq: int

    def _encode(self, e: _Emitter) -> None:
        e.kinds.append(BlockKind.LOOP)


@dataclass
class IfElse:
    """An `if` with consequent and alternative sequences."""

    consequent: int
    alternative: int

    def _encode(self, e: _Emitter) -> None:
        e.kinds.append(BlockKind.IF)


@dataclass
class Br:
    """Unconditional branch to `block`."""

    block: int

    def _encode(self, e: _Emitter) -> None:
        target = e.branch_target(self.block)
        e.encoder.byte(0x0C)
        e.encoder.u32(target)


@dataclass
class BrIf:
    """Conditional branch to `block`."""

    block: int

    def _encode(self, e: _Emitter) -> None:
        target = e.branch_target(self.block)
        e.encoder.byte(0x0D)
        e.encoder.u32(target)


@dataclass
class BrTable:
    """Indexed branch to one of `blocks`, else to `default`."""

    blocks: Sequence[int]
    default: int

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0x0E)
        e.encoder.usize(len(self.blocks))
        for block in self.blocks:
            e.encoder.u32(e.branch_target(block))
        e.encoder.u32(e.branch_target(self.default))


@dataclass
class Const:
    """A constant value."""

    value: Value

    def _encode(self, e: _Emitter) -> None:
        self.value.emit(e.encoder)


@dataclass
class Drop:
    """Discard the top of the stack."""

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0x1A)


@dataclass
class Return:
    """Return from the function."""

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0x0F)


@dataclass
class Unreachable:
    """Trap unconditionally."""

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0x00)


@dataclass
class Select:
    """Choose between two operands, optionally with an explicit type."""

    ty: ValType | None = None

    def _encode(self, e: _Emitter) -> None:
        if self.ty is None:
            e.encoder.byte(0x1B)
        else:
            e.encoder.byte(0x1C)
            e.encoder.byte(0x01)
            self.ty.emit(e.encoder)


@dataclass
class Call:
    """Direct call of `func`."""

    func: Hashable

    def _encode(self, e: _Emitter) -> None:
        idx = e.indices.get_func_index(self.func)
        e.encoder.byte(0x10)
        e.encoder.u32(idx)


@dataclass
class CallIndirect:
    """Indirect call through `table` with signature `ty`."""

    ty: Hashable
    table: Hashable

    def _encode(self, e: _Emitter) -> None:
        idx = e.indices.get_type_index(self.ty)
        table = e.indices.get_table_index(self.table)
        e.encoder.byte(0x11)
        e.encoder.u32(idx)
        e.encoder.u32(table)


@dataclass
class LocalGet:
    """Read a local."""

    local: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0x20)
        e.encoder.u32(e.local_indices[self.local])


@dataclass
class LocalSet:
    """Write a local."""

    local: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0x21)
        e.encoder.u32(e.local_indices[self.local])


@dataclass
class LocalTee:
    """Write a local and keep the value on the stack."""

    local: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0x22)
        e.encoder.u32(e.local_indices[self.local])


@dataclass
class GlobalGet:
    """Read a global."""

    global_id: Hashable

    def _encode(self, e: _Emitter) -> None:
        idx = e.indices.get_global_index(self.global_id)
        e.encoder.byte(0x23)
        e.encoder.u32(idx)


@dataclass
class GlobalSet:
    """Write a global."""

    global_id: Hashable

    def _encode(self, e: _Emitter) -> None:
        idx = e.indices.get_global_index(self.global_id)
        e.encoder.byte(0x24)
        e.encoder.u32(idx)


@dataclass
class Binop:
    """A binary operator; `lane` is for lane-replacing operators."""

    op: BinaryOp
    lane: int | None = None

    def _encode(self, e: _Emitter) -> None:
        self.op.emit(e.encoder, self.lane)


@dataclass
class Unop:
    """A unary operator; `lane` is for lane-extracting operators."""

    op: UnaryOp
    lane: int | None = None

    def _encode(self, e: _Emitter) -> None:
        self.op.emit(e.encoder, self.lane)


@dataclass
class Load:
    """A memory load.

    Full-width i32/i64 loads use `atomic`; narrow loads say how they widen
    with `extend`, whose atomic variant makes them atomic.
    """

    memory: Hashable
    arg: MemArg
    kind: LoadKind
    atomic: bool = False
    extend: ExtendedLoad | None = None

    def __post_init__(self) -> None:
        self._opcode()

    def _opcode(self) -> bytes:
        if self.extend is not None:
            if self.atomic:
                raise ValueError("narrow loads express atomicity through `extend`")
            opcode = _NARROW_LOADS.get((self.kind, self.extend))
        else:
            opcode = _FULL_LOADS.get((self.kind, self.atomic))
        if opcode is None:
            raise ValueError(
                f"invalid load: kind={self.kind.name} atomic={self.atomic} extend={self.extend}"
            )
        return opcode

    def _encode(self, e: _Emitter) -> None:
        e.encoder.raw(self._opcode())
        e.memarg(self.memory, self.arg)


@dataclass
class Store:
    """A memory store."""

    memory: Hashable
    arg: MemArg
    kind: StoreKind
    atomic: bool = False

    def __post_init__(self) -> None:
        if (self.kind, self.atomic) not in _STORES:
            raise ValueError(f"invalid store: kind={self.kind.name} atomic={self.atomic}")

    def _encode(self, e: _Emitter) -> None:
        e.encoder.raw(_STORES[(self.kind, self.atomic)])
        e.memarg(self.memory, self.arg)


@dataclass
class AtomicRmw:
    """An atomic read-modify-write."""

    memory: Hashable
    arg: MemArg
    op: AtomicOp
    width: AtomicWidth

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0xFE)
        e.encoder.byte(self.op.value + self.width.value)
        e.memarg(self.memory, self.arg)


@dataclass
class Cmpxchg:
    """An atomic compare-and-exchange."""

    memory: Hashable
    arg: MemArg
    width: AtomicWidth

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0xFE)
        e.encoder.byte(0x48 + self.width.value)
        e.memarg(self.memory, self.arg)


@dataclass
class AtomicNotify:
    """Wake waiters on an address."""

    memory: Hashable
    arg: MemArg

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0xFE)
        e.encoder.byte(0x00)
        e.memarg(self.memory, self.arg)


@dataclass
class AtomicWait:
    """Wait on a 32- or 64-bit address."""

    memory: Hashable
    arg: MemArg
    sixty_four: bool = False

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0xFE)
        e.encoder.byte(0x02 if self.sixty_four else 0x01)
        e.memarg(self.memory, self.arg)


@dataclass
class AtomicFence:
    """A memory fence."""

    def _encode(self, e: _Emitter) -> None:
        e.encoder.raw(b"\xfe\x03\x00")


@dataclass
class MemorySize:
    """Current size of a memory in pages."""

    memory: Hashable

    def _encode(self, e: _Emitter) -> None:
        idx = e.indices.get_memory_index(self.memory)
        e.encoder.byte(0x3F)
        e.encoder.u32(idx)


@dataclass
class MemoryGrow:
    """Grow a memory."""

    memory: Hashable

    def _encode(self, e: _Emitter) -> None:
        idx = e.indices.get_memory_index(self.memory)
        e.encoder.byte(0x40)
        e.encoder.u32(idx)


@dataclass
class MemoryInit:
    """Copy a data segment into memory."""

    memory: Hashable
    data: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.raw(b"\xfc\x08")
        e.encoder.u32(e.indices.get_data_index(self.data))
        e.encoder.u32(e.memory_zero(self.memory))


@dataclass
class DataDrop:
    """Release a data segment."""

    data: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.raw(b"\xfc\x09")
        e.encoder.u32(e.indices.get_data_index(self.data))


@dataclass
class MemoryCopy:
    """Copy between memories."""

    src: Hashable
    dst: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.raw(b"\xfc\x0a")
        e.encoder.u32(e.memory_zero(self.src))
        e.encoder.u32(e.memory_zero(self.dst))


@dataclass
class MemoryFill:
    """Fill a memory region with a byte."""

    memory: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.raw(b"\xfc\x0b")
        e.encoder.u32(e.memory_zero(self.memory))


def _table_instr(prefix: bytes, doc: str) -> type:
    @dataclass
    class _TableInstr:
        table: Hashable

        def _encode(self, e: _Emitter) -> None:
            e.encoder.raw(prefix)
            e.encoder.u32(e.indices.get_table_index(self.table))

    _TableInstr.__doc__ = doc
    return _TableInstr


@dataclass
class TableGet:
    """Read a table slot."""

    table: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0x25)
        e.encoder.u32(e.indices.get_table_index(self.table))


@dataclass
class TableSet:
    """Write a table slot."""

    table: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0x26)
        e.encoder.u32(e.indices.get_table_index(self.table))


@dataclass
class TableGrow:
    """Grow a table."""

    table: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.raw(b"\xfc\x0f")
        e.encoder.u32(e.indices.get_table_index(self.table))


@dataclass
class TableSize:
    """Current size of a table."""

    table: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.raw(b"\xfc\x10")
        e.encoder.u32(e.indices.get_table_index(self.table))


@dataclass
class TableFill:
    """Fill a table region."""

    table: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.raw(b"\xfc\x11")
        e.encoder.u32(e.indices.get_table_index(self.table))


@dataclass
class TableInit:
    """Copy an element segment into a table."""

    elem: Hashable
    table: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.raw(b"\xfc\x0c")
        e.encoder.u32(e.indices.get_element_index(self.elem))
        e.encoder.u32(e.indices.get_table_index(self.table))


@dataclass
class TableCopy:
    """Copy between tables."""

    src: Hashable
    dst: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.raw(b"\xfc\x0e")
        e.encoder.u32(e.indices.get_table_index(self.dst))
        e.encoder.u32(e.indices.get_table_index(self.src))


@dataclass
class ElemDrop:
    """Release an element segment."""

    elem: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.raw(b"\xfc\x0d")
        e.encoder.u32(e.indices.get_element_index(self.elem))


@dataclass
class RefNull:
    """A null reference of type `ty`."""

    ty: ValType

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0xD0)
        self.ty.emit(e.encoder)


@dataclass
class RefIsNull:
    """Test a reference for null."""

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0xD1)


@dataclass
class RefFunc:
    """A reference to `func`."""

    func: Hashable

    def _encode(self, e: _Emitter) -> None:
        e.encoder.byte(0xD2)
        e.encoder.u32(e.indices.get_func_index(self.func))


@dataclass
class V128Bitselect:
    """Bitwise select of two vectors."""

    def _encode(self, e: _Emitter) -> None:
        e.encoder.simd(0x52)


@dataclass
class I8x16Shuffle:
    """Shuffle the lanes of two vectors with 16 lane indices."""

    indices: bytes

    def __post_init__(self) -> None:
        self.indices = bytes(self.indices)
        if len(self.indices) != 16:
            raise ValueError(f"shuffle needs 16 lane indices, got {len(self.indices)}")

    def _encode(self, e: _Emitter) -> None:
        e.encoder.simd(13)
        e.encoder.raw(self.indices)


@dataclass
class I8x16Swizzle:
    """Select lanes of a vector by another vector."""

    def _encode(self, e: _Emitter) -> None:
        e.encoder.simd(14)


@dataclass
class LoadSimd:
    """A SIMD load or lane store; lane kinds need `lane`."""

    memory: Hashable
    arg: MemArg
    kind: LoadSimdKind
    lane: int | None = None

    def __post_init__(self) -> None:
        takes_lane = self.kind.value[1]
        if takes_lane and self.lane is None:
            raise ValueError(f"{self.kind.name} requires a lane index")
        if not takes_lane and self.lane is not None:
            raise ValueError(f"{self.kind.name} takes no lane index")

    def _encode(self, e: _Emitter) -> None:
        e.encoder.simd(self.kind.value[0])
        e.memarg(self.memory, self.arg)
        if self.lane is not None:
            e.encoder.byte(self.lane)


_CONST_INSTRS = (Const, GlobalGet, RefNull, RefFunc)


def _children(instr: Any) -> tuple:
    if isinstance(instr, (Block, Loop)):
        return (instr.seq,)
    if isinstance(instr, IfElse):
        return (instr.consequent, instr.alternative)
    return ()


# --- traversal ---------------------------------------------------------------


def walk(blocks: Sequence[InstrSeq], entry: int) -> Iterator[tuple]:
    """Traverse the sequences reachable from `entry` depth first, in order.

    Yields `(event, seq, instr, loc)` where event is "start", "instr" or
    "end"; `instr` and `loc` are None for "start" and "end". Nested
    sequences are visited right after the instruction that owns them.
    """
    seq = blocks[entry]
    yield ("start", seq, None, None)
    for instr, loc in seq.instrs:
        yield ("instr", seq, instr, loc)
        for child in _children(instr):
            yield from walk(blocks, child)
    yield ("end", seq, None, None)


class _Emitter:
    def __init__(
        self,
        indices: _Indices,
        local_indices: Mapping[Hashable, int],
        encoder: Encoder,
        offsets: MutableSequence | None,
    ) -> None:
        self.indices = indices
        self.local_indices = local_indices
        self.encoder = encoder
        self.offsets = offsets
        self.blocks: list[int] = []
        self.kinds: list[BlockKind] = [BlockKind.FUNCTION_ENTRY]

    def start(self, seq: InstrSeq) -> None:
        self.blocks.append(seq.id)
        opcode = _BLOCK_OPCODES.get(self.kinds[-1])
        if opcode is not None:
            self.encoder.byte(opcode)
            self.block_type(seq.ty)

    def end(self, seq: InstrSeq) -> None:
        self.blocks.pop()
        kind = self.kinds.pop()
        if kind is BlockKind.IF:
            self.kinds.append(BlockKind.ELSE)
            self.encoder.byte(0x05)
        else:
            self.encoder.byte(0x0B)

    def instr(self, instr: Any, loc: Any) -> None:
        if self.offsets is not None:
            self.offsets.append((loc, self.encoder.pos()))
        instr._encode(self)

    def branch_target(self, block: int) -> int:
        for depth, open_block in enumerate(reversed(self.blocks)):
            if open_block == block:
                return depth
        raise ValueError(f"attempt to branch to invalid block {block!r}")

    def block_type(self, ty: Any) -> None:
        if ty is None:
            self.encoder.byte(0x40)
        elif isinstance(ty, ValType):
            ty.emit(self.encoder)
        else:
            index = self.indices.get_type_index(ty)
            if index >= _I32_MAX:
                raise ValueError(f"type index too large for a block type: {index}")
            self.encoder.i32(index)

    def memarg(self, memory: Hashable, arg: MemArg) -> None:
        mem_index = self.indices.get_memory_index(memory)
        align_log2 = arg.align.bit_length() - 1
        if mem_index == 0:
            self.encoder.u32(align_log2)
            self.encoder.u32(arg.offset)
        else:
            if align_log2 >= _MULTI_MEMORY_FLAG:
                raise ValueError("alignment too large")
            self.encoder.u32(align_log2 | _MULTI_MEMORY_FLAG)
            self.encoder.u32(arg.offset)
            self.encoder.u32(mem_index)

    def memory_zero(self, memory: Hashable) -> int:
        idx = self.indices.get_memory_index(memory)
        if idx != 0:
            raise ValueError(f"instruction only supports memory 0, got memory {idx}")
        return idx


def emit_instructions(
    blocks: Sequence[InstrSeq],
    entry: int,
    indices: _Indices,
    local_indices: Mapping[Hashable, int],
    encoder: Encoder,
    offsets: MutableSequence | None = None,
) -> None:
    """Encode the body rooted at `entry`; record (loc, offset) pairs in `offsets`."""
    emitter = _Emitter(indices, local_indices, encoder, offsets)
    for event, seq, instr, loc in walk(blocks, entry):
        if event == "start":
            emitter.start(seq)
        elif event == "end":
            emitter.end(seq)
        else:
            emitter.instr(instr, loc)


class LocalFunction:
    """A function defined in the module: its type, arguments and body."""

    def __init__(self, ty: Hashable, args: Sequence[Hashable] = (), entry_ty: Any = None) -> None:
        self.ty = ty
        self.args = list(args)
        self.blocks: list[InstrSeq] = []
        self._entry = self.add_block(entry_ty)

    def add_block(self, ty: Any) -> int:
        """Create an empty instruction sequence and return its id."""
        seq_id = len(self.blocks)
        self.blocks.append(InstrSeq(seq_id, ty))
        return seq_id

    def entry_block(self) -> int:
        """Id of the function's entry sequence."""
        return self._entry

    def block(self, id: int) -> InstrSeq:
        """The sequence with the given id."""
        if not 0 <= id < len(self.blocks):
            raise KeyError(id)
        return self.blocks[id]

    def _walk(self) -> Iterator[tuple]:
        return walk(self.blocks, self._entry)

    def _instrs(self) -> Iterator[Any]:
        return (instr for event, _, instr, _ in self._walk() if event == "instr")

    def size(self) -> int:
        """Number of instructions in the body, nested sequences included."""
        return sum(len(seq) for event, seq, _, _ in self._walk() if event == "start")

    def is_const(self) -> bool:
        """Whether the entry sequence holds only constant instructions."""
        return all(isinstance(instr, _CONST_INSTRS) for instr, _ in self.block(self._entry).instrs)

    def used_data_segments(self) -> set:
        """Data segments referenced by `memory.init` or `data.drop`."""
        return {i.data for i in self._instrs() if isinstance(i, (MemoryInit, DataDrop))}

    def used_locals(self) -> set:
        """Locals read or written by the body."""
        return {i.local for i in self._instrs() if isinstance(i, (LocalGet, LocalSet, LocalTee))}

    def emit_locals(
        self, local_types: Mapping[Hashable, ValType], encoder: Encoder
    ) -> tuple[set, dict]:
        """Write the compact locals declaration.

        Returns the set of used locals and the index assigned to each local:
        arguments first, then the rest grouped by type.
        """
        used = self.used_locals()
        arg_set = set(self.args)
        groups: dict[ValType, list] = {}
        for local in sorted(used - arg_set):
            groups.setdefault(local_types[local], []).append(local)
        type_order = {ty: i for i, ty in enumerate(ValType)}
        ordered = sorted(groups.items(), key=lambda item: type_order[item[0]])

        local_map = {arg: i for i, arg in enumerate(self.args)}
        next_index = len(self.args)
        for _, locals_ in ordered:
            for local in locals_:
                local_map[local] = next_index
                next_index += 1

        encoder.usize(len(ordered))
        for ty, locals_ in ordered:
            encoder.usize(len(locals_))
            ty.emit(encoder)
        return used, local_map

    def emit_instructions(
        self,
        indices: _Indices,
        local_indices: Mapping[Hashable, int],
        encoder: Encoder,
        offsets: MutableSequence | None = None,
    ) -> None:
        """Encode this function's instructions."""
        emit_instructions(self.blocks, self._entry, indices, local_indices, encoder, offsets)