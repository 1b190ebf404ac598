import pytest

from wasmkit.encoding import BinaryOp, Encoder, UnaryOp, ValType, Value
from wasmkit.instructions import (
    AtomicOp,
    AtomicRmw,
    AtomicWidth,
    Block,
    Br,
    BrIf,
    BrTable,
    Call,
    Cmpxchg,
    Const,
    DataDrop,
    Drop,
    ExtendedLoad,
    GlobalGet,
    I8x16Shuffle,
    IfElse,
    Load,
    LoadKind,
    LoadSimd,
    LoadSimdKind,
    LocalFunction,
    LocalGet,
    LocalSet,
    LocalTee,
    Loop,
    MemArg,
    MemoryInit,
    Select,
    Store,
    StoreKind,
    TableCopy,
    Binop,
    Unop,
    walk,
)


class FakeIndices:
    def __init__(self, funcs=None, tables=None, memories=None, globals_=None,
                 types=None, data=None, elements=None):
        self.funcs = funcs or {}
        self.tables = tables or {}
        self.memories = memories or {}
        self.globals = globals_ or {}
        self.types = types or {}
        self.data = data or {}
        self.elements = elements or {}

    def get_func_index(self, id):
        return self.funcs[id]

    def get_table_index(self, id):
        return self.tables[id]

    def get_memory_index(self, id):
        return self.memories[id]

    def get_global_index(self, id):
        return self.globals[id]

    def get_type_index(self, id):
        return self.types[id]

    def get_data_index(self, id):
        return self.data[id]

    def get_element_index(self, id):
        return self.elements[id]


def encode(func, indices=None, local_indices=None, offsets=None):
    enc = Encoder()
    func.emit_instructions(indices or FakeIndices(), local_indices or {}, enc, offsets)
    return enc.getvalue()


def entry_instrs(func):
    return func.block(func.entry_block()).instrs


def test_empty_function_is_just_end():
    assert encode(LocalFunction("t")) == b"\x0b"


def test_block_with_const_and_drop():
    f = LocalFunction("t")
    inner = f.add_block(None)
    f.block(inner).instrs.extend([(Const(Value(ValType.I32, 1)), None), (Drop(), None)])
    entry_instrs(f).append((Block(inner), None))
    assert encode(f) == bytes([0x02, 0x40, 0x41, 0x01, 0x1A, 0x0B, 0x0B])


def test_loop_opcode():
    f = LocalFunction("t")
    inner = f.add_block(None)
    entry_instrs(f).append((Loop(inner), None))
    assert encode(f) == bytes([0x03, 0x40, 0x0B, 0x0B])


def test_if_else_encoding():
    f = LocalFunction("t")
    cons = f.add_block(ValType.I32)
    alt = f.add_block(ValType.I32)
    f.block(cons).instrs.append((Const(Value(ValType.I32, 1)), None))
    f.block(alt).instrs.append((Const(Value(ValType.I32, 2)), None))
    entry_instrs(f).extend([
        (Const(Value(ValType.I32, 0)), None),
        (IfElse(cons, alt), None),
        (Drop(), None),
    ])
    assert encode(f) == bytes([
        0x41, 0x00, 0x04, 0x7F, 0x41, 0x01, 0x05, 0x41, 0x02, 0x0B, 0x1A, 0x0B,
    ])


def test_branch_depths():
    f = LocalFunction("t")
    outer = f.add_block(None)
    inner = f.add_block(None)
    entry_instrs(f).append((Block(outer), None))
    f.block(outer).instrs.append((Block(inner), None))
    f.block(inner).instrs.extend([
        (Br(outer), None), (BrIf(inner), None), (Br(f.entry_block()), None),
    ])
    assert encode(f) == bytes([
        0x02, 0x40, 0x02, 0x40, 0x0C, 0x01, 0x0D, 0x00, 0x0C, 0x02, 0x0B, 0x0B, 0x0B,
    ])


def test_branch_to_unknown_block_raises():
    f = LocalFunction("t")
    entry_instrs(f).append((Br(99), None))
    with pytest.raises(ValueError):
        encode(f)


def test_br_table():
    f = LocalFunction("t")
    a = f.add_block(None)
    entry_instrs(f).append((Block(a), None))
    f.block(a).instrs.append((BrTable((a, f.entry_block()), a), None))
    assert encode(f) == bytes([0x02, 0x40, 0x0E, 0x02, 0x00, 0x01, 0x00, 0x0B, 0x0B])


def test_multi_value_block_type_uses_type_index():
    f = LocalFunction("t")
    a = f.add_block("sig")
    entry_instrs(f).append((Block(a), None))
    assert encode(f, FakeIndices(types={"sig": 5})) == bytes([0x02, 0x05, 0x0B, 0x0B])


def test_locals_use_local_indices():
    f = LocalFunction("t")
    entry_instrs(f).extend([(LocalGet("x"), None), (LocalSet("x"), None), (LocalTee("x"), None)])
    assert encode(f, local_indices={"x": 3}) == bytes([0x20, 3, 0x21, 3, 0x22, 3, 0x0B])


def test_call_and_global_get():
    f = LocalFunction("t")
    entry_instrs(f).extend([(Call("f"), None), (GlobalGet("g"), None)])
    out = encode(f, FakeIndices(funcs={"f": 2}, globals_={"g": 7}))
    assert out == bytes([0x10, 2, 0x23, 7, 0x0B])


def test_select_forms():
    f = LocalFunction("t")
    entry_instrs(f).extend([(Select(), None), (Select(ValType.I64), None)])
    assert encode(f) == bytes([0x1B, 0x1C, 0x01, 0x7E, 0x0B])


def test_memarg_memory_zero():
    f = LocalFunction("t")
    entry_instrs(f).append((Load("m", MemArg(4, 8), LoadKind.I32), None))
    assert encode(f, FakeIndices(memories={"m": 0})) == bytes([0x28, 0x02, 0x08, 0x0B])


def test_memarg_other_memory_sets_flag():
    f = LocalFunction("t")
    entry_instrs(f).append((Load("m", MemArg(4, 8), LoadKind.I32), None))
    out = encode(f, FakeIndices(memories={"m": 1}))
    assert out[0] == 0x28
    assert out[1] & 0x40
    assert out[1] & 0x3F == 2
    assert out[2:] == bytes([0x08, 0x01, 0x0B])


def test_narrow_atomic_load_and_store():
    f = LocalFunction("t")
    entry_instrs(f).extend([
        (Load("m", MemArg(1, 0), LoadKind.I32_8, extend=ExtendedLoad.ZERO_EXTEND_ATOMIC), None),
        (Store("m", MemArg(1, 0), StoreKind.I64_32, atomic=True), None),
    ])
    out = encode(f, FakeIndices(memories={"m": 0}))
    assert out == bytes([0xFE, 0x12, 0, 0, 0xFE, 0x1D, 0, 0, 0x0B])


def test_invalid_loads_and_stores_raise():
    with pytest.raises(ValueError):
        Load("m", MemArg(1, 0), LoadKind.I32_8)
    with pytest.raises(ValueError):
        Load("m", MemArg(4, 0), LoadKind.F32, atomic=True)
    with pytest.raises(ValueError):
        Store("m", MemArg(8, 0), StoreKind.F64, atomic=True)
    with pytest.raises(ValueError):
        MemArg(3, 0)


def test_atomic_rmw_and_cmpxchg_opcodes():
    f = LocalFunction("t")
    arg = MemArg(4, 0)
    entry_instrs(f).extend([
        (AtomicRmw("m", arg, AtomicOp.ADD, AtomicWidth.I32), None),
        (AtomicRmw("m", arg, AtomicOp.XCHG, AtomicWidth.I64_32), None),
        (Cmpxchg("m", arg, AtomicWidth.I64_32), None),
    ])
    out = encode(f, FakeIndices(memories={"m": 0}))
    assert out == bytes([0xFE, 0x1E, 2, 0, 0xFE, 0x47, 2, 0, 0xFE, 0x4E, 2, 0, 0x0B])


def test_memory_init_bytes_and_memory_zero_requirement():
    f = LocalFunction("t")
    entry_instrs(f).append((MemoryInit("m", "d"), None))
    assert encode(f, FakeIndices(memories={"m": 0}, data={"d": 4})) == bytes(
        [0xFC, 0x08, 0x04, 0x00, 0x0B]
    )
    with pytest.raises(ValueError):
        encode(f, FakeIndices(memories={"m": 1}, data={"d": 4}))


def test_table_copy_writes_dst_then_src():
    f = LocalFunction("t")
    entry_instrs(f).append((TableCopy(src="a", dst="b"), None))
    out = encode(f, FakeIndices(tables={"a": 1, "b": 2}))
    assert out == bytes([0xFC, 0x0E, 2, 1, 0x0B])


def test_load_simd_lane():
    f = LocalFunction("t")
    entry_instrs(f).append(
        (LoadSimd("m", MemArg(1, 0), LoadSimdKind.V128_LOAD8_LANE, lane=3), None)
    )
    assert encode(f, FakeIndices(memories={"m": 0})) == bytes([0xFD, 84, 0, 0, 3, 0x0B])
    with pytest.raises(ValueError):
        LoadSimd("m", MemArg(1, 0), LoadSimdKind.V128_LOAD8_LANE)
    with pytest.raises(ValueError):
        LoadSimd("m", MemArg(1, 0), LoadSimdKind.SPLAT8, lane=1)


def test_shuffle_requires_sixteen_lanes():
    f = LocalFunction("t")
    lanes = bytes(range(16))
    entry_instrs(f).append((I8x16Shuffle(lanes), None))
    assert encode(f) == bytes([0xFD, 13]) + lanes + b"\x0b"
    with pytest.raises(ValueError):
        I8x16Shuffle(b"\x00\x01")


def test_operators_with_lanes():
    f = LocalFunction("t")
    entry_instrs(f).extend([
        (Binop(BinaryOp.I32_ADD), None),
        (Unop(UnaryOp.I32X4_EXTRACT_LANE, lane=2), None),
    ])
    assert encode(f) == bytes([0x6A, 0xFD, 27, 2, 0x0B])


def test_offsets_recorded_per_instruction():
    f = LocalFunction("t")
    entry_instrs(f).extend([(Const(Value(ValType.I32, 1)), 10), (Drop(), 11)])
    offsets = []
    encode(f, offsets=offsets)
    assert offsets == [(10, 0), (11, 2)]


def test_walk_order():
    f = LocalFunction("t")
    cons = f.add_block(None)
    alt = f.add_block(None)
    entry_instrs(f).append((IfElse(cons, alt), None))
    events = [(event, seq.id) for event, seq, _, _ in walk(f.blocks, f.entry_block())]
    entry = f.entry_block()
    assert events == [
        ("start", entry), ("instr", entry),
        ("start", cons), ("end", cons),
        ("start", alt), ("end", alt),
        ("end", entry),
    ]


def test_size_counts_nested_instructions():
    f = LocalFunction("t")
    inner = f.add_block(None)
    f.block(inner).instrs.extend([(Drop(), None), (Drop(), None)])
    entry_instrs(f).extend([(Block(inner), None), (Drop(), None)])
    assert f.size() == 4


def test_is_const():
    f = LocalFunction("t")
    entry_instrs(f).extend([(Const(Value(ValType.I32, 1)), None), (GlobalGet("g"), None)])
    assert f.is_const()
    entry_instrs(f).append((Drop(), None))
    assert not f.is_const()


def test_used_data_segments_and_locals():
    f = LocalFunction("t")
    inner = f.add_block(None)
    f.block(inner).instrs.extend([(DataDrop("d1"), None), (LocalGet("a"), None)])
    entry_instrs(f).extend([
        (Block(inner), None), (MemoryInit("m", "d2"), None), (LocalSet("b"), None),
    ])
    assert f.used_data_segments() == {"d1", "d2"}
    assert f.used_locals() == {"a", "b"}


def test_emit_locals_groups_by_type_after_args():
    f = LocalFunction("t", args=["a"])
    entry_instrs(f).extend([
        (LocalGet("a"), None), (LocalGet("b"), None),
        (LocalGet("c"), None), (LocalGet("d"), None),
    ])
    types = {"a": ValType.I32, "b": ValType.F32, "c": ValType.I32, "d": ValType.I32}
    enc = Encoder()
    used, local_map = f.emit_locals(types, enc)
    assert used == {"a", "b", "c", "d"}
    assert local_map == {"a": 0, "c": 1, "d": 2, "b": 3}
    assert enc.getvalue() == bytes([0x02, 0x02, 0x7F, 0x01, 0x7D])


def test_block_lookup_unknown_id_raises():
    f = LocalFunction("t")
    with pytest.raises(KeyError):
        f.block(5)