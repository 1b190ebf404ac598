import pytest

from wasmkit.encoding import ValType, Value
from wasmkit.functions import ImportedFunction, ModuleFunctions
from wasmkit.instructions import Const, Drop, LocalFunction, LocalGet


class FakeIndices:
    def __init__(self, type_indices=None):
        self.type_indices = type_indices or {}
        self.funcs = []

    def get_type_index(self, id):
        return self.type_indices.get(id, 0)

    def push_func(self, id):
        self.funcs.append(id)

    def get_func_index(self, id):
        return self.funcs.index(id)


def const_drop_function(ty="t0", count=1, loc=None):
    func = LocalFunction(ty)
    seq = func.block(func.entry_block())
    for _ in range(count):
        seq.instrs.append((Const(Value(ValType.I32, 1)), loc))
        seq.instrs.append((Drop(), None))
    return func


def test_add_import_records_type_and_import():
    funcs = ModuleFunctions()
    fid = funcs.add_import("sig", "imp")
    f = funcs.get(fid)
    assert f.ty() == "sig"
    assert f.kind == ImportedFunction("imp", "sig")
    assert f.id == fid


def test_add_local_and_by_name():
    funcs = ModuleFunctions()
    fid = funcs.add_local(const_drop_function("sig"), "main")
    assert funcs.by_name("main") == fid
    assert funcs.by_name("other") is None
    assert funcs.get(fid).ty() == "sig"


def test_by_name_returns_first_match():
    funcs = ModuleFunctions()
    first = funcs.add_local(const_drop_function(), "dup")
    funcs.add_local(const_drop_function(), "dup")
    assert funcs.by_name("dup") == first


def test_add_local_rejects_non_function():
    with pytest.raises(TypeError):
        ModuleFunctions().add_local("not a function")


def test_delete_removes_function():
    funcs = ModuleFunctions()
    fid = funcs.add_local(const_drop_function(), "gone")
    funcs.delete(fid)
    with pytest.raises(KeyError):
        funcs.get(fid)
    assert funcs.by_name("gone") is None
    assert len(funcs) == 0


def test_iter_local_skips_imports():
    funcs = ModuleFunctions()
    funcs.add_import("sig", "imp")
    local = const_drop_function()
    lid = funcs.add_local(local)
    assert list(funcs.iter_local()) == [(lid, local)]


def test_used_local_functions_largest_first():
    funcs = ModuleFunctions()
    small = funcs.add_local(const_drop_function(count=1))
    big = funcs.add_local(const_drop_function(count=3))
    tie = funcs.add_local(const_drop_function(count=1))
    order = [id for id, _, _ in funcs.used_local_functions()]
    assert order == [big, small, tie]
    sizes = [size for _, _, size in funcs.used_local_functions()]
    assert sizes == sorted(sizes, reverse=True)


def test_emit_function_section_empty_is_none():
    funcs = ModuleFunctions()
    funcs.add_import("sig", "imp")
    assert funcs.emit_function_section(FakeIndices()) is None


def test_emit_function_section_assigns_indices_in_order():
    funcs = ModuleFunctions()
    a = funcs.add_local(const_drop_function("ta", count=1))
    b = funcs.add_local(const_drop_function("tb", count=2))
    indices = FakeIndices({"ta": 0, "tb": 1})
    data = funcs.emit_function_section(indices)
    assert indices.funcs == [b, a]
    assert data == bytes([2, 1, 0])


def test_emit_code_section_empty():
    result = ModuleFunctions().emit(FakeIndices(), {})
    assert result.data is None
    assert result.code_transform == []


def test_emit_code_section_bytes():
    funcs = ModuleFunctions()
    fid = funcs.add_local(const_drop_function())
    result = funcs.emit(FakeIndices(), {})
    assert result.data == bytes([0x01, 0x05, 0x00, 0x41, 0x01, 0x1A, 0x0B])
    assert result.local_indices[fid] == {}
    assert result.used_locals[fid] == set()
    assert result.code_transform == []


def test_emit_preserves_non_default_offsets():
    funcs = ModuleFunctions()
    funcs.add_local(const_drop_function(loc="here"))
    result = funcs.emit(FakeIndices(), {}, preserve_offsets=True)
    assert [loc for loc, _ in result.code_transform] == ["here"]
    offset = result.code_transform[0][1]
    assert result.data[offset] == 0x41


def test_emit_assigns_local_indices_after_args():
    func = LocalFunction("sig", args=["arg"])
    seq = func.block(func.entry_block())
    seq.instrs.append((LocalGet("x"), None))
    seq.instrs.append((Drop(), None))
    funcs = ModuleFunctions()
    fid = funcs.add_local(func)
    result = funcs.emit(FakeIndices(), {"x": ValType.I32, "arg": ValType.I32})
    assert result.local_indices[fid] == {"arg": 0, "x": 1}
    assert result.used_locals[fid] == {"x"}
    assert result.data[-3:] == bytes([0x01, 0x1A, 0x0B])