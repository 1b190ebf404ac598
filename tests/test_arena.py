import pytest

from wasmkit.arena import Arena, Id


class Hooked:
    def __init__(self, value):
        self.value = value
        self.deleted = False

    def on_delete(self):
        self.deleted = True


def test_alloc_and_get_round_trip():
    arena = Arena()
    a = arena.alloc("first")
    b = arena.alloc("second")
    assert arena.get(a) == "first"
    assert arena.get(b) == "second"
    assert a < b
    assert len(arena) == 2


def test_next_id_matches_alloc():
    arena = Arena()
    expected = arena.next_id()
    assert arena.alloc(object()) == expected
    assert arena.next_id() != expected


def test_alloc_with_id_receives_its_own_id():
    arena = Arena()
    arena.alloc("filler")
    got = arena.alloc_with_id(lambda item_id: ("made", item_id))
    assert arena.get(got) == ("made", got)


def test_alloc_with_id_rejects_reentrant_allocation():
    arena = Arena()

    def make(item_id):
        arena.alloc("sneaky")
        return item_id

    with pytest.raises(RuntimeError):
        arena.alloc_with_id(make)


def test_delete_hides_item_and_runs_hook():
    arena = Arena()
    keep = arena.alloc(Hooked(1))
    gone_item = Hooked(2)
    gone = arena.alloc(gone_item)
    arena.delete(gone)
    assert gone_item.deleted is True
    assert [item_id for item_id, _ in arena.items()] == [keep]
    assert len(arena) == 1
    assert gone not in arena
    assert keep in arena
    with pytest.raises(KeyError):
        arena.get(gone)


def test_delete_keeps_ids_stable():
    arena = Arena()
    first = arena.alloc("a")
    arena.delete(first)
    second = arena.alloc("b")
    assert second != first
    assert arena.get(second) == "b"


def test_double_delete_raises():
    arena = Arena()
    item_id = arena.alloc("x")
    arena.delete(item_id)
    with pytest.raises(KeyError):
        arena.delete(item_id)


def test_foreign_id_is_rejected():
    ours = Arena()
    theirs = Arena()
    ours.alloc("mine")
    foreign = theirs.alloc("theirs")
    assert foreign not in ours
    with pytest.raises(KeyError):
        ours.get(foreign)


def test_unknown_index_is_rejected():
    arena = Arena()
    missing = arena.next_id()
    with pytest.raises(KeyError):
        arena.get(missing)
    assert isinstance(missing, Id) and missing not in arena


def test_items_in_allocation_order():
    arena = Arena()
    values = ["a", "b", "c"]
    ids = [arena.alloc(v) for v in values]
    assert list(arena.items()) == list(zip(ids, values))