from concurrent.futures import ThreadPoolExecutor

import pytest

from gameres.gameres import OutOfRangeError
from tqarz.stringtable import StringTable


def test_ids_are_dense_and_stable():
    table = StringTable()
    assert table.intern("alpha") == 0
    assert table.intern("beta") == 1
    assert table.intern("alpha") == 0
    assert len(table) == 2
    assert table.strings() == ["alpha", "beta"]


def test_folded_lookup_ignores_case():
    table = StringTable()
    first = table.intern("Damage")
    assert table.intern("damage") == first
    assert table.intern("DAMAGE") == first
    # first spelling wins
    assert table.get(first) == "Damage"


def test_case_preserving_lookup():
    table = StringTable()
    lower = table.intern("records/boar.dbr", preserve_case=True)
    upper = table.intern("Records/Boar.dbr", preserve_case=True)
    assert lower != upper
    assert table.get(upper) == "Records/Boar.dbr"
    # the folded map still resolves to the first spelling
    assert table.intern("RECORDS/BOAR.DBR") == lower


def test_load_keeps_positions_and_first_duplicate():
    table = StringTable(["a", "b", "a", "c"])
    assert len(table) == 4
    assert table.get(2) == "a"
    assert table.intern("a", preserve_case=True) == 0
    assert table.intern("c") == 3
    assert table.intern("d") == 4


def test_get_out_of_range():
    table = StringTable(["x"])
    with pytest.raises(OutOfRangeError):
        table.get(1)
    with pytest.raises(OutOfRangeError):
        table.get(-1)


def test_concurrent_interning_assigns_one_id_per_string():
    table = StringTable()
    values = [f"name{i % 50}" for i in range(2000)]
    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = list(pool.map(table.intern, values))

    assert len(table) == 50
    for value, string_id in zip(values, ids):
        assert table.get(string_id) == value
