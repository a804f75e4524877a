import struct
import zlib

import pytest

from gameres.gameres import (
    FieldEncodeError,
    RecordField,
    ResolvedRecord,
    VariableClass,
    VariableKind,
)
from tqarz.arzencoder import RecordEncoder, compress_record, field_sort_key
from tqarz.stringtable import StringTable


def make_record(*fields, template="records/t.tpl"):
    return ResolvedRecord("/src/records/a.dbr", template, list(fields))


def test_encode_basic_record():
    table = StringTable()
    record = make_record(
        RecordField("Y", VariableKind.STRING, value="hello"),
        RecordField("X", VariableKind.INT, VariableClass.ARRAY, "5;7;9"),
    )
    encoded = RecordEncoder(table).encode(record, "records/a.dbr")

    assert encoded.name_id == 0
    assert table.strings() == ["records/a.dbr", "templateName", "records/t.tpl", "X", "Y", "hello"]
    assert encoded.payload == (
        struct.pack("<hhii", 2, 1, 1, 2)
        + struct.pack("<hhi3i", 0, 3, 3, 5, 7, 9)
        + struct.pack("<hhii", 2, 1, 4, 5)
    )


def test_numbers_and_bools():
    table = StringTable()
    record = make_record(
        RecordField("speed", VariableKind.REAL, value="1.5"),
        RecordField("enabled", VariableKind.BOOL, value="1"),
    )
    payload = RecordEncoder(table).encode(record, "a.dbr").payload
    enabled, speed = payload[12:24], payload[24:36]
    assert struct.unpack("<hhii", enabled)[:2] == (3, 1)
    assert struct.unpack("<hh", speed[:4]) == (1, 1)
    assert struct.unpack("<f", speed[8:])[0] == 1.5


def test_empty_and_internal_fields_are_dropped():
    table = StringTable()
    record = make_record(
        RecordField("empty", VariableKind.STRING, value=""),
        RecordField("eqn", VariableKind.EQN_VARIABLE, value="x"),
        RecordField("inc", VariableKind.INCLUDE, value="other.tpl"),
    )
    payload = RecordEncoder(table).encode(record, "a.dbr").payload
    assert len(payload) == 12
    assert "eqn" not in table and "inc" not in table and "empty" not in table


def test_unparseable_number_drops_field_only():
    table = StringTable()
    record = make_record(
        RecordField("bad", VariableKind.INT, value="abc"),
        RecordField("good", VariableKind.INT, value="4"),
    )
    payload = RecordEncoder(table).encode(record, "a.dbr").payload
    assert len(payload) == 12 + 12
    assert "bad" not in table
    assert struct.unpack("<hhii", payload[12:])[3] == 4


def test_encode_field_errors():
    encoder = RecordEncoder(StringTable())
    with pytest.raises(FieldEncodeError):
        encoder.encode_field(RecordField("n", VariableKind.INT, value="1.5"))
    with pytest.raises(FieldEncodeError):
        encoder.encode_field(RecordField("n", VariableKind.INT, value=str(2**40)))
    with pytest.raises(FieldEncodeError):
        encoder.encode_field(RecordField("s", VariableKind.STRING, value="中"))


def test_record_path_outside_code_page():
    with pytest.raises(FieldEncodeError):
        RecordEncoder(StringTable()).encode(make_record(), "records/中.dbr")


def test_fields_are_sorted():
    table = StringTable()
    record = make_record(
        RecordField("b", VariableKind.INT, value="1"),
        RecordField("A", VariableKind.INT, value="2"),
        RecordField("a2", VariableKind.INT, value="3"),
    )
    payload = RecordEncoder(table).encode(record, "a.dbr").payload
    names = [table.get(struct.unpack_from("<hhi", payload, off)[2]) for off in (12, 24, 36)]
    assert names == sorted(["b", "A", "a2"], key=lambda n: (n[:1], n))
    assert field_sort_key(RecordField("A", VariableKind.INT)) < field_sort_key(RecordField("a2", VariableKind.INT))


def test_string_values_are_shared_with_field_names():
    table = StringTable()
    record = make_record(
        RecordField("Class", VariableKind.STRING, value="Monster"),
        RecordField("alias", VariableKind.STRING, value="class"),
    )
    RecordEncoder(table).encode(record, "a.dbr")
    assert table.strings().count("Class") == 1
    assert "class" not in table


def test_file_values_keep_case():
    table = StringTable()
    record = make_record(
        RecordField("a_tag", VariableKind.STRING, value="mesh.msh"),
        RecordField("mesh", VariableKind.FILE, value="Mesh.MSH"),
    )
    RecordEncoder(table).encode(record, "a.dbr")
    assert "mesh.msh" in table
    assert "Mesh.MSH" in table


def test_record_class_comes_from_class_field():
    record = make_record(RecordField("Class", VariableKind.STRING, value="Monster"))
    encoded = RecordEncoder(StringTable()).encode(record, "a.dbr")
    assert encoded.record_class == "Monster"


def test_compress_record_is_zlib():
    assert zlib.decompress(compress_record(b"abc" * 10)) == b"abc" * 10


@pytest.mark.parametrize("kind, value", [
    (VariableKind.INT, "1_000"),
    (VariableKind.INT, "١٢"),
    (VariableKind.REAL, "1_0.5"),
    (VariableKind.REAL, "٣.٥"),
])
def test_numbers_reject_non_plain_digits(kind, value):
    table = StringTable()
    record = make_record(RecordField("n", kind, value=value))
    payload = RecordEncoder(table).encode(record, "a.dbr").payload
    assert len(payload) == 12
    assert "n" not in table
