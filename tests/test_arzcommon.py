import io
import logging
import struct

import numpy as np
import pytest

from formats.arzcommon import (
    HEADER_MAGIC,
    HEADER_SIZE,
    ArzHeader,
    RecordInfo,
    decode_header,
    decode_index_entry,
    decode_string,
    encode_header,
    encode_index_entry,
    encode_string,
    encode_string_pool,
)
from formats.fileview import Reader
from gameres.gameres import FieldEncodeError, FormatError, RawRecord
from gameres.utility import (
    FILETIME_EPOCH_DELTA,
    DbrTextSaver,
    format_floats,
    format_ints,
    from_file_time,
    record_key,
    relative_record_path,
    to_file_time,
)


def test_header_layout():
    header = ArzHeader(
        record_index_start=124,
        record_index_size=40,
        record_count=2,
        string_pool_start=164,
        string_pool_size=30,
    )
    data = header.encode()
    assert len(data) == HEADER_SIZE
    assert struct.unpack("<6i", data) == (HEADER_MAGIC, 124, 40, 2, 164, 30)
    assert ArzHeader.decode(data) == header
    assert header.data_size == 100


def test_header_too_short():
    with pytest.raises(FormatError):
        ArzHeader.read_from(io.BytesIO(b"\x04\x00\x03\x00" * 3))


def test_header_magic_mismatch_only_warns(caplog):
    data = struct.pack("<6i", 0x12345, 24, 0, 0, 24, 4)
    with caplog.at_level(logging.WARNING):
        header = ArzHeader.decode(data)
    assert header.magic == 0x12345
    assert "magic" in caplog.text


@pytest.mark.parametrize("fields", [
    dict(record_index_start=10),
    dict(record_index_size=-1),
    dict(record_count=-5),
    dict(record_index_start=24, record_index_size=20, string_pool_start=30),
    dict(string_pool_start=200),
])
def test_header_validate_rejects(fields):
    with pytest.raises(FormatError):
        ArzHeader(**fields).validate(100)


def test_header_validate_accepts_empty_archive():
    ArzHeader().validate(HEADER_SIZE + 4)


def test_string_codec():
    data = encode_string("café")
    assert data == b"\x04\x00\x00\x00caf\xe9"
    assert decode_string(data) == "café"


def test_encode_string_outside_code_page():
    with pytest.raises(FieldEncodeError):
        encode_string("中")


def test_decode_string_negative_length():
    with pytest.raises(FormatError):
        decode_string(struct.pack("<i", -2))


def test_decode_string_short_read():
    with pytest.raises(FormatError):
        decode_string(struct.pack("<i", 10) + b"abc")


def test_record_info_entry():
    info = RecordInfo(name_id=3, record_class="Monster", offset=64, compressed_length=20, timestamp=132000000000000000)
    data = info.encode()
    assert len(data) == info.encoded_size == 4 + 4 + 7 + 16
    assert RecordInfo.read_from(Reader(data)) == info
    assert info.end == 84


def test_string_pool_layout():
    pool = encode_string_pool(["a", "bc"])
    assert pool == struct.pack("<i", 2) + b"\x01\x00\x00\x00a" + b"\x02\x00\x00\x00bc"


def test_reader_strict_reads():
    reader = Reader(b"\x01\x00\xff\xff\xff\xff")
    assert reader.read_int16() == 1
    assert reader.read_int32() == -1
    assert reader.tell() == 6
    with pytest.raises(FormatError):
        reader.read_int16()


def test_file_time_conversion():
    assert to_file_time(0) == FILETIME_EPOCH_DELTA
    assert to_file_time(1_000_000_000) == FILETIME_EPOCH_DELTA + 10_000_000
    assert from_file_time(to_file_time(1_600_000_000 * 10**9)) == 1_600_000_000 * 10**9


def test_canonical_number_text():
    assert format_ints(np.array([5, -7, 0], dtype=np.int32)) == "5;-7;0"
    assert format_floats(np.array([0.1, 1.5, 3.0], dtype=np.float32)) == "0.1;1.5;3.0"


def test_record_paths(tmp_path):
    assert record_key("Records\\Creatures\\Boar.DBR") == "records/creatures/boar.dbr"
    path = tmp_path / "Records" / "Boar.dbr"
    assert relative_record_path(path, tmp_path) == "Records/Boar.dbr"


def test_dbr_text_saver(tmp_path):
    record = RawRecord("records/item/sword.dbr", "weapon.tpl", {"Class": "WeaponMelee", "damage": "5;7"})
    assert DbrTextSaver.render(record) == "templateName,weapon.tpl,\r\nClass,WeaponMelee,\r\ndamage,5;7,\r\n"

    path = DbrTextSaver.save(record, tmp_path)
    assert path == str(tmp_path / "records" / "item" / "sword.dbr")
    with open(path, "rb") as f:
        assert f.read().startswith(b"templateName,weapon.tpl,\r\n")


@pytest.mark.parametrize("name", ["../outside.dbr", "records/../../outside.dbr", "records/.."])
def test_dbr_text_saver_stays_in_output_dir(tmp_path, name):
    out_dir = tmp_path / "out"
    with pytest.raises(FormatError):
        DbrTextSaver.save(RawRecord(name, "t.tpl", {}), out_dir)
    assert not (tmp_path / "outside.dbr").exists()


def test_module_level_codecs():
    header = ArzHeader(record_index_start=40, record_index_size=24, record_count=1, string_pool_start=64)
    assert decode_header(io.BytesIO(encode_header(header))) == header

    info = RecordInfo(name_id=0, record_class="", offset=0, compressed_length=16, timestamp=0)
    assert decode_index_entry(encode_index_entry(info)) == info
