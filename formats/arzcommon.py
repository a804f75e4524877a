# arzcommon.py - wire-level primitives of the .arz database archive
#
# Licensed under the MIT License.
#
# Layout (all integers little-endian, strings in Windows-1252):
#
#   0x00  int32  magic (0x30004)
#   0x04  int32  record index start
#   0x08  int32  record index byte size
#   0x0C  int32  record count
#   0x10  int32  string pool start
#   0x14  int32  string pool byte size
#   0x18  ...    compressed record data
#   record index: count x (int32 name id, string class, int32 offset,
#                          int32 compressed length, int64 timestamp)
#   string pool: int32 count, count x (int32 length, bytes)

import io
import struct
import logging
from dataclasses import dataclass
from enum import IntEnum

from formats.fileview import Reader
from gameres.gameres import FieldEncodeError, FormatError

ENCODING = "cp1252"

HEADER_MAGIC = 0x30004
HEADER_FMT = "<6i"
HEADER_SIZE = struct.calcsize(HEADER_FMT)  # 24
DATA_BASE_OFFSET = HEADER_SIZE

INDEX_FIXED_HEAD = "<i"
INDEX_FIXED_TAIL = "<iiq"

VARIABLE_HEAD_FMT = "<hhi"
VARIABLE_HEAD_SIZE = struct.calcsize(VARIABLE_HEAD_FMT)  # 8

TEMPLATE_KEY = "templateName"


class VariableType(IntEnum):
    INT = 0
    REAL = 1
    STRING = 2
    BOOL = 3


def _as_reader(stream) -> Reader:
    return stream if isinstance(stream, Reader) else Reader(stream)


# ============================
# Strings
# ============================
def encode_string(value: str) -> bytes:
    try:
        raw = value.encode(ENCODING)
    except UnicodeEncodeError as e:
        raise FieldEncodeError(value, f"not representable in {ENCODING}: {e}") from e
    return struct.pack("<i", len(raw)) + raw


def encoded_string_size(value: str) -> int:
    return 4 + len(value.encode(ENCODING))


def decode_string(stream) -> str:
    reader = _as_reader(stream)
    length = reader.read_int32()
    if length < 0:
        raise FormatError(f"negative string length {length} at 0x{reader.offset - 4:X}")
    raw = reader.read_bytes(length)
    try:
        return raw.decode(ENCODING)
    except UnicodeDecodeError as e:
        raise FormatError(f"string is not valid {ENCODING}: {raw[:32]!r}") from e


# ============================
# Header
# ============================
@dataclass(frozen=True)
class ArzHeader:
    record_index_start: int = DATA_BASE_OFFSET
    record_index_size: int = 0
    record_count: int = 0
    string_pool_start: int = DATA_BASE_OFFSET
    string_pool_size: int = 4
    magic: int = HEADER_MAGIC

    @property
    def data_size(self) -> int:
        return self.record_index_start - DATA_BASE_OFFSET

    def encode(self) -> bytes:
        return struct.pack(
            HEADER_FMT,
            self.magic,
            self.record_index_start,
            self.record_index_size,
            self.record_count,
            self.string_pool_start,
            self.string_pool_size,
        )

    @classmethod
    def decode(cls, data: bytes) -> "ArzHeader":
        if len(data) < HEADER_SIZE:
            raise FormatError(f"header needs {HEADER_SIZE} bytes, got {len(data)}")
        magic, index_start, index_size, count, pool_start, pool_size = struct.unpack_from(HEADER_FMT, data, 0)
        if magic != HEADER_MAGIC:
            logging.warning(f"[arzcommon] unexpected header magic 0x{magic:X} (expected 0x{HEADER_MAGIC:X})")
        return cls(
            record_index_start=index_start,
            record_index_size=index_size,
            record_count=count,
            string_pool_start=pool_start,
            string_pool_size=pool_size,
            magic=magic,
        )

    @classmethod
    def read_from(cls, stream) -> "ArzHeader":
        reader = _as_reader(stream)
        try:
            data = reader.read_bytes(HEADER_SIZE)
        except FormatError as e:
            raise FormatError(f"truncated header: {e}") from e
        return cls.decode(data)

    def validate(self, file_size: int):
        """Check the section offsets against each other and the file size."""
        if self.record_index_start < DATA_BASE_OFFSET:
            raise FormatError(f"record index starts inside the header (0x{self.record_index_start:X})")
        if self.record_index_size < 0 or self.record_count < 0 or self.string_pool_size < 0:
            raise FormatError("negative size in header")
        if self.string_pool_start < self.record_index_start + self.record_index_size:
            raise FormatError(
                f"string pool (0x{self.string_pool_start:X}) overlaps record index "
                f"(0x{self.record_index_start:X} + {self.record_index_size})"
            )
        if self.string_pool_start + 4 > file_size:
            raise FormatError(f"string pool start 0x{self.string_pool_start:X} beyond end of file ({file_size} bytes)")


def encode_header(header: ArzHeader) -> bytes:
    return header.encode()


def decode_header(stream) -> ArzHeader:
    return ArzHeader.read_from(stream)


# ============================
# Record index entry
# ============================
@dataclass(frozen=True)
class RecordInfo:
    """One record index entry. Replaced as a whole, never patched in place."""
    name_id: int
    record_class: str
    offset: int
    compressed_length: int
    timestamp: int

    @property
    def encoded_size(self) -> int:
        return 4 + encoded_string_size(self.record_class) + 16

    @property
    def end(self) -> int:
        return self.offset + self.compressed_length

    def encode(self) -> bytes:
        return (
            struct.pack(INDEX_FIXED_HEAD, self.name_id)
            + encode_string(self.record_class)
            + struct.pack(INDEX_FIXED_TAIL, self.offset, self.compressed_length, self.timestamp)
        )

    @classmethod
    def read_from(cls, stream) -> "RecordInfo":
        reader = _as_reader(stream)
        name_id = reader.read_int32()
        record_class = decode_string(reader)
        offset = reader.read_int32()
        compressed_length = reader.read_int32()
        timestamp = reader.read_int64()
        return cls(name_id, record_class, offset, compressed_length, timestamp)


def encode_index_entry(info: RecordInfo) -> bytes:
    return info.encode()


def decode_index_entry(stream) -> RecordInfo:
    return RecordInfo.read_from(stream)


def encode_string_pool(strings) -> bytes:
    buf = io.BytesIO()
    buf.write(struct.pack("<i", len(strings)))
    for s in strings:
        buf.write(encode_string(s))
    return buf.getvalue()
