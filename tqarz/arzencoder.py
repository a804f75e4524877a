# arzencoder.py - turns resolved records into .arz variable blocks
#
# Licensed under the MIT License.

import struct
import zlib
import logging
from dataclasses import dataclass
from typing import List

from formats.arzcommon import ENCODING, TEMPLATE_KEY, VARIABLE_HEAD_FMT, VariableType
from gameres.gameres import FieldEncodeError, RecordField, ResolvedRecord, VariableKind
from tqarz.stringtable import StringTable

COMPRESSION_LEVEL = 9
MAX_VALUES = 0x7FFF

KIND_TYPE_CODES = {
    VariableKind.INT: VariableType.INT,
    VariableKind.BOOL: VariableType.BOOL,
    VariableKind.REAL: VariableType.REAL,
    VariableKind.STRING: VariableType.STRING,
    VariableKind.EQUATION: VariableType.STRING,
    VariableKind.FILE: VariableType.STRING,
}


@dataclass
class EncodedRecord:
    name_id: int
    record_class: str
    payload: bytes


def compress_record(payload: bytes) -> bytes:
    return zlib.compress(payload, COMPRESSION_LEVEL)


def field_sort_key(f: RecordField):
    return (f.name[:1], f.name)


def _check_encodable(field_name: str, value: str):
    try:
        value.encode(ENCODING)
    except UnicodeEncodeError as e:
        raise FieldEncodeError(field_name, f"'{value}' is not representable in {ENCODING}") from e


class RecordEncoder:
    """Encodes records against a shared StringTable.

    The table may be shared by several encoders running in parallel; every
    string goes through StringTable.intern, which is atomic.
    """

    def __init__(self, strings: StringTable):
        self.strings = strings

    def encode(self, record: ResolvedRecord, record_path: str) -> EncodedRecord:
        _check_encodable("<record path>", record_path)
        _check_encodable(TEMPLATE_KEY, record.template_name)
        _check_encodable("Class", record.record_class)

        name_id = self.strings.intern(record_path, preserve_case=True)
        parts: List[bytes] = [
            struct.pack(
                VARIABLE_HEAD_FMT + "i",
                VariableType.STRING,
                1,
                self.strings.intern(TEMPLATE_KEY, preserve_case=True),
                self.strings.intern(record.template_name, preserve_case=True),
            )
        ]

        fields = [
            f for f in record.fields
            if f.value and not f.kind.is_internal
        ]
        fields.sort(key=field_sort_key)

        for f in fields:
            try:
                parts.append(self.encode_field(f))
            except FieldEncodeError as e:
                logging.warning(f"[arzencoder] {record_path}: dropping field {e}")

        logging.debug(f"[arzencoder] {record_path}: {len(parts) - 1} of {len(record.fields)} fields encoded")
        return EncodedRecord(name_id=name_id, record_class=record.record_class, payload=b"".join(parts))

    def encode_field(self, f: RecordField) -> bytes:
        type_code = KIND_TYPE_CODES.get(f.kind)
        if type_code is None:
            raise FieldEncodeError(f.name, f"kind {f.kind.value} cannot be stored")
        _check_encodable(f.name, f.name)

        elements = f.value.split(";") if f.is_array else [f.value]
        if len(elements) > MAX_VALUES:
            raise FieldEncodeError(f.name, f"{len(elements)} values exceed the limit of {MAX_VALUES}")

        if type_code in (VariableType.INT, VariableType.BOOL):
            values = self._pack_numbers(f.name, elements, int, "i")
        elif type_code == VariableType.REAL:
            values = self._pack_numbers(f.name, elements, float, "f")
        else:
            for element in elements:
                _check_encodable(f.name, element)
            values = None

        name_id = self.strings.intern(f.name)
        if values is None:
            preserve = f.kind == VariableKind.FILE
            ids = [self.strings.intern(element, preserve_case=preserve) for element in elements]
            values = struct.pack(f"<{len(ids)}i", *ids)

        return struct.pack(VARIABLE_HEAD_FMT, type_code, len(elements), name_id) + values

    @staticmethod
    def _pack_numbers(field_name: str, elements: List[str], parse, code: str) -> bytes:
        for element in elements:
            # int() and float() also take digit separators and non-ASCII digits
            if "_" in element or not element.isascii():
                raise FieldEncodeError(field_name, f"invalid {parse.__name__} value: '{element}'")
        try:
            numbers = [parse(element) for element in elements]
        except ValueError as e:
            raise FieldEncodeError(field_name, f"invalid {parse.__name__} value: {e}") from e
        try:
            return struct.pack(f"<{len(numbers)}{code}", *numbers)
        except (struct.error, OverflowError) as e:
            raise FieldEncodeError(field_name, f"value out of range: {e}") from e
