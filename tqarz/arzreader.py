# arzreader.py - lazy reader for .arz database archives
#
# Licensed under the MIT License.

import os
import zlib
import logging
from typing import Callable, Dict, Iterator, List, Optional, Sequence

import numpy as np

from formats.arzcommon import (
    DATA_BASE_OFFSET,
    TEMPLATE_KEY,
    VARIABLE_HEAD_SIZE,
    ArzHeader,
    RecordInfo,
    VariableType,
    decode_string,
)
from formats.fileview import FileView, Reader
from gameres.gameres import (
    ArchiveNotFoundError,
    EmptyArchiveError,
    FormatError,
    MissingSchemaReferenceError,
    OutOfRangeError,
    RawRecord,
)
from gameres.utility import format_floats, format_ints, record_key

# strings decoded past a requested id on a single lookup
STRING_READ_AHEAD = 6

StringResolver = Callable[[Sequence[int]], List[str]]

VALID_TYPE_CODES = frozenset(t.value for t in VariableType)


def decompress_record(data: bytes) -> bytes:
    try:
        return zlib.decompress(data)
    except zlib.error as e:
        raise FormatError(f"record data does not inflate: {e}") from e


def decode_variables(payload: bytes, resolve_strings: StringResolver) -> Dict[str, str]:
    """Decode a decompressed record payload into name -> textual value.

    Integer and real values are rendered to canonical text, multi-value
    variables are joined with ';' in stored order.
    """
    reader = Reader(payload)
    size = len(payload)
    fields: Dict[str, str] = {}

    while reader.tell() < size:
        if size - reader.tell() < VARIABLE_HEAD_SIZE:
            raise FormatError(f"truncated variable header at 0x{reader.tell():X}")
        type_code = reader.read_int16()
        num_values = reader.read_int16()
        name_id = reader.read_int32()

        if type_code not in VALID_TYPE_CODES:
            raise FormatError(f"variable {name_id} has invalid type {type_code} at 0x{reader.tell() - VARIABLE_HEAD_SIZE:X}")

        var_name = resolve_strings([name_id])[0]
        if num_values < 1:
            logging.warning(f"[arzreader] variable '{var_name}' has {num_values} values, skipping")
            continue

        raw = reader.read_bytes(4 * num_values)
        var_type = VariableType(type_code)
        if var_type == VariableType.REAL:
            value = format_floats(np.frombuffer(raw, dtype="<f4"))
        elif var_type == VariableType.STRING:
            ids = np.frombuffer(raw, dtype="<i4").tolist()
            value = ";".join(resolve_strings(ids))
        else:
            value = format_ints(np.frombuffer(raw, dtype="<i4"))

        if var_name in fields:
            logging.warning(f"[arzreader] variable '{var_name}' appears twice, keeping the first value")
            continue
        fields[var_name] = value

    return fields


def split_template(file_name: str, fields: Dict[str, str]) -> RawRecord:
    template_name = fields.pop(TEMPLATE_KEY, None)
    if template_name is None:
        raise MissingSchemaReferenceError(f"record '{file_name}' has no {TEMPLATE_KEY}")
    return RawRecord(file_name=file_name, template_name=template_name, fields=fields)


class ArzReader:
    """Read-only view of an .arz archive.

    The header, string pool and record index are read lazily and cached;
    caches only grow, and a cached prefix is never read from disk again.
    """

    def __init__(self, file_path):
        self.file_path = os.path.abspath(os.fspath(file_path))
        if not os.path.isfile(self.file_path):
            e = ArchiveNotFoundError(f"archive not found: {self.file_path}")
            logging.error(f"[arzreader] {e}")
            raise e
        if os.path.getsize(self.file_path) == 0:
            e = EmptyArchiveError(f"archive is empty: {self.file_path}")
            logging.error(f"[arzreader] {e}")
            raise e

        self._header: Optional[ArzHeader] = None
        self._strings: List[str] = []
        self._num_strings = -1
        self._last_string_offset = 0
        self._infos: List[RecordInfo] = []
        self._last_info_offset = 0
        self._records: Dict[str, RawRecord] = {}
        self._record_offsets: Dict[str, int] = {}

    @classmethod
    def open(cls, file_path) -> "ArzReader":
        return cls(file_path)

    def _view(self) -> FileView:
        return FileView(self.file_path)

    # ============================
    # Header
    # ============================
    def _read_header(self, view: FileView) -> ArzHeader:
        if self._header is None:
            header = ArzHeader.read_from(view.create_reader(0))
            try:
                header.validate(view.size)
            except FormatError as e:
                logging.error(f"[arzreader] '{view.name}' has an invalid header: {e}")
                raise
            self._header = header
            self._last_string_offset = header.string_pool_start
            self._last_info_offset = header.record_index_start
            logging.debug(
                f"[arzreader] header: records={header.record_count} index=0x{header.record_index_start:X}"
                f"+{header.record_index_size} strings=0x{header.string_pool_start:X}+{header.string_pool_size}"
            )
        return self._header

    def header(self) -> ArzHeader:
        if self._header is None:
            with self._view() as view:
                self._read_header(view)
        return self._header

    # ============================
    # String pool
    # ============================
    def _ensure_string_count(self, view: FileView):
        self._read_header(view)
        if self._num_strings == -1:
            reader = view.create_reader(self._header.string_pool_start)
            count = reader.read_int32()
            if count < 0:
                raise FormatError(f"negative string count {count}")
            self._num_strings = count
            self._last_string_offset = reader.tell()

    def _read_next_string(self, view: FileView) -> str:
        value = decode_string(view.create_reader(self._last_string_offset))
        self._last_string_offset = view.stream.tell()
        self._strings.append(value)
        return value

    def _read_strings_until(self, view: FileView, stop: int):
        while len(self._strings) < stop:
            self._read_next_string(view)

    def string_count(self) -> int:
        if self._num_strings == -1:
            with self._view() as view:
                self._ensure_string_count(view)
        return self._num_strings

    def _check_string_id(self, string_id: int):
        if string_id < 0 or string_id >= self.string_count():
            e = OutOfRangeError(f"string id {string_id} out of range [0, {self._num_strings})")
            logging.error(f"[arzreader] {self.file_path}: {e}")
            raise e

    def _all_strings(self) -> Iterator[str]:
        index = 0
        view = None
        try:
            while True:
                if index < len(self._strings):
                    yield self._strings[index]
                    index += 1
                    continue
                if self._num_strings != -1 and index >= self._num_strings:
                    return
                if view is None:
                    view = self._view()
                    self._ensure_string_count(view)
                    continue
                self._read_next_string(view)
        finally:
            if view is not None:
                view.close()

    def strings(self, *ids: int) -> Iterator[str]:
        """Without ids: every pool string, lazily. With ids: those strings in the given order.

        Batches are resolved in ascending id order with one forward scan.
        """
        if not ids:
            return self._all_strings()
        if len(ids) == 1:
            return iter([self.string(ids[0])])

        for string_id in ids:
            self._check_string_id(string_id)
        max_id = max(ids)
        if max_id >= len(self._strings):
            stop = min(self._num_strings, max_id + STRING_READ_AHEAD)
            with self._view() as view:
                self._ensure_string_count(view)
                self._read_strings_until(view, stop)
        return iter([self._strings[i] for i in ids])

    def string(self, string_id: int) -> str:
        self._check_string_id(string_id)
        if string_id < len(self._strings):
            return self._strings[string_id]
        stop = min(self._num_strings, string_id + STRING_READ_AHEAD)
        with self._view() as view:
            self._ensure_string_count(view)
            self._read_strings_until(view, stop)
        return self._strings[string_id]

    def _resolve_strings(self, ids: Sequence[int]) -> List[str]:
        return list(self.strings(*ids))

    # ============================
    # Record index
    # ============================
    def record_infos(self) -> Iterator[RecordInfo]:
        index = 0
        view = None
        try:
            while True:
                if index < len(self._infos):
                    yield self._infos[index]
                    index += 1
                    continue
                if self._header is not None and index >= self._header.record_count:
                    return
                if view is None:
                    view = self._view()
                    self._read_header(view)
                    continue
                info = RecordInfo.read_from(view.create_reader(self._last_info_offset))
                self._last_info_offset = view.stream.tell()
                self._infos.append(info)
        finally:
            if view is not None:
                view.close()

    def record_count(self) -> int:
        return self.header().record_count

    def record_info(self, index: int) -> RecordInfo:
        count = self.record_count()
        if index < 0 or index >= count:
            raise OutOfRangeError(f"record index {index} out of range [0, {count})")
        if index >= len(self._infos):
            for i, info in enumerate(self.record_infos()):
                if i == index:
                    break
        return self._infos[index]

    def record_info_by_name(self, name: str) -> Optional[RecordInfo]:
        key = record_key(name)
        for info in self.record_infos():
            if record_key(self.string(info.name_id)) == key:
                return info
        return None

    def record_name(self, info: RecordInfo) -> str:
        return self.string(info.name_id)

    # ============================
    # Records
    # ============================
    def compressed_record(self, info: RecordInfo) -> bytes:
        offset = info.offset + DATA_BASE_OFFSET
        if info.offset < 0 or info.compressed_length < 0:
            raise FormatError(f"record entry has negative offset/length ({info.offset}, {info.compressed_length})")
        with self._view() as view:
            data = view.read_at(offset, info.compressed_length)
        if len(data) != info.compressed_length:
            e = FormatError(
                f"record at 0x{offset:X} reads short: wanted {info.compressed_length} bytes, got {len(data)}"
            )
            logging.error(f"[arzreader] {self.file_path}: {e}")
            raise e
        return data

    def decompressed_record(self, info: RecordInfo) -> bytes:
        return decompress_record(self.compressed_record(info))

    def record(self, info: RecordInfo) -> RawRecord:
        file_name = self.string(info.name_id)

        cached_offset = self._record_offsets.get(file_name)
        if cached_offset is not None and cached_offset != info.offset:
            logging.warning(f"[arzreader] '{file_name}' read again with a different offset")
        cached = self._records.get(file_name)
        if cached is not None:
            return cached

        try:
            fields = decode_variables(self.decompressed_record(info), self._resolve_strings)
            record = split_template(file_name, fields)
        except (FormatError, OutOfRangeError) as e:
            logging.error(f"[arzreader] error reading '{file_name}' at 0x{info.offset + DATA_BASE_OFFSET:X}: {e}")
            raise

        self._records[file_name] = record
        self._record_offsets[file_name] = info.offset
        return record

    def records(self, infos=None) -> Iterator[RawRecord]:
        for info in (self.record_infos() if infos is None else infos):
            try:
                yield self.record(info)
            except MissingSchemaReferenceError as e:
                logging.warning(f"[arzreader] skipping record: {e}")
