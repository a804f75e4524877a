# arzwriter.py - writes complete .arz database archives
#
# Licensed under the MIT License.
#
# The archive is always rebuilt as a whole: data blob, record index and
# string pool are laid out in memory and then written over a truncated file.

import io
import os
import logging
from dataclasses import replace
from typing import Iterable, List, Sequence, Tuple

from formats.arzcommon import DATA_BASE_OFFSET, ArzHeader, RecordInfo, encode_string_pool
from gameres.gameres import ArchiveIOError, ResolvedRecord
from gameres.utility import get_file_time, relative_record_path
from tqarz.arzencoder import RecordEncoder, compress_record
from tqarz.stringtable import StringTable


class ArzWriter:
    def __init__(self, file_path):
        self.file_path = os.path.abspath(os.fspath(file_path))

    def build(self, entries: Iterable[Tuple[RecordInfo, bytes]], strings: Sequence[str]) -> Tuple[ArzHeader, List[RecordInfo], bytes]:
        """Lay out an archive in memory.

        Entries are placed in the given order; each entry's offset and
        compressed length are taken from its position and data.
        """
        data_blob = io.BytesIO()
        index_buf = io.BytesIO()
        placed: List[RecordInfo] = []

        for info, compressed in entries:
            info = replace(info, offset=data_blob.tell(), compressed_length=len(compressed))
            data_blob.write(compressed)
            index_buf.write(info.encode())
            placed.append(info)

        pool = encode_string_pool(strings)
        index_start = data_blob.tell() + DATA_BASE_OFFSET
        index_size = index_buf.tell()
        header = ArzHeader(
            record_index_start=index_start,
            record_index_size=index_size,
            record_count=len(placed),
            string_pool_start=index_start + index_size,
            string_pool_size=len(pool),
        )
        logging.debug(
            f"[arzwriter] layout: {len(placed)} records, data={data_blob.tell()} index={index_size} "
            f"strings={len(strings)} ({len(pool)} bytes)"
        )
        return header, placed, header.encode() + data_blob.getvalue() + index_buf.getvalue() + pool

    def write(self, entries: Iterable[Tuple[RecordInfo, bytes]], strings: Sequence[str]) -> Tuple[ArzHeader, List[RecordInfo]]:
        header, placed, content = self.build(entries, strings)
        self.to_file(content)
        logging.info(f"[arzwriter] {self.file_path} written ({header.record_count} records, {len(content)} bytes)")
        return header, placed

    def to_file(self, content: bytes):
        # truncating write: a failure part-way leaves the file unusable
        try:
            parent = os.path.dirname(self.file_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(self.file_path, "wb") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            logging.error(f"[arzwriter] failed writing {self.file_path}: {e}")
            raise ArchiveIOError(f"failed writing {self.file_path}: {e}") from e

    def write_records(self, records: Iterable[ResolvedRecord], base_dir) -> Tuple[ArzHeader, List[RecordInfo]]:
        """Build an archive from scratch out of resolved records."""
        table = StringTable()
        encoder = RecordEncoder(table)
        entries = []
        for record in records:
            rel_path = relative_record_path(record.file_path, base_dir)
            encoded = encoder.encode(record, rel_path)
            compressed = compress_record(encoded.payload)
            timestamp = get_file_time(record.file_path) if os.path.exists(record.file_path) else 0
            info = RecordInfo(
                name_id=encoded.name_id,
                record_class=encoded.record_class,
                offset=0,
                compressed_length=len(compressed),
                timestamp=timestamp,
            )
            entries.append((info, compressed))
        return self.write(entries, table.strings())
