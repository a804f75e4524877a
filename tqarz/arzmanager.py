# arzmanager.py - incremental synchronisation of an .arz archive with a
# directory of source records
#
# Licensed under the MIT License.
#
# The archive is loaded once; records whose source file is newer than the
# stored timestamp are re-encoded (optionally in parallel) and merged into
# the in-memory index. flush() rebuilds the whole file from the unchanged
# records' compressed bytes plus the re-encoded delta.

import os
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from formats.arzcommon import RecordInfo
from gameres.gameres import (
    ArchiveClosedError,
    ArchiveIOError,
    OutOfRangeError,
    RawRecord,
    RecordDoneCallback,
    RecordParser,
    notify_record_done,
)
from gameres.utility import get_file_time, iter_record_files, record_key, relative_record_path
from tqarz.arzencoder import RecordEncoder, compress_record
from tqarz.arzreader import ArzReader, decode_variables, decompress_record, split_template
from tqarz.arzwriter import ArzWriter
from tqarz.stringtable import StringTable


class ManagerState(Enum):
    CLOSED = "closed"
    LOADED = "loaded"
    IDLE = "idle"
    SYNCING = "syncing"


class SyncStatus(Enum):
    ADDED = "added"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SyncResult:
    path: str
    key: str
    status: SyncStatus
    info: Optional[RecordInfo] = None
    compressed: Optional[bytes] = None


@dataclass
class SyncReport:
    added: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    def add(self, result: SyncResult):
        {
            SyncStatus.ADDED: self.added,
            SyncStatus.UPDATED: self.updated,
            SyncStatus.SKIPPED: self.skipped,
            SyncStatus.FAILED: self.failed,
        }[result.status].append(result.path)

    @property
    def changed(self) -> int:
        return len(self.added) + len(self.updated)


class ArzManager:
    """Keeps one archive in sync with the records under base_dir.

    Not safe for concurrent use: sync_* must not overlap with flush() or the
    query methods on the same instance. Parallelism happens inside
    sync_many only.
    """

    def __init__(self, file_path, base_dir, parser: RecordParser,
                 on_record_done: Optional[RecordDoneCallback] = None,
                 max_workers: Optional[int] = None):
        self.file_path = os.path.abspath(os.fspath(file_path))
        self.base_dir = os.path.abspath(os.fspath(base_dir))
        self.parser = parser
        self.on_record_done = on_record_done
        self.max_workers = max_workers

        self._strings = StringTable()
        self._infos: Dict[str, RecordInfo] = {}
        # compressed bytes that are not (or no longer) readable from the file on disk
        self._pending: Dict[str, bytes] = {}
        self._decoded: Dict[str, RawRecord] = {}
        self._reader: Optional[ArzReader] = None
        self._dirty = False

        if os.path.isfile(self.file_path) and os.path.getsize(self.file_path) > 0:
            self._read_archive()
        elif not os.path.exists(self.file_path):
            parent = os.path.dirname(self.file_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            open(self.file_path, "ab").close()
            logging.info(f"[arzmanager] created empty archive placeholder {self.file_path}")

        self.state = ManagerState.LOADED

    def _read_archive(self):
        reader = ArzReader(self.file_path)
        for s in reader.strings():
            self._strings.load(s)

        for info in reader.record_infos():
            try:
                name = self._strings.get(info.name_id)
            except OutOfRangeError as e:
                logging.error(f"[arzmanager] record entry with unknown name: {e}")
                continue
            key = record_key(name)
            if key in self._infos:
                logging.error(f"[arzmanager] duplicate record '{name}' in {self.file_path}, keeping the first one")
                continue
            self._infos[key] = info

        self._reader = reader
        logging.info(
            f"[arzmanager] loaded {self.file_path}: {len(self._infos)} records, {len(self._strings)} strings"
        )

    # ============================
    # State
    # ============================
    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def strings(self) -> StringTable:
        return self._strings

    def _check_open(self):
        if self.state == ManagerState.CLOSED:
            raise ArchiveClosedError(f"archive manager for {self.file_path} is closed")

    def close(self):
        self.state = ManagerState.CLOSED
        self._reader = None
        self._decoded.clear()
        logging.debug(f"[arzmanager] {self.file_path} closed")

    def __enter__(self) -> "ArzManager":
        return self

    def __exit__(self, *args):
        self.close()

    # ============================
    # Sync
    # ============================
    def _process(self, path: str) -> SyncResult:
        rel_path = relative_record_path(path, self.base_dir)
        key = record_key(rel_path)

        try:
            timestamp = get_file_time(path)
        except OSError as e:
            logging.error(f"[arzmanager] cannot stat {path}: {e}")
            return SyncResult(path, key, SyncStatus.FAILED)

        existing = self._infos.get(key)
        if existing is not None and existing.timestamp >= timestamp:
            logging.debug(f"[arzmanager] {rel_path} is up to date")
            return SyncResult(path, key, SyncStatus.SKIPPED)

        try:
            record = self.parser.parse(path)
            encoded = RecordEncoder(self._strings).encode(record, rel_path)
            compressed = compress_record(encoded.payload)
        except Exception as e:
            logging.exception(f"[arzmanager] failed to get file {path}: {e}")
            return SyncResult(path, key, SyncStatus.FAILED)

        info = RecordInfo(
            name_id=encoded.name_id,
            record_class=encoded.record_class,
            offset=0,
            compressed_length=len(compressed),
            timestamp=timestamp,
        )
        status = SyncStatus.ADDED if existing is None else SyncStatus.UPDATED
        logging.info(f"[arzmanager] {path} has been {status.value}")
        return SyncResult(path, key, status, info, compressed)

    def _process_and_notify(self, path: str) -> SyncResult:
        result = self._process(path)
        if result.status != SyncStatus.FAILED:
            notify_record_done(self.on_record_done, path)
        return result

    def _apply(self, result: SyncResult):
        self._infos[result.key] = result.info
        self._pending[result.key] = result.compressed
        self._decoded.pop(result.key, None)
        self._dirty = True

    def sync_one(self, path) -> SyncReport:
        return self.sync_many([path])

    def sync_many(self, paths: Iterable, parallel: bool = False) -> SyncReport:
        self._check_open()
        paths = [os.fspath(p) for p in paths]
        report = SyncReport()
        self.state = ManagerState.SYNCING
        try:
            if not parallel:
                for path in paths:
                    result = self._process_and_notify(path)
                    if result.info is not None:
                        self._apply(result)
                    report.add(result)
            else:
                with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                    results = list(pool.map(self._process_and_notify, paths))
                self._merge(results, report)
        finally:
            self.state = ManagerState.IDLE

        logging.info(
            f"[arzmanager] sync: {len(report.added)} added, {len(report.updated)} updated, "
            f"{len(report.skipped)} skipped, {len(report.failed)} failed"
        )
        return report

    def _merge(self, results: List[SyncResult], report: SyncReport):
        merged: Dict[str, SyncResult] = {}
        for result in results:
            report.add(result)
            if result.info is None:
                continue
            previous = merged.get(result.key)
            if previous is None or result.info.timestamp > previous.info.timestamp:
                if previous is not None:
                    logging.warning(f"[arzmanager] {previous.path} and {result.path} map to the same record, keeping the newer")
                merged[result.key] = result
        for result in merged.values():
            self._apply(result)

    def sync_directory(self, parallel: bool = False) -> SyncReport:
        return self.sync_many(iter_record_files(self.base_dir), parallel=parallel)

    # ============================
    # Write
    # ============================
    def _compressed(self, key: str) -> bytes:
        data = self._pending.get(key)
        if data is not None:
            return data
        return self._reader.compressed_record(self._infos[key])

    def flush(self) -> bool:
        self._check_open()
        if not self._dirty:
            logging.info(f"[arzmanager] archive {self.file_path} is up to date")
            return False

        keys = list(self._infos)
        # everything must be in memory before the destination is truncated
        entries = [(self._infos[key], self._compressed(key)) for key in keys]
        try:
            _, placed = ArzWriter(self.file_path).write(entries, self._strings.strings())
        except ArchiveIOError:
            self._pending = {key: data for key, (_, data) in zip(keys, entries)}
            self._reader = None
            raise

        self._infos = dict(zip(keys, placed))
        self._pending.clear()
        self._reader = ArzReader(self.file_path)
        self._dirty = False
        logging.info(f"[arzmanager] archive {self.file_path} written successfully")
        return True

    def rewrite(self) -> bool:
        self._dirty = True
        return self.flush()

    # ============================
    # Queries
    # ============================
    def __len__(self) -> int:
        return len(self._infos)

    def __contains__(self, name: str) -> bool:
        return record_key(name) in self._infos

    def record_names(self) -> List[str]:
        return [self._strings.get(info.name_id) for info in self._infos.values()]

    def record_info(self, name: str) -> Optional[RecordInfo]:
        return self._infos.get(record_key(name))

    def record(self, name: str) -> RawRecord:
        self._check_open()
        key = record_key(name)
        cached = self._decoded.get(key)
        if cached is not None:
            return cached
        info = self._infos.get(key)
        if info is None:
            raise KeyError(name)

        payload = decompress_record(self._compressed(key))
        fields = decode_variables(payload, lambda ids: [self._strings.get(i) for i in ids])
        record = split_template(self._strings.get(info.name_id), fields)
        self._decoded[key] = record
        return record
