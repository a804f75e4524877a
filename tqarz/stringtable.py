# stringtable.py - shared, thread-safe string pool for .arz encoding
#
# Licensed under the MIT License.

import logging
import threading
from typing import Iterable, List, Optional

from gameres.gameres import OutOfRangeError


class StringTable:
    """Interning table backing the archive's string pool.

    IDs are dense and start at 0. Strings are only ever appended. Two
    lookup maps share the one pool: an exact map for case-preserving
    references (record paths, template and file names) and a lower-cased
    map for everything else. Whichever spelling is interned first supplies
    the stored bytes.
    """

    def __init__(self, strings: Optional[Iterable[str]] = None):
        self._lock = threading.Lock()
        self._strings: List[str] = []
        self._exact = {}
        self._folded = {}
        if strings is not None:
            for s in strings:
                self.load(s)

    def __len__(self) -> int:
        return len(self._strings)

    def __contains__(self, value: str) -> bool:
        return value in self._exact

    def get(self, string_id: int) -> str:
        if string_id < 0 or string_id >= len(self._strings):
            raise OutOfRangeError(f"string id {string_id} out of range [0, {len(self._strings)})")
        return self._strings[string_id]

    def load(self, value: str) -> int:
        """Append a string read from an existing pool, keeping its position.

        A duplicate keeps the older ID for lookups; the newer copy still
        occupies its slot so later IDs do not shift.
        """
        with self._lock:
            string_id = len(self._strings)
            self._strings.append(value)
            if value in self._exact:
                logging.warning(
                    f"[stringtable] duplicate string '{value}' at id {string_id}, keeping id {self._exact[value]}"
                )
            else:
                self._exact[value] = string_id
            self._folded.setdefault(value.lower(), string_id)
            return string_id

    def intern(self, value: str, preserve_case: bool = False) -> int:
        with self._lock:
            if preserve_case:
                string_id = self._exact.get(value)
            else:
                string_id = self._folded.get(value.lower())
            if string_id is not None:
                return string_id

            string_id = len(self._strings)
            self._strings.append(value)
            self._exact.setdefault(value, string_id)
            self._folded.setdefault(value.lower(), string_id)
            return string_id

    def strings(self) -> List[str]:
        """Snapshot of the pool in ID order."""
        with self._lock:
            return list(self._strings)
