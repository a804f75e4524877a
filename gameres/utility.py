# utility.py - helpers shared by the .arz reader, writer and CLI commands
#
# Licensed under the MIT License.

import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Iterable, Optional, Union

import numpy as np

from gameres.gameres import FormatError, RawRecord

# ============================
# File times
# ============================
# Windows FILETIME: 100 ns ticks since 1601-01-01 UTC
FILETIME_EPOCH_DELTA = 116444736000000000


def to_file_time(mtime_ns: int) -> int:
    return mtime_ns // 100 + FILETIME_EPOCH_DELTA


def from_file_time(file_time: int) -> int:
    return (file_time - FILETIME_EPOCH_DELTA) * 100


def get_file_time(path: Union[str, os.PathLike]) -> int:
    """Last write time of a file, in the unit stored in record timestamps."""
    return to_file_time(os.stat(path).st_mtime_ns)


# ============================
# Canonical number text
# ============================
def format_ints(values: np.ndarray) -> str:
    return ";".join(str(int(v)) for v in values)


def format_floats(values: np.ndarray) -> str:
    # str() of a numpy float32 is the shortest text that reads back to the same float32
    return ";".join(str(np.float32(v)) for v in values)


# ============================
# Record paths
# ============================
def normalize_record_path(path: str) -> str:
    return path.replace("\\", "/")


def record_key(path: str) -> str:
    """Case-insensitive lookup key for a stored or relative record path."""
    return normalize_record_path(path).lower()


def relative_record_path(path: Union[str, os.PathLike], base_dir: Union[str, os.PathLike]) -> str:
    rel = os.path.relpath(os.path.abspath(path), os.path.abspath(base_dir))
    return normalize_record_path(rel)


# ============================
# DBR text output
# ============================
class DbrTextSaver:
    """Writes a decoded record as the plain 'name,value,' text the game editors use."""

    @staticmethod
    def render(record: RawRecord) -> str:
        lines = [f"templateName,{record.template_name},"]
        for name, value in record.fields.items():
            lines.append(f"{name},{value},")
        return "\r\n".join(lines) + "\r\n"

    @classmethod
    def save(cls, record: RawRecord, output_dir: Union[str, os.PathLike]) -> str:
        output_path = os.path.join(os.fspath(output_dir), *normalize_record_path(record.file_name).split("/"))
        real_out = os.path.realpath(output_dir)
        real_target = os.path.realpath(output_path)
        if real_target == real_out or os.path.commonpath([real_out, real_target]) != real_out:
            raise FormatError(f"record name '{record.file_name}' points outside {output_dir}")
        parent = os.path.dirname(output_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(output_path, "w", encoding="cp1252", errors="replace", newline="") as f:
            f.write(cls.render(record))
        logging.debug(f"[utility] {record.file_name} -> {output_path}")
        return output_path


# ============================
# Logging
# ============================
class SafeRotatingFileHandler(RotatingFileHandler):
    def doRollover(self):
        try:
            super().doRollover()
        except PermissionError as e:
            logging.warning(f"[SafeRotatingFileHandler] rollover failed (ignored): {e}")


def setup_logging(log_path: Optional[str] = None, verbose: bool = False) -> logging.Logger:
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")

    if log_path:
        file_handler = SafeRotatingFileHandler(
            log_path,
            mode="a",
            maxBytes=100_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(console_handler)
    return logger


def iter_record_files(base_dir: Union[str, os.PathLike], extension: str = ".dbr") -> Iterable[str]:
    for root, dirs, files in os.walk(base_dir):
        dirs.sort()
        for name in sorted(files):
            if name.lower().endswith(extension):
                yield os.path.join(root, name)
