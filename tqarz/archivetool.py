# archivetool.py - wrapper around the game's external ArchiveTool.exe
#
# Licensed under the MIT License.
#
# Usage of the tool: archiveTool <file> <command> [command arguments]
#   -add <directory> <base> [compression]      add files not yet in the archive
#   -replace <directory> <base> [compression]  add, overwriting existing files
#   -update <directory> <base> [compression]   add files newer than the archived copy
#   -remove <file>                             remove a file
#   -extract <location> [file]                 extract everything or one file
#   -removeMissing <file> <base>               drop files missing from <base>
#   -compact                                   remove unused space
#   -list                                      list files
#   -stats                                     archive statistics

import os
import logging
import subprocess
from typing import List, Tuple

TOOL_TIMEOUT = 10
MIN_COMPRESSION = 0
MAX_COMPRESSION = 9


def clamp_compression(level: int) -> int:
    return max(MIN_COMPRESSION, min(MAX_COMPRESSION, int(level)))


class ArchiveTool:
    def __init__(self, tool_path):
        tool_path = os.fspath(tool_path)
        if not tool_path.lower().endswith(".exe"):
            raise ValueError(f"tool path {tool_path} is invalid: the file must be an executable with .exe extension")
        if not os.path.isfile(tool_path):
            raise FileNotFoundError(f"tool path {tool_path} is invalid: the file does not exist")
        self.tool_path = tool_path
        self.output: List[str] = []
        self.errors: List[str] = []

    def run(self, *args) -> int:
        command = [self.tool_path] + [os.fspath(a) for a in args if a != ""]
        logging.debug(f"[archivetool] running {' '.join(command)}")
        try:
            result = subprocess.run(command, capture_output=True, text=True, timeout=TOOL_TIMEOUT)
        except subprocess.TimeoutExpired:
            logging.error(f"[archivetool] {' '.join(command)} did not finish within {TOOL_TIMEOUT}s")
            raise

        self.output.extend(result.stdout.splitlines())
        self.errors.extend(result.stderr.splitlines())
        if result.returncode != 0:
            logging.warning(f"[archivetool] exit code {result.returncode}: {result.stderr.strip()}")
        return result.returncode

    def output_lines(self) -> List[str]:
        return list(self.output)

    def error_lines(self) -> List[str]:
        return list(self.errors)

    def add(self, archive_path, to_add, base_dir, compression_level: int = 0) -> int:
        return self.run(archive_path, "-add", to_add, base_dir, str(clamp_compression(compression_level)))

    def replace(self, archive_path, to_replace, base_dir, compression_level: int = 0) -> int:
        return self.run(archive_path, "-replace", to_replace, base_dir, str(clamp_compression(compression_level)))

    def update(self, archive_path, to_update, base_dir, compression_level: int = 0) -> int:
        return self.run(archive_path, "-update", to_update, base_dir, str(clamp_compression(compression_level)))

    def remove(self, archive_path, file_path) -> int:
        return self.run(archive_path, "-remove", file_path)

    def extract(self, archive_path, extraction_path, file_path="") -> int:
        return self.run(archive_path, "-extract", extraction_path, file_path)

    def remove_missing(self, archive_path, base_dir) -> int:
        return self.run(archive_path, "-removeMissing", base_dir)

    def compact(self, archive_path) -> int:
        return self.run(archive_path, "-compact")

    def list(self, archive_path) -> Tuple[int, List[str]]:
        return self.run(archive_path, "-list"), self.output_lines()

    def stats(self, archive_path) -> Tuple[int, List[str]]:
        return self.run(archive_path, "-stats"), self.output_lines()


class ArchiveToolArchive:
    """ArchiveTool bound to one archive file."""

    def __init__(self, tool_path, archive_path, base_dir=None):
        self.tool = ArchiveTool(tool_path)
        self.archive_path = os.fspath(archive_path)
        self.base_dir = base_dir
        parent = os.path.dirname(self.archive_path)
        if parent and not os.path.isdir(parent):
            raise FileNotFoundError(f"the directory of {self.archive_path} doesn't exist")

    def _base(self, base_dir) -> str:
        base_dir = base_dir if base_dir is not None else self.base_dir
        if base_dir is None:
            raise ValueError("no base directory given")
        return base_dir

    def add(self, to_add, base_dir=None, compression_level: int = 0) -> int:
        return self.tool.add(self.archive_path, to_add, self._base(base_dir), compression_level)

    def replace(self, to_replace, base_dir=None, compression_level: int = 0) -> int:
        return self.tool.replace(self.archive_path, to_replace, self._base(base_dir), compression_level)

    def update(self, to_update, base_dir=None, compression_level: int = 0) -> int:
        return self.tool.update(self.archive_path, to_update, self._base(base_dir), compression_level)

    def remove(self, file_path) -> int:
        return self.tool.remove(self.archive_path, file_path)

    def extract(self, extraction_path, file_path="") -> int:
        return self.tool.extract(self.archive_path, extraction_path, file_path)

    def remove_missing(self, base_dir=None) -> int:
        return self.tool.remove_missing(self.archive_path, self._base(base_dir))

    def compact(self) -> int:
        return self.tool.compact(self.archive_path)

    def list(self) -> Tuple[int, List[str]]:
        return self.tool.list(self.archive_path)

    def stats(self) -> Tuple[int, List[str]]:
        return self.tool.stats(self.archive_path)


class ArchiveToolArchiveBase(ArchiveToolArchive):
    """ArchiveTool bound to one archive and one base directory."""

    def __init__(self, tool_path, archive_path, base_dir):
        super().__init__(tool_path, archive_path, os.fspath(base_dir))
        if not os.path.isdir(self.base_dir):
            raise FileNotFoundError(f"the base directory {self.base_dir} doesn't exist")
