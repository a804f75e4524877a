# fileview.py - file view and little-endian cursor used by the .arz reader
#
# Licensed under the MIT License.

import io
import os
import struct
import logging
from typing import BinaryIO, Union

from gameres.gameres import FormatError


# FileView: read-only handle over an archive on disk, opened per operation
class FileView:
    def __init__(self, filepath: Union[str, os.PathLike]):
        self.filepath = os.fspath(filepath)
        self.file = open(self.filepath, "rb")
        self.size = os.fstat(self.file.fileno()).st_size
        self.name = os.path.basename(self.filepath)
        self.stream = self.file
        logging.debug(f"[fileview] '{self.name}' opened ({self.size} bytes)")

    def __enter__(self) -> "FileView":
        return self

    def __exit__(self, *args):
        self.close()

    def read_at(self, offset: int, size: int) -> bytes:
        if offset < 0 or offset > self.size:
            raise FormatError(f"offset 0x{offset:X} outside of '{self.name}' ({self.size} bytes)")
        self.stream.seek(offset)
        return self.stream.read(size)

    def create_reader(self, offset: int = 0) -> "Reader":
        self.stream.seek(offset)
        return Reader(self.stream)

    def close(self):
        self.file.close()
        logging.debug(f"[fileview] '{self.name}' closed")


# Reader: strict cursor over a binary stream. A short read is a FormatError,
# never a silently shorter value.
class Reader:
    def __init__(self, stream: Union[BinaryIO, bytes, bytearray, memoryview]):
        if isinstance(stream, (bytes, bytearray, memoryview)):
            stream = io.BytesIO(bytes(stream))
        self.stream = stream

    @property
    def offset(self) -> int:
        return self.stream.tell()

    def tell(self) -> int:
        return self.stream.tell()

    def read_bytes(self, size: int) -> bytes:
        if size < 0:
            raise FormatError(f"negative read size {size} at 0x{self.offset:X}")
        pos = self.offset
        data = self.stream.read(size)
        if len(data) != size:
            raise FormatError(f"unexpected end of data at 0x{pos:X}: wanted {size} bytes, got {len(data)}")
        return data

    def read_int16(self) -> int:
        return struct.unpack("<h", self.read_bytes(2))[0]

    def read_int32(self) -> int:
        return struct.unpack("<i", self.read_bytes(4))[0]

    def read_int64(self) -> int:
        return struct.unpack("<q", self.read_bytes(8))[0]


__all__ = ["FileView", "Reader"]
