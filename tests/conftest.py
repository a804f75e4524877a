import logging
import os

import pytest

from gameres.gameres import (
    RecordField,
    RecordParseError,
    RecordParser,
    ResolvedRecord,
    VariableClass,
    VariableKind,
)
from gameres.utility import SafeRotatingFileHandler

BASE_MTIME_NS = 1_600_000_000 * 10**9


class TextRecordParser(RecordParser):
    """Test parser for a tiny source format.

    First line 'templateName,<template>', then one 'name,kind,value' line per
    field. A kind ending in '[]' marks an array field.
    """

    def __init__(self):
        self.calls = []

    def parse(self, path):
        self.calls.append(path)
        with open(path, encoding="utf-8") as f:
            lines = [line.rstrip("\r\n") for line in f if line.strip()]
        if not lines or not lines[0].startswith("templateName,"):
            raise RecordParseError(f"{path}: missing templateName line")

        fields = []
        for line in lines[1:]:
            name, kind, value = line.split(",", 2)
            var_class = VariableClass.VARIABLE
            if kind.endswith("[]"):
                kind = kind[:-2]
                var_class = VariableClass.ARRAY
            fields.append(RecordField(name, VariableKind(kind), var_class, value))
        return ResolvedRecord(path, lines[0].split(",", 1)[1], fields)


def write_source(base_dir, rel_path, lines, mtime_ns=BASE_MTIME_NS):
    path = os.path.join(os.fspath(base_dir), *rel_path.split("/"))
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write("\n".join(lines) + "\n")
    os.utime(path, ns=(mtime_ns, mtime_ns))
    return path


@pytest.fixture
def parser():
    return TextRecordParser()


@pytest.fixture
def source_dir(tmp_path):
    path = tmp_path / "records"
    path.mkdir()
    return path


@pytest.fixture
def write_record(source_dir):
    def _write(rel_path, lines, mtime_ns=BASE_MTIME_NS):
        return write_source(source_dir, rel_path, lines, mtime_ns)
    return _write


@pytest.fixture(autouse=True)
def restore_root_logger():
    # the CLI entry points install their own handlers on the root logger
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if isinstance(handler, SafeRotatingFileHandler) or type(handler) is logging.StreamHandler:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
