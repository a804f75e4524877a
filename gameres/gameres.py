# gameres.py - shared record types, collaborator interfaces and error taxonomy
# for the .arz database tools.
#
# Licensed under the MIT License.

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional


# ============================
# Errors
# ============================
class ArzError(Exception):
    """Base class for every error raised by the archive tools."""


class ArchiveNotFoundError(ArzError, FileNotFoundError):
    pass


class EmptyArchiveError(ArzError, ValueError):
    pass


class FormatError(ArzError, ValueError):
    """Header, string or record data inconsistent with its declared sizes."""


class OutOfRangeError(ArzError, IndexError):
    pass


class FieldEncodeError(ArzError, ValueError):
    def __init__(self, field_name: str, message: str):
        super().__init__(f"{field_name}: {message}")
        self.field_name = field_name


class MissingSchemaReferenceError(FormatError):
    """A decoded record has no templateName variable."""


class ArchiveIOError(ArzError, OSError):
    pass


class RecordParseError(ArzError):
    pass


class ArchiveClosedError(ArzError, RuntimeError):
    pass


# ============================
# Record field declarations
# ============================
class VariableKind(Enum):
    INT = "int"
    REAL = "real"
    BOOL = "bool"
    STRING = "string"
    FILE = "file"
    EQUATION = "equation"
    # template-only kinds, never written to an archive
    EQN_VARIABLE = "eqnVariable"
    INCLUDE = "include"

    @property
    def is_internal(self) -> bool:
        return self in (VariableKind.EQN_VARIABLE, VariableKind.INCLUDE)


class VariableClass(Enum):
    VARIABLE = "variable"
    STATIC = "static"
    PICKLIST = "picklist"
    ARRAY = "array"


@dataclass
class RecordField:
    name: str
    kind: VariableKind
    var_class: VariableClass = VariableClass.VARIABLE
    value: str = ""

    @property
    def is_array(self) -> bool:
        return self.var_class == VariableClass.ARRAY


@dataclass
class ResolvedRecord:
    """A source record after its template has been resolved.

    Produced by a RecordParser; the fields keep their declaration order.
    """
    file_path: str
    template_name: str
    fields: List[RecordField] = field(default_factory=list)

    def get(self, name: str) -> Optional[RecordField]:
        lowered = name.lower()
        for f in self.fields:
            if f.name.lower() == lowered:
                return f
        return None

    @property
    def record_class(self) -> str:
        class_field = self.get("Class")
        return class_field.value if class_field is not None else ""


@dataclass
class RawRecord:
    """A record as decoded from an archive: name -> textual value."""
    file_name: str
    template_name: str
    fields: Dict[str, str] = field(default_factory=dict)

    def __getitem__(self, name: str) -> str:
        return self.fields[name]

    def __contains__(self, name: str) -> bool:
        return name in self.fields


# ============================
# Collaborators
# ============================
class RecordParser(ABC):
    """Turns a source record file into a ResolvedRecord.

    Implementations raise RecordParseError (or any other exception) when the
    file cannot be parsed; the sync manager isolates such failures per record.
    """

    @abstractmethod
    def parse(self, path: str) -> ResolvedRecord:
        pass


# one call per completed source record, success or skipped-as-unchanged
RecordDoneCallback = Callable[[str], None]


def notify_record_done(callback: Optional[RecordDoneCallback], path: str):
    if callback is None:
        return
    try:
        callback(path)
    except Exception as e:
        logging.warning(f"[gameres] record-done callback failed for {path}: {e}")
