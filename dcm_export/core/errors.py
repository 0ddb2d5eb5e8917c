# dcm_export/core/errors.py
from __future__ import annotations
from pathlib import Path


class ExamError(Exception):
    """Base class of every failure raised while loading or exporting an exam."""


class ExamNotBound(ExamError):
    def __init__(self):
        super().__init__("no source directory bound to this exam")


class ExamNotLoaded(ExamError):
    def __init__(self, source_path: str | None):
        self.source_path = source_path
        super().__init__(f"DICOM images of {source_path} have not been loaded")


class DecodeFailure(ExamError):
    """A file carried the DICOM signature but could not be fully decoded."""

    def __init__(self, path: Path | str, reason: str | None = None):
        self.path = Path(path)
        self.reason = reason
        msg = f"DICOM image not processed: {path}; corrupt file?"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class UnsupportedModality(ExamError):
    """A decoded image does not come from the expected kind of scanner."""

    def __init__(self, path: Path | str, found: str | None, expected: str = "CT"):
        self.path = Path(path)
        self.found = found
        self.expected = expected
        super().__init__(f"DICOM image of modality other than '{expected}': {path}, modality: {found}")


class InconsistentStructure(ExamError):
    """The primary images do not share one element layout, so no single column schema exists."""

    def __init__(self, source_path: str | None):
        self.source_path = source_path
        super().__init__(f"DICOM source files have inconsistent structure among them: {source_path}")


class OutputExists(ExamError):
    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(f"file {path} exists, use --force to overwrite")
