# dcm_export/core/reports.py
from __future__ import annotations
import csv
from typing import Any, TextIO

import pandas as pd
from pydicom.multival import MultiValue
from pydicom.sequence import Sequence

from .elements import ElementDictionary
from .errors import ExamNotLoaded, InconsistentStructure
from .exam import Exam
from .model import SLICE_LOCATION

# Fixed CSV dialect of the exports; readers should use the same settings
CSV_OPTIONS = {"sep": ",", "quotechar": '"', "quoting": csv.QUOTE_ALL}


def csv_value(value: Any) -> str:
    """Text form of an element value for a CSV cell."""
    if value is None:
        return ""
    if isinstance(value, Sequence):
        return ""           # sequences carry items, not a value
    if isinstance(value, (MultiValue, list, tuple)):
        return "\\".join(csv_value(v) for v in value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    return str(value)


def csv_header(exam: Exam, dictionary: ElementDictionary) -> list[str]:
    """
    Column names of the CSV export: the source file pseudo column, then the
    label of every element of the first exam image, e.g.
    [..., "0010,0000", "0010,0010 (Patient's Name)", ...]
    """
    if not exam.images:
        return []
    first = next(iter(exam.images.values()))
    return [exam.tags.source_file_label] + [dictionary.label_for(tag) for tag in first.tags()]


def csv_rows(exam: Exam, sort_by: str | None = None) -> list[list[str]]:
    """One row per exam image: source path, then every element value in header order."""
    return [
        [path] + [csv_value(value) for _, value in record.elements()]
        for path, record in exam.sorted_images(sort_by).items()
    ]


def assert_exportable(exam: Exam) -> None:
    if not exam.loaded:
        raise ExamNotLoaded(exam.source_path)
    if not exam.is_homogeneous():
        raise InconsistentStructure(exam.source_path)


def build_dataframe(exam: Exam, dictionary: ElementDictionary,
                    sort_by: str | None = SLICE_LOCATION) -> pd.DataFrame:
    assert_exportable(exam)
    header = csv_header(exam, dictionary)
    return pd.DataFrame(csv_rows(exam, sort_by), columns=header, dtype=object)


def write_csv(exam: Exam, sink: TextIO, dictionary: ElementDictionary,
              sort_by: str | None = SLICE_LOCATION) -> int | None:
    """
    Write the exam metadata as CSV to an open text stream (header first).
    Returns the number of rows written, or None when the exam has no images.
    Raises InconsistentStructure, before writing anything, if the images do
    not share a single structure (several series in one directory).
    """
    assert_exportable(exam)
    if not exam.images:
        return None
    df_out = build_dataframe(exam, dictionary, sort_by)
    df_out.to_csv(sink, index=False, lineterminator="\n", **CSV_OPTIONS)
    return len(df_out)


def read_csv(source) -> pd.DataFrame:
    """Read an export back, every cell as text."""
    return pd.read_csv(source, dtype=str, keep_default_na=False,
                       sep=CSV_OPTIONS["sep"], quotechar=CSV_OPTIONS["quotechar"])
