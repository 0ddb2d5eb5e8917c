# dcm_export/loaders/dicom_loader.py
from __future__ import annotations
from pathlib import Path
from typing import Any, Iterator
import logging

import pydicom
from pydicom.dataelem import RawDataElement
from pydicom.dataset import Dataset

from ..core.elements import format_tag, parse_tag
from ..core.errors import DecodeFailure

_LOG = logging.getLogger(__name__)

# A DICOM Part 10 file starts with a 128 byte preamble followed by 'DICM'
# (see http://www.cabiatl.com/mricro/dicom/ for an overview of the layout)
MAGIC_OFFSET = 128
MAGIC = b"DICM"
_UNDEFINED_LENGTH = 0xFFFFFFFF


def looks_like_dicom(path: Path) -> bool:
    try:
        with open(path, "rb") as f:
            f.seek(MAGIC_OFFSET)
            return f.read(len(MAGIC)) == MAGIC
    except OSError:
        return False


class DicomRecord:
    """
    One decoded image file. Elements are addressed by ``"GGGG,EEEE"`` tags;
    the file meta group (0002) is exposed first, then the dataset in tag order.
    """

    def __init__(self, path: Path, dataset: Dataset):
        self.path = Path(path)
        self.dataset = dataset

    def __repr__(self) -> str:
        return f"DicomRecord({str(self.path)!r}, {len(self.dataset)} elements)"

    def _container(self, tag) -> Dataset | None:
        if tag.group == 0x0002:
            return getattr(self.dataset, "file_meta", None)
        return self.dataset

    def exists(self, tag: str) -> bool:
        t = parse_tag(tag)
        ds = self._container(t)
        return ds is not None and t in ds

    def value(self, tag: str) -> Any:
        t = parse_tag(tag)
        ds = self._container(t)
        if ds is None or t not in ds:
            raise KeyError(tag)
        return ds[t].value

    def remove(self, tag: str) -> None:
        t = parse_tag(tag)
        ds = self._container(t)
        if ds is not None and t in ds:
            del ds[t]

    def _iter_elements(self) -> Iterator:
        meta = getattr(self.dataset, "file_meta", None)
        if meta:
            yield from meta
        yield from self.dataset

    def elements(self) -> list[tuple[str, Any]]:
        return [(format_tag(elem.tag), elem.value) for elem in self._iter_elements()]

    def tags(self) -> list[str]:
        return [format_tag(elem.tag) for elem in self._iter_elements()]


def _assert_complete(ds: Dataset, path: Path) -> None:
    # pydicom keeps elements raw until first access; a raw value shorter than its
    # declared length means the file ended mid-element
    for tag in list(ds.keys()):
        elem = ds.get_item(tag)
        if not isinstance(elem, RawDataElement) or elem.value is None:
            continue
        if elem.length != _UNDEFINED_LENGTH and len(elem.value) < elem.length:
            raise DecodeFailure(path, f"element {format_tag(tag)} truncated "
                                      f"({len(elem.value)} of {elem.length} bytes)")

    # the reader stops quietly on a partial element header, so the last element
    # must end exactly at the end of the file
    meta = getattr(ds, "file_meta", None)
    syntax = meta.get("TransferSyntaxUID") if meta else None
    if syntax is not None and syntax.is_deflated:
        return
    last = ds.get_item(max(ds.keys()))
    if not isinstance(last, RawDataElement) or last.length == _UNDEFINED_LENGTH:
        return
    end = last.value_tell + last.length
    size = path.stat().st_size
    if end != size:
        raise DecodeFailure(path, f"{size - end} unread byte(s) after element {format_tag(last.tag)}")


def decode(path: Path) -> DicomRecord:
    """Read one DICOM file; any parse problem is reported as DecodeFailure."""
    path = Path(path)
    try:
        ds = pydicom.dcmread(path)
    except Exception as e:
        raise DecodeFailure(path, str(e) or type(e).__name__) from e

    if len(ds) == 0:
        raise DecodeFailure(path, "no data elements")
    _assert_complete(ds, path)
    try:
        record = DicomRecord(path, ds)
        record.elements()   # forces conversion of every raw element
    except Exception as e:
        raise DecodeFailure(path, str(e) or type(e).__name__) from e
    _LOG.debug("decoded %s (%d elements)", path.name, len(ds))
    return record
