# dcm_export/core/exam.py
"""
Set of DICOM images of one CT-scan exam, read from a source directory.

The images of the exam itself are kept apart from the scout images
(localizers); metadata can then be exported as CSV or charted as HTML::

    exam = Exam("images/exam001/")
    with open("exam001.csv", "w", newline="") as f:
        write_csv(exam, f, load_element_dictionary())

To inspect an exam::

    exam = Exam("images/exam001/", ExamOptions(defer_loading=True))
    exam.load()
    print(exam.name, list(exam.images), list(exam.scouts))

Once loaded, the image set no longer changes; further ``load()`` calls have
no effect. Binding another directory clears everything (and reloads unless
loading is deferred).
"""
from __future__ import annotations
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Mapping
import logging

from .classify import find_images_in, numeric_field, partition, series_description, structural_signature
from .elements import ElementTags
from .errors import ExamNotBound, UnsupportedModality
from .model import MISSING_FIRST, SLICE_LOCATION, ExamOptions, ExamState, Homogeneity
from ..loaders.dicom_loader import DicomRecord, decode

_LOG = logging.getLogger(__name__)

NO_NAME = "(no name)"
EMPTY_IMAGE_SET = "(empty image set)"

Decoder = Callable[[Path], DicomRecord]


def normalize_dir(path: Path | str) -> str:
    """``"test"``, ``"test/"``, ``"test//"`` and ``"test/image.dcm"`` all give ``"test"``."""
    p = Path(path)
    if p.is_file():
        p = p.parent
    return str(p)


def order_by(criterion: str | None,
             records: Mapping[str, DicomRecord],
             tags: ElementTags) -> Mapping[str, DicomRecord]:
    """
    Reorder records by slice location (ascending, stable, images without a
    slice location first). Any other criterion returns ``records`` unchanged.
    """
    if criterion != SLICE_LOCATION:
        return records
    ordered = sorted(
        records.items(),
        key=lambda item: numeric_field(item[1], tags.slice_location, MISSING_FIRST).resolve(),
    )
    return dict(ordered)


class Exam:

    def __init__(self, dir_path: Path | str | None = None,
                 options: ExamOptions | None = None,
                 tags: ElementTags | None = None,
                 decoder: Decoder = decode):
        self.options = options or ExamOptions()
        self.tags = tags or ElementTags()
        self._decode = decoder
        self._source_path: str | None = None
        self._reset()
        if dir_path is not None:
            self.bind(dir_path)

    def __repr__(self) -> str:
        return (f"Exam({self._source_path!r}, state={self._state.value}, "
                f"images={len(self._images)}, scouts={len(self._scouts)})")

    # ---------- state ----------
    def _reset(self) -> None:
        self._state = ExamState.UNBOUND if self._source_path is None else ExamState.BOUND
        self._name = NO_NAME
        self._homogeneity = Homogeneity.UNKNOWN
        self._images: dict[str, DicomRecord] = {}
        self._scouts: dict[str, DicomRecord] = {}

    @property
    def source_path(self) -> str | None:
        return self._source_path

    @property
    def state(self) -> ExamState:
        return self._state

    @property
    def loaded(self) -> bool:
        return self._state is ExamState.LOADED

    @property
    def name(self) -> str:
        return self._name

    @property
    def images(self) -> Mapping[str, DicomRecord]:
        """Read-only view of the exam images, path → record, in the current order."""
        return MappingProxyType(self._images)

    @property
    def scouts(self) -> Mapping[str, DicomRecord]:
        return MappingProxyType(self._scouts)

    def bind(self, dir_path: Path | str, defer: bool | None = None) -> str:
        """
        Set the source directory. When it actually changes, all data read
        so far is dropped and, unless loading is deferred, the new directory
        is read right away. Returns the normalized path.
        """
        normalized = normalize_dir(dir_path)
        if normalized == self._source_path:
            return self._source_path
        self._source_path = normalized
        self._reset()
        if defer is None:
            defer = self.options.defer_loading
        if not defer:
            self.load()
        return self._source_path

    # ---------- loading ----------
    def load(self) -> int | None:
        """
        Read every DICOM image of the source directory. Returns the number of
        images read (exam + scouts), or None when they had already been read.

        Raises DecodeFailure when a file cannot be decoded and UnsupportedModality
        when an image is not a CT scan; the exam then stays empty.
        """
        if self._state is ExamState.LOADED:
            return None
        if self._state is ExamState.UNBOUND:
            raise ExamNotBound()

        records: dict[str, DicomRecord] = {}
        for path in find_images_in(Path(self._source_path)):
            record = self._decode(path)
            self._assert_modality(path, record)
            record.remove(self.tags.pixel_data)     # never exported
            records[str(path)] = record

        # split before naming, so the name comes from the exam images in priority
        images, scouts = partition(records, self.tags)
        name = self._extract_exam_name(images, scouts)
        if self.options.sort_by:
            images = dict(order_by(self.options.sort_by, images, self.tags))

        self._images, self._scouts, self._name = images, scouts, name
        self._state = ExamState.LOADED
        _LOG.info("read %d image(s) and %d scout(s) from %s", len(images), len(scouts), self._source_path)
        return len(images) + len(scouts)

    def _assert_modality(self, path: Path, record: DicomRecord) -> None:
        found = record.value(self.tags.modality) if record.exists(self.tags.modality) else None
        found = None if found is None else str(found)
        if found != self.tags.required_modality:
            raise UnsupportedModality(path, found, self.tags.required_modality)

    def _extract_exam_name(self, images: dict[str, DicomRecord], scouts: dict[str, DicomRecord]) -> str:
        for group in (images, scouts):
            if group:
                first = next(iter(group.values()))
                return series_description(first, self.tags) or NO_NAME
        return EMPTY_IMAGE_SET

    # ---------- queries ----------
    def has_images(self) -> bool:
        return len(self._images) > 0

    def has_scouts(self) -> bool:
        return len(self._scouts) > 0

    def is_empty(self) -> bool:
        return not (self.has_images() or self.has_scouts())

    def is_homogeneous(self) -> bool:
        """
        True if all exam images share the same element layout (or there are
        none). Scouts are not considered. The answer is kept until rebinding.
        """
        if self._homogeneity is not Homogeneity.UNKNOWN:
            return self._homogeneity is Homogeneity.HOMOGENEOUS

        homogeneous = True
        prev = None
        for record in self._images.values():
            sig = structural_signature(record)
            if prev is not None and sig != prev:
                _LOG.debug("structure changes at %s", record.path.name)
                homogeneous = False
                break
            prev = sig
        self._homogeneity = Homogeneity.HOMOGENEOUS if homogeneous else Homogeneity.HETEROGENEOUS
        return homogeneous

    # ---------- ordering ----------
    def sorted_images(self, criterion: str | None = SLICE_LOCATION) -> dict[str, DicomRecord]:
        """Copy of the exam images in the requested order; the exam is left untouched."""
        return dict(order_by(criterion, self._images, self.tags))

    def sort_images(self, criterion: str | None = SLICE_LOCATION) -> Mapping[str, DicomRecord]:
        """Same as sorted_images, but the exam images are reordered in place."""
        self._images = self.sorted_images(criterion)
        return MappingProxyType(self._images)
