# dcm_export/core/classify.py
from __future__ import annotations
import logging
from pathlib import Path
from typing import Mapping

from pydicom.multival import MultiValue

from .elements import ElementTags
from .model import OptionalFloat
from ..loaders.dicom_loader import DicomRecord, looks_like_dicom

_LOG = logging.getLogger(__name__)

IMAGE_TYPE_SEPARATOR = "\\"


def candidate_file(path: Path) -> bool:
    """True if ``path`` is a regular file carrying the DICOM signature."""
    path = Path(path)
    return path.is_file() and looks_like_dicom(path)


def find_images_in(source_dir: Path) -> list[Path]:
    """Candidate image files directly under ``source_dir`` (no recursion), sorted by path."""
    return sorted(p for p in Path(source_dir).glob("*") if candidate_file(p))


def image_type_parts(record: DicomRecord, tags: ElementTags) -> list[str]:
    if not record.exists(tags.image_type):
        return []
    value = record.value(tags.image_type)
    if isinstance(value, (MultiValue, list, tuple)):
        return [str(v).strip() for v in value]
    return [p.strip() for p in str(value).split(IMAGE_TYPE_SEPARATOR)]


def is_scout(record: DicomRecord, tags: ElementTags) -> bool:
    """
    Scout images (localizers) give a transversal overview of the exam; they are
    recognised by the marker among the values of Image Type. Scan Options
    ('SCOUT MODE') is not present on every exam, so it is not consulted.
    """
    parts = image_type_parts(record, tags)
    if any(tags.scout_marker in p for p in parts):
        _LOG.debug("scout by image type %s: %s", IMAGE_TYPE_SEPARATOR.join(parts), record.path.name)
        return True
    return False


def structural_signature(record: DicomRecord) -> str:
    """Order-sensitive fingerprint of the element tags; values are ignored."""
    return "/".join(record.tags())


def series_description(record: DicomRecord, tags: ElementTags) -> str | None:
    if not record.exists(tags.series_description):
        return None
    value = record.value(tags.series_description)
    return None if value is None else str(value)


def numeric_field(record: DicomRecord, tag: str, default: float = 0.0) -> OptionalFloat:
    if not record.exists(tag):
        return OptionalFloat(None, default)
    value = record.value(tag)
    if isinstance(value, (MultiValue, list, tuple)):
        value = value[0] if len(value) else None
    try:
        return OptionalFloat(float(value), default)
    except (TypeError, ValueError):
        _LOG.debug("non numeric value %r for %s in %s", value, tag, record.path.name)
        return OptionalFloat(None, default)


def partition(records: Mapping[str, DicomRecord],
              tags: ElementTags) -> tuple[dict[str, DicomRecord], dict[str, DicomRecord]]:
    """Split records into (primary, scouts), both keeping the input order."""
    primary: dict[str, DicomRecord] = {}
    scouts: dict[str, DicomRecord] = {}
    for path, record in records.items():
        (scouts if is_scout(record, tags) else primary)[path] = record
    return primary, scouts
