# dcm_export/core/elements.py
"""Element identifiers the exporter relies on, and the tag → column label dictionary.

Tags are handled as ``"GGGG,EEEE"`` strings (uppercase hex), which is also how
they appear in CSV headers, e.g. ``"0020,1041 (Slice Location)"``.
"""
from __future__ import annotations
from dataclasses import dataclass, fields, replace
from types import MappingProxyType
from typing import Mapping
import logging

from pydicom.datadict import DicomDictionary
from pydicom.tag import BaseTag, Tag

_LOG = logging.getLogger(__name__)


def format_tag(tag: int) -> str:
    tag = Tag(tag)
    return f"{tag.group:04X},{tag.element:04X}"


def parse_tag(text: str) -> BaseTag:
    """``"0008,0060"`` (or ``"00080060"``) → pydicom tag."""
    s = str(text).strip().strip("()").replace(" ", "")
    if "," in s:
        group, elem = s.split(",", 1)
    elif len(s) == 8:
        group, elem = s[:4], s[4:]
    else:
        raise ValueError(f"not a DICOM tag: {text!r}")
    return Tag(int(group, 16), int(elem, 16))


@dataclass(frozen=True)
class ElementTags:
    # Scanner type; always 'CT' for the exams we handle
    modality: str = "0008,0060"
    # Three or more backslash separated values, e.g. ORIGINAL\PRIMARY\AXIAL or ORIGINAL\PRIMARY\LOCALIZER
    image_type: str = "0008,0008"
    series_description: str = "0008,103E"
    # e.g. 'SCOUT MODE' or 'HELICAL SCAN'; not present on every exam, image_type is the safer scout marker
    scan_options: str = "0018,0022"
    exposure_time: str = "0018,1150"        # ms
    tube_current: str = "0018,1151"         # mA
    filter_type: str = "0018,1160"          # 'HEAD FILTER', 'BODY FILTER', ...
    # Relative position of the slice within the series
    slice_location: str = "0020,1041"
    pixel_data_group_length: str = "7FE0,0000"
    pixel_data: str = "7FE0,0010"

    required_modality: str = "CT"
    scout_marker: str = "LOCALIZER"
    # pseudo element holding the image source file in CSV exports
    source_file_label: str = "DICOM Source File"


_LABEL_FIELDS = ("required_modality", "scout_marker", "source_file_label")


def tags_from_config(cfg: dict | None) -> ElementTags:
    """Build the identifier set, overriding defaults from the ``elements`` config section."""
    section = (cfg or {}).get("elements", {}) or {}
    known = {f.name for f in fields(ElementTags)}
    overrides = {}
    for key, value in section.items():
        if key not in known:
            _LOG.warning("ignoring unknown element setting '%s'", key)
            continue
        if key in _LABEL_FIELDS:
            overrides[key] = str(value)
        else:
            overrides[key] = format_tag(parse_tag(value))   # normalise spelling
    return replace(ElementTags(), **overrides)


class ElementDictionary:
    """Immutable tag → element name table."""

    def __init__(self, names: Mapping[str, str]):
        self._names = MappingProxyType(dict(names))

    def __contains__(self, tag: str) -> bool:
        return tag in self._names

    def label_for(self, tag: str) -> str:
        name = self._names.get(tag)
        return f"{tag} ({name})" if name else f"{tag}"


def load_element_dictionary(extra: Mapping[str, str] | None = None) -> ElementDictionary:
    """
    Build the lookup table from pydicom's standard data dictionary.
    Entries in ``extra`` (tag → name) win over the standard ones.
    """
    names = {format_tag(tag): entry[2] for tag, entry in DicomDictionary.items() if entry[2]}
    for tag, name in (extra or {}).items():
        names[format_tag(parse_tag(tag))] = str(name)
    return ElementDictionary(names)


def dictionary_from_config(cfg: dict | None) -> ElementDictionary:
    section = (cfg or {}).get("dictionary", {}) or {}
    return load_element_dictionary(section.get("extra") or None)
