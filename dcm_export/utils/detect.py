# dcm_export/utils/detect.py
from __future__ import annotations
import os
from pathlib import Path
from typing import Iterable

EXCLUDED_DIRS: tuple[str, ...] = (".cvs", ".git", ".svn")
OUTPUT_SUFFIXES: tuple[str, ...] = (".csv", ".html", ".png")


def is_candidate_dir(p: Path) -> bool:
    """True if the folder directly holds at least one file that is not one of our exports."""
    for child in p.glob("*"):
        if child.suffix.lower() in OUTPUT_SUFFIXES:
            continue
        if child.is_file():
            return True
    return False


def collect_exam_dirs(root: Path, recurse: bool = True,
                      excluded: Iterable[str] = EXCLUDED_DIRS) -> list[Path]:
    """
    If not recursing -> [root] as given.
    Else walk 'root' (inclusive), prune excluded folder names and keep
    the folders containing at least one file.
    """
    root = Path(root)
    if not recurse:
        return [root]

    excluded = set(excluded)
    found: list[Path] = []
    for dirpath, dirnames, _ in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in excluded)
        p = Path(dirpath)
        if is_candidate_dir(p):
            found.append(p)
    return found


def output_file_for(dir_path: Path, suffix: str = "") -> Path:
    """
    Output file named after an image folder, placed beside it:
    output_file_for("test/valid-dicom/LAPIN2/", ".csv") -> test/valid-dicom/LAPIN2.csv
    """
    p = Path(os.path.normpath(dir_path))
    return p.parent / f"{p.name}{suffix}"
