# dcm_export/core/pipeline.py
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
import logging

from .elements import ElementDictionary, dictionary_from_config, tags_from_config
from .errors import ExamError, OutputExists
from .exam import Exam
from .model import SLICE_LOCATION, options_from_config
from .plotting import chart_points, save_chart_plot, write_html
from .reports import assert_exportable, write_csv
from ..utils.detect import EXCLUDED_DIRS, collect_exam_dirs, output_file_for

_LOG = logging.getLogger(__name__)

ON_ERROR_CHOICES = ("skip", "abort")


@dataclass(frozen=True)
class ExportCfg:
    csv: bool = True
    html: bool = False
    png: bool = False
    force: bool = False
    dry_run: bool = False
    sort_by: str | None = SLICE_LOCATION
    on_error: str = "skip"          # skip: log and go on with the next directory; abort: re-raise


def export_cfg_from(cfg: dict | None) -> ExportCfg:
    exp = (cfg or {}).get("export", {}) or {}
    on_error = str(exp.get("on_error", "skip")).lower()
    if on_error not in ON_ERROR_CHOICES:
        raise ValueError(f"export.on_error must be one of {ON_ERROR_CHOICES}, got {on_error!r}")
    sort_by = exp.get("sort_by", SLICE_LOCATION)
    return ExportCfg(
        csv=bool(exp.get("csv", True)),
        html=bool(exp.get("html", False)),
        png=bool(exp.get("png", False)),
        force=bool(exp.get("force", False)),
        dry_run=bool(exp.get("dry_run", False)),
        sort_by=str(sort_by) if sort_by else None,
        on_error=on_error,
    )


@dataclass
class CrunchSummary:
    directories: int = 0
    exported: int = 0
    empty: int = 0
    written: list[Path] = field(default_factory=list)
    failed: list[tuple[Path, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def check_output(path: Path, force: bool) -> None:
    if not path.exists():
        return
    if not force:
        raise OutputExists(path)
    _LOG.warning("overwriting file %s", path)


def export_exam(exam: Exam, input_dir: Path, exp: ExportCfg,
                dictionary: ElementDictionary) -> list[Path]:
    """Write the requested outputs of one loaded exam beside its folder."""
    outputs = {
        "csv": output_file_for(input_dir, ".csv"),
        "html": output_file_for(input_dir, ".html"),
        "png": output_file_for(input_dir, ".png"),
    }
    wanted = [kind for kind in ("csv", "html", "png") if getattr(exp, kind)]
    for kind in wanted:
        check_output(outputs[kind], exp.force)
    # refuse before any file gets created
    assert_exportable(exam)
    if exp.dry_run or not exam.images:
        return []

    written: list[Path] = []
    if exp.csv:
        with outputs["csv"].open("w", newline="", encoding="utf-8") as f:
            write_csv(exam, f, dictionary, sort_by=exp.sort_by)
        written.append(outputs["csv"])
    if exp.html:
        with outputs["html"].open("w", encoding="utf-8") as f:
            write_html(exam, f, sort_by=exp.sort_by)
        written.append(outputs["html"])
    if exp.png:
        save_chart_plot(chart_points(exam, sort_by=exp.sort_by), exam.name, outputs["png"])
        written.append(outputs["png"])
    for p in written:
        print(f"[OK] {exam.name} → {p}")
    return written


def crunch(base_dir: Path, cfg: dict) -> CrunchSummary:
    """Export every image folder found under ``base_dir``, one exam at a time."""
    inp = cfg.get("input", {}) or {}
    recurse = bool(inp.get("recurse", True))
    excluded = tuple(inp.get("excluded_dirs", EXCLUDED_DIRS))
    verbose = bool((cfg.get("logging") or {}).get("verbose", False))

    exp = export_cfg_from(cfg)
    options = options_from_config(cfg)
    tags = tags_from_config(cfg)
    dictionary = dictionary_from_config(cfg)

    summary = CrunchSummary()
    dirs = collect_exam_dirs(Path(base_dir), recurse=recurse, excluded=excluded)
    summary.directories = len(dirs)
    if verbose:
        print(f"[detector] found {len(dirs)} candidate director{'ies' if len(dirs) != 1 else 'y'} under {base_dir}")

    for input_dir in dirs:
        if verbose:
            print(f"[load] images from {input_dir}/")
        try:
            exam = Exam(input_dir, options=options, tags=tags)
            exam.load()     # no-op unless loading is deferred by config
            if exam.is_empty():
                summary.empty += 1
                print(f"[skip] found no DICOM images in {input_dir}")
                continue
            summary.written.extend(export_exam(exam, input_dir, exp, dictionary))
            summary.exported += 1
        except ExamError as e:
            if exp.on_error == "abort":
                raise
            _LOG.warning("skipping %s: %s", input_dir, e)
            print(f"[WARN] {input_dir}: {e}")
            summary.failed.append((input_dir, str(e)))

    if verbose:
        print(f"[summary] {summary.exported} exported, {summary.empty} empty, {len(summary.failed)} failed")
    return summary
