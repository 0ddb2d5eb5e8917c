# dcm_export/main.py
from __future__ import annotations
from pathlib import Path
import argparse
import copy
import logging
import sys
import yaml

from dcm_export.core.errors import ExamError
from dcm_export.core.pipeline import crunch

LICENSE = """
Copyright (c) 2011 Tristan Zand & Olivier Lange

This program comes with ABSOLUTELY NO WARRANTY. It is free software
and you are welcome to redistribute it under the terms of the GNU
General Public License, either v3 or any later version.
"""

DEFAULT_CONFIG = Path(__file__).resolve().parent / "config.yaml"


def load_config(cfg_path: Path) -> dict:
    with cfg_path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dcm-export",
        description="Converts the metadata of series of DICOM image files to CSV "
                    "and an HTML graph of the X-ray tube current.",
    )
    parser.add_argument("base_dir", nargs="?", type=Path,
                        help="Folder holding the DICOM images (or folders of images).")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG,
                        help="YAML configuration file (default: the packaged config.yaml).")
    parser.add_argument("--csv", action=argparse.BooleanOptionalAction, default=None,
                        help="Export the DICOM metadata as CSV.")
    parser.add_argument("--html", action=argparse.BooleanOptionalAction, default=None,
                        help="Graph the DICOM metadata as HTML.")
    parser.add_argument("--png", action=argparse.BooleanOptionalAction, default=None,
                        help="Also save the graph as a PNG image.")
    parser.add_argument("-f", "--force", action=argparse.BooleanOptionalAction, default=None,
                        help="Overwrite existing files.")
    parser.add_argument("-r", "--recurse", action=argparse.BooleanOptionalAction, default=None,
                        help="Recurse into directories.")
    parser.add_argument("--dry-run", action="store_true", default=None,
                        help="Parse options and files, but do not write anything.")
    parser.add_argument("-v", "--verbose", action="store_true", default=None,
                        help="Run more verbosely.")
    parser.add_argument("--copyright", action="store_true", help="Print the copyright and exit.")
    return parser


def _section(cfg: dict, name: str) -> dict:
    if not isinstance(cfg.get(name), dict):
        cfg[name] = {}
    return cfg[name]


def apply_cli_overrides(cfg: dict, args: argparse.Namespace) -> dict:
    cfg = copy.deepcopy(cfg)
    sections = {
        "csv": ("export", "csv"),
        "html": ("export", "html"),
        "png": ("export", "png"),
        "force": ("export", "force"),
        "dry_run": ("export", "dry_run"),
        "recurse": ("input", "recurse"),
        "verbose": ("logging", "verbose"),
    }
    for attr, (section, key) in sections.items():
        value = getattr(args, attr)
        if value is not None:
            _section(cfg, section)[key] = value
    if args.base_dir is not None:
        _section(cfg, "input")["path"] = str(args.base_dir)
    return cfg


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.copyright:
        print(LICENSE)
        return 0

    # ---------- config ----------
    cfg = apply_cli_overrides(load_config(args.config), args)
    verbose = bool((cfg.get("logging") or {}).get("verbose", False))
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    in_path = _section(cfg, "input").get("path")
    if not in_path:
        parser.print_usage(sys.stderr)
        print("error: you must supply a base directory name", file=sys.stderr)
        return 2
    base_dir = Path(in_path)
    if not base_dir.is_dir():
        print(f"error: not a directory: {base_dir}", file=sys.stderr)
        return 2
    if verbose:
        print(f"[cfg] input={base_dir} (recurse={cfg['input'].get('recurse', True)})")

    # ---------- crunch ----------
    try:
        summary = crunch(base_dir, cfg)
    except ExamError as e:      # export.on_error: abort
        print(f"error: {e}", file=sys.stderr)
        return 1
    if summary.directories == 0:
        print(f"[INFO] found no directories containing any files under {base_dir}", file=sys.stderr)
        return 2
    return 0 if summary.ok else 1


if __name__ == "__main__":
    sys.exit(main())
