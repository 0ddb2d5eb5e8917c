# dcm_export/core/model.py
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
import math

SLICE_LOCATION = "slice_location"   # only sort criterion understood by order_by


class ExamState(Enum):
    UNBOUND = "unbound"     # no source directory yet
    BOUND = "bound"         # directory known, images not read
    LOADED = "loaded"       # images read; further loads are no-ops until rebound


class Homogeneity(Enum):
    UNKNOWN = "unknown"
    HOMOGENEOUS = "homogeneous"
    HETEROGENEOUS = "heterogeneous"


@dataclass(frozen=True)
class OptionalFloat:
    """Numeric element value that may be missing; ``resolve()`` falls back to ``default``."""
    value: float | None
    default: float = 0.0

    @property
    def missing(self) -> bool:
        return self.value is None

    def resolve(self) -> float:
        return self.default if self.value is None else self.value


MISSING_FIRST = -math.inf   # images without a slice location sort before all others


@dataclass(frozen=True)
class ExamOptions:
    defer_loading: bool = False     # False: read the images as soon as a directory is bound
    sort_by: str | None = None      # None: keep discovery order; "slice_location"


def options_from_config(cfg: dict | None) -> ExamOptions:
    ext = (cfg or {}).get("extraction", {}) or {}
    sort_by = ext.get("sort_by", None)
    return ExamOptions(
        defer_loading=bool(ext.get("defer_loading", False)),
        sort_by=str(sort_by) if sort_by else None,
    )


@dataclass(frozen=True)
class ChartPoint:
    slice_location: OptionalFloat
    tube_current: OptionalFloat
    exposure_time: OptionalFloat

    def as_payload(self) -> dict[str, float]:
        # short keys are what the HTML chart script reads
        return {
            "l": self.slice_location.resolve(),
            "x": self.tube_current.resolve(),
            "t": self.exposure_time.resolve(),
        }
