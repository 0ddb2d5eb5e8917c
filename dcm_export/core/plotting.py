# dcm_export/core/plotting.py
from __future__ import annotations
from pathlib import Path
from typing import TextIO
import json

import jinja2
import matplotlib.pyplot as plt
import numpy as np

from .classify import numeric_field
from .elements import ElementTags
from .exam import Exam
from .model import SLICE_LOCATION, ChartPoint
from .reports import assert_exportable


def chart_points(exam: Exam, tags: ElementTags | None = None,
                 sort_by: str | None = SLICE_LOCATION) -> list[ChartPoint]:
    """<slice location, tube current, exposure time> of every exam image, 0.0 when missing."""
    tags = tags or exam.tags
    return [
        ChartPoint(
            slice_location=numeric_field(record, tags.slice_location, 0.0),
            tube_current=numeric_field(record, tags.tube_current, 0.0),
            exposure_time=numeric_field(record, tags.exposure_time, 0.0),
        )
        for record in exam.sorted_images(sort_by).values()
    ]


def chart_payload(points: list[ChartPoint]) -> str:
    """JSON array like ``[{"l": 59.25, "t": 400.0, "x": 175.0}, ...]``, keys sorted as in the HTML page."""
    return json.dumps([p.as_payload() for p in points], sort_keys=True)


# D3 area chart of the tube current along the slice locations.
# Rendered by html_graph_for with the exam name and the chart point payloads.
_ENV = jinja2.Environment(autoescape=True)
GRAPH_TEMPLATE = _ENV.from_string("""<!doctype html>
<html>
  <head>
    <meta charset="utf-8" />
    <title>{{ title }} &middot; X-ray tube current</title>
    <script type="text/javascript" src="https://cdn.jsdelivr.net/npm/d3@7"></script>
    <style type="text/css">
      body { font: 12px sans-serif; }
      .area { fill: #cfe3f3; }
      .line { fill: none; stroke: #1f77b4; stroke-width: 1.5px; }
      .title { font-size: 14px; }
    </style>
  </head>
  <body>
    <div id="chart"></div>
    <script type="text/javascript">
      var title = {{ title|tojson }},
          data = {{ points|tojson }};

      function draw_area_graph(title, data, attr_x, attr_y, width, height, m) {
        var scale_x = d3.scaleLinear()
              .domain(d3.extent(data, attr_x)).nice()
              .range([0, width]),
            scale_y = d3.scaleLinear()
              .domain([0, d3.max(data, attr_y)]).nice()
              .range([height, 0]);

        var svg = d3.select("#chart").append("svg")
              .attr("width", width + m.left + m.right)
              .attr("height", height + m.top + m.bottom),
            graph = svg.append("g")
              .attr("transform", "translate(" + m.left + "," + m.top + ")");

        graph.append("g")
          .attr("transform", "translate(0," + height + ")")
          .call(d3.axisBottom(scale_x).ticks(10));
        graph.append("g")
          .call(d3.axisLeft(scale_y).ticks(10));

        graph.append("path")
          .datum(data)
          .attr("class", "area")
          .attr("d", d3.area()
            .x(function(d) { return scale_x(attr_x(d)); })
            .y0(height)
            .y1(function(d) { return scale_y(attr_y(d)); }));
        graph.append("path")
          .datum(data)
          .attr("class", "line")
          .attr("d", d3.line()
            .x(function(d) { return scale_x(attr_x(d)); })
            .y(function(d) { return scale_y(attr_y(d)); }));

        svg.append("text")
          .attr("class", "title")
          .attr("x", (width + m.left + m.right) / 2)
          .attr("y", height + m.top + m.bottom - 6)
          .attr("text-anchor", "middle")
          .text(title);
      }

      draw_area_graph(title, data,
        function(d) { return d.l; },
        function(d) { return d.x; },
        960, 480, { top: 20, right: 40, bottom: 60, left: 60 });
    </script>
  </body>
</html>
""")


def html_graph_for(points: list[ChartPoint], title: str) -> str:
    return GRAPH_TEMPLATE.render(title=title, points=[p.as_payload() for p in points])


def write_html(exam: Exam, sink: TextIO, tags: ElementTags | None = None,
               sort_by: str | None = SLICE_LOCATION) -> int | None:
    """Write the HTML chart of the exam to an open text stream; None when there are no images."""
    assert_exportable(exam)
    if not exam.images:
        return None
    points = chart_points(exam, tags, sort_by)
    sink.write(html_graph_for(points, exam.name))
    return len(points)


def save_chart_plot(points: list[ChartPoint], title: str, out_path: Path) -> Path | None:
    """Static PNG of the same chart: tube current (and exposure time) vs slice location."""
    if not points:
        return None
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    loc = np.array([p.slice_location.resolve() for p in points], dtype=float)
    current = np.array([p.tube_current.resolve() for p in points], dtype=float)
    exposure = np.array([p.exposure_time.resolve() for p in points], dtype=float)

    fig, ax = plt.subplots(figsize=(11, 5))
    ax.fill_between(loc, current, alpha=0.3)
    ax.plot(loc, current, label="X-ray tube current [mA]")
    ax.set_xlabel("Slice location [mm]")
    ax.set_ylabel("X-ray tube current [mA]")
    ax.set_ylim(bottom=0)
    ax.grid(True, alpha=0.3)
    if np.any(exposure):
        ax2 = ax.twinx()
        ax2.plot(loc, exposure, color="tab:orange", linestyle="--", label="Exposure time [ms]")
        ax2.set_ylabel("Exposure time [ms]")
    ax.set_title(title)
    fig.tight_layout()
    fig.savefig(out_path, dpi=160)
    plt.close(fig)
    return out_path
