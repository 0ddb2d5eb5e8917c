from pathlib import Path
import io
import json
import tempfile
import unittest

from dcm_export.core.elements import load_element_dictionary
from dcm_export.core.errors import ExamNotLoaded, InconsistentStructure
from dcm_export.core.exam import Exam
from dcm_export.core.model import ExamOptions, OptionalFloat
from dcm_export.core.plotting import chart_payload, chart_points, html_graph_for, save_chart_plot, write_html
from dcm_export.core.reports import build_dataframe, csv_header, csv_rows, csv_value, read_csv, write_csv

from _dicom_factory import (
    EXAM_100KV, make_ct_dataset, write_dicom, write_exam, write_localizers, write_non_homogeneous,
)


class ExportFixture(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmp = tempfile.TemporaryDirectory()
        cls.base = Path(cls._tmp.name)
        cls.exam_dir = cls.base / "LAPIN2_100KV"
        cls.localizers_dir = cls.base / "Localizers_1"
        cls.non_homogeneous_dir = cls.base / "non-homogeneous"
        cls.sparse_dir = cls.base / "sparse"
        write_exam(cls.exam_dir, EXAM_100KV, count=15)
        write_localizers(cls.localizers_dir, count=2)
        write_non_homogeneous(cls.non_homogeneous_dir)
        for i in range(3):
            ds = make_ct_dataset(slice_location=None, exposure_time=None, tube_current=None)
            write_dicom(cls.sparse_dir / f"IM-{i:04d}.dcm", ds)
        cls.dictionary = load_element_dictionary()

    @classmethod
    def tearDownClass(cls):
        cls._tmp.cleanup()


class CsvExportTests(ExportFixture):
    def test_header_has_one_column_per_element_plus_source_file(self):
        exam = Exam(self.exam_dir)
        header = csv_header(exam, self.dictionary)
        first = next(iter(exam.images.values()))
        self.assertEqual(1 + len(first.elements()), len(header))
        self.assertEqual("DICOM Source File", header[0])
        self.assertIn("0008,0060 (Modality)", header)
        self.assertIn(self.dictionary.label_for(exam.tags.tube_current), header)
        self.assertIn(self.dictionary.label_for(exam.tags.slice_location), header)
        self.assertNotIn(self.dictionary.label_for(exam.tags.pixel_data), header)

    def test_rows_match_header_length(self):
        exam = Exam(self.exam_dir)
        header = csv_header(exam, self.dictionary)
        rows = csv_rows(exam)
        self.assertEqual(15, len(rows))
        for row in rows:
            self.assertEqual(len(header), len(row))
        self.assertEqual(list(exam.images), [row[0] for row in rows])

    def test_scouts_are_not_exported(self):
        exam = Exam(self.localizers_dir)
        self.assertEqual([], csv_header(exam, self.dictionary))
        sink = io.StringIO()
        self.assertIsNone(write_csv(exam, sink, self.dictionary))
        self.assertEqual("", sink.getvalue())

    def test_exports_to_one_csv_file_with_header(self):
        exam = Exam(self.exam_dir)
        exam.sort_images()
        out_csv = self.base / "exam-100kv.csv"
        with out_csv.open("w", newline="", encoding="utf-8") as f:
            self.assertEqual(15, write_csv(exam, f, self.dictionary))

        lines = out_csv.read_text(encoding="utf-8").splitlines()
        self.assertEqual(16, len(lines))
        self.assertTrue(lines[0].startswith('"DICOM Source File",'))

        sheet = read_csv(out_csv)
        self.assertEqual(15, len(sheet))
        self.assertEqual(csv_header(exam, self.dictionary), list(sheet.columns))

        tags = exam.tags
        loc_col = self.dictionary.label_for(tags.slice_location)
        cur_col = self.dictionary.label_for(tags.tube_current)
        paths = list(exam.images)
        records = list(exam.images.values())
        for i in (0, 14):
            self.assertEqual(paths[i], sheet.iloc[i]["DICOM Source File"])
            self.assertEqual(str(records[i].value(tags.slice_location)), sheet.iloc[i][loc_col])
            self.assertEqual(str(records[i].value(tags.tube_current)), sheet.iloc[i][cur_col])
        self.assertEqual(["175"] * 15, sheet[cur_col].tolist())
        self.assertEqual("56.125", sheet.iloc[0][loc_col])
        self.assertEqual("68.0", sheet.iloc[14][loc_col])

    def test_every_cell_is_quoted(self):
        exam = Exam(self.exam_dir)
        sink = io.StringIO()
        write_csv(exam, sink, self.dictionary)
        first_data_line = sink.getvalue().splitlines()[1]
        self.assertTrue(first_data_line.startswith('"'))
        self.assertTrue(first_data_line.endswith('"'))

    def test_inconsistent_structure_writes_nothing(self):
        exam = Exam(self.non_homogeneous_dir)
        sink = io.StringIO()
        with self.assertRaises(InconsistentStructure):
            write_csv(exam, sink, self.dictionary)
        self.assertEqual("", sink.getvalue())
        with self.assertRaises(InconsistentStructure):
            build_dataframe(exam, self.dictionary)

    def test_export_requires_a_loaded_exam(self):
        exam = Exam(self.exam_dir, ExamOptions(defer_loading=True))
        with self.assertRaises(ExamNotLoaded):
            write_csv(exam, io.StringIO(), self.dictionary)

    def test_value_rendering(self):
        self.assertEqual("", csv_value(None))
        self.assertEqual("0001", csv_value(b"\x00\x01"))
        self.assertEqual("ORIGINAL\\PRIMARY\\AXIAL", csv_value(["ORIGINAL", "PRIMARY", "AXIAL"]))
        self.assertEqual("175", csv_value(175))


class ChartExportTests(ExportFixture):
    def test_points_follow_slice_location(self):
        exam = Exam(self.exam_dir)
        points = chart_points(exam)
        self.assertEqual(15, len(points))
        locs = [p.slice_location.resolve() for p in points]
        self.assertEqual(sorted(locs), locs)
        self.assertTrue(all(p.tube_current.resolve() == 175.0 for p in points))
        self.assertTrue(all(p.exposure_time.resolve() == 400.0 for p in points))

    def test_missing_values_default_to_zero(self):
        exam = Exam(self.sparse_dir)
        points = chart_points(exam)
        self.assertEqual(3, len(points))
        for p in points:
            self.assertTrue(p.slice_location.missing)
            self.assertTrue(p.tube_current.missing)
            self.assertEqual({"l": 0.0, "x": 0.0, "t": 0.0}, p.as_payload())

    def test_payload_is_json(self):
        exam = Exam(self.exam_dir)
        data = json.loads(chart_payload(chart_points(exam)))
        self.assertEqual(15, len(data))
        self.assertEqual({"l": 56.125, "x": 175.0, "t": 400.0}, data[0])

    def test_html_document_embeds_title_and_data(self):
        exam = Exam(self.exam_dir)
        sink = io.StringIO()
        self.assertEqual(15, write_html(exam, sink))
        html = sink.getvalue()
        self.assertTrue(html.startswith("<!doctype html>"))
        self.assertIn(f"<title>{EXAM_100KV} &middot;", html)
        self.assertIn(chart_payload(chart_points(exam)), html)
        self.assertNotIn("{{", html)

    def test_title_is_escaped(self):
        html = html_graph_for([], "A </script> & B")
        self.assertIn("<title>A &lt;/script&gt; &amp; B", html)
        self.assertNotIn("A </script>", html)
        # the script copy of the title is JSON with HTML-unsafe characters escaped
        self.assertIn('var title = "A \\u003c/script\\u003e \\u0026 B"', html)

    def test_html_follows_requested_order(self):
        exam = Exam(self.exam_dir)
        sink = io.StringIO()
        write_html(exam, sink, sort_by=None)
        html = sink.getvalue()
        self.assertIn(chart_payload(chart_points(exam, sort_by=None)), html)
        self.assertNotIn(chart_payload(chart_points(exam)), html)

    def test_html_refuses_inconsistent_structure(self):
        sink = io.StringIO()
        with self.assertRaises(InconsistentStructure):
            write_html(Exam(self.non_homogeneous_dir), sink)
        self.assertEqual("", sink.getvalue())

    def test_png_plot(self):
        exam = Exam(self.exam_dir)
        out = save_chart_plot(chart_points(exam), exam.name, self.base / "plots" / "exam.png")
        self.assertTrue(out.exists())
        self.assertEqual(b"\x89PNG", out.read_bytes()[:4])
        self.assertIsNone(save_chart_plot([], "empty", self.base / "plots" / "none.png"))

    def test_optional_float(self):
        self.assertEqual(-1.0, OptionalFloat(None, -1.0).resolve())
        self.assertEqual(2.5, OptionalFloat(2.5, -1.0).resolve())


if __name__ == "__main__":
    unittest.main()
