"""Tests for output files."""
import unittest
import tempfile
import shutil
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from unittest import mock

from dedupflow.engine.controller import RunOutcome
from dedupflow.engine.memory import SKUS, MemorySet
from dedupflow.engine.models import AggregationBucket, AggregationResult
from dedupflow.report.writer import ReportWriter, file_timestamp, format_money
from dedupflow.utils.exceptions import OutputError


def read_rows(path):
    return [line.split("\t") for line in path.read_text(encoding="utf-8").splitlines()]


class TestReportWriter(unittest.TestCase):
    """Test ReportWriter functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.test_dir = Path(tempfile.mkdtemp())
        self.writer = ReportWriter(self.test_dir)

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def outcome(self, new_skus=(), known=()):
        result = AggregationResult(buckets=[
            AggregationBucket("ABC-1", Decimal("4.99"), "Blue widget", "Order", 3, Decimal("14.97"), 2),
            AggregationBucket("", Decimal("-1.5"), "FBA fee", "Order", 0, Decimal("-1.5"), 1),
            AggregationBucket("", Decimal("-2.25"), "FBA fee", "Order", 0, Decimal("-2.25"), 1),
        ], new_count=4)
        skus = MemorySet(SKUS, list(known) + list(new_skus))
        return RunOutcome(result=result, new_skus=list(new_skus), skus=skus)

    def test_write_aggregation(self):
        files = self.writer.write(self.outcome(), timestamp="T")

        self.assertEqual([f.name for f in files], ["OUTPUT-T.tsv"])
        rows = read_rows(files[0])
        self.assertEqual(rows[0], ["sku", "unit_price", "quantity", "total", "description", "type"])
        self.assertEqual(rows[1], ["ABC-1", "4.99", "3", "14.97", "Blue widget", "Order"])
        self.assertEqual(rows[2], ["FBATF", "-3.75", "-1", "-3.75", "FBA fee", "Order"])
        self.assertEqual(len(rows), 3)

    def test_no_new_sku_file_when_none_are_new(self):
        self.writer.write(self.outcome(), timestamp="T")

        self.assertEqual(sorted(p.name for p in self.test_dir.iterdir()), ["OUTPUT-T.tsv"])

    def test_new_sku_file_with_hints(self):
        files = self.writer.write(
            self.outcome(new_skus=["ABC-2", "ZZZ-TOP"], known=["ABC-1"]), timestamp="T"
        )

        self.assertEqual([f.name for f in files], ["OUTPUT-T.tsv", "NEW-SKUS-T.tsv"])
        rows = read_rows(files[1])
        self.assertEqual(rows, [["sku", "closest_known"], ["ABC-2", "ABC-1"], ["ZZZ-TOP", ""]])

    def test_new_skus_are_not_hinted_against_each_other(self):
        files = self.writer.write(self.outcome(new_skus=["ABC-2", "ABC-3"]), timestamp="T")

        rows = read_rows(files[1])
        self.assertEqual(rows[1:], [["ABC-2", ""], ["ABC-3", ""]])

    def test_placeholder_sku_is_configurable(self):
        writer = ReportWriter(self.test_dir, placeholder_sku="FEES")
        files = writer.write(self.outcome(), timestamp="T")

        self.assertEqual(read_rows(files[0])[2][0], "FEES")

    def test_write_failure(self):
        with mock.patch("builtins.open", side_effect=PermissionError("read-only")):
            with self.assertRaises(OutputError):
                self.writer.write(self.outcome(), timestamp="T")


class TestFormatting(unittest.TestCase):

    def test_format_money(self):
        self.assertEqual(format_money(Decimal("3")), "3.00")
        self.assertEqual(format_money(Decimal("-1.5")), "-1.50")
        self.assertEqual(format_money(Decimal("0.125")), "0.12")

    def test_file_timestamp_has_no_colons(self):
        now = datetime(2024, 5, 1, 13, 45, 30, tzinfo=timezone(timedelta(hours=-7)))
        self.assertEqual(file_timestamp(now), "2024-05-01T13_45_30-07_00")
        self.assertNotIn(":", file_timestamp())


if __name__ == "__main__":
    unittest.main()
