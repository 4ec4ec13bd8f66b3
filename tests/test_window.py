import unittest
from datetime import date, timedelta

from connector import Filter
from reconciler.models import AppointmentRecord
from reconciler.window import format_offset, render_window, verify, window_filters

BRT = timedelta(hours=-3)
START = date(2025, 12, 19)
END = date(2025, 12, 22)


def make_record(record_id, raw_date, **extra):
    row = {"id": record_id, "client_id": "c1", "pet_id": "p1", "date": raw_date, "status": "agendado"}
    row.update(extra)
    return AppointmentRecord.from_row(row)


class WindowVerifierTests(unittest.TestCase):
    def setUp(self) -> None:
        self.records = [
            make_record(1, "19/12/2025"),
            make_record(2, "2025-12-20"),
            make_record(3, "2025-12-20T23:59:00-03:00"),
        ]

    def test_mixed_encodings_count_once_per_day(self) -> None:
        report = verify(self.records, START, END, BRT)

        self.assertEqual(report.counts(), {"2025-12-19": 1, "2025-12-20": 1, "2025-12-21": 1})
        self.assertEqual(report.total, 3)
        self.assertEqual(report.unparseable, [])

    def test_literal_cross_check_flags_midnight_records(self) -> None:
        report = verify(self.records, START, END, BRT)
        literal = {item.day.isoformat(): item.literal_count for item in report.days}

        self.assertEqual(literal, {"2025-12-19": 1, "2025-12-20": 2, "2025-12-21": 0})
        self.assertEqual(report.days[2].boundary_ids, [3])
        self.assertTrue(any("2025-12-20: parsed count 1" in warning for warning in report.warnings))
        self.assertTrue(any("Record 3" in warning for warning in report.warnings))

    def test_unparseable_dates_are_listed_not_counted(self) -> None:
        records = self.records + [make_record(4, "not-a-date"), make_record(5, None)]
        report = verify(records, START, END, BRT)

        self.assertEqual(report.total, 3)
        self.assertEqual([item.record_id for item in report.unparseable], [4, 5])
        self.assertEqual(report.unparseable[1].reason, "missing date")
        text = render_window(report)
        self.assertIn("Unparseable dates (2):", text)
        self.assertIn("not-a-date", text)

    def test_dates_inside_free_text_are_counted(self) -> None:
        records = [make_record(1, "2025-12-20 às 10h"), make_record(2, "dia 21/12/2025, manhã")]
        report = verify(records, START, END, BRT)

        self.assertEqual(report.counts(), {"2025-12-19": 0, "2025-12-20": 1, "2025-12-21": 1})
        self.assertEqual(report.unparseable, [])

    def test_naive_timestamp_near_midnight_is_flagged(self) -> None:
        report = verify([make_record(7, "2025-12-20T22:30:00")], START, END, BRT)

        self.assertEqual(report.counts()["2025-12-21"], 1)
        self.assertEqual(report.days[2].boundary_ids, [7])
        self.assertIn("Record 7 [2025-12-20T22:30:00] reads as 2025-12-20 but falls on 2025-12-21", report.warnings)

    def test_window_at_calendar_start_does_not_overflow(self) -> None:
        report = verify([make_record(1, "0001-01-01")], date(1, 1, 1), date(1, 1, 2))
        self.assertEqual(report.total, 1)

    def test_records_outside_window_are_ignored(self) -> None:
        records = [make_record(1, "2025-12-18"), make_record(2, "22/12/2025"), make_record(3, "2025-12-21")]
        report = verify(records, START, END, BRT)
        self.assertEqual(report.counts(), {"2025-12-19": 0, "2025-12-20": 0, "2025-12-21": 1})
        self.assertEqual(report.warnings, [])

    def test_report_lines_and_detail_day(self) -> None:
        records = self.records + [
            make_record(6, "2025-12-20T10:00:00-03:00", pet={"name": "Rex"}, client={"name": "Ana"}),
        ]
        text = render_window(verify(records, START, END, BRT, detail_day=date(2025, 12, 20)))

        self.assertIn("Day 2025-12-19: 1 apps", text)
        self.assertIn("Day 2025-12-20: 2 apps", text)
        self.assertIn("Day 2025-12-21: 1 apps", text)
        self.assertIn("Total apps in window: 4", text)
        self.assertIn("Pet: Rex | Client: Ana | Status: agendado", text)
        self.assertIn("[2025-12-20] Pet: p1 | Client: c1", text)

    def test_rejects_empty_window(self) -> None:
        with self.assertRaises(ValueError):
            verify(self.records, END, START, BRT)

    def test_window_filters_are_widened(self) -> None:
        self.assertEqual(
            window_filters(START, END),
            (Filter("date", "gte", "2025-12-18"), Filter("date", "lt", "2025-12-23")),
        )

    def test_format_offset(self) -> None:
        self.assertEqual(format_offset(BRT), "-03:00")
        self.assertEqual(format_offset(timedelta(hours=5, minutes=30)), "+05:30")
        self.assertEqual(format_offset(timedelta(0)), "+00:00")


if __name__ == "__main__":
    unittest.main()
