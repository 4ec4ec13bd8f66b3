import json
import unittest

from reconciler.grouping import build_plan
from reconciler.models import AppointmentRecord
from reconciler.report import plan_to_dict, render_pairs, render_plan


def make_record(record_id, created, **overrides):
    row = {
        "id": record_id,
        "client_id": "A",
        "pet_id": "B",
        "date": "2025-12-20",
        "service_id": "C",
        "created_at": created,
        "status": "agendado",
    }
    row.update(overrides)
    return AppointmentRecord.from_row(row)


class RenderPlanTests(unittest.TestCase):
    def setUp(self) -> None:
        self.records = [
            make_record(1, "2025-12-01T10:00:00+00:00"),
            make_record(2, "2025-12-01T11:00:00+00:00"),
            make_record(3, None),
            make_record(4, "2025-12-01T10:00:00+00:00", pet_id="Z"),
        ]
        self.plan = build_plan(self.records)

    def test_report_layout(self) -> None:
        expected = "\n".join(
            [
                "Total appointments: 4",
                "Duplicate Group found for key: A|B|2025-12-20|C",
                "  Keeping ID: 1 (Created: 2025-12-01T10:00:00+00:00)",
                "  Deleting ID: 2 (Created: 2025-12-01T11:00:00+00:00)",
                "  Deleting ID: 3 (Created: null)",
                "Found 1 groups with duplicates",
                "Total records to delete: 2",
            ]
        )
        self.assertEqual(render_plan(self.plan), expected)

    def test_rendering_is_idempotent(self) -> None:
        self.assertEqual(render_plan(self.plan), render_plan(self.plan))

    def test_empty_plan(self) -> None:
        text = render_plan(build_plan([]))
        self.assertIn("Total appointments: 0", text)
        self.assertIn("Found 0 groups with duplicates", text)
        self.assertIn("Total records to delete: 0", text)

    def test_repeated_ids_are_flagged(self) -> None:
        plan = build_plan([make_record("x", None), make_record("x", None, pet_id="Q")])
        self.assertIn("WARNING: ID appears more than once in snapshot: x", render_plan(plan))

    def test_plan_export_is_json_serialisable(self) -> None:
        payload = plan_to_dict(self.plan)

        self.assertEqual(payload["to_delete"], [2, 3])
        self.assertEqual(payload["survivors"], [1])
        self.assertEqual(payload["groups"][0]["survivor"]["id"], 1)
        self.assertEqual(json.loads(json.dumps(payload)), payload)

    def test_render_pairs(self) -> None:
        self.assertEqual(render_pairs([]), "No exact content duplicates found.")
        text = render_pairs([(self.records[0], self.records[1])])
        self.assertIn("Original ID: 1, Duplicate ID: 2", text)


if __name__ == "__main__":
    unittest.main()
