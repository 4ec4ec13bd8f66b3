import unittest
from datetime import timedelta

from reconciler.grouping import build_plan, first_seen_pairs, group
from reconciler.identity import AbsentFieldPolicy, build_key, make_key_builder
from reconciler.models import AppointmentRecord

T0 = "2025-12-01T10:00:00+00:00"
T1 = "2025-12-01T11:00:00+00:00"
T2 = "2025-12-02T09:00:00+00:00"


def make_record(record_id, *, client="A", pet="B", day="2025-12-20", service="C", created=T0):
    return AppointmentRecord.from_row(
        {
            "id": record_id,
            "client_id": client,
            "pet_id": pet,
            "date": day,
            "service_id": service,
            "created_at": created,
        }
    )


class IdentityKeyTests(unittest.TestCase):
    def test_key_is_pipe_joined_identity_fields(self) -> None:
        self.assertEqual(build_key(make_record(1)), "A|B|2025-12-20|C")

    def test_absent_fields_render_as_null_token(self) -> None:
        self.assertEqual(build_key(make_record(1, service=None)), "A|B|2025-12-20|null")

    def test_camel_case_rows_build_the_same_key(self) -> None:
        record = AppointmentRecord.from_row(
            {"id": 7, "clientId": "A", "petId": "B", "date": "2025-12-20", "serviceId": "C"}
        )
        self.assertEqual(build_key(record), "A|B|2025-12-20|C")

    def test_strict_policy_keeps_incomplete_records_apart(self) -> None:
        first = make_record(1, service=None)
        second = make_record(2, service=None)
        self.assertEqual(build_key(first), build_key(second))
        self.assertNotEqual(
            build_key(first, policy=AbsentFieldPolicy.STRICT),
            build_key(second, policy=AbsentFieldPolicy.STRICT),
        )
        self.assertEqual(build_key(make_record(1), policy="strict"), "A|B|2025-12-20|C")

    def test_calendar_day_mode_unifies_encodings(self) -> None:
        builder = make_key_builder(match_calendar_day=True, reference_offset=timedelta(hours=-3))
        self.assertEqual(builder(make_record(1, day="20/12/2025")), builder(make_record(2)))
        self.assertEqual(builder(make_record(3, day="garbage")), "A|B|garbage|C")


class GroupingTests(unittest.TestCase):
    def test_oldest_record_survives(self) -> None:
        plan = build_plan([make_record(1, created=T0), make_record(2, created=T1)])

        self.assertEqual(len(plan.groups), 1)
        self.assertEqual(plan.groups[0].survivor.id, 1)
        self.assertEqual(plan.survivors, (1,))
        self.assertEqual(plan.to_delete, (2,))

    def test_fetch_order_does_not_change_survivor(self) -> None:
        plan = build_plan([make_record(2, created=T1), make_record(1, created=T0)])
        self.assertEqual(plan.to_delete, (2,))

    def test_groups_partition_the_input(self) -> None:
        records = [
            make_record(1),
            make_record(2, pet="X"),
            make_record(3, created=T1),
            make_record(4, day="21/12/2025"),
            make_record(5, pet="X", created=T2),
        ]
        groups = group(records)

        members = [record.id for item in groups for record in item.members]
        self.assertEqual(sorted(members), [1, 2, 3, 4, 5])
        self.assertEqual(len(members), len(set(members)))
        self.assertEqual([len(item) for item in groups], [2, 2, 1])

    def test_ties_break_on_lowest_id(self) -> None:
        plan = build_plan([make_record(10), make_record(9), make_record(11)])
        self.assertEqual(plan.groups[0].survivor.id, 9)
        self.assertEqual(plan.to_delete, (10, 11))

    def test_string_ids_tie_break_lexically(self) -> None:
        plan = build_plan([make_record("b"), make_record("a")])
        self.assertEqual(plan.survivors, ("a",))

    def test_missing_or_bad_created_at_sorts_last(self) -> None:
        plan = build_plan(
            [
                make_record("a", created=None),
                make_record("b", created="yesterday-ish"),
                make_record("c", created=T2),
            ]
        )
        self.assertEqual(plan.survivors, ("c",))
        self.assertEqual(plan.to_delete, ("a", "b"))

    def test_out_of_range_created_at_sorts_last(self) -> None:
        plan = build_plan(
            [make_record(1, created="0001-01-01T00:30:00+05:00"), make_record(2, created=T2)]
        )
        self.assertEqual(plan.survivors, (2,))
        self.assertEqual(plan.to_delete, (1,))

    def test_calendar_day_mode_survives_sentinel_dates(self) -> None:
        builder = make_key_builder(match_calendar_day=True, reference_offset=timedelta(hours=-3))
        plan = build_plan(
            [make_record(1, day="9999-12-31T23:00:00-03:00"), make_record(2, day="31/12/9999", created=T1)],
            builder,
        )
        self.assertEqual(plan.groups[0].key, "A|B|9999-12-31|C")
        self.assertEqual(plan.to_delete, (2,))

    def test_offsets_are_compared_as_instants(self) -> None:
        plan = build_plan(
            [make_record(1, created="2025-12-01T09:00:00-03:00"), make_record(2, created="2025-12-01T11:00:00Z")]
        )
        self.assertEqual(plan.survivors, (2,))

    def test_unique_records_produce_empty_plan(self) -> None:
        plan = build_plan([make_record(1), make_record(2, pet="X"), make_record(3, day="2025-12-21")])
        self.assertEqual(plan.groups, ())
        self.assertEqual(plan.to_delete, ())
        self.assertEqual(plan.total_records, 3)

    def test_plan_is_deterministic(self) -> None:
        records = [make_record(3, created=T1), make_record(1), make_record(2, pet="X")]
        self.assertEqual(build_plan(records), build_plan(list(records)))

    def test_absent_field_policy_controls_grouping(self) -> None:
        records = [make_record(1, service=None), make_record(2, service=None, created=T1)]
        self.assertEqual(build_plan(records).to_delete, (2,))
        strict = make_key_builder(policy=AbsentFieldPolicy.STRICT)
        self.assertEqual(build_plan(records, strict).to_delete, ())

    def test_repeated_id_is_never_deleted_when_it_survives_elsewhere(self) -> None:
        records = [
            make_record("a", created=T0),
            make_record("b", created=T1),
            make_record("b", pet="X", created=T0),
            make_record("c", pet="X", created=T1),
        ]
        plan = build_plan(records)

        self.assertEqual(plan.survivors, ("a", "b"))
        self.assertEqual(plan.to_delete, ("c",))
        self.assertEqual(plan.id_collisions, ("b",))


class FirstSeenPairsTests(unittest.TestCase):
    def test_pairs_follow_fetch_order(self) -> None:
        records = [make_record(2, created=T1), make_record(1), make_record(3, pet="X")]
        pairs = first_seen_pairs(records)
        self.assertEqual([(original.id, duplicate.id) for original, duplicate in pairs], [(2, 1)])


if __name__ == "__main__":
    unittest.main()
