from __future__ import annotations

from django.test import SimpleTestCase

from secure_dml.dml import DMLOrchestrator
from secure_dml.exceptions import (
    FieldAccessDenied,
    ObjectAccessDenied,
    PolicyError,
    RecordNotFound,
)
from secure_dml.types import ObjectDescriptor, Operation, Record

from .fakes import (
    InMemoryRecordStore,
    StaleRecordError,
    StubSchemaProvider,
    locked,
    writable,
)

NO_ACCESS = ObjectDescriptor(creatable=False, updatable=False, deletable=False)


class OrchestratorTestCase(SimpleTestCase):
    def setUp(self) -> None:
        self.schema = StubSchemaProvider(
            fields={
                "Opportunity": [
                    writable("name"),
                    locked("campaign_id", updatable=True),
                    locked("stage", creatable=True),
                ],
                "Account": [writable("name"), writable("industry")],
            }
        )
        self.store = InMemoryRecordStore()
        self.dml = DMLOrchestrator(self.schema, self.store)

    def deny(self, record_type, **flags):
        descriptor = dict(creatable=True, updatable=True, deletable=True)
        descriptor.update(flags)
        self.schema.objects[record_type] = ObjectDescriptor(**descriptor)


class ObjectAccessTests(OrchestratorTestCase):
    def test_campaign_insert_without_create_access(self) -> None:
        self.deny("Campaign", creatable=False)

        with self.assertRaises(ObjectAccessDenied) as ctx:
            self.dml.insert_as_user(Record("Campaign", {"name": "X"}))

        self.assertEqual(ctx.exception.record_type, "Campaign")
        self.assertEqual(ctx.exception.operation, Operation.INSERT)
        self.assertEqual(self.store.count("Campaign"), 0)
        self.assertEqual(self.store.mutations(), [])

    def test_every_operation_is_gated(self) -> None:
        self.schema.objects["Account"] = NO_ACCESS
        pk = self.store.seed("Account", name="Acme")
        calls = {
            Operation.INSERT: lambda: self.dml.insert_as_user(Record("Account", {"name": "B"})),
            Operation.UPDATE: lambda: self.dml.update_as_user(Record("Account", {"name": "B"}, id=pk)),
            Operation.UPSERT: lambda: self.dml.upsert_as_user(Record("Account", {"name": "B"}, id=pk)),
            Operation.DELETE: lambda: self.dml.delete_as_user(Record("Account", id=pk)),
        }
        for operation, call in calls.items():
            with self.subTest(operation=operation):
                with self.assertRaises(ObjectAccessDenied) as ctx:
                    call()
                self.assertEqual(ctx.exception.operation, operation)
        self.assertEqual(self.store.mutations(), [])
        self.assertEqual(self.store.row("Account", pk), {"name": "Acme"})

    def test_object_gate_runs_before_field_checks(self) -> None:
        self.deny("Opportunity", creatable=False)

        with self.assertRaises(ObjectAccessDenied):
            self.dml.insert_as_user(Record("Opportunity", {"campaign_id": 3}))

    def test_first_denied_type_in_batch_order(self) -> None:
        self.schema.objects["Lead"] = NO_ACCESS
        self.schema.objects["Campaign"] = NO_ACCESS
        batch = [
            Record("Account", {"name": "A"}),
            Record("Lead", {"name": "L"}),
            Record("Campaign", {"name": "C"}),
        ]

        with self.assertRaises(ObjectAccessDenied) as ctx:
            self.dml.insert_as_user(batch)

        self.assertEqual(ctx.exception.record_type, "Lead")

    def test_upsert_needs_create_and_update(self) -> None:
        self.deny("Account", updatable=False)

        with self.assertRaises(ObjectAccessDenied) as ctx:
            self.dml.upsert_as_user(Record("Account", {"name": "new"}))

        self.assertEqual(ctx.exception.operation, Operation.UPSERT)


class InsertTests(OrchestratorTestCase):
    def test_restricted_field_populated(self) -> None:
        with self.assertRaises(FieldAccessDenied) as ctx:
            self.dml.insert_as_user(Record("Opportunity", {"name": "O", "campaign_id": 1}))

        self.assertEqual(
            (ctx.exception.record_type, ctx.exception.field, ctx.exception.operation),
            ("Opportunity", "campaign_id", Operation.INSERT),
        )
        self.assertEqual(self.store.count("Opportunity"), 0)

    def test_restricted_field_absent(self) -> None:
        inserted = self.dml.insert_as_user(Record("Opportunity", {"name": "O"}))

        self.assertEqual(len(inserted), 1)
        self.assertIsNotNone(inserted[0].id)
        self.assertEqual(self.store.row("Opportunity", inserted[0].id), {"name": "O"})

    def test_batch_is_all_or_nothing(self) -> None:
        batch = [
            Record("Account", {"name": "A"}),
            Record("Opportunity", {"name": "ok"}),
            Record("Opportunity", {"name": "bad", "campaign_id": 9}),
        ]

        with self.assertRaises(FieldAccessDenied):
            self.dml.insert_as_user(batch)

        self.assertEqual(self.store.rows, {})
        self.assertEqual(self.store.mutations(), [])

    def test_undescribed_field_key_rejected(self) -> None:
        with self.assertRaises(PolicyError):
            self.dml.insert_as_user(Record("Opportunity", {"name": "O", "campaign": 1}))

        self.assertEqual(self.store.mutations(), [])

    def test_empty_batch_does_nothing(self) -> None:
        self.assertEqual(self.dml.insert_as_user([]), [])
        self.assertEqual(self.store.calls, [])
        self.assertEqual(self.schema.field_calls, {})


class UpdateTests(OrchestratorTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.opp = self.store.seed("Opportunity", name="O", stage="new", campaign_id=1)

    def test_changing_restricted_field_denied(self) -> None:
        with self.assertRaises(FieldAccessDenied) as ctx:
            self.dml.update_as_user(Record("Opportunity", {"stage": "won"}, id=self.opp))

        self.assertEqual(ctx.exception.field, "stage")
        self.assertEqual(ctx.exception.operation, Operation.UPDATE)
        self.assertEqual(self.store.row("Opportunity", self.opp)["stage"], "new")

    def test_resubmitting_same_value_allowed(self) -> None:
        self.dml.update_as_user(
            Record("Opportunity", {"stage": "new", "name": "renamed"}, id=self.opp)
        )
        self.assertEqual(self.store.row("Opportunity", self.opp)["name"], "renamed")

    def test_omitting_restricted_field_allowed(self) -> None:
        self.dml.update_as_user(Record("Opportunity", {"campaign_id": 2}, id=self.opp))

        self.assertEqual(self.store.row("Opportunity", self.opp)["campaign_id"], 2)
        fetch = [call for call in self.store.calls if call[0] == "fetch_by_ids"]
        self.assertEqual(fetch, [("fetch_by_ids", "Opportunity", [self.opp], ["stage"])])

    def test_snapshots_fetched_once_per_type(self) -> None:
        second = self.store.seed("Opportunity", name="P", stage="new")
        account = self.store.seed("Account", name="Acme")

        self.dml.update_as_user(
            [
                Record("Opportunity", {"name": "x"}, id=self.opp),
                Record("Account", {"name": "y"}, id=account),
                Record("Opportunity", {"name": "z"}, id=second),
            ]
        )

        fetches = [call for call in self.store.calls if call[0] == "fetch_by_ids"]
        # Account has no restricted update fields, so it is never fetched.
        self.assertEqual(
            fetches, [("fetch_by_ids", "Opportunity", [self.opp, second], ["stage"])]
        )
        self.assertEqual(self.store.mutations(), ["update"])

    def test_undescribed_field_key_rejected(self) -> None:
        with self.assertRaises(PolicyError):
            self.dml.update_as_user(Record("Opportunity", {"campaign": 2}, id=self.opp))

        self.assertEqual(self.store.row("Opportunity", self.opp)["campaign_id"], 1)
        self.assertEqual(self.store.mutations(), [])

    def test_missing_record_with_restricted_fields(self) -> None:
        with self.assertRaises(RecordNotFound) as ctx:
            self.dml.update_as_user(Record("Opportunity", {"name": "x"}, id=999))

        self.assertEqual(ctx.exception.identifier, 999)
        self.assertEqual(self.store.mutations(), [])

    def test_missing_record_without_restricted_fields_reaches_store(self) -> None:
        with self.assertRaises(StaleRecordError):
            self.dml.update_as_user(Record("Account", {"name": "x"}, id=999))

    def test_violation_later_in_batch_blocks_earlier_records(self) -> None:
        other = self.store.seed("Opportunity", name="P", stage="new")

        with self.assertRaises(FieldAccessDenied):
            self.dml.update_as_user(
                [
                    Record("Opportunity", {"name": "fine"}, id=self.opp),
                    Record("Opportunity", {"stage": "lost"}, id=other),
                ]
            )

        self.assertEqual(self.store.row("Opportunity", self.opp)["name"], "O")


class UpsertTests(OrchestratorTestCase):
    def test_classification_warms_both_policy_entries(self) -> None:
        self.dml.upsert_as_user(Record("Account", {"name": "A"}))

        self.assertTrue(self.dml.cache.is_cached(Operation.INSERT, "Account"))
        self.assertTrue(self.dml.cache.is_cached(Operation.UPDATE, "Account"))

    def test_records_without_id_checked_as_inserts(self) -> None:
        with self.assertRaises(FieldAccessDenied) as ctx:
            self.dml.upsert_as_user(Record("Opportunity", {"campaign_id": 4}))

        self.assertEqual(ctx.exception.operation, Operation.INSERT)

    def test_records_with_id_checked_as_updates(self) -> None:
        pk = self.store.seed("Opportunity", name="O", stage="new", campaign_id=1)

        # campaign_id is updatable but not creatable.
        self.dml.upsert_as_user(Record("Opportunity", {"campaign_id": 4}, id=pk))

        with self.assertRaises(FieldAccessDenied) as ctx:
            self.dml.upsert_as_user(Record("Opportunity", {"stage": "won"}, id=pk))
        self.assertEqual(ctx.exception.operation, Operation.UPDATE)

    def test_mixed_batch(self) -> None:
        pk = self.store.seed("Opportunity", name="O", stage="new")

        result = self.dml.upsert_as_user(
            [
                Record("Opportunity", {"name": "renamed", "stage": "new"}, id=pk),
                Record("Opportunity", {"name": "fresh", "stage": "new"}),
            ]
        )

        self.assertEqual(self.store.mutations(), ["upsert_many"])
        self.assertEqual(self.store.row("Opportunity", pk)["name"], "renamed")
        self.assertEqual(self.store.row("Opportunity", result[1].id)["name"], "fresh")

    def test_deleted_after_read(self) -> None:
        pk = self.store.seed("Opportunity", name="O", stage="new")
        self.dml.delete_as_system(Record("Opportunity", id=pk))

        with self.assertRaises(RecordNotFound) as ctx:
            self.dml.upsert_as_user(Record("Opportunity", {"name": "again"}, id=pk))

        self.assertIn(repr(pk), str(ctx.exception))

    def test_single_record_uses_single_overload(self) -> None:
        self.dml.upsert_as_user(Record("Account", {"name": "A"}))
        self.dml.upsert_as_user([Record("Account", {"name": "B"})])

        self.assertEqual(self.store.mutations(), ["upsert_one", "upsert_one"])

    def test_single_and_batch_paths_are_equivalent(self) -> None:
        batch_store = InMemoryRecordStore()
        pk = self.store.seed("Opportunity", name="O", stage="new")
        batch_store.seed("Opportunity", name="O", stage="new")

        self.dml.upsert_as_user(Record("Opportunity", {"name": "N", "stage": "new"}, id=pk))
        batch_store.upsert_many([Record("Opportunity", {"name": "N", "stage": "new"}, id=pk)])
        self.assertEqual(self.store.state(), batch_store.state())

        self.dml.upsert_as_user(Record("Account", {"name": "A"}))
        batch_store.upsert_many([Record("Account", {"name": "A"})])
        self.assertEqual(self.store.state(), batch_store.state())

        with self.assertRaises(StaleRecordError):
            self.dml.upsert_as_user(Record("Account", {"name": "gone"}, id=404))
        with self.assertRaises(StaleRecordError):
            batch_store.upsert_many([Record("Account", {"name": "gone"}, id=404)])
        self.assertEqual(self.store.state(), batch_store.state())


class DeleteTests(OrchestratorTestCase):
    def test_delete_skips_field_checks(self) -> None:
        pk = self.store.seed("Opportunity", name="O", stage="new", campaign_id=1)

        self.dml.delete_as_user(Record("Opportunity", {"campaign_id": 5}, id=pk))

        self.assertIsNone(self.store.row("Opportunity", pk))
        self.assertEqual(self.store.mutations(), ["delete"])
        self.assertFalse(self.dml.cache.is_cached(Operation.UPDATE, "Opportunity"))


class MergeTests(OrchestratorTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.master = Record("Account", id=self.store.seed("Account", name="Master"))
        self.dupes = [
            Record("Account", id=self.store.seed("Account", name="Dupe 1")),
            Record("Account", id=self.store.seed("Account", name="Dupe 2")),
        ]

    def test_update_denied_on_master_type(self) -> None:
        self.deny("Account", updatable=False)

        with self.assertRaises(ObjectAccessDenied) as ctx:
            self.dml.merge_as_user(self.master, self.dupes)

        self.assertEqual(ctx.exception.record_type, "Account")
        self.assertEqual(ctx.exception.operation, Operation.UPDATE)
        self.assertEqual(self.store.count("Account"), 3)

    def test_delete_denied_on_merge_type(self) -> None:
        self.deny("Account", deletable=False)

        with self.assertRaises(ObjectAccessDenied) as ctx:
            self.dml.merge_as_user(self.master, self.dupes)

        self.assertEqual(ctx.exception.operation, Operation.DELETE)
        self.assertEqual(self.store.mutations(), [])

    def test_merge_with_both_permissions(self) -> None:
        result = self.dml.merge_as_user(self.master, self.dupes)

        self.assertIs(result, self.master)
        self.assertEqual(self.store.count("Account"), 1)
        self.assertEqual(self.store.row("Account", self.master.id), {"name": "Master"})

    def test_single_merge_record(self) -> None:
        self.dml.merge_as_user(self.master, self.dupes[0])
        self.assertEqual(self.store.count("Account"), 2)

    def test_only_first_merge_record_type_checked(self) -> None:
        self.schema.objects["Lead"] = NO_ACCESS
        lead = Record("Lead", id=self.store.seed("Lead", name="L"))

        self.dml.merge_as_user(self.master, [self.dupes[0], lead])

        self.assertEqual(self.store.mutations(), ["merge"])

    def test_empty_merge_list(self) -> None:
        with self.assertRaises(PolicyError):
            self.dml.merge_as_user(self.master, [])

    def test_master_without_id(self) -> None:
        with self.assertRaises(PolicyError):
            self.dml.merge_as_user(Record("Account", {"name": "new"}), self.dupes)

    def test_no_field_guard_on_merge(self) -> None:
        master = Record("Opportunity", {"stage": "won"}, id=self.store.seed("Opportunity"))
        dupe = Record("Opportunity", id=self.store.seed("Opportunity"))

        self.dml.merge_as_user(master, [dupe])

        self.assertEqual(self.schema.field_calls, {})


class SystemPathTests(OrchestratorTestCase):
    def setUp(self) -> None:
        super().setUp()
        for record_type in ("Opportunity", "Account"):
            self.schema.objects[record_type] = NO_ACCESS

    def test_system_path_bypasses_policy(self) -> None:
        [opp] = self.dml.insert_as_system(
            Record("Opportunity", {"name": "O", "campaign_id": 1, "stage": "new"})
        )
        self.dml.update_as_system(Record("Opportunity", {"stage": "won"}, id=opp.id))
        self.dml.upsert_as_system(Record("Opportunity", {"stage": "lost"}, id=opp.id))
        master = self.dml.insert_as_system(Record("Account", {"name": "M"}))[0]
        dupe = self.dml.insert_as_system(Record("Account", {"name": "D"}))[0]
        self.dml.merge_as_system(master, [dupe])
        self.dml.delete_as_system(opp)

        self.assertEqual(self.store.state(), {("Account", master.id): {"name": "M"}})
        self.assertEqual(self.schema.object_calls, {})
        self.assertEqual(self.schema.field_calls, {})

    def test_system_upsert_batches(self) -> None:
        self.dml.upsert_as_system([Record("Account", {"name": "A"}), Record("Account", {"name": "B"})])
        self.assertEqual(self.store.mutations(), ["upsert_many"])
