"""Permission-mediated create/update/upsert/delete/merge.

Usage::

    from secure_dml.dml import DMLOrchestrator
    from secure_dml.types import Record

    dml = DMLOrchestrator.for_user(request.user)
    dml.insert_as_user(Record.of(Opportunity, name="Big deal", stage="new"))
    dml.update_as_user(Record.of(Opportunity, id=pk, stage="won"))

The ``*_as_user`` methods validate the whole batch (object access first,
then field access) before anything reaches the store.  The ``*_as_system``
methods go straight to the store and must only be used for privileged
internal work.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .cache import PolicyCache
from .exceptions import PolicyError
from .guards import AccessChecker, FieldGuard
from .schema import DjangoSchemaProvider, SchemaProvider
from .store import DjangoRecordStore, RecordStore
from .types import Operation, Record, RecordOrRecords, as_record_list

logger = logging.getLogger(__name__)


# Cache entries each batch operation needs per record type.
_POLICY_OPERATIONS = {
    Operation.INSERT: (Operation.INSERT,),
    Operation.UPDATE: (Operation.UPDATE,),
    Operation.UPSERT: (Operation.INSERT, Operation.UPDATE),
    Operation.DELETE: (),
}


@dataclass
class BatchPlan:
    """Records of one batch grouped by type, with their identifiers."""

    operation: Operation
    records: list[Record]
    ids_by_type: dict[str, list[Any]] = field(default_factory=dict)

    @property
    def types(self) -> list[str]:
        return list(self.ids_by_type)


class DMLOrchestrator:
    """Entry point combining the access checks with a record store.

    The policy cache reflects the principal behind ``schema``; build one
    orchestrator per principal (see :meth:`for_user`).
    """

    def __init__(
        self,
        schema: SchemaProvider,
        store: RecordStore,
        cache: Optional[PolicyCache] = None,
    ):
        self.schema = schema
        self.store = store
        self.cache = cache if cache is not None else PolicyCache(schema)
        self.access = AccessChecker(schema)
        self.guard = FieldGuard(self.cache)

    @classmethod
    def for_user(cls, user, using: str | None = None) -> "DMLOrchestrator":
        """Return an orchestrator enforcing ``user``'s Django permissions."""

        return cls(DjangoSchemaProvider(user), DjangoRecordStore(using=using))

    # ------------------------------------------------------------------
    # Checked path
    # ------------------------------------------------------------------
    def insert_as_user(self, records: RecordOrRecords) -> list[Record]:
        return self._run(Operation.INSERT, as_record_list(records))

    def update_as_user(self, records: RecordOrRecords) -> list[Record]:
        return self._run(Operation.UPDATE, as_record_list(records))

    def upsert_as_user(self, records: RecordOrRecords) -> list[Record]:
        return self._run(Operation.UPSERT, as_record_list(records))

    def delete_as_user(self, records: RecordOrRecords) -> list[Record]:
        return self._run(Operation.DELETE, as_record_list(records))

    def merge_as_user(self, master: Record, merge_records: RecordOrRecords) -> Record:
        """Merge ``merge_records`` into ``master`` and delete them.

        Requires update access on the master's type and delete access on
        the type of the first merge record. The merge list is assumed to
        hold a single type.
        """

        merge_list = as_record_list(merge_records)
        if not merge_list:
            raise PolicyError("A merge needs at least one record to merge")
        if master.id is None:
            raise PolicyError(f"Merge master {master.type} has no id")
        self.access.check_object_access([master.type], Operation.UPDATE)
        self.access.check_object_access([merge_list[0].type], Operation.DELETE)
        logger.debug(
            "Merging %d %s records into %s %r",
            len(merge_list),
            merge_list[0].type,
            master.type,
            master.id,
        )
        return self.store.merge(master, merge_list)

    # ------------------------------------------------------------------
    # Unchecked path
    # ------------------------------------------------------------------
    def insert_as_system(self, records: RecordOrRecords) -> list[Record]:
        return self.store.insert(as_record_list(records))

    def update_as_system(self, records: RecordOrRecords) -> list[Record]:
        return self.store.update(as_record_list(records))

    def upsert_as_system(self, records: RecordOrRecords) -> list[Record]:
        return self._upsert(as_record_list(records))

    def delete_as_system(self, records: RecordOrRecords) -> list[Record]:
        return self.store.delete(as_record_list(records))

    def merge_as_system(self, master: Record, merge_records: RecordOrRecords) -> Record:
        return self.store.merge(master, as_record_list(merge_records))

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------
    def classify(self, operation: Operation, records: list[Record]) -> BatchPlan:
        """Group ``records`` by type and warm the policy cache for them."""

        plan = BatchPlan(operation, records)
        for record in records:
            ids = plan.ids_by_type.setdefault(record.type, [])
            if record.id is not None:
                ids.append(record.id)
        for record_type in plan.types:
            for policy_op in _POLICY_OPERATIONS[operation]:
                self.cache.restricted_fields(policy_op, record_type)
        return plan

    def check(self, plan: BatchPlan) -> None:
        """Run every check for ``plan``; raises on the first violation."""

        self.access.check_object_access(plan.types, plan.operation)
        if plan.operation is Operation.DELETE:
            return
        for record in plan.records:
            self.guard.check_known_fields(record)
        if plan.operation is Operation.INSERT:
            for record in plan.records:
                self.guard.check_insert(record)
            return

        snapshots = self._fetch_snapshots(plan)
        for record in plan.records:
            if plan.operation is Operation.UPSERT and record.id is None:
                self.guard.check_insert(record)
            else:
                self.guard.check_update(record, snapshots.get((record.type, record.id)))

    def _fetch_snapshots(self, plan: BatchPlan) -> dict[tuple[str, Any], Record]:
        snapshots: dict[tuple[str, Any], Record] = {}
        for record_type, ids in plan.ids_by_type.items():
            restricted = self.cache.restricted_fields(Operation.UPDATE, record_type)
            if not restricted or not ids:
                continue
            fetched = self.store.fetch_by_ids(record_type, ids, list(restricted))
            for pk, snapshot in fetched.items():
                snapshots[(record_type, pk)] = snapshot
        return snapshots

    def _run(self, operation: Operation, records: list[Record]) -> list[Record]:
        if not records:
            return []
        plan = self.classify(operation, records)
        self.check(plan)
        logger.debug("Dispatching %s of %d records", operation.value, len(records))
        if operation is Operation.INSERT:
            return self.store.insert(records)
        if operation is Operation.UPDATE:
            return self.store.update(records)
        if operation is Operation.DELETE:
            return self.store.delete(records)
        return self._upsert(records)

    def _upsert(self, records: list[Record]) -> list[Record]:
        if len(records) == 1:
            return [self.store.upsert_one(records[0])]
        return self.store.upsert_many(records)
