"""Record stores executing the mutations once all checks have passed."""

from __future__ import annotations

import logging
from contextlib import nullcontext
from typing import Any, Iterable, Protocol, Sequence

from django.core.exceptions import ValidationError
from django.db import transaction

from .conf import settings
from .schema import resolve_model
from .types import Record

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Storage primitives used by :class:`secure_dml.dml.DMLOrchestrator`.

    Implementations raise their own errors (integrity errors, stale ids);
    callers receive them unmodified.
    """

    def insert(self, records: Sequence[Record]) -> list[Record]:
        ...

    def update(self, records: Sequence[Record]) -> list[Record]:
        ...

    def delete(self, records: Sequence[Record]) -> list[Record]:
        ...

    def upsert_one(self, record: Record) -> Record:
        ...

    def upsert_many(self, records: Sequence[Record]) -> list[Record]:
        ...

    def merge(self, master: Record, merge_records: Sequence[Record]) -> Record:
        ...

    def fetch_by_ids(
        self, record_type: str, ids: Iterable[Any], fields: Sequence[str]
    ) -> dict[Any, Record]:
        """Snapshots keyed by the ids as passed in; missing ids are absent."""
        ...


class DjangoRecordStore:
    """:class:`RecordStore` backed by the Django ORM.

    With ``atomic`` (default: ``SECURE_DML_ATOMIC``) every call runs in a
    single transaction, so a failing row rolls back the whole batch.
    """

    def __init__(self, using: str | None = None, atomic: bool | None = None):
        self.using = using
        self.atomic = settings.SECURE_DML_ATOMIC if atomic is None else atomic

    def _transaction(self):
        if self.atomic:
            return transaction.atomic(using=self.using)
        return nullcontext()

    def _queryset(self, model):
        qs = model._default_manager.all()
        if self.using:
            qs = qs.using(self.using)
        return qs

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def insert(self, records: Sequence[Record]) -> list[Record]:
        with self._transaction():
            for record in records:
                self._insert_one(record)
        return list(records)

    def update(self, records: Sequence[Record]) -> list[Record]:
        with self._transaction():
            for record in records:
                self._update_one(record)
        return list(records)

    def delete(self, records: Sequence[Record]) -> list[Record]:
        grouped: dict[str, list[Any]] = {}
        for record in records:
            if record.id is None:
                raise ValueError(f"Cannot delete a {record.type} without an id")
            grouped.setdefault(record.type, []).append(record.id)
        with self._transaction():
            for record_type, ids in grouped.items():
                model = resolve_model(record_type)
                self._queryset(model).filter(pk__in=ids).delete()
                logger.debug("Deleted %d %s rows", len(ids), record_type)
        return list(records)

    def upsert_one(self, record: Record) -> Record:
        with self._transaction():
            if record.id is None:
                self._insert_one(record)
            else:
                self._update_one(record)
        return record

    def upsert_many(self, records: Sequence[Record]) -> list[Record]:
        with self._transaction():
            for record in records:
                self.upsert_one(record)
        return list(records)

    def merge(self, master: Record, merge_records: Sequence[Record]) -> Record:
        """Re-point children of ``merge_records`` at ``master`` and delete them."""

        model = resolve_model(master.type)
        merge_model = resolve_model(merge_records[0].type)
        ids = [r.id for r in merge_records if r.id is not None and r.id != master.id]
        with self._transaction():
            self._queryset(model).get(pk=master.id)
            for rel in merge_model._meta.related_objects:
                if not rel.one_to_many:
                    continue
                children = rel.related_model._default_manager.filter(
                    **{f"{rel.field.name}__in": ids}
                )
                if self.using:
                    children = children.using(self.using)
                moved = children.update(**{rel.field.attname: master.id})
                if moved:
                    logger.debug(
                        "Re-parented %d %s rows onto %s %r",
                        moved,
                        rel.related_model._meta.label,
                        master.type,
                        master.id,
                    )
            self._queryset(merge_model).filter(pk__in=ids).delete()
        return master

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def fetch_by_ids(
        self, record_type: str, ids: Iterable[Any], fields: Sequence[str]
    ) -> dict[Any, Record]:
        """Return snapshots keyed by the ids exactly as the caller passed them.

        Ids are converted with the primary key's ``to_python`` for the query,
        so ``"7"`` finds row ``7``. Ids the primary key rejects are skipped.
        """

        model = resolve_model(record_type)
        pk_field = model._meta.pk
        requested: dict[Any, list[Any]] = {}
        for raw in ids:
            try:
                pk = pk_field.to_python(raw)
            except ValidationError:
                continue
            requested.setdefault(pk, []).append(raw)

        rows = self._queryset(model).filter(pk__in=list(requested)).values("pk", *fields)
        snapshots = {}
        for row in rows:
            pk = row.pop("pk")
            for raw in requested.get(pk, ()):
                snapshots[raw] = Record(record_type, dict(row), id=pk)
        return snapshots

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _insert_one(self, record: Record) -> None:
        model = resolve_model(record.type)
        instance = model(**record.fields)
        instance.save(force_insert=True, using=self.using)
        record.id = instance.pk

    def _update_one(self, record: Record) -> None:
        model = resolve_model(record.type)
        instance = self._queryset(model).get(pk=record.id)
        for name, value in record.fields.items():
            setattr(instance, name, value)
        instance.save(update_fields=list(record.fields), using=self.using)
