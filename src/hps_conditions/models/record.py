from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field

from hps_conditions.core.registry import register_type
from hps_conditions.errors import ConfigurationError
from hps_conditions.models.base import ConditionsObject, ConditionsObjectCollection


@register_type
class ConditionsRecord(ConditionsObject):
    """
    Validity metadata for one named conditions set.

    A record says that rows with ``collection_id`` in ``table_name`` are the
    ``name`` conditions for runs ``run_start`` through ``run_end`` (both
    inclusive). ``run_end=None`` leaves the range open.

    Attributes:
        run_start (int): First run the record applies to.
        run_end (Optional[int]): Last run the record applies to.
        name (str): Conditions key, usually the same as the table name.
        table_name (str): Table holding the rows.
        collection_id (int): Rows of ``table_name`` making up the set.
        created (Optional[datetime]): When the record was inserted.
        created_by (Optional[str]): Who inserted it.
        tag (Optional[str]): Free-form grouping tag.
        notes (Optional[str]): Free-text description.
    """

    run_start: int = 0
    run_end: Optional[int] = None
    name: str
    table_name: str
    created: Optional[datetime] = None
    created_by: Optional[str] = None
    tag: Optional[str] = None
    notes: Optional[str] = Field(default=None, description="Free-text description.")

    def covers(self, run_number: int) -> bool:
        if run_number < self.run_start:
            return False
        return self.run_end is None or run_number <= self.run_end

    def __str__(self) -> str:
        end = "" if self.run_end is None else self.run_end
        return (
            f"id: {self.id}, name: {self.name}, table: {self.table_name}, "
            f"collection_id: {self.collection_id}, runs: {self.run_start}-{end}, "
            f"tag: {self.tag}, created_by: {self.created_by}, notes: {self.notes}"
        )


@register_type
class ConditionsRecordCollection(ConditionsObjectCollection[ConditionsRecord]):
    object_type = ConditionsRecord

    def _subset(self, records) -> "ConditionsRecordCollection":
        return ConditionsRecordCollection(records, table_meta=self.table_meta)

    def find_by_name(self, name: str) -> "ConditionsRecordCollection":
        return self._subset(r for r in self if r.name == name)

    def find_by_run(self, run_number: int) -> "ConditionsRecordCollection":
        return self._subset(r for r in self if r.covers(run_number))

    def sort_by_key(self) -> None:
        self.sort(key=lambda r: (r.id is None, r.id or 0))


@register_type
class ConditionsRecordConverter:
    """Loads every validity record from the conditions table ``name``."""

    conditions_type = ConditionsRecordCollection

    def produce(self, manager, name: str) -> ConditionsRecordCollection:
        meta = manager.schema.find_by_table_name(name)
        if meta is None or not issubclass(meta.collection_type, ConditionsRecordCollection):
            raise ConfigurationError(f"The table '{name}' is not a conditions record table.")
        rows = manager.connection.select_query(
            f"SELECT * FROM {meta.table_name} ORDER BY {meta.key}"
        )
        collection = meta.collection_type(table_meta=meta)
        for row in rows:
            collection.add(meta.object_type.from_row(row._mapping, meta))
        return collection
