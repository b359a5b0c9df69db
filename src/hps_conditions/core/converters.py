"""
Converters turn a conditions request into a payload on a cache miss.

A converter is any object with a ``conditions_type`` class attribute and a
``produce(manager, name)`` method. The ``ConverterRegistry`` keeps one converter
per conditions type; the manager asks it for the converter whenever a
``(type, name)`` pair is not cached for the current detector and run.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from hps_conditions.core.registry import TYPES, TypeRegistry, register_type
from hps_conditions.core.resources import DetectorDescription
from hps_conditions.errors import ConditionsNotFoundError, ConfigurationError
from hps_conditions.protocols import ConditionsConverterLike

if TYPE_CHECKING:
    from hps_conditions.core.manager import DatabaseConditionsManager
    from hps_conditions.models.record import ConditionsRecord, ConditionsRecordCollection

logger = logging.getLogger(__name__)


def _conditions_type_of(converter: Any) -> type:
    conditions_type = getattr(converter, "conditions_type", None)
    if not isinstance(conditions_type, type):
        name = getattr(converter, "__name__", type(converter).__name__)
        raise ConfigurationError(
            f"The converter {name} does not declare the conditions_type it produces."
        )
    return conditions_type


class ConverterRegistry:
    def __init__(self, types: Optional[TypeRegistry] = None) -> None:
        self.types = types if types is not None else TYPES
        self._converters: Dict[type, Any] = {}

    def register(self, converter: Any) -> None:
        """Register ``converter`` for its conditions type; the latest one wins."""
        if not isinstance(converter, ConditionsConverterLike):
            raise ConfigurationError(
                f"The converter {type(converter).__name__} does not define produce()."
            )
        conditions_type = _conditions_type_of(converter)
        previous = self._converters.get(conditions_type)
        if previous is not None and previous is not converter:
            logger.info(
                "replacing converter %s with %s for %s",
                type(previous).__name__,
                type(converter).__name__,
                conditions_type.__name__,
            )
        self._converters[conditions_type] = converter
        logger.debug(
            "registered converter %s for %s",
            type(converter).__name__,
            conditions_type.__name__,
        )

    def load(self, class_names: Iterable[str]) -> List[Any]:
        """Resolve, instantiate and register each named converter class."""
        loaded: List[Any] = []
        for name in class_names:
            converter_class = self.types.resolve(name)
            if not isinstance(converter_class, type) or not issubclass(
                converter_class, ConditionsConverterLike
            ):
                raise ConfigurationError(
                    f"The converter class {name} does not implement produce()."
                )
            _conditions_type_of(converter_class)
            try:
                converter = converter_class()
            except TypeError as e:
                raise ConfigurationError(
                    f"The converter class {name} could not be instantiated: {e}"
                ) from e
            self.register(converter)
            loaded.append(converter)
        return loaded

    def find(self, conditions_type: type) -> Optional[Any]:
        return self._converters.get(conditions_type)

    def clear(self) -> None:
        self._converters.clear()

    @property
    def converters(self) -> List[Any]:
        return list(self._converters.values())

    def __contains__(self, conditions_type: object) -> bool:
        return conditions_type in self._converters

    def __len__(self) -> int:
        return len(self._converters)


class ConditionsObjectConverter:
    """
    Loads the collection of rows that a validity record selects for the current run.

    Subclasses only set ``conditions_type`` to the collection class they produce.
    The record named ``name`` that covers the run picks the table and collection
    id; rows are read with ``SELECT * FROM <table> WHERE collection_id = <id>``.
    """

    conditions_type: Optional[type] = None

    def produce(self, manager: "DatabaseConditionsManager", name: str) -> Any:
        run_number = manager.run_number
        records = manager.find_conditions_records(name).find_by_run(run_number)
        if len(records) == 0:
            raise ConditionsNotFoundError(
                f"No conditions record for '{name}' is valid for run {run_number}."
            )
        record = self.select_record(records, name, run_number)

        meta = manager.schema.find_by_table_name(record.table_name)
        if meta is None:
            raise ConfigurationError(
                f"The conditions record for '{name}' refers to unknown table "
                f"'{record.table_name}'."
            )
        if meta.collection_type is not self.conditions_type:
            raise ConfigurationError(
                f"The table '{meta.table_name}' holds {meta.collection_type.__name__}, "
                f"not {getattr(self.conditions_type, '__name__', None)}."
            )

        collection_id = int(record.collection_id)
        rows = manager.connection.select_query(
            f"SELECT * FROM {meta.table_name} WHERE collection_id = {collection_id}"
        )
        collection = meta.collection_type(table_meta=meta, collection_id=collection_id)
        for row in rows:
            collection.add(meta.object_type.from_row(row._mapping, meta))
        logger.debug(
            "loaded %d rows from %s with collection_id %d",
            len(collection),
            meta.table_name,
            collection_id,
        )
        return collection

    def select_record(
        self,
        records: "ConditionsRecordCollection",
        name: str,
        run_number: int,
    ) -> "ConditionsRecord":
        """
        Pick one record among those valid for the run.

        The most recently inserted record (highest id) wins when several overlap.
        """
        if len(records) > 1:
            logger.warning(
                "%d conditions records named '%s' are valid for run %d; using the newest",
                len(records),
                name,
                run_number,
            )
        return max(records, key=lambda r: r.id or 0)


@register_type
class DetectorDescriptionConverter:
    """Reads a detector description file through the manager's resource reader."""

    conditions_type = DetectorDescription

    def produce(self, manager: "DatabaseConditionsManager", name: str) -> DetectorDescription:
        source, text = manager.resource_reader.read_text(name)
        return DetectorDescription(
            detector_name=manager.detector_name or "",
            resource_name=name,
            source=source,
            text=text,
        )
