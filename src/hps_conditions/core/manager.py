"""
The top-level conditions manager.

``DatabaseConditionsManager`` ties the pieces together: it is configured from an
XML document (table metadata first, then converters), owns the connection to the
conditions database, and caches conditions payloads for one
``(detector name, run number)`` context at a time.

Typical use from a job::

    manager = DatabaseConditionsManager()
    manager.configure_from_resource()
    manager.set_connection_properties("conditions.properties")
    manager.set_detector_and_run("HPS-EngRun2015-Nominal-v1", 5772)
    gains = manager.get_conditions(EcalGainCollection, "ecal_gains")
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Type, TypeVar, Union

from hps_conditions.core import context
from hps_conditions.core.cache import ConditionsCache
from hps_conditions.core.config import (
    DEFAULT_CONFIG_RESOURCE,
    ConditionsConfig,
    load_config,
    load_config_resource,
    parse_config,
)
from hps_conditions.core.connection import ConnectionManager, ConnectionParameters
from hps_conditions.core.converters import ConverterRegistry, DetectorDescriptionConverter
from hps_conditions.core.queries import build_insert, sql_literal
from hps_conditions.core.registry import TYPES, TypeRegistry
from hps_conditions.core.resources import DetectorDescription, ResourceReader
from hps_conditions.core.schema import SchemaRegistry, TableMetaData
from hps_conditions.errors import ConditionsNotFoundError, ConfigurationError
from hps_conditions.log import set_log_level
from hps_conditions.models.base import ConditionsObjectCollection
from hps_conditions.models.record import ConditionsRecord, ConditionsRecordCollection
from hps_conditions.settings import ConditionsSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

DETECTOR_RESOURCE = "compact.xml"


class ManagerState(str, Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    CONNECTED = "connected"


class DatabaseConditionsManager:
    """
    Conditions cache and database access for one detector/run context at a time.

    The manager is single-threaded: it must be used from the thread that created
    it.
    """

    def __init__(
        self,
        connection: Optional[ConnectionManager] = None,
        types: Optional[TypeRegistry] = None,
        resource_reader: Optional[ResourceReader] = None,
    ) -> None:
        self.types = types if types is not None else TYPES
        self.connection = connection if connection is not None else ConnectionManager()
        self.resource_reader = (
            resource_reader if resource_reader is not None else ResourceReader()
        )
        self.schema = SchemaRegistry(self.types)
        self.converters = self._new_converter_registry()
        self.cache = ConditionsCache()
        self._conditions_table_name: Optional[str] = None
        self._was_configured = False
        self._opened_connection = False
        self._owner_thread = threading.get_ident()

    @classmethod
    def from_settings(
        cls, settings: Optional[ConditionsSettings] = None
    ) -> "DatabaseConditionsManager":
        """Build and configure a manager from ``ConditionsSettings`` (or the environment)."""
        settings = settings if settings is not None else ConditionsSettings.from_env()
        set_log_level(settings.log_level)
        manager = cls(resource_reader=ResourceReader(settings.detector_paths))
        if settings.config_path:
            manager.configure(settings.config_path)
        else:
            manager.configure_from_resource()
        if settings.properties_path:
            manager.set_connection_properties(settings.properties_path)
        return manager

    # --- State ---

    @property
    def state(self) -> ManagerState:
        if not self._was_configured:
            return ManagerState.UNCONFIGURED
        if self.connection.is_connected:
            return ManagerState.CONNECTED
        return ManagerState.CONFIGURED

    @property
    def was_configured(self) -> bool:
        return self._was_configured

    @property
    def detector_name(self) -> Optional[str]:
        return self.cache.detector_name

    @property
    def run_number(self) -> Optional[int]:
        return self.cache.run_number

    @property
    def conditions_table_name(self) -> Optional[str]:
        """Name of the table holding the validity records."""
        return self._conditions_table_name

    @property
    def table_metadata(self) -> List[TableMetaData]:
        return self.schema.tables

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    @property
    def has_connection_parameters(self) -> bool:
        return self.connection.parameters is not None

    # --- Configuration ---

    def configure(self, path: Union[str, Path]) -> None:
        """Configure from an XML file."""
        logger.info("configuring from file: %s", Path(path).resolve())
        self.apply_config(load_config(path))

    def configure_from_resource(self, name: str = DEFAULT_CONFIG_RESOURCE) -> None:
        """Configure from an XML document embedded in the package."""
        logger.info("configuring from resource: %s", name)
        self.apply_config(load_config_resource(name))

    def configure_from_string(self, text: str) -> None:
        self.apply_config(parse_config(text))

    def apply_config(self, config: ConditionsConfig) -> None:
        """
        Load table metadata, then converters, replacing any previous configuration.

        Nothing is replaced unless the whole configuration is valid, including a
        converter and a table for ``ConditionsRecordCollection``.
        """
        self._check_thread()
        schema = SchemaRegistry(self.types)
        schema.load(config.tables)

        converters = self._new_converter_registry()
        for converter in converters.load(config.converters):
            logger.info("registered converter %s", type(converter).__name__)

        if converters.find(ConditionsRecordCollection) is None:
            raise ConfigurationError(
                "No conditions converter found for ConditionsRecord type "
                "in the supplied configuration."
            )
        records_meta = schema.find_by_collection_type(ConditionsRecordCollection)
        if records_meta is None:
            raise ConfigurationError(
                "No table is configured for ConditionsRecordCollection "
                "in the supplied configuration."
            )

        self.schema = schema
        self.converters = converters
        self._conditions_table_name = records_meta.table_name
        self.cache.clear()
        self._was_configured = True
        logger.info("conditions validity table set to %s", self._conditions_table_name)

    def _new_converter_registry(self) -> ConverterRegistry:
        registry = ConverterRegistry(self.types)
        registry.register(DetectorDescriptionConverter())
        return registry

    def set_connection_properties(self, path: Union[str, Path]) -> None:
        self.connection.parameters = ConnectionParameters.from_properties(path)

    def set_connection_resource(self, name: str) -> None:
        self.connection.parameters = ConnectionParameters.from_resource(name)

    def set_connection_parameters(self, parameters: ConnectionParameters) -> None:
        self.connection.parameters = parameters

    def set_resource_reader(self, reader: ResourceReader) -> None:
        """Replace the reader used for non-database conditions such as compact.xml."""
        self.resource_reader = reader

    def set_log_level(self, level: Union[int, str]) -> None:
        logger.info("setting log level to %s", level)
        set_log_level(level)

    # --- Connection ---

    def open_connection(self) -> bool:
        """Open the connection; True if this call opened it."""
        self._check_thread()
        return self.connection.open_connection()

    def close_connection(self, opened_here: bool, force: bool = False) -> bool:
        """Close the connection only if the caller opened it (or ``force``)."""
        self._check_thread()
        closed = self.connection.close_connection(opened_here, force=force)
        if closed:
            self._opened_connection = False
        return closed

    def close(self) -> None:
        """Close the connection if it was opened by ``set_detector_and_run``."""
        if self._opened_connection:
            self.close_connection(True)

    def __enter__(self) -> "DatabaseConditionsManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def register(self) -> None:
        """Make this the process-wide manager returned by ``context.get_instance()``."""
        context.register(self)

    # --- Conditions access ---

    def set_detector_and_run(self, detector_name: str, run_number: int) -> None:
        """
        Switch to a detector and run.

        Points the resource reader at the detector, opens the connection if needed
        and drops every cached payload when the pair differs from the current one.
        """
        self._check_thread()
        if not self._was_configured:
            raise ConfigurationError("The conditions manager has not been configured.")
        run_number = int(run_number)
        logger.debug("set detector %s run %d", detector_name, run_number)

        self.resource_reader.set_resource_path(detector_name)

        if not self.connection.is_connected:
            if not self.has_connection_parameters:
                raise ConditionsNotFoundError(
                    "The database connection parameters were not configured."
                )
            if self.connection.open_connection():
                self._opened_connection = True

        if self.cache.set_context(detector_name, run_number):
            logger.info("conditions set to detector %s run %d", detector_name, run_number)

    def get_conditions(self, conditions_type: Type[T], name: str) -> T:
        """
        Return the ``conditions_type`` payload called ``name`` for the current run.

        Served from the cache when present, otherwise produced by the converter
        registered for ``conditions_type`` and cached until the next detector or
        run change.
        """
        self._check_thread()
        if self.cache.run_number is None:
            raise ConditionsNotFoundError(
                "No detector and run have been set on the conditions manager."
            )
        entry = self.cache.get(conditions_type, name)
        if entry is not None:
            return entry.payload

        converter = self.converters.find(conditions_type)
        if converter is None:
            raise ConditionsNotFoundError(
                f"No converter is registered for {conditions_type.__name__}."
            )
        logger.debug(
            "getting conditions %s of type %s", name, conditions_type.__name__
        )
        payload = converter.produce(self, name)
        if payload is None:
            raise ConditionsNotFoundError(
                f"The converter for {conditions_type.__name__} returned nothing for '{name}'."
            )
        self.cache.put(conditions_type, name, payload)
        return payload

    def find_conditions_records(self, name: str) -> ConditionsRecordCollection:
        """
        All validity records whose name is ``name``, in table order.

        Several records may match, including several covering the same run;
        choosing among them is up to the caller.
        """
        if self._conditions_table_name is None:
            raise ConfigurationError("The conditions manager has not been configured.")
        records = self.get_conditions(
            ConditionsRecordCollection, self._conditions_table_name
        )
        logger.debug("searching for condition %s in %d records", name, len(records))
        found = records.find_by_name(name)
        for record in found:
            logger.debug("found ConditionsRecord with key %s: %s", name, record)
        return found

    def get_detector_description(self) -> DetectorDescription:
        return self.get_conditions(DetectorDescription, DETECTOR_RESOURCE)

    # --- Collection ids and inserts ---

    def _require_table(self, table_name: str) -> TableMetaData:
        meta = self.schema.find_by_table_name(table_name)
        if meta is None:
            raise ConfigurationError(f"There is no meta data for table {table_name}")
        return meta

    def next_collection_id(self, table_name: str) -> int:
        """
        ``MAX(collection_id) + 1`` for the table, or 1 when the table is empty.
        """
        meta = self._require_table(table_name)
        rows = self.connection.select_query(
            f"SELECT MAX(collection_id)+1 FROM {meta.table_name}"
        )
        value = rows[0][0] if rows else None
        collection_id = 1 if value is None else int(value)
        logger.debug(
            "new collection ID %d created for table %s", collection_id, table_name
        )
        return collection_id

    def collection_id_exists(self, table_name: str, collection_id: int) -> bool:
        meta = self._require_table(table_name)
        rows = self.connection.select_query(
            f"SELECT COUNT(*) FROM {meta.table_name} "
            f"WHERE collection_id = {int(collection_id)}"
        )
        return bool(rows and rows[0][0])

    def allocate_collection_id(
        self, table_name: str, collection_id: Optional[int] = None
    ) -> int:
        """
        Next free collection id, or ``collection_id`` after checking it is unused.
        """
        if collection_id is None:
            return self.next_collection_id(table_name)
        if self.collection_id_exists(table_name, collection_id):
            raise ConfigurationError(
                f"The collection ID {collection_id} already exists in table {table_name}."
            )
        return int(collection_id)

    def insert_collection(
        self,
        collection: ConditionsObjectCollection,
        collection_id: Optional[int] = None,
    ) -> List[int]:
        """
        Insert every row of ``collection`` and return the generated keys.

        Rows of ordinary tables get the collection's id (allocated when neither
        the collection nor ``collection_id`` provides one). Tables that list
        ``collection_id`` as a field, like the validity record table, keep each
        row's own value.
        """
        meta = collection.table_meta or self.schema.find_by_collection_type(
            type(collection)
        )
        if meta is None:
            raise ConfigurationError(
                f"No table is configured for {type(collection).__name__}."
            )
        if len(collection) == 0:
            logger.warning("nothing to insert into %s", meta.table_name)
            return []

        own_collection_ids = "collection_id" in meta.fields
        if own_collection_ids:
            columns = list(meta.fields)
        else:
            requested = collection_id if collection_id is not None else collection.collection_id
            collection_id = self.allocate_collection_id(meta.table_name, requested)
            columns = ["collection_id", *meta.fields]

        rows = []
        for obj in collection:
            values = obj.to_row(meta)
            if not own_collection_ids:
                values = {"collection_id": collection_id, **values}
            rows.append([sql_literal(values[column]) for column in columns])

        keys = self.connection.update_query(build_insert(meta.table_name, columns, rows))
        if len(keys) == len(collection):
            for obj, key in zip(collection, keys):
                obj.id = key
        if not own_collection_ids:
            collection.collection_id = collection_id
            for obj in collection:
                obj.collection_id = collection_id
        collection.table_meta = meta
        logger.info(
            "inserted %d rows into %s%s",
            len(collection),
            meta.table_name,
            "" if own_collection_ids else f" with collection_id {collection_id}",
        )
        return keys

    def add_conditions_record(self, record: ConditionsRecord) -> ConditionsRecord:
        """
        Insert a validity record into the conditions table.

        Record collections already cached for the current context are not
        refreshed; the new record is seen after the next detector or run change.
        """
        if self._conditions_table_name is None:
            raise ConfigurationError("The conditions manager has not been configured.")
        self._require_table(record.table_name)
        if record.created is None:
            record.created = datetime.now().replace(microsecond=0)
        meta = self._require_table(self._conditions_table_name)
        collection = meta.collection_type([record], table_meta=meta)
        self.insert_collection(collection)
        return record

    def _check_thread(self) -> None:
        if threading.get_ident() != self._owner_thread:
            raise RuntimeError(
                "The conditions manager may only be used from the thread that created it."
            )

    def __repr__(self) -> str:
        return (
            f"DatabaseConditionsManager(state={self.state.value}, "
            f"detector={self.detector_name!r}, run={self.run_number!r})"
        )


def get_conditions_manager() -> DatabaseConditionsManager:
    """The registered manager (see ``hps_conditions.core.context``)."""
    return context.get_instance()
