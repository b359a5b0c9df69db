from __future__ import annotations

import logging
import re
import types
import typing
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Iterator, List, Optional, Type

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
)
from sqlalchemy.engine import Connection

from hps_conditions.core.config import TableDescriptor
from hps_conditions.core.registry import TYPES, TypeRegistry
from hps_conditions.errors import ConfigurationError
from hps_conditions.protocols import ConditionsCollectionLike, ConditionsObjectLike

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_COLUMN_TYPES = {
    int: Integer,
    float: Float,
    bool: Boolean,
    datetime: DateTime,
}


def is_identifier(name: str) -> bool:
    return bool(_IDENTIFIER_RE.match(name or ""))


def _unwrap_optional(annotation: Any) -> Any:
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _column_type(object_type: type, field_name: str):
    model_fields = getattr(object_type, "model_fields", {}) or {}
    info = model_fields.get(field_name)
    annotation = _unwrap_optional(info.annotation) if info is not None else str
    sql_type = _COLUMN_TYPES.get(annotation)
    if sql_type is None:
        return String(255)
    return sql_type()


@dataclass(frozen=True)
class TableMetaData:
    """
    How one conditions table maps onto row and collection classes.

    Attributes:
        table_name (str): Database table name.
        key (str): Primary key column.
        object_type (type): Row class.
        collection_type (type): Collection class.
        fields (tuple[str, ...]): Data columns in declared order, key excluded.
    """

    table_name: str
    key: str
    object_type: Type[Any]
    collection_type: Type[Any]
    fields: tuple[str, ...]

    def to_table(self, metadata: MetaData) -> Table:
        """Build a SQLAlchemy ``Table`` for this metadata, typed from the row class."""
        columns = [Column(self.key, Integer, primary_key=True, autoincrement=True)]
        if "collection_id" not in self.fields:
            columns.append(Column("collection_id", Integer, index=True, nullable=False))
        for name in self.fields:
            columns.append(Column(name, _column_type(self.object_type, name)))
        return Table(self.table_name, metadata, *columns)


class SchemaRegistry:
    """
    Table metadata loaded from the ``tables`` section of the configuration.

    Populated by ``load`` and read-only afterwards; a later ``load`` replaces the
    whole registry.
    """

    def __init__(self, types: Optional[TypeRegistry] = None) -> None:
        self.types = types if types is not None else TYPES
        self._tables: List[TableMetaData] = []

    def load(self, descriptors: Iterable[TableDescriptor]) -> None:
        tables: List[TableMetaData] = []
        seen: set[str] = set()
        for descriptor in descriptors:
            meta = self._build(descriptor)
            if meta.table_name in seen:
                raise ConfigurationError(
                    f"The table '{meta.table_name}' is configured more than once."
                )
            seen.add(meta.table_name)
            tables.append(meta)
        self._tables = tables
        logger.info("loaded meta data for %d conditions tables", len(tables))

    def _build(self, descriptor: TableDescriptor) -> TableMetaData:
        table_name = descriptor.name
        for identifier in (table_name, descriptor.key, *descriptor.fields):
            if not is_identifier(identifier):
                raise ConfigurationError(
                    f"Invalid identifier '{identifier}' in table '{table_name}'."
                )
        if len(set(descriptor.fields)) != len(descriptor.fields):
            raise ConfigurationError(f"Duplicate field names in table '{table_name}'.")
        if descriptor.key in descriptor.fields:
            raise ConfigurationError(
                f"The key '{descriptor.key}' of table '{table_name}' is also listed as a field."
            )

        object_type = self._resolve(
            descriptor.object_class, ConditionsObjectLike, "a conditions object"
        )
        collection_type = self._resolve(
            descriptor.collection_class,
            ConditionsCollectionLike,
            "a conditions object collection",
        )

        model_fields = getattr(object_type, "model_fields", None)
        if model_fields is not None:
            unknown = [f for f in descriptor.fields if f not in model_fields]
            if unknown:
                raise ConfigurationError(
                    f"The class {object_type.__name__} has no attributes {unknown} "
                    f"listed for table '{table_name}'."
                )
        expected = getattr(collection_type, "object_type", None)
        if isinstance(expected, type) and not issubclass(object_type, expected):
            raise ConfigurationError(
                f"The collection {collection_type.__name__} holds {expected.__name__}, "
                f"not {object_type.__name__}."
            )

        logger.debug(
            "table %s: object %s, collection %s, fields %s",
            table_name,
            object_type.__name__,
            collection_type.__name__,
            descriptor.fields,
        )
        return TableMetaData(
            table_name=table_name,
            key=descriptor.key,
            object_type=object_type,
            collection_type=collection_type,
            fields=tuple(descriptor.fields),
        )

    def _resolve(self, name: str, capability: type, description: str) -> type:
        resolved = self.types.resolve(name)
        if not isinstance(resolved, type) or not issubclass(resolved, capability):
            raise ConfigurationError(f"The class {name} is not {description}.")
        return resolved

    @property
    def tables(self) -> List[TableMetaData]:
        return list(self._tables)

    def find_by_table_name(self, name: str) -> Optional[TableMetaData]:
        for meta in self._tables:
            if meta.table_name == name:
                return meta
        return None

    def find_by_collection_type(self, collection_type: type) -> Optional[TableMetaData]:
        """First table, in configuration order, mapped to ``collection_type``."""
        for meta in self._tables:
            if meta.collection_type is collection_type:
                return meta
        return None

    def metadata(self) -> MetaData:
        metadata = MetaData()
        for meta in self._tables:
            meta.to_table(metadata)
        return metadata

    def create_tables(self, connection: Connection) -> List[str]:
        """Create any configured table that does not exist yet; returns all names."""
        metadata = self.metadata()
        metadata.create_all(connection)
        connection.commit()
        return [meta.table_name for meta in self._tables]

    def __iter__(self) -> Iterator[TableMetaData]:
        return iter(self._tables)

    def __len__(self) -> int:
        return len(self._tables)
