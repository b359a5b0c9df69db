"""
hps_conditions: detector conditions database access and caching for HPS.

The main entry point is ``DatabaseConditionsManager``, which is configured from an
XML document describing the conditions tables and their converters, connects to
the conditions database and serves typed, cached conditions for one detector and
run at a time.
"""

# Models
from hps_conditions.models import (
    ConditionsObject,
    ConditionsObjectCollection,
    ConditionsRecord,
    ConditionsRecordCollection,
)

# Core
from hps_conditions.core.cache import CachedConditions, ConditionsCache
from hps_conditions.core.connection import ConnectionManager, ConnectionParameters
from hps_conditions.core.converters import ConditionsObjectConverter, ConverterRegistry
from hps_conditions.core.manager import (
    DatabaseConditionsManager,
    ManagerState,
    get_conditions_manager,
)
from hps_conditions.core.registry import TYPES, TypeRegistry, register_type
from hps_conditions.core.resources import DetectorDescription, ResourceReader
from hps_conditions.core.schema import SchemaRegistry, TableMetaData

# Errors
from hps_conditions.errors import (
    ConditionsError,
    ConditionsNotFoundError,
    ConfigurationError,
    QueryError,
    ResourceError,
)

__all__ = [
    # Core objects
    "DatabaseConditionsManager",
    "ManagerState",
    "get_conditions_manager",
    "ConnectionManager",
    "ConnectionParameters",
    "SchemaRegistry",
    "TableMetaData",
    "ConverterRegistry",
    "ConditionsObjectConverter",
    "ConditionsCache",
    "CachedConditions",
    "ResourceReader",
    "DetectorDescription",
    "TypeRegistry",
    "TYPES",
    "register_type",
    # Models
    "ConditionsObject",
    "ConditionsObjectCollection",
    "ConditionsRecord",
    "ConditionsRecordCollection",
    # Errors
    "ConditionsError",
    "ConfigurationError",
    "ConditionsNotFoundError",
    "QueryError",
    "ResourceError",
]
