from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.engine import URL, Connection, Engine, Row
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.pool import NullPool
from sqlmodel import create_engine

from hps_conditions.core.resources import read_file_text, read_resource_text
from hps_conditions.errors import ConditionsError, ConfigurationError, QueryError

logger = logging.getLogger(__name__)

# Aliases accepted in properties files, mapped onto ConnectionParameters fields.
_PROPERTY_ALIASES = {
    "hostname": "host",
    "server": "host",
    "username": "user",
    "dbname": "database",
    "db": "database",
}

_INSERT_RE = re.compile(r"^\s*INSERT\b", re.IGNORECASE)

# Dialects whose cursor.lastrowid is a real row id. Other drivers (psycopg2 reports
# an OID) get no derived keys.
_LASTROWID_DIALECTS = {"sqlite", "mysql", "mariadb"}

# Dialects whose lastrowid is the first key of a multi-row insert rather than the last.
_LASTROWID_IS_FIRST = {"mysql", "mariadb"}


def parse_properties(text: str) -> Dict[str, str]:
    """
    Parse Java-style ``.properties`` text.

    Supports ``key=value``, ``key: value`` and ``key value`` lines, ``#``/``!``
    comments and trailing-backslash continuation lines.
    """
    props: Dict[str, str] = {}
    pending = ""
    for raw in text.splitlines():
        line = raw.strip()
        if pending:
            line = pending + line
            pending = ""
        if not line or line[0] in "#!":
            continue
        if line.endswith("\\") and not line.endswith("\\\\"):
            pending = line[:-1]
            continue
        match = re.match(r"([^=:\s]+)\s*(?:[=:]|\s)\s*(.*)$", line)
        if match:
            props[match.group(1)] = match.group(2).strip()
        else:
            props[line] = ""
    if pending:
        key, _, value = pending.partition("=")
        props[key.strip()] = value.strip()
    return props


class ConnectionParameters(BaseModel):
    """
    Database connection settings.

    ``driver`` is a SQLAlchemy dialect name such as ``mysql+pymysql``,
    ``postgresql`` or ``sqlite``. For sqlite ``database`` is a file path.
    """

    model_config = ConfigDict(frozen=True)

    driver: str = "mysql+pymysql"
    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    database: str

    @classmethod
    def from_mapping(cls, props: Mapping[str, Any]) -> "ConnectionParameters":
        data: Dict[str, Any] = {}
        for key, value in props.items():
            name = _PROPERTY_ALIASES.get(str(key).strip().lower(), str(key).strip().lower())
            if name in cls.model_fields and value not in (None, ""):
                data[name] = value
        if "database" not in data:
            raise ConfigurationError(
                "Connection properties are missing the 'database' setting."
            )
        try:
            return cls.model_validate(data)
        except ValueError as e:
            raise ConfigurationError(f"Invalid connection properties: {e}") from e

    @classmethod
    def from_properties(cls, path: Union[str, Path]) -> "ConnectionParameters":
        text = read_file_text(path, what="connection properties file")
        return cls.from_mapping(parse_properties(text))

    @classmethod
    def from_resource(cls, name: str) -> "ConnectionParameters":
        return cls.from_mapping(parse_properties(read_resource_text(name)))

    @property
    def url(self) -> URL:
        return URL.create(
            drivername=self.driver,
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
        )

    @property
    def connection_string(self) -> str:
        return self.url.render_as_string(hide_password=True)


class ConnectionManager:
    """
    Owns the single live database connection.

    There is no pooling: one SQLAlchemy connection is opened from an engine using
    ``NullPool`` and kept until ``close_connection``. The manager may only be used
    from the thread that opened the connection.
    """

    def __init__(self, parameters: Optional[ConnectionParameters] = None):
        self.parameters = parameters
        self._engine: Optional[Engine] = None
        self._connection: Optional[Connection] = None
        self._owner_thread: Optional[int] = None

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and not self._connection.closed

    @property
    def connection(self) -> Connection:
        """The live SQLAlchemy connection, for DDL and other direct use."""
        return self._require_connection()

    @property
    def dialect_name(self) -> Optional[str]:
        return self._engine.dialect.name if self._engine is not None else None

    def open_connection(self) -> bool:
        """
        Open the connection if it is not open yet.

        Returns True only when this call opened it, so the caller knows it owns
        the matching ``close_connection(True)``.
        """
        if self.is_connected:
            logger.debug("using existing connection %s", self._engine.url)
            return False
        if self.parameters is None:
            raise ConfigurationError("The connection parameters were not configured.")
        try:
            engine = create_engine(self.parameters.url, poolclass=NullPool)
        except (ArgumentError, ImportError) as e:
            raise ConfigurationError(
                f"Unusable database driver '{self.parameters.driver}': {e}"
            ) from e
        try:
            connection = engine.connect()
        except SQLAlchemyError as e:
            engine.dispose()
            raise ConditionsError(
                f"Failed to open connection {self.parameters.connection_string}: {e}"
            ) from e
        self._engine = engine
        self._connection = connection
        self._owner_thread = threading.get_ident()
        logger.info("created connection %s", self.parameters.connection_string)
        return True

    def close_connection(self, opened_here: bool, force: bool = False) -> bool:
        """
        Close the connection if ``opened_here`` or ``force``; otherwise leave it.

        Closing also clears the connection parameters. Returns True if closed.
        """
        if not (opened_here or force):
            logger.debug("leaving connection open for the caller that opened it")
            return False
        self._check_thread()
        try:
            if self._connection is not None and not self._connection.closed:
                self._connection.close()
        finally:
            if self._engine is not None:
                self._engine.dispose()
            self._connection = None
            self._engine = None
            self._owner_thread = None
            self.parameters = None
        logger.info("closed connection")
        return True

    def select_query(self, query: str) -> List[Row]:
        """Run a read query and return all of its rows."""
        connection = self._require_connection()
        logger.debug(query)
        try:
            rows = connection.exec_driver_sql(query).all()
        except SQLAlchemyError as e:
            self._rollback(connection)
            raise QueryError(query, e) from e
        # Every read ends its own transaction.
        connection.commit()
        return rows

    def update_query(self, query: str) -> List[int]:
        """
        Run an INSERT, UPDATE or DELETE and commit it.

        Returns the generated keys in insertion order: the rows of a ``RETURNING``
        clause if there is one, otherwise, for INSERT statements on sqlite and MySQL/MariaDB, keys
        derived from the driver's last row id. Other statements and dialects
        return an empty list.
        """
        connection = self._require_connection()
        logger.debug(query)
        try:
            result = connection.exec_driver_sql(query)
            try:
                keys = self._generated_keys(query, result)
            finally:
                result.close()
            connection.commit()
        except SQLAlchemyError as e:
            self._rollback(connection)
            raise QueryError(query, e) from e
        return keys

    def _generated_keys(self, query: str, result) -> List[int]:
        if result.returns_rows:
            return [int(row[0]) for row in result.all()]
        if not _INSERT_RE.match(query):
            return []
        if self.dialect_name not in _LASTROWID_DIALECTS:
            return []
        last = result.lastrowid
        count = result.rowcount
        if not last or count is None or count < 1:
            return []
        if self.dialect_name in _LASTROWID_IS_FIRST:
            first = int(last)
        else:
            first = int(last) - count + 1
        return list(range(first, first + count))

    def _rollback(self, connection: Connection) -> None:
        try:
            connection.rollback()
        except SQLAlchemyError:
            logger.warning("rollback after a failed query also failed", exc_info=True)

    def _require_connection(self) -> Connection:
        self._check_thread()
        if not self.is_connected:
            raise ConfigurationError("The database connection is not open.")
        return self._connection  # type: ignore[return-value]

    def _check_thread(self) -> None:
        if self._owner_thread is not None and threading.get_ident() != self._owner_thread:
            raise RuntimeError(
                "The conditions database connection is owned by another thread."
            )
