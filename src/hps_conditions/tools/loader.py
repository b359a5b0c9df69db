"""
Loading conditions rows from whitespace-delimited text files.

The first non-blank line names the columns, which must be fields of the target
table; every other non-blank line is one row. Lines starting with ``#`` are
ignored. All rows go into one new collection of the table.
"""

from __future__ import annotations

import getpass
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd

from hps_conditions.core.manager import DatabaseConditionsManager
from hps_conditions.core.queries import build_insert, text_literal
from hps_conditions.core.schema import TableMetaData
from hps_conditions.errors import ConditionsError, ConfigurationError, ResourceError
from hps_conditions.models.record import ConditionsRecord

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    table_name: str
    collection_id: int
    keys: List[int] = field(default_factory=list)
    rows: int = 0
    record: Optional[ConditionsRecord] = None


def read_text_table(path: Union[str, Path]) -> pd.DataFrame:
    """Read a header-plus-rows text file into a frame of strings."""
    resolved = Path(path)
    if not resolved.is_file():
        raise ResourceError(f"Input file does not exist: {resolved}")

    header: Optional[List[str]] = None
    rows: List[List[str]] = []
    with resolved.open(encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            tokens = line.split()
            if not tokens or tokens[0].startswith("#"):
                continue
            if header is None:
                header = tokens
                continue
            if len(tokens) != len(header):
                raise ValueError(
                    f"{resolved}:{line_number}: expected {len(header)} values, "
                    f"found {len(tokens)}"
                )
            rows.append(tokens)

    if header is None:
        raise ValueError(f"The file is empty: {resolved}")
    if len(set(header)) != len(header):
        raise ValueError(f"Duplicate column names in header of {resolved}")
    return pd.DataFrame(rows, columns=header, dtype=str)


def build_load_insert(meta: TableMetaData, collection_id: int, frame: pd.DataFrame) -> str:
    columns = [str(c) for c in frame.columns]
    reserved = {meta.key, "collection_id"}
    unknown = [c for c in columns if c not in meta.fields or c in reserved]
    if unknown:
        raise ConfigurationError(
            f"Columns {unknown} are not loadable fields of table {meta.table_name}; "
            f"expected some of {list(meta.fields)}"
        )
    rows = [
        [str(int(collection_id)), *(text_literal(value) for value in record)]
        for record in frame.itertuples(index=False, name=None)
    ]
    return build_insert(meta.table_name, ["collection_id", *columns], rows)


def load_text_file(
    manager: DatabaseConditionsManager,
    table_name: str,
    path: Union[str, Path],
    collection_id: Optional[int] = None,
    description: Optional[str] = None,
    run_start: Optional[int] = None,
    run_end: Optional[int] = None,
    record_name: Optional[str] = None,
    tag: Optional[str] = None,
) -> LoadResult:
    """
    Insert the rows of ``path`` into ``table_name`` as one new collection.

    The collection id is allocated unless ``collection_id`` is given, in which
    case it must not already exist in the table. When ``run_start`` is given a
    validity record covering ``run_start``-``run_end`` is added for the new
    collection, named ``record_name`` (default: the table name) with
    ``description`` as its notes.

    The rows and the validity record are committed separately. If the record
    cannot be added the rows stay in the table, and the ``ConditionsError``
    raised names the allocated collection id.

    The connection is opened if needed and closed again only if this call
    opened it.
    """
    meta = manager.schema.find_by_table_name(table_name)
    if meta is None:
        raise ConfigurationError(f"There is no meta data for table {table_name}")
    frame = read_text_table(path)
    if frame.empty:
        raise ValueError(f"No rows to load from {path}")

    opened = manager.open_connection()
    try:
        allocated = manager.allocate_collection_id(table_name, collection_id)
        sql = build_load_insert(meta, allocated, frame)
        logger.info(sql)
        keys = manager.connection.update_query(sql)
        logger.info(
            "Inserted %d new rows into table %s with collection_id %d",
            len(frame),
            table_name,
            allocated,
        )
        result = LoadResult(
            table_name=table_name, collection_id=allocated, keys=keys, rows=len(frame)
        )
        if run_start is not None:
            try:
                result.record = manager.add_conditions_record(
                    ConditionsRecord(
                        name=record_name or table_name,
                        table_name=table_name,
                        collection_id=allocated,
                        run_start=run_start,
                        run_end=run_end,
                        tag=tag,
                        notes=description,
                        created_by=_current_user(),
                    )
                )
            except ConditionsError as e:
                raise ConditionsError(
                    f"Inserted {len(frame)} rows into {table_name} with collection_id "
                    f"{allocated}, but adding the validity record failed: {e}. "
                    f"Register it with 'hps-conditions add -t {table_name} -c {allocated}'."
                ) from e
        elif description:
            logger.info("description '%s' is only stored with a validity record", description)
    finally:
        manager.close_connection(opened)
    return result


def _current_user() -> Optional[str]:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return None
