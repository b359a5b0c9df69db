from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from hps_conditions.core import context
from hps_conditions.core.connection import ConnectionParameters
from hps_conditions.core.converters import ConditionsObjectConverter
from hps_conditions.core.manager import DatabaseConditionsManager
from hps_conditions.core.registry import TYPES
from hps_conditions.models.base import ConditionsObject, ConditionsObjectCollection


# --- Test-only conditions types ---


class Gain(ConditionsObject):
    channel: int
    value: float


class GainCollection(ConditionsObjectCollection[Gain]):
    object_type = Gain


class GainConverter(ConditionsObjectConverter):
    conditions_type = GainCollection


# Test classes are registered in a copy of the global registry only.
TEST_TYPES = TYPES.copy()
TEST_TYPES.update([Gain, GainCollection, GainConverter])

RECORD_TABLE_XML = """
    <table name="conditions" key="id">
      <classes>
        <object class="ConditionsRecord"/>
        <collection class="ConditionsRecordCollection"/>
      </classes>
      <fields>
        <field name="run_start"/>
        <field name="run_end"/>
        <field name="name"/>
        <field name="table_name"/>
        <field name="collection_id"/>
        <field name="created"/>
        <field name="created_by"/>
        <field name="tag"/>
        <field name="notes"/>
      </fields>
    </table>
"""

GAIN_TABLE_XML = """
    <table name="gains" key="id">
      <classes>
        <object class="Gain"/>
        <collection class="GainCollection"/>
      </classes>
      <fields>
        <field name="channel"/>
        <field name="value"/>
      </fields>
    </table>
"""

CONFIG_XML = f"""<?xml version="1.0"?>
<conditions>
  <tables>{RECORD_TABLE_XML}{GAIN_TABLE_XML}</tables>
  <converters>
    <converter class="ConditionsRecordConverter"/>
    <converter class="GainConverter"/>
  </converters>
</conditions>
"""


# --- Core Fixtures ---


@pytest.fixture(autouse=True)
def reset_context():
    """
    Clears the process-wide manager registration before and after each test so a
    registered manager never leaks between tests.
    """
    context.unregister()
    yield
    context.unregister()


@pytest.fixture
def gain_types() -> SimpleNamespace:
    """The test-only row, collection and converter classes."""
    return SimpleNamespace(
        Gain=Gain,
        GainCollection=GainCollection,
        GainConverter=GainConverter,
        registry=TEST_TYPES,
    )


@pytest.fixture
def test_types():
    return TEST_TYPES.copy()


@pytest.fixture
def config_xml() -> str:
    return CONFIG_XML


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "conditions.db"


@pytest.fixture
def sqlite_params(db_path: Path) -> ConnectionParameters:
    return ConnectionParameters(driver="sqlite", database=str(db_path))


@pytest.fixture
def properties_file(tmp_path: Path, db_path: Path) -> Path:
    path = tmp_path / "conditions.properties"
    path.write_text(f"# local test database\ndriver=sqlite\ndatabase={db_path}\n")
    return path


@pytest.fixture
def config_file(tmp_path: Path, config_xml: str) -> Path:
    path = tmp_path / "conditions.xml"
    path.write_text(config_xml)
    return path


@pytest.fixture
def manager(
    test_types, config_xml: str, sqlite_params: ConnectionParameters
) -> DatabaseConditionsManager:
    """
    A configured manager connected to an empty sqlite database with every
    configured table created.
    """
    m = DatabaseConditionsManager(types=test_types)
    m.configure_from_string(config_xml)
    m.set_connection_parameters(sqlite_params)
    m.open_connection()
    m.schema.create_tables(m.connection.connection)
    yield m
    if m.connection.is_connected:
        m.connection.close_connection(True, force=True)


def insert_gains(m: DatabaseConditionsManager, collection_id: int, values) -> None:
    rows = ", ".join(
        f"({collection_id}, {channel}, {value})"
        for channel, value in enumerate(values, start=1)
    )
    m.connection.update_query(
        f"INSERT INTO gains (collection_id, channel, value) VALUES {rows}"
    )


def insert_record(
    m: DatabaseConditionsManager,
    name: str,
    collection_id: int,
    run_start: int,
    run_end=None,
    table_name: str = "gains",
) -> None:
    run_end_sql = "NULL" if run_end is None else str(run_end)
    m.connection.update_query(
        "INSERT INTO conditions (run_start, run_end, name, table_name, collection_id, "
        "created, created_by, notes) VALUES "
        f"({run_start}, {run_end_sql}, '{name}', '{table_name}', {collection_id}, "
        "'2015-01-01 00:00:00', 'tester', 'test record')"
    )


@pytest.fixture
def seeded_manager(manager: DatabaseConditionsManager) -> DatabaseConditionsManager:
    """
    Two gain collections: collection 1 valid for runs 0-100 and collection 2
    valid from run 101 on.
    """
    insert_gains(manager, 1, [0.5, 0.6])
    insert_gains(manager, 2, [0.7, 0.8, 0.9])
    insert_record(manager, "gains", 1, 0, 100)
    insert_record(manager, "gains", 2, 101)
    return manager


@pytest.fixture
def query_log(monkeypatch, manager: DatabaseConditionsManager) -> list:
    """Records every read query the manager's connection runs."""
    queries = []
    original = manager.connection.select_query

    def spy(sql):
        queries.append(sql)
        return original(sql)

    monkeypatch.setattr(manager.connection, "select_query", spy)
    return queries


@pytest.fixture
def cli_runner(seeded_manager: DatabaseConditionsManager):
    """A CliRunner whose commands all use the seeded manager."""
    with patch("hps_conditions.cli.get_manager", return_value=seeded_manager):
        yield CliRunner()


@pytest.fixture
def seed(manager):
    """Helpers for inserting gains and validity records from a test body."""
    return SimpleNamespace(
        gains=lambda collection_id, values: insert_gains(manager, collection_id, values),
        record=lambda *args, **kwargs: insert_record(manager, *args, **kwargs),
    )
