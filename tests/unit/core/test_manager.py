import threading

import pytest

from hps_conditions.core import context
from hps_conditions.core.manager import (
    DatabaseConditionsManager,
    ManagerState,
    get_conditions_manager,
)
from hps_conditions.errors import ConditionsNotFoundError, ConfigurationError
from hps_conditions.models.record import ConditionsRecord, ConditionsRecordCollection

NO_RECORD_CONVERTER_XML = """
<conditions>
  <tables>
    <table name="conditions" key="id">
      <classes>
        <object class="ConditionsRecord"/>
        <collection class="ConditionsRecordCollection"/>
      </classes>
      <fields><field name="name"/><field name="table_name"/></fields>
    </table>
  </tables>
  <converters/>
</conditions>
"""

NO_RECORD_TABLE_XML = """
<conditions>
  <tables/>
  <converters>
    <converter class="ConditionsRecordConverter"/>
  </converters>
</conditions>
"""


# --- Configuration ---


def test_new_manager_is_unconfigured(test_types):
    manager = DatabaseConditionsManager(types=test_types)
    assert manager.state == ManagerState.UNCONFIGURED
    assert not manager.was_configured
    assert manager.conditions_table_name is None


def test_configure_loads_tables_then_converters(test_types, config_xml, gain_types):
    manager = DatabaseConditionsManager(types=test_types)
    manager.configure_from_string(config_xml)

    assert manager.state == ManagerState.CONFIGURED
    assert manager.conditions_table_name == "conditions"
    assert [m.table_name for m in manager.table_metadata] == ["conditions", "gains"]
    assert isinstance(
        manager.converters.find(gain_types.GainCollection), gain_types.GainConverter
    )
    assert manager.converters.find(ConditionsRecordCollection) is not None


def test_configure_from_file(test_types, config_file):
    manager = DatabaseConditionsManager(types=test_types)
    manager.configure(config_file)
    assert manager.was_configured


def test_missing_record_converter_is_rejected(test_types):
    manager = DatabaseConditionsManager(types=test_types)
    with pytest.raises(ConfigurationError, match="No conditions converter found"):
        manager.configure_from_string(NO_RECORD_CONVERTER_XML)
    assert manager.state == ManagerState.UNCONFIGURED


def test_missing_record_table_is_rejected(test_types):
    manager = DatabaseConditionsManager(types=test_types)
    with pytest.raises(ConfigurationError, match="No table is configured"):
        manager.configure_from_string(NO_RECORD_TABLE_XML)
    assert manager.state == ManagerState.UNCONFIGURED


def test_failed_reconfiguration_keeps_previous_configuration(test_types, config_xml):
    manager = DatabaseConditionsManager(types=test_types)
    manager.configure_from_string(config_xml)

    with pytest.raises(ConfigurationError):
        manager.configure_from_string(NO_RECORD_CONVERTER_XML)

    assert manager.was_configured
    assert manager.schema.find_by_table_name("gains") is not None


def test_embedded_configuration_is_valid():
    manager = DatabaseConditionsManager()
    manager.configure_from_resource()
    names = {m.table_name for m in manager.table_metadata}
    assert {"conditions", "ecal_gains", "svt_t0_shifts"} <= names
    assert manager.conditions_table_name == "conditions"


def test_set_detector_and_run_requires_configuration(test_types):
    manager = DatabaseConditionsManager(types=test_types)
    with pytest.raises(ConfigurationError):
        manager.set_detector_and_run("HPS-Test", 1)


def test_set_detector_and_run_requires_connection_parameters(test_types, config_xml):
    manager = DatabaseConditionsManager(types=test_types)
    manager.configure_from_string(config_xml)
    with pytest.raises(ConditionsNotFoundError, match="connection parameters"):
        manager.set_detector_and_run("HPS-Test", 1)


def test_get_conditions_before_run_is_set(manager, gain_types):
    with pytest.raises(ConditionsNotFoundError):
        manager.get_conditions(gain_types.GainCollection, "gains")


# --- Cache invalidation ---


def _count_calls(monkeypatch, converter):
    calls = []
    original = converter.produce

    def counting(manager, name):
        calls.append(name)
        return original(manager, name)

    monkeypatch.setattr(converter, "produce", counting)
    return calls


def test_cache_is_cleared_when_the_run_changes(seeded_manager, gain_types, monkeypatch):
    manager = seeded_manager
    calls = _count_calls(monkeypatch, manager.converters.find(gain_types.GainCollection))

    manager.set_detector_and_run("HPS-Test", 100)
    manager.get_conditions(gain_types.GainCollection, "gains")
    manager.get_conditions(gain_types.GainCollection, "gains")
    assert calls == ["gains"]

    manager.set_detector_and_run("HPS-Test", 100)
    manager.get_conditions(gain_types.GainCollection, "gains")
    assert calls == ["gains"]

    manager.set_detector_and_run("HPS-Test", 99)
    manager.get_conditions(gain_types.GainCollection, "gains")
    assert calls == ["gains", "gains"]


def test_cache_is_cleared_when_the_detector_changes(seeded_manager, gain_types, monkeypatch):
    manager = seeded_manager
    calls = _count_calls(monkeypatch, manager.converters.find(gain_types.GainCollection))

    manager.set_detector_and_run("HPS-A", 5)
    manager.get_conditions(gain_types.GainCollection, "gains")
    manager.set_detector_and_run("HPS-B", 5)
    manager.get_conditions(gain_types.GainCollection, "gains")

    assert len(calls) == 2
    assert manager.detector_name == "HPS-B"


def test_unknown_conditions_type_has_no_converter(seeded_manager):
    seeded_manager.set_detector_and_run("HPS-Test", 1)

    class Unregistered:
        pass

    with pytest.raises(ConditionsNotFoundError, match="No converter"):
        seeded_manager.get_conditions(Unregistered, "anything")


def test_no_record_for_run_raises(manager, seed, gain_types):
    seed.gains(1, [1.0])
    seed.record("gains", 1, 10, 20)
    manager.set_detector_and_run("HPS-Test", 5)

    with pytest.raises(ConditionsNotFoundError, match="valid for run 5"):
        manager.get_conditions(gain_types.GainCollection, "gains")


def test_newest_overlapping_record_wins(manager, seed, gain_types, caplog):
    seed.gains(1, [1.0])
    seed.gains(2, [2.0])
    seed.record("gains", 1, 0)
    seed.record("gains", 2, 0)
    manager.set_detector_and_run("HPS-Test", 7)

    gains = manager.get_conditions(gain_types.GainCollection, "gains")

    assert gains.collection_id == 2
    assert "valid for run 7" in caplog.text


# --- Record lookup ---


def test_find_conditions_records_returns_all_matches(manager, seed):
    seed.record("a", 1, 0)
    seed.record("a", 2, 0)
    seed.record("b", 3, 0)
    manager.set_detector_and_run("HPS-Test", 1)

    found = manager.find_conditions_records("a")

    assert [r.collection_id for r in found] == [1, 2]
    assert all(r.name == "a" for r in found)
    assert len(manager.find_conditions_records("missing")) == 0


def test_added_record_is_seen_after_context_change(manager, seed):
    seed.gains(1, [1.0])
    manager.set_detector_and_run("HPS-Test", 1)
    assert len(manager.find_conditions_records("gains")) == 0

    record = manager.add_conditions_record(
        ConditionsRecord(name="gains", table_name="gains", collection_id=1, run_start=0)
    )
    assert record.id == 1
    assert record.created is not None
    assert len(manager.find_conditions_records("gains")) == 0

    manager.set_detector_and_run("HPS-Test", 2)
    assert len(manager.find_conditions_records("gains")) == 1


def test_add_record_for_unknown_table(manager):
    with pytest.raises(ConfigurationError):
        manager.add_conditions_record(
            ConditionsRecord(name="x", table_name="nope", collection_id=1)
        )


# --- Collection ids ---


def test_next_collection_id_of_empty_table(manager):
    assert manager.next_collection_id("gains") == 1


def test_next_collection_id_skips_past_the_maximum(manager, seed):
    for collection_id in (1, 2, 4):
        seed.gains(collection_id, [1.0])
    assert manager.next_collection_id("gains") == 5


def test_next_collection_id_of_unknown_table(manager):
    with pytest.raises(ConfigurationError, match="no meta data"):
        manager.next_collection_id("not_a_table")


def test_allocate_collection_id(manager, seed):
    seed.gains(3, [1.0])
    assert manager.allocate_collection_id("gains") == 4
    assert manager.allocate_collection_id("gains", 7) == 7
    with pytest.raises(ConfigurationError, match="already exists"):
        manager.allocate_collection_id("gains", 3)


def test_insert_collection_uses_requested_id(manager, gain_types):
    collection = gain_types.GainCollection([gain_types.Gain(channel=9, value=0.1)])
    manager.insert_collection(collection, collection_id=12)
    assert manager.collection_id_exists("gains", 12)
    assert collection[0].collection_id == 12


# --- Connection ownership ---


def test_connection_opened_by_set_detector_and_run_is_closed(
    test_types, config_xml, sqlite_params
):
    manager = DatabaseConditionsManager(types=test_types)
    manager.configure_from_string(config_xml)
    manager.set_connection_parameters(sqlite_params)

    with manager:
        manager.set_detector_and_run("HPS-Test", 1)
        assert manager.is_connected

    assert not manager.is_connected
    assert manager.state == ManagerState.CONFIGURED


def test_close_leaves_a_connection_opened_elsewhere(manager):
    manager.set_detector_and_run("HPS-Test", 1)
    manager.close()
    assert manager.is_connected


def test_close_connection_respects_ownership(test_types, config_xml, sqlite_params):
    manager = DatabaseConditionsManager(types=test_types)
    manager.configure_from_string(config_xml)
    manager.set_connection_parameters(sqlite_params)

    opened = manager.open_connection()
    assert opened is True
    assert manager.open_connection() is False

    assert manager.close_connection(False) is False
    assert manager.is_connected

    assert manager.close_connection(opened) is True
    assert not manager.is_connected
    assert not manager.has_connection_parameters


def test_manager_rejects_other_threads(manager):
    errors = []

    def worker():
        try:
            manager.set_detector_and_run("HPS-Test", 1)
        except RuntimeError as e:
            errors.append(e)

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join()

    assert len(errors) == 1


# --- Registration ---


def test_register_makes_manager_global(manager):
    assert not context.has_instance()
    manager.register()
    assert get_conditions_manager() is manager


def test_repr_shows_state(manager):
    manager.set_detector_and_run("HPS-Test", 3)
    assert "run=3" in repr(manager)
    assert "connected" in repr(manager)
