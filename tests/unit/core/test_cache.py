import pytest

from hps_conditions.core.cache import ConditionsCache


class Payload:
    pass


def test_put_requires_context():
    cache = ConditionsCache()
    with pytest.raises(RuntimeError):
        cache.put(Payload, "p", Payload())


def test_entries_are_keyed_by_type_and_name():
    cache = ConditionsCache()
    cache.set_context("HPS-Test", 1)
    first, second = Payload(), Payload()
    cache.put(Payload, "first", first)
    cache.put(Payload, "second", second)

    assert cache.get(Payload, "first").payload is first
    assert cache.get(Payload, "second").payload is second
    assert cache.get(Payload, "third") is None
    assert (Payload, "first") in cache
    assert len(cache) == 2


def test_same_context_keeps_entries():
    cache = ConditionsCache()
    cache.set_context("HPS-Test", 1)
    cache.put(Payload, "p", Payload())

    assert cache.set_context("HPS-Test", 1) is False
    assert len(cache) == 1


@pytest.mark.parametrize("detector, run", [("HPS-Test", 2), ("HPS-Other", 1)])
def test_context_change_drops_everything(detector, run):
    cache = ConditionsCache()
    cache.set_context("HPS-Test", 1)
    cache.put(Payload, "p", Payload())

    assert cache.set_context(detector, run) is True
    assert len(cache) == 0
    assert cache.get(Payload, "p") is None
    assert (cache.detector_name, cache.run_number) == (detector, run)


def test_entry_records_its_context():
    cache = ConditionsCache()
    cache.set_context("HPS-Test", 7)
    entry = cache.put(Payload, "p", Payload())
    assert (entry.detector_name, entry.run_number) == ("HPS-Test", 7)
    assert cache.keys() == [(Payload, "p")]
