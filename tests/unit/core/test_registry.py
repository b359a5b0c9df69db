import pytest

from hps_conditions.core.registry import TYPES, TypeRegistry, qualified_name
from hps_conditions.errors import ConfigurationError
from hps_conditions.models import EcalGain
from hps_conditions.models.svt import SvtT0ShiftConverter


class Alpha:
    pass


def test_register_under_short_and_qualified_names():
    types = TypeRegistry()
    assert types.register(Alpha) is Alpha

    assert types.resolve("Alpha") is Alpha
    assert types.resolve(qualified_name(Alpha)) is Alpha
    assert "Alpha" in types


def test_register_extra_name():
    types = TypeRegistry()
    types.register(Alpha, name="org.hps.Alpha")
    assert types.resolve("org.hps.Alpha") is Alpha


def test_conflicting_short_name():
    types = TypeRegistry()
    types.register(Alpha)

    class Alpha2:
        pass

    Alpha2.__name__ = "Alpha"
    with pytest.raises(ValueError, match="already registered"):
        types.register(Alpha2)
    assert types.resolve("Alpha") is Alpha


def test_resolve_unknown_name():
    with pytest.raises(ConfigurationError, match="not a registered conditions type"):
        TypeRegistry().resolve("Missing")


def test_copy_is_independent():
    original = TypeRegistry()
    clone = original.copy()
    clone.register(Alpha)
    assert "Alpha" not in original


def test_builtin_types_are_registered():
    assert TYPES.resolve("EcalGain") is EcalGain
    assert TYPES.resolve("SvtT0ShiftConverter") is SvtT0ShiftConverter
    assert "ConditionsRecordConverter" in TYPES.names()
