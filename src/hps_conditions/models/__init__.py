"""
Conditions row and collection classes.

Importing this package registers every bundled class with the global type registry
so that configuration documents can refer to them by name.
"""

from hps_conditions.models.base import ConditionsObject, ConditionsObjectCollection
from hps_conditions.models.record import (
    ConditionsRecord,
    ConditionsRecordCollection,
    ConditionsRecordConverter,
)
from hps_conditions.models.ecal import (
    EcalBadChannel,
    EcalBadChannelCollection,
    EcalCalibration,
    EcalCalibrationCollection,
    EcalGain,
    EcalGainCollection,
)
from hps_conditions.models.svt import (
    SvtGain,
    SvtGainCollection,
    SvtT0Shift,
    SvtT0ShiftCollection,
)

__all__ = [
    "ConditionsObject",
    "ConditionsObjectCollection",
    "ConditionsRecord",
    "ConditionsRecordCollection",
    "ConditionsRecordConverter",
    "EcalBadChannel",
    "EcalBadChannelCollection",
    "EcalCalibration",
    "EcalCalibrationCollection",
    "EcalGain",
    "EcalGainCollection",
    "SvtGain",
    "SvtGainCollection",
    "SvtT0Shift",
    "SvtT0ShiftCollection",
]
