"""ECal channel calibration rows: gains, pedestal/noise and bad channel lists."""

from __future__ import annotations

from sqlmodel import Field

from hps_conditions.core.converters import ConditionsObjectConverter
from hps_conditions.core.registry import register_type
from hps_conditions.models.base import ConditionsObject, ConditionsObjectCollection


@register_type
class EcalGain(ConditionsObject):
    ecal_channel_id: int
    gain: float = Field(description="ADC counts to MeV conversion factor.")


@register_type
class EcalGainCollection(ConditionsObjectCollection[EcalGain]):
    object_type = EcalGain


@register_type
class EcalGainConverter(ConditionsObjectConverter):
    conditions_type = EcalGainCollection


@register_type
class EcalCalibration(ConditionsObject):
    ecal_channel_id: int
    pedestal: float
    noise: float


@register_type
class EcalCalibrationCollection(ConditionsObjectCollection[EcalCalibration]):
    object_type = EcalCalibration


@register_type
class EcalCalibrationConverter(ConditionsObjectConverter):
    conditions_type = EcalCalibrationCollection


@register_type
class EcalBadChannel(ConditionsObject):
    ecal_channel_id: int


@register_type
class EcalBadChannelCollection(ConditionsObjectCollection[EcalBadChannel]):
    object_type = EcalBadChannel

    def is_bad(self, channel_id: int) -> bool:
        return any(obj.ecal_channel_id == channel_id for obj in self)


@register_type
class EcalBadChannelConverter(ConditionsObjectConverter):
    conditions_type = EcalBadChannelCollection
