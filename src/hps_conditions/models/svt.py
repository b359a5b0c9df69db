from __future__ import annotations

from hps_conditions.core.converters import ConditionsObjectConverter
from hps_conditions.core.registry import register_type
from hps_conditions.models.base import ConditionsObject, ConditionsObjectCollection


@register_type
class SvtGain(ConditionsObject):
    svt_channel_id: int
    gain: float
    gain_offset: float


@register_type
class SvtGainCollection(ConditionsObjectCollection[SvtGain]):
    object_type = SvtGain


@register_type
class SvtGainConverter(ConditionsObjectConverter):
    conditions_type = SvtGainCollection


@register_type
class SvtT0Shift(ConditionsObject):
    """Per-module timing offset, keyed by layer and module number."""

    svt_layer: int
    svt_module: int
    t0_shift: float


@register_type
class SvtT0ShiftCollection(ConditionsObjectCollection[SvtT0Shift]):
    object_type = SvtT0Shift

    def find_t0_shift(self, layer: int, module: int):
        matches = self.find(svt_layer=layer, svt_module=module)
        return matches[0] if matches else None


@register_type
class SvtT0ShiftConverter(ConditionsObjectConverter):
    conditions_type = SvtT0ShiftCollection
