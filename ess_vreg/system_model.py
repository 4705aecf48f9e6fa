# ess_vreg/system_model.py
from __future__ import annotations
import math
from dataclasses import dataclass, fields
from enum import Enum
from typing import Mapping

__all__ = [
    "FIELD_KEYS", "ControlMode", "ControlParams",
    "TelemetrySample", "ControllerState", "TickResult", "ConfigError", "RangeViolationError",
]

# File key -> attribute name. Order follows the config file sections.
FIELD_KEYS = {
    "V_ref_upper": "v_ref_upper",
    "V_ref_lower": "v_ref_lower",
    "Deadband_upper": "deadband_upper",
    "Deadband_lower": "deadband_lower",
    "V_enter_lower": "v_enter_lower",
    "Kp_upper": "kp_upper",
    "Ki_upper": "ki_upper",
    "Kp_lower": "kp_lower",
    "Ki_lower": "ki_lower",
    "P_step_max": "p_step_max",
    "P_charge_max": "p_charge_max",
    "P_discharge_max": "p_discharge_max",
    "SOC_max": "soc_max",
    "SOC_min": "soc_min",
}

_NON_NEGATIVE = (
    "deadband_upper", "deadband_lower",
    "kp_upper", "ki_upper", "kp_lower", "ki_lower",
    "p_step_max", "p_charge_max", "p_discharge_max",
)


class ConfigError(Exception):
    """Base class for every startup configuration failure."""


class RangeViolationError(ConfigError, ValueError):
    """Parameter set is well-formed but physically inconsistent."""


class ControlMode(Enum):
    NORMAL = 0
    OVER_VOLTAGE = 1
    UNDER_VOLTAGE = 2


@dataclass(frozen=True)
class ControlParams:
    """Controller tuning, loaded once at startup and never mutated."""
    v_ref_upper: float
    v_ref_lower: float
    deadband_upper: float
    deadband_lower: float
    v_enter_lower: float
    kp_upper: float
    ki_upper: float
    kp_lower: float
    ki_lower: float
    p_step_max: float
    p_charge_max: float
    p_discharge_max: float
    soc_max: float
    soc_min: float

    def __post_init__(self):
        for f in fields(self):
            v = getattr(self, f.name)
            if not math.isfinite(v):
                raise RangeViolationError(f"{f.name} must be finite, got {v!r}")
        if not self.v_ref_lower < self.v_ref_upper:
            raise RangeViolationError(
                f"V_ref_lower ({self.v_ref_lower}) must be below V_ref_upper ({self.v_ref_upper})"
            )
        if not 0.0 <= self.soc_min < self.soc_max <= 1.0:
            raise RangeViolationError(
                f"expected 0 <= SOC_min < SOC_max <= 1, got SOC_min={self.soc_min}, SOC_max={self.soc_max}"
            )
        for name in _NON_NEGATIVE:
            if getattr(self, name) < 0:
                raise RangeViolationError(f"{name} must be >= 0, got {getattr(self, name)}")

    @classmethod
    def from_mapping(cls, values: Mapping[str, float]) -> "ControlParams":
        """Build from a mapping keyed by file key names (``V_ref_upper`` ...)."""
        return cls(**{attr: float(values[key]) for key, attr in FIELD_KEYS.items()})

    def to_mapping(self) -> dict:
        return {key: getattr(self, attr) for key, attr in FIELD_KEYS.items()}

    @property
    def v_over_threshold(self) -> float:
        return self.v_ref_upper + self.deadband_upper

    @property
    def v_under_threshold(self) -> float:
        return self.v_ref_lower - self.deadband_lower


@dataclass(frozen=True)
class TelemetrySample:
    v_meas: float
    soc: float
    p_meas: float  # kW, + charging / - discharging
    p_soc_charge_limit: float = 0.0
    p_soc_discharge_limit: float = 0.0


@dataclass
class ControllerState:
    mode: ControlMode = ControlMode.NORMAL
    integral_upper: float = 0.0
    integral_lower: float = 0.0


@dataclass(frozen=True)
class TickResult:
    mode: ControlMode
    command_kw: float
    sample: TelemetrySample
    integral_upper: float
    integral_lower: float
