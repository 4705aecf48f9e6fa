import matplotlib
matplotlib.use("Agg")

import pytest

from ess_vreg.system_model import ControlParams

PARAM_VALUES = {
    "V_ref_upper": 241.0,
    "V_ref_lower": 198.0,
    "Deadband_upper": 2.0,
    "Deadband_lower": 2.0,
    "V_enter_lower": 160.0,
    "Kp_upper": 1.0,
    "Ki_upper": 0.1,
    "Kp_lower": 1.0,
    "Ki_lower": 0.1,
    "P_step_max": 10.0,
    "P_charge_max": 125.0,
    "P_discharge_max": 125.0,
    "SOC_max": 0.95,
    "SOC_min": 0.15,
}


@pytest.fixture
def param_values():
    return dict(PARAM_VALUES)


@pytest.fixture
def params():
    return ControlParams.from_mapping(PARAM_VALUES)
