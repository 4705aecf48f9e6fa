import pandas as pd
import pytest

from ess_vreg.controller import run_controller
from ess_vreg.evaluation import summarize_kpis


def test_kpis_on_short_trace(params):
    df = pd.DataFrame({
        "v_meas": [220.0, 250.0, 250.0, 220.0, 190.0, 150.0],
        "soc": [0.5]*6,
        "p_meas": [0.0]*6,
    })
    out = run_controller(df, params)
    k = summarize_kpis(out, 1.0, params)

    assert k["ticks_normal"] == 3
    assert k["ticks_over_voltage"] == 2
    assert k["ticks_under_voltage"] == 1
    assert k["share_over_voltage"] == pytest.approx(2/6)
    assert k["over_voltage_ticks"] == 2
    assert k["under_voltage_ticks"] == 1
    assert k["worst_over_excursion_v"] == pytest.approx(7.0)
    assert k["worst_under_excursion_v"] == pytest.approx(6.0)
    assert k["energy_charged_kwh"] == pytest.approx(7.7 + 8.4)
    assert k["energy_discharged_kwh"] == pytest.approx(6.6)
    assert k["peak_charge_kw"] == pytest.approx(8.4)
    assert k["peak_discharge_kw"] == pytest.approx(6.6)
    assert k["max_integral_upper"] == pytest.approx(1.4)
