import pandas as pd
import pytest

from ess_vreg.controller import VoltageController, run_controller
from ess_vreg.system_model import ControlMode, TelemetrySample


def _tick(ctrl, v, p=0.0, soc=0.5):
    return ctrl.tick(TelemetrySample(v_meas=v, soc=soc, p_meas=p))


def test_initial_state(params):
    ctrl = VoltageController(params)
    assert ctrl.state.mode is ControlMode.NORMAL
    assert ctrl.state.integral_upper == 0.0
    assert ctrl.state.integral_lower == 0.0


def test_reference_over_voltage_tick(params):
    res = _tick(VoltageController(params), 250.0)
    assert res.mode is ControlMode.OVER_VOLTAGE
    assert res.command_kw == pytest.approx(7.7)
    assert res.integral_upper == pytest.approx(0.7)
    assert res.sample.p_soc_charge_limit == pytest.approx(125.0)


def test_soc_limits_attached_before_dispatch(params):
    res = _tick(VoltageController(params), 250.0, soc=0.96)
    assert res.sample.p_soc_charge_limit == 0.0
    assert res.command_kw == 0.0


def test_normal_ticks_keep_accumulators_at_zero(params):
    ctrl = VoltageController(params)
    for _ in range(2):
        res = _tick(ctrl, 220.0)
        assert res.mode is ControlMode.NORMAL
        assert res.command_kw == 0.0
        assert ctrl.state.integral_upper == 0.0
        assert ctrl.state.integral_lower == 0.0


def test_integral_persists_while_active(params):
    ctrl = VoltageController(params)
    for _ in range(3):
        _tick(ctrl, 250.0)
    assert ctrl.state.integral_upper == pytest.approx(2.1)


def test_windup_cleared_on_return_to_normal(params):
    ctrl = VoltageController(params)
    for _ in range(50):
        _tick(ctrl, 260.0, soc=0.95)
    assert ctrl.state.integral_upper > 10.0

    _tick(ctrl, 220.0)
    assert ctrl.state.integral_upper == 0.0

    res = _tick(ctrl, 250.0)
    assert res.integral_upper == pytest.approx(0.7)
    assert res.command_kw == pytest.approx(7.7)


def test_inactive_accumulator_zeroed_on_direct_switch(params):
    ctrl = VoltageController(params)
    _tick(ctrl, 190.0)
    assert ctrl.state.integral_lower == pytest.approx(0.6)

    res = _tick(ctrl, 250.0)
    assert res.mode is ControlMode.OVER_VOLTAGE
    assert res.integral_lower == 0.0

    res = _tick(ctrl, 190.0)
    assert res.mode is ControlMode.UNDER_VOLTAGE
    assert res.integral_upper == 0.0
    assert res.integral_lower == pytest.approx(0.6)


def test_dead_feeder_is_not_supported(params):
    res = _tick(VoltageController(params), 159.0)
    assert res.mode is ControlMode.NORMAL
    assert res.command_kw == 0.0


def test_reset(params):
    ctrl = VoltageController(params)
    _tick(ctrl, 250.0)
    ctrl.reset()
    assert ctrl.state.mode is ControlMode.NORMAL
    assert ctrl.state.integral_upper == 0.0


def test_run_controller_appends_outputs(params):
    df = pd.DataFrame({
        "v_meas": [220.0, 250.0, 250.0, 220.0, 190.0],
        "soc": [0.5]*5,
        "p_meas": [0.0]*5,
    })
    out = run_controller(df, params)
    assert list(out["mode"]) == ["NORMAL", "OVER_VOLTAGE", "OVER_VOLTAGE", "NORMAL", "UNDER_VOLTAGE"]
    assert out["p_cmd"].iloc[1] == pytest.approx(7.7)
    assert out["integral_upper"].iloc[2] == pytest.approx(1.4)
    assert out["integral_upper"].iloc[3] == 0.0
    assert out["p_cmd"].iloc[4] == pytest.approx(-6.6)
    assert "p_soc_discharge_limit" in out.columns
    # input frame untouched
    assert "p_cmd" not in df.columns


def test_run_controller_requires_telemetry_columns(params):
    with pytest.raises(KeyError):
        run_controller(pd.DataFrame({"v_meas": [220.0]}), params)
