import logging

import pytest

from ess_vreg.controller import VoltageController
from ess_vreg.data_generator import TelemetryUnavailable
from ess_vreg.runtime import ConsoleSink, RecordingSink, run_loop
from ess_vreg.system_model import ControlMode, TelemetrySample


class ScriptedSource:
    """Returns the scripted samples in order; None entries simulate a lost reading."""

    def __init__(self, script):
        self.script = list(script)

    def get_telemetry(self):
        item = self.script.pop(0)
        if item is None:
            raise TelemetryUnavailable("meter offline")
        return TelemetrySample(v_meas=item, soc=0.5, p_meas=0.0)


def test_loop_ticks_and_sleeps(params):
    sleeps = []
    sink = RecordingSink()
    n = run_loop(VoltageController(params), ScriptedSource([220.0, 250.0, 190.0]), sink,
                 period_s=0.5, max_ticks=3, sleep=sleeps.append)
    assert n == 3
    assert sleeps == [0.5, 0.5]
    df = sink.to_frame()
    assert list(df["mode"]) == ["NORMAL", "OVER_VOLTAGE", "UNDER_VOLTAGE"]
    assert df["p_cmd"].iloc[1] == pytest.approx(7.7)


def test_lost_telemetry_holds_previous_command(params, caplog):
    ctrl = VoltageController(params)
    sink = RecordingSink()
    with caplog.at_level(logging.WARNING):
        run_loop(ctrl, ScriptedSource([250.0, None, 250.0]), sink,
                 max_ticks=3, sleep=lambda s: None)

    recs = sink.records
    assert recs[1] == recs[0]
    # the lost tick did not advance the integrator
    assert recs[2]["p_cmd"] == pytest.approx(7.0 + 1.4)
    assert any("telemetry unavailable" in r.getMessage() for r in caplog.records)


def test_lost_telemetry_before_first_sample_emits_zero(params):
    ctrl = VoltageController(params)
    sink = RecordingSink()
    run_loop(ctrl, ScriptedSource([None]), sink, max_ticks=1, sleep=lambda s: None)
    assert sink.records == [{"mode": "NORMAL", "p_cmd": 0.0}]
    assert ctrl.state.integral_upper == 0.0


def test_console_sink_prints_mode_and_command(params, capsys):
    run_loop(VoltageController(params), ScriptedSource([250.0]), ConsoleSink(),
             max_ticks=1, sleep=lambda s: None)
    out = capsys.readouterr().out
    assert "V_meas=250.00V" in out
    assert "mode=OVER_VOLTAGE, P_cmd=7.700kW" in out


def test_console_sink_emit(capsys):
    ConsoleSink().emit_command(ControlMode.UNDER_VOLTAGE, -12.5)
    assert "mode=UNDER_VOLTAGE, P_cmd=-12.500kW" in capsys.readouterr().out
