import os

import yaml

import main
from ess_vreg.config_loader import SECTIONS


def _write_config(tmp_path, values, periods=40):
    doc = {name: {k: values[k] for k in keys} for name, keys in SECTIONS.items()}
    doc["time"] = {"period_s": 1.0, "periods": periods}
    doc["simulation"] = {"seed": 5}
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(doc))
    return path


def test_bad_config_exits_with_status_1(tmp_path, capsys):
    path = tmp_path / "bad.csv"
    path.write_text("V_ref_upper,241\nV_ref_lower\n")
    assert main.main(["--config", str(path)]) == 1
    assert "configuration error" in capsys.readouterr().err


def test_undecodable_config_exits_with_status_1(tmp_path, capsys):
    path = tmp_path / "bad.csv"
    path.write_bytes(b"V_ref_upper,241\xff\n")
    assert main.main(["--config", str(path)]) == 1
    assert "UTF-8" in capsys.readouterr().err


def test_batch_run_writes_outputs(tmp_path, monkeypatch, param_values):
    _write_config(tmp_path, param_values)
    monkeypatch.chdir(tmp_path)
    assert main.main(["--config", "config.yaml"]) == 0
    for rel in ("data/sim_input.csv", "results/control_trace.csv", "results/kpis.csv",
                "results/run_metadata.json", "figs/control_trace.png", "figs/soc_limits.png"):
        assert os.path.exists(tmp_path / rel), rel


def test_batch_run_with_sweep_reports_smoothest_gains(tmp_path, monkeypatch, capsys, param_values):
    _write_config(tmp_path, param_values, periods=30)
    monkeypatch.chdir(tmp_path)
    assert main.main(["--config", "config.yaml", "--sweep"]) == 0
    out = capsys.readouterr().out
    assert "upper: smoothest Kp=" in out
    assert "lower: smoothest Kp=" in out
    assert os.path.exists(tmp_path / "results/gain_sweep_upper.csv")


def test_live_loop_runs_requested_ticks(tmp_path, capsys, param_values):
    path = _write_config(tmp_path, param_values)
    assert main.main(["--config", str(path), "--live", "--ticks", "2", "--period", "0"]) == 0
    out = capsys.readouterr().out
    assert out.count("P_cmd=") == 2
