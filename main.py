# main.py
from __future__ import annotations
import os, sys, json, argparse, logging
import yaml
import pandas as pd
from datetime import datetime, timezone

from ess_vreg.config_loader import ConfigError, load_configuration
from ess_vreg.data_generator import SimulatedTelemetry, build_dataframe, _get
from ess_vreg.controller import VoltageController, run_controller
from ess_vreg.evaluation import summarize_kpis
from ess_vreg.plots import plot_control_trace, plot_soc_limit_curve
from ess_vreg.analysis_extensions import run_gain_sweep, smoothest_gains
from ess_vreg.runtime import ConsoleSink, run_loop

def load_conf(path: str = "config.yaml") -> dict:
    """Runner settings (time / simulation sections); empty if the file is not YAML."""
    if os.path.splitext(path)[1].lower() not in (".yaml", ".yml"):
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}

def load_inputs(conf: dict, params, regen: bool = False) -> pd.DataFrame:
    path = "data/sim_input.csv"
    if regen or not os.path.exists(path):
        print("No existing simulation input found. Generating data/sim_input.csv ...")
        df = build_dataframe(int(_get(conf, "time.periods", 600)), conf, params)
        os.makedirs("data", exist_ok=True)
        df.to_csv(path)
        print(f"Generated {path} with shape {df.shape}")
    return pd.read_csv(path, index_col=0)

def run_all(conf: dict, params, regen: bool = False, sweep: bool = False):
    os.makedirs("results", exist_ok=True)
    os.makedirs("figs", exist_ok=True)

    df = load_inputs(conf, params, regen=regen)
    dt_h = float(_get(conf, "time.period_s", 1.0)) / 3600.0

    print("\n--- Running voltage regulation replay ---")
    out = run_controller(df, params)
    out.to_csv("results/control_trace.csv")

    kpis = summarize_kpis(out, dt_h, params)
    pd.Series(kpis, name="value").to_csv("results/kpis.csv")
    print("Saved KPI metrics to results/kpis.csv")
    print(f"  modes: normal={kpis['ticks_normal']} over={kpis['ticks_over_voltage']} under={kpis['ticks_under_voltage']}")
    print(f"  energy: charged={kpis['energy_charged_kwh']:.3f} kWh discharged={kpis['energy_discharged_kwh']:.3f} kWh")

    plot_control_trace(out, params, "figs/control_trace.png")
    plot_soc_limit_curve(params, "figs/soc_limits.png")

    if sweep:
        print("\n--- Running gain sweeps ---")
        for direction in ("upper", "lower"):
            sweep_df = run_gain_sweep(df, params, dt_h, direction=direction)
            best = smoothest_gains(sweep_df)
            print(f"  {direction}: smoothest Kp={best['kp']:g} Ki={best['ki']:g} "
                  f"(mean step {best['mean_abs_cmd_step_kw']:.3f} kW, {best['energy_kwh']:.3f} kWh)")

    meta = {
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "ticks": int(len(df)),
        "period_s": float(_get(conf, "time.period_s", 1.0)),
        "seed": _get(conf, "simulation.seed", None),
        "params": params.to_mapping(),
        "input_file": "data/sim_input.csv",
    }
    with open("results/run_metadata.json", "w") as f:
        json.dump(meta, f, indent=2)

def run_live(conf: dict, params, ticks: int | None, period_s: float):
    print("=== ESS feeder voltage regulation (simulated telemetry) ===")
    for k, v in params.to_mapping().items():
        print(f"{k}={v:g}")
    source = SimulatedTelemetry.from_conf(conf, params)
    try:
        run_loop(VoltageController(params), source, ConsoleSink(), period_s=period_s, max_ticks=ticks)
    except KeyboardInterrupt:
        print("\nStopped.")

def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Bidirectional PI voltage regulation for a feeder storage unit")
    ap.add_argument("--config", default="config.yaml", help="controller configuration (.yaml, .json or .csv)")
    ap.add_argument("--settings", default=None, help="runner settings YAML (defaults to --config when it is YAML)")
    ap.add_argument("--live", action="store_true", help="run the real-time loop instead of the batch replay")
    ap.add_argument("--ticks", type=int, default=None, help="stop the live loop after this many ticks")
    ap.add_argument("--period", type=float, default=None, help="live loop period in seconds")
    ap.add_argument("--regen", action="store_true", help="regenerate data/sim_input.csv")
    ap.add_argument("--sweep", action="store_true", help="also run the Kp x Ki gain sweeps")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap.parse_args(argv)

def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        params = load_configuration(args.config)
        conf = load_conf(args.settings or args.config)
    except ConfigError as e:
        print(f"Startup failed: configuration error: {e}", file=sys.stderr)
        return 1
    except (OSError, yaml.YAMLError) as e:
        print(f"Startup failed: cannot read runner settings: {e}", file=sys.stderr)
        return 1

    if args.live:
        period = args.period if args.period is not None else float(_get(conf, "time.period_s", 1.0))
        run_live(conf, params, args.ticks, period)
    else:
        run_all(conf, params, regen=args.regen, sweep=args.sweep)
    return 0

if __name__ == "__main__":
    sys.exit(main())
