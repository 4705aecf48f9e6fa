# ess_vreg/analysis_extensions.py
from __future__ import annotations
import os
from dataclasses import replace
from typing import Iterable, Optional

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from .controller import run_controller
from .evaluation import summarize_kpis
from .system_model import ControlParams

# ---------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------

_GAIN_ATTRS = {
    "upper": ("kp_upper", "ki_upper"),
    "lower": ("kp_lower", "ki_lower"),
}


def _ensure_dirs(results_dir: str, figs_dir: str) -> None:
    os.makedirs(results_dir, exist_ok=True)
    os.makedirs(figs_dir, exist_ok=True)


def _with_gains(params: ControlParams, direction: str, kp: float, ki: float) -> ControlParams:
    kp_attr, ki_attr = _GAIN_ATTRS[direction]
    return replace(params, **{kp_attr: float(kp), ki_attr: float(ki)})


def smoothest_gains(sweep: pd.DataFrame, min_energy_kwh: float = 0.0) -> pd.Series:
    """
    Row with the calmest command among those that move at least
    ``min_energy_kwh``; larger energy breaks ties.
    """
    z = sweep[sweep["energy_kwh"] >= min_energy_kwh]
    if z.empty:
        z = sweep
    z = z.assign(_neg_energy=-z["energy_kwh"]).sort_values(["mean_abs_cmd_step_kw", "_neg_energy"], kind="mergesort")
    return z.iloc[0].drop("_neg_energy")


# ---------------------------------------------------------------------
# Gain sweep API
# ---------------------------------------------------------------------


def run_gain_sweep(
    df_input: pd.DataFrame,
    params: ControlParams,
    dt_h: float,
    direction: str = "upper",
    kp_grid: Optional[Iterable[float]] = None,
    ki_grid: Optional[Iterable[float]] = None,
    results_dir: str = "results",
    figs_dir: str = "figs",
    save: bool = True,
) -> pd.DataFrame:
    """
    Replay the same telemetry under every (Kp, Ki) pair for one controller
    direction and tabulate energy moved against command chatter.

    The replayed voltage does not react to the command, so the sweep compares
    how hard and how smoothly each gain pair drives the PCS, not closed-loop
    regulation quality.
    """
    if direction not in _GAIN_ATTRS:
        raise ValueError(f"direction must be 'upper' or 'lower', got {direction!r}")

    kp_grid = np.array([0.25, 0.5, 1.0, 2.0, 4.0] if kp_grid is None else list(kp_grid), dtype=float)
    ki_grid = np.array([0.0, 0.05, 0.1, 0.2, 0.5] if ki_grid is None else list(ki_grid), dtype=float)

    rows = []
    print(f"Running {direction} gain sweep ({len(kp_grid)}×{len(ki_grid)})...")
    for kp in kp_grid:
        for ki in ki_grid:
            p = _with_gains(params, direction, kp, ki)
            sim = run_controller(df_input, p)
            kpi = summarize_kpis(sim, dt_h, p)
            if direction == "upper":
                energy, peak = kpi["energy_charged_kwh"], kpi["peak_charge_kw"]
            else:
                energy, peak = kpi["energy_discharged_kwh"], kpi["peak_discharge_kw"]
            rows.append(
                {
                    "kp": float(kp),
                    "ki": float(ki),
                    "energy_kwh": float(energy),
                    "peak_kw": float(peak),
                    "mean_abs_cmd_step_kw": float(kpi["mean_abs_cmd_step_kw"]),
                    "max_abs_cmd_step_kw": float(kpi["max_abs_cmd_step_kw"]),
                }
            )

    sweep = pd.DataFrame(rows).sort_values(["kp", "ki"]).reset_index(drop=True)
    if save:
        _ensure_dirs(results_dir, figs_dir)
        csv_path = os.path.join(results_dir, f"gain_sweep_{direction}.csv")
        sweep.to_csv(csv_path, index=False)
        print(f"Saved gain sweep table to {csv_path}")
        _plot_sweep(sweep, direction, os.path.join(figs_dir, f"gain_sweep_{direction}.png"))
    return sweep


def _plot_sweep(sweep: pd.DataFrame, direction: str, out_path: str) -> None:
    grid = sweep.pivot(index="ki", columns="kp", values="energy_kwh")

    plt.figure(figsize=(6.8, 5.0))
    im = plt.imshow(grid.values, origin="lower", aspect="auto", cmap="viridis")
    cbar = plt.colorbar(im)
    cbar.set_label("Energy moved [kWh]", rotation=270, labelpad=15)
    plt.xticks(range(len(grid.columns)), [f"{v:g}" for v in grid.columns])
    plt.yticks(range(len(grid.index)), [f"{v:g}" for v in grid.index])
    plt.xlabel(f"Kp_{direction}")
    plt.ylabel(f"Ki_{direction}")
    plt.title(f"{direction.capitalize()} controller: energy vs gains")
    plt.tight_layout()
    plt.savefig(out_path, dpi=300)
    plt.close()
    print(f"Saved gain sweep heat-map to {out_path}")
