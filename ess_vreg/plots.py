# ess_vreg/plots.py
from __future__ import annotations
from typing import List, Tuple
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from .system_model import ControlParams
from .soc_limits import TRANSITION_WIDTH, soc_power_limits

# --------- Global styling ---------
plt.rcParams.update({
    "figure.dpi": 120,
    "savefig.dpi": 300,
    "axes.spines.top": False,
    "axes.spines.right": False,
    "axes.labelsize": 11,
    "axes.titlesize": 12,
    "xtick.labelsize": 10,
    "ytick.labelsize": 10,
    "legend.frameon": True,
})

_MODE_COLORS = {
    "NORMAL":        "#4C72B0",
    "OVER_VOLTAGE":  "#C44E52",
    "UNDER_VOLTAGE": "#55A868",
}

# --------- Helpers ---------
def _auto_ylim(values: List[float], pad_top: float = 0.18, pad_bottom: float = 0.06) -> Tuple[float, float]:
    """Pad the data range; keep a zero floor when nothing is negative."""
    v = np.asarray(values, dtype=float)
    vmin, vmax = float(np.nanmin(v)), float(np.nanmax(v))
    span = max(vmax - vmin, 1e-9)
    if span < 1e-6:
        span = max(abs(vmax), 1.0)
    top = vmax + pad_top * span
    if vmin >= 0:
        bottom = max(0.0, vmin - pad_bottom * span)
    else:
        bottom = vmin - pad_bottom * span
    return bottom, top

def _shade_modes(ax: plt.Axes, df: pd.DataFrame) -> None:
    """Tint the background of every tick spent in an active mode."""
    idx = np.asarray(df.index)
    modes = df["mode"].values
    for i, m in enumerate(modes):
        if m == "NORMAL":
            continue
        x0 = idx[i]
        x1 = idx[i + 1] if i + 1 < len(idx) else idx[i] + (idx[i] - idx[i - 1] if i > 0 else 1)
        ax.axvspan(x0, x1, color=_MODE_COLORS.get(m, "#999999"), alpha=0.08, linewidth=0)

# --------- Control trace ---------
def plot_control_trace(df: pd.DataFrame,
                       params: ControlParams,
                       out_path: str = "figs/control_trace.png",
                       window_ticks: int | None = 300) -> None:
    """
    Aligned panels for one run:
      - feeder voltage with reference and dead-band edges
      - PCS command vs measured power
      - SoC with charge/discharge ceilings
    """
    d = df.iloc[:window_ticks] if window_ticks else df
    fig, axes = plt.subplots(3, 1, figsize=(12.0, 7.2), sharex=True)
    ax_v, ax_p, ax_s = axes

    ax_v.plot(d.index, d["v_meas"], linewidth=1.3, color="#264B7A", label="V_meas")
    ax_v.axhline(params.v_ref_upper, color="#C44E52", linewidth=0.9, linestyle="--", label="V_ref_upper")
    ax_v.axhline(params.v_over_threshold, color="#C44E52", linewidth=0.9, linestyle=":")
    ax_v.axhline(params.v_ref_lower, color="#55A868", linewidth=0.9, linestyle="--", label="V_ref_lower")
    ax_v.axhline(params.v_under_threshold, color="#55A868", linewidth=0.9, linestyle=":")
    _shade_modes(ax_v, d)
    ax_v.set_ylabel("Voltage [V]")
    ax_v.grid(True, linestyle="--", alpha=0.3)
    ax_v.legend(loc="upper right", ncol=3)
    ax_v.set_title("Feeder Voltage Regulation", pad=10)

    ax_p.plot(d.index, d["p_meas"], linewidth=1.0, color="#999999", label="P_meas")
    ax_p.step(d.index, d["p_cmd"], where="post", linewidth=1.3, color="#7D2D31", label="P_cmd")
    ax_p.axhline(0.0, color="black", linewidth=0.6)
    ax_p.set_ylim(*_auto_ylim([d["p_meas"].min(), d["p_meas"].max(), d["p_cmd"].min(), d["p_cmd"].max()],
                              pad_top=0.20, pad_bottom=0.10))
    ax_p.set_ylabel("Power [kW]  (+ charge)")
    ax_p.grid(True, linestyle="--", alpha=0.3)
    ax_p.legend(loc="upper right")

    ax_s.plot(d.index, d["soc"], linewidth=1.3, color="#4C72B0", label="SoC")
    ax_s.axhline(params.soc_max, color="#C44E52", linewidth=0.9, linestyle="--")
    ax_s.axhline(params.soc_min, color="#55A868", linewidth=0.9, linestyle="--")
    ax_s.set_ylim(0, 1.0)
    ax_s.set_ylabel("SoC [0–1]")
    ax_s.set_xlabel("Tick")
    ax_s.grid(True, linestyle="--", alpha=0.3)
    if "p_soc_charge_limit" in d.columns:
        ax_l = ax_s.twinx()
        ax_l.plot(d.index, d["p_soc_charge_limit"], linewidth=0.9, color="#C44E52", alpha=0.6, label="charge ceiling")
        ax_l.plot(d.index, d["p_soc_discharge_limit"], linewidth=0.9, color="#55A868", alpha=0.6, label="discharge ceiling")
        ax_l.set_ylabel("Ceiling [kW]")
        ax_l.legend(loc="upper right")

    plt.tight_layout()
    plt.savefig(out_path, dpi=300)
    plt.close(fig)

# --------- SoC ceiling curve ---------
def plot_soc_limit_curve(params: ControlParams,
                         out_path: str = "figs/soc_limits.png",
                         width: float = TRANSITION_WIDTH) -> None:
    soc = np.linspace(0.0, 1.0, 501)
    lims = np.array([soc_power_limits(s, params, width=width) for s in soc])

    plt.figure(figsize=(6.4, 4.2))
    ax = plt.gca()
    ax.plot(soc, lims[:, 0], color="#C44E52", linewidth=1.6, label="Charge ceiling")
    ax.plot(soc, lims[:, 1], color="#55A868", linewidth=1.6, label="Discharge ceiling")
    for x in (params.soc_min, params.soc_min + width, params.soc_max - width, params.soc_max):
        ax.axvline(x, color="grey", linewidth=0.7, linestyle=":")
    ax.set_xlabel("SoC [0–1]")
    ax.set_ylabel("Power ceiling [kW]")
    ax.set_ylim(0, max(params.p_charge_max, params.p_discharge_max, 1.0) * 1.1)
    ax.grid(True, linestyle="--", alpha=0.35)
    ax.legend(loc="center")
    plt.tight_layout()
    plt.savefig(out_path, dpi=300)
    plt.close()
