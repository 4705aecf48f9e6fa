# app.py
from __future__ import annotations
from dataclasses import replace
from typing import Dict

import streamlit as st
import pandas as pd
import numpy as np
import yaml
import plotly.express as px

from ess_vreg.config_loader import load_configuration
from ess_vreg.data_generator import build_dataframe, _get
from ess_vreg.controller import run_controller
from ess_vreg.evaluation import summarize_kpis
from ess_vreg.soc_limits import soc_power_limits

# ==================== METADATA & EXPLANATIONS ==================== #

METRIC_HELP = {
    "share_over_voltage": "Fraction of ticks the feeder sat above V_ref_upper + Deadband_upper.",
    "share_under_voltage": "Fraction of ticks below V_ref_lower - Deadband_lower (and above V_enter_lower).",
    "energy_charged_kwh": "Energy the PCS was asked to absorb while pulling voltage down.",
    "energy_discharged_kwh": "Energy the PCS was asked to inject while supporting a sagging feeder.",
    "mean_abs_cmd_step_kw": "Average tick-to-tick change of the command; lower means a calmer PCS.",
}

MODE_COLORS = {"NORMAL": "#4C72B0", "OVER_VOLTAGE": "#C44E52", "UNDER_VOLTAGE": "#55A868"}

# ==================== BASIC PAGE CONFIG & CSS ==================== #


def init_page_config():
    st.set_page_config(
        page_title="Feeder Voltage Regulation – ESS PI Controller",
        page_icon="⚡",
        layout="wide",
        initial_sidebar_state="expanded",
    )


def render_core_css():
    st.markdown(
        """
        <style>
        #MainMenu {visibility: hidden;}
        footer {visibility: hidden;}
        .block-container {padding-top: 1.1rem; padding-bottom: 1.2rem;}
        .kpi-card {
            padding: 0.9rem 1.0rem;
            border-radius: 0.75rem;
            background: #f8fafc;
            border: 1px solid #e2e8f0;
        }
        .kpi-title {font-size: 0.85rem; font-weight: 600; color: #475569; margin-bottom: 0.15rem;}
        .kpi-value {font-size: 1.2rem; font-weight: 600; color: #0f172a;}
        .kpi-sub {font-size: 0.78rem; color: #64748b;}
        </style>
        """,
        unsafe_allow_html=True,
    )


def kpi_card(title: str, value: str, help_key: str) -> None:
    st.markdown(
        f"""
        <div class="kpi-card">
          <div class="kpi-title">{title}</div>
          <div class="kpi-value">{value}</div>
          <div class="kpi-sub">{METRIC_HELP.get(help_key, "")}</div>
        </div>
        """,
        unsafe_allow_html=True,
    )


# ==================== DATA & BACKEND HOOKS ==================== #


@st.cache_resource
def load_conf(path: str = "config.yaml") -> Dict:
    with open(path, "r") as f:
        return yaml.safe_load(f)


@st.cache_data
def simulate_inputs(conf: Dict, periods: int, seed: int) -> pd.DataFrame:
    conf = {**conf, "simulation": {**conf.get("simulation", {}), "seed": int(seed)}}
    params = load_configuration("config.yaml")
    return build_dataframe(periods, conf, params)


def _gain_sliders(params):
    st.sidebar.markdown("### Over-voltage controller")
    kp_u = st.sidebar.slider("Kp_upper", 0.0, 5.0, float(params.kp_upper), 0.05)
    ki_u = st.sidebar.slider("Ki_upper", 0.0, 1.0, float(params.ki_upper), 0.01)
    st.sidebar.markdown("### Under-voltage controller")
    kp_l = st.sidebar.slider("Kp_lower", 0.0, 5.0, float(params.kp_lower), 0.05)
    ki_l = st.sidebar.slider("Ki_lower", 0.0, 1.0, float(params.ki_lower), 0.01)
    st.sidebar.markdown("### Limits")
    step = st.sidebar.slider("P_step_max [kW]", 1.0, 50.0, float(params.p_step_max), 1.0)
    return replace(params, kp_upper=kp_u, ki_upper=ki_u, kp_lower=kp_l, ki_lower=ki_l, p_step_max=step)


# ==================== PLOT HELPERS ==================== #


def _voltage_fig(df: pd.DataFrame, params) -> px.scatter:
    d = df.reset_index().rename(columns={"index": "tick"})
    fig = px.scatter(d, x="tick", y="v_meas", color="mode", color_discrete_map=MODE_COLORS,
                     title="Feeder voltage by control mode")
    fig.add_hline(y=params.v_over_threshold, line_dash="dot", line_color="#C44E52")
    fig.add_hline(y=params.v_under_threshold, line_dash="dot", line_color="#55A868")
    fig.update_layout(yaxis_title="Voltage [V]", legend_title=None, margin=dict(l=40, r=20, t=60, b=40))
    return fig


def _power_fig(df: pd.DataFrame) -> px.line:
    d = df.reset_index().rename(columns={"index": "tick"})
    fig = px.line(d, x="tick", y=["p_meas", "p_cmd"], title="PCS command vs measured power")
    fig.update_layout(yaxis_title="Power [kW] (+ charge)", legend_title=None,
                      margin=dict(l=40, r=20, t=60, b=40))
    return fig


def _soc_curve_fig(params) -> px.line:
    soc = np.linspace(0.0, 1.0, 401)
    lims = np.array([soc_power_limits(s, params) for s in soc])
    d = pd.DataFrame({"SoC": soc, "Charge ceiling": lims[:, 0], "Discharge ceiling": lims[:, 1]})
    fig = px.line(d, x="SoC", y=["Charge ceiling", "Discharge ceiling"], title="SoC-derived power ceilings")
    fig.update_layout(yaxis_title="kW", legend_title=None, margin=dict(l=40, r=20, t=60, b=40))
    return fig


# ==================== MAIN UI ==================== #


def main():
    init_page_config()
    render_core_css()

    conf = load_conf()
    base_params = load_configuration("config.yaml")

    st.markdown("## ⚡ Feeder voltage regulation with a storage unit")
    st.caption("Bidirectional PI control with dead-bands and SoC-aware power ceilings, on simulated telemetry.")

    params = _gain_sliders(base_params)
    c1, c2 = st.columns(2)
    with c1:
        periods = st.number_input("Ticks to simulate", 60, 20000, int(_get(conf, "time.periods", 600)), 60)
    with c2:
        seed = st.number_input("Simulation seed", 0, 10_000, int(_get(conf, "simulation.seed", 42) or 0), 1)

    with st.spinner("Replaying telemetry through the controller..."):
        df_in = simulate_inputs(conf, int(periods), int(seed))
        out = run_controller(df_in, params)
        dt_h = float(_get(conf, "time.period_s", 1.0)) / 3600.0
        kpis = summarize_kpis(out, dt_h, params)

    k1, k2, k3, k4 = st.columns(4)
    with k1:
        kpi_card("Over-voltage share", f"{kpis['share_over_voltage']*100:.1f}%", "share_over_voltage")
    with k2:
        kpi_card("Under-voltage share", f"{kpis['share_under_voltage']*100:.1f}%", "share_under_voltage")
    with k3:
        kpi_card("Charged / discharged",
                 f"{kpis['energy_charged_kwh']:.2f} / {kpis['energy_discharged_kwh']:.2f} kWh",
                 "energy_charged_kwh")
    with k4:
        kpi_card("Mean command step", f"{kpis['mean_abs_cmd_step_kw']:.2f} kW", "mean_abs_cmd_step_kw")

    st.markdown("---")
    st.plotly_chart(_voltage_fig(out, params), use_container_width=True)
    st.plotly_chart(_power_fig(out), use_container_width=True)

    d1, d2 = st.columns([1.6, 2.0])
    with d1:
        st.plotly_chart(_soc_curve_fig(params), use_container_width=True)
    with d2:
        st.markdown("### Controller trace")
        st.dataframe(out.tail(200), use_container_width=True)


if __name__ == "__main__":
    main()
