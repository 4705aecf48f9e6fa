# ess_vreg/data_generator.py
from __future__ import annotations
import os
from typing import Any, Optional

import numpy as np
import pandas as pd

from .system_model import TelemetrySample

__all__ = ["TelemetryUnavailable", "SimulatedTelemetry", "ReplayTelemetry", "build_dataframe"]


class TelemetryUnavailable(RuntimeError):
    """The source has no trustworthy sample for this tick."""


def _get(cfg: Optional[dict], path: str, default: Any) -> Any:
    cur = cfg or {}
    for k in path.split("."):
        if not isinstance(cur, dict) or k not in cur: return default
        cur = cur[k]
    return cur


class SimulatedTelemetry:
    """
    Stand-in for meter/BMS/PCS telemetry: sinusoidal feeder voltage, SOC that
    drifts with the voltage band plus noise, and PCS power tracking the voltage
    deviation.
    """

    def __init__(self, *, base_voltage=220.0, amplitude=30.0, period_ticks=30,
                 soc_init=0.7, soc_min=0.15, soc_max=0.95, seed=None):
        self.base_voltage = float(base_voltage)
        self.amplitude = float(amplitude)
        self.period_ticks = float(period_ticks)
        self.soc_min = float(soc_min)
        self.soc_max = float(soc_max)
        self.soc = float(soc_init)
        self.step = 0
        self._rng = np.random.default_rng(seed)

    @classmethod
    def from_conf(cls, conf: Optional[dict], params=None) -> "SimulatedTelemetry":
        """Build from the ``simulation`` section of config.yaml; SOC bounds come from params if given."""
        return cls(
            base_voltage=_get(conf, "simulation.base_voltage", 220.0),
            amplitude=_get(conf, "simulation.amplitude", 30.0),
            period_ticks=_get(conf, "simulation.period_ticks", 30),
            soc_init=_get(conf, "simulation.soc_init", 0.7),
            soc_min=params.soc_min if params is not None else _get(conf, "simulation.soc_min", 0.15),
            soc_max=params.soc_max if params is not None else _get(conf, "simulation.soc_max", 0.95),
            seed=_get(conf, "simulation.seed", None),
        )

    def get_telemetry(self) -> TelemetrySample:
        self.step += 1
        v = self.base_voltage + self.amplitude*np.sin(2*np.pi*self.step/self.period_ticks)

        if v > 235.0:
            self.soc += 0.02    # absorbing surplus
        elif v < 205.0:
            self.soc -= 0.02    # supporting the feeder
        else:
            self.soc -= 0.005   # idle self-consumption
        self.soc += (int(self._rng.integers(0, 100)) - 50)/1000.0
        self.soc = float(np.clip(self.soc, self.soc_min, self.soc_max))

        p = (v - self.base_voltage)*2.0
        return TelemetrySample(v_meas=float(v), soc=self.soc, p_meas=float(p))


class ReplayTelemetry:
    """Serve recorded samples (columns v_meas, soc, p_meas) one row per tick."""

    def __init__(self, df: pd.DataFrame):
        missing = [c for c in ("v_meas", "soc", "p_meas") if c not in df.columns]
        if missing:
            raise KeyError(f"telemetry frame lacks columns {missing}")
        self._rows = df[["v_meas", "soc", "p_meas"]].astype(float).to_numpy()
        self.position = 0

    @classmethod
    def from_csv(cls, path: str) -> "ReplayTelemetry":
        return cls(pd.read_csv(path, index_col=0))

    def __len__(self):
        return len(self._rows)

    def get_telemetry(self) -> TelemetrySample:
        if self.position >= len(self._rows):
            raise TelemetryUnavailable("end of recorded telemetry")
        v, soc, p = self._rows[self.position]
        self.position += 1
        if not (np.isfinite(v) and np.isfinite(soc) and np.isfinite(p)):
            raise TelemetryUnavailable(f"incomplete sample at row {self.position - 1}")
        return TelemetrySample(v_meas=float(v), soc=float(np.clip(soc, 0.0, 1.0)), p_meas=float(p))


def build_dataframe(periods: int, conf: Optional[dict] = None, params=None) -> pd.DataFrame:
    """Tick-indexed frame of simulated telemetry, ready for run_controller."""
    sim = SimulatedTelemetry.from_conf(conf, params)
    rows = [sim.get_telemetry() for _ in range(int(periods))]
    df = pd.DataFrame(
        {"v_meas": [s.v_meas for s in rows], "soc": [s.soc for s in rows], "p_meas": [s.p_meas for s in rows]},
        index=pd.RangeIndex(1, int(periods) + 1, name="tick"),
    )
    return df


if __name__ == "__main__":
    import yaml
    try:
        with open("config.yaml","r") as f: conf = yaml.safe_load(f)
    except OSError:
        conf = None
    periods = int(_get(conf, "time.periods", 600))
    df = build_dataframe(periods, conf)
    os.makedirs("data", exist_ok=True)
    df.to_csv("data/sim_input.csv")
    print(f"Saved data/sim_input.csv {df.shape} | V range {df.v_meas.min():.1f}-{df.v_meas.max():.1f} V")
