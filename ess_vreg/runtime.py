# ess_vreg/runtime.py
from __future__ import annotations
import logging
import time
from typing import Callable, List, Optional

import pandas as pd

from .controller import VoltageController
from .data_generator import TelemetryUnavailable
from .system_model import ControlMode, TickResult

logger = logging.getLogger(__name__)


class ConsoleSink:
    """Print each command the way the PCS operator console shows it."""

    def __init__(self, echo_telemetry: bool = True):
        self.echo_telemetry = echo_telemetry

    def show_sample(self, res: TickResult) -> None:
        s = res.sample
        print(
            f"telemetry: V_meas={s.v_meas:.2f}V, SOC={s.soc*100:.1f}%, P_meas={s.p_meas:.2f}kW, "
            f"P_soc_charge_limit={s.p_soc_charge_limit:.2f}kW, "
            f"P_soc_discharge_limit={s.p_soc_discharge_limit:.2f}kW"
        )

    def emit_command(self, mode: ControlMode, power_kw: float) -> None:
        print(f"mode={mode.name}, P_cmd={power_kw:.3f}kW", flush=True)


class RecordingSink:
    def __init__(self):
        self.records: List[dict] = []

    def emit_command(self, mode: ControlMode, power_kw: float) -> None:
        self.records.append({"mode": mode.name, "p_cmd": float(power_kw)})

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.records, columns=["mode", "p_cmd"])


def run_loop(
    controller: VoltageController,
    source,
    sink,
    *,
    period_s: float = 1.0,
    max_ticks: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Fixed-period control loop. Returns the number of ticks scheduled.

    A tick without telemetry leaves the controller untouched and re-sends the
    last command (NORMAL / 0 kW before the first good sample).
    """
    held_mode, held_cmd = ControlMode.NORMAL, 0.0
    ticks = 0
    while max_ticks is None or ticks < max_ticks:
        ticks += 1
        try:
            sample = source.get_telemetry()
        except TelemetryUnavailable as e:
            logger.warning("tick %d: telemetry unavailable (%s); holding %s %.3f kW", ticks, e, held_mode.name, held_cmd)
        else:
            res = controller.tick(sample)
            held_mode, held_cmd = res.mode, res.command_kw
            if hasattr(sink, "show_sample"):
                sink.show_sample(res)
        sink.emit_command(held_mode, held_cmd)

        if max_ticks is None or ticks < max_ticks:
            sleep(period_s)
    return ticks
