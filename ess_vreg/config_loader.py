# ess_vreg/config_loader.py
"""
Load the controller parameter set from disk.

Three formats share one entry point, ``load_configuration``:

- ``csv``  : ``key,value`` per line, ``#`` comments and blank lines ignored;
- ``json`` : sections ``voltage_settings`` / ``pi_controller`` / ``power_limits``
             (a flat mapping of the fields is accepted too);
- ``yaml`` : same layout as json.

Unknown keys are logged and skipped; a missing field, an unparsable line or an
inconsistent parameter set is fatal.
"""
from __future__ import annotations
import csv
import json
import logging
import os
from typing import Callable, Dict, Optional

import yaml

from .system_model import FIELD_KEYS, ConfigError, ControlParams, RangeViolationError

logger = logging.getLogger(__name__)

__all__ = [
    "ConfigError", "MissingFieldError", "ConfigParseError", "ConfigIOError",
    "UnsupportedFormatError", "RangeViolationError", "load_configuration",
    "parse_csv_text", "parse_structured",
]

SECTIONS = {
    "voltage_settings": ("V_ref_upper", "V_ref_lower", "Deadband_upper", "Deadband_lower", "V_enter_lower"),
    "pi_controller": ("Kp_upper", "Ki_upper", "Kp_lower", "Ki_lower"),
    "power_limits": ("P_step_max", "P_charge_max", "P_discharge_max", "SOC_max", "SOC_min"),
}
# Sections read by the runner, not by the controller
AUXILIARY_SECTIONS = ("simulation", "time")

_EXTENSIONS = {".csv": "csv", ".json": "json", ".yaml": "yaml", ".yml": "yaml"}


class MissingFieldError(ConfigError):
    def __init__(self, name: str):
        super().__init__(f"missing required field '{name}'")
        self.name = name


class ConfigParseError(ConfigError):
    def __init__(self, line: Optional[int], raw: str, reason: str = "cannot parse"):
        where = f"line {line}" if line is not None else "input"
        super().__init__(f"{reason} at {where}: {raw!r}")
        self.line = line
        self.raw = raw


class ConfigIOError(ConfigError):
    pass


class UnsupportedFormatError(ConfigError):
    pass


# ---------------------------------------------------------------------
# Format back-ends: text -> {file_key: float}
# ---------------------------------------------------------------------


def _to_float(raw, line: Optional[int], key: str) -> float:
    if isinstance(raw, bool):
        raise ConfigParseError(line, f"{key}={raw}", reason="expected a number")
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ConfigParseError(line, f"{key}={raw}", reason="expected a number") from None


def parse_csv_text(text: str) -> Dict[str, float]:
    values: Dict[str, float] = {}
    for line_no, row in enumerate(csv.reader(text.splitlines()), start=1):
        if not row or not "".join(row).strip():
            continue
        key = row[0].strip()
        if key.startswith("#"):
            continue
        if len(row) < 2 or not row[1].strip():
            raise ConfigParseError(line_no, ",".join(row), reason="expected 'key,value'")
        if key not in FIELD_KEYS:
            logger.warning("line %d: unknown configuration key '%s' ignored", line_no, key)
            continue
        values[key] = _to_float(row[1].strip(), line_no, key)
    return values


def parse_structured(doc) -> Dict[str, float]:
    """Flatten an already-decoded JSON/YAML document."""
    if not isinstance(doc, dict):
        raise ConfigParseError(None, str(doc)[:80], reason="top level must be a mapping")

    values: Dict[str, float] = {}
    for name, body in doc.items():
        if name in SECTIONS:
            if not isinstance(body, dict):
                raise ConfigParseError(None, f"{name}: {body!r}", reason="section must be a mapping")
            for key, raw in body.items():
                if key in SECTIONS[name]:
                    values[key] = _to_float(raw, None, key)
                else:
                    logger.warning("unknown key '%s' in section '%s' ignored", key, name)
        elif name in FIELD_KEYS:
            values[name] = _to_float(body, None, name)
        elif name in AUXILIARY_SECTIONS:
            continue
        else:
            logger.warning("unknown configuration entry '%s' ignored", name)
    return values


def _line_text(text: str, line: Optional[int]) -> str:
    lines = text.splitlines()
    return lines[line - 1] if line is not None and 0 < line <= len(lines) else ""


def _parse_json(text: str) -> Dict[str, float]:
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigParseError(e.lineno, _line_text(text, e.lineno), reason=e.msg) from e
    return parse_structured(doc)


def _parse_yaml(text: str) -> Dict[str, float]:
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        line = mark.line + 1 if mark is not None else None
        raise ConfigParseError(line, _line_text(text, line), reason=str(getattr(e, "problem", None) or "invalid YAML")) from e
    return parse_structured(doc if doc is not None else {})


BACKENDS: Dict[str, Callable[[str], Dict[str, float]]] = {
    "csv": parse_csv_text,
    "json": _parse_json,
    "yaml": _parse_yaml,
}


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------


def _detect_format(path: str) -> str:
    ext = os.path.splitext(path)[1].lower()
    if ext not in _EXTENSIONS:
        raise UnsupportedFormatError(f"unsupported configuration format '{ext or path}'")
    return _EXTENSIONS[ext]


def build_params(values: Dict[str, float]) -> ControlParams:
    for key in FIELD_KEYS:
        if key not in values:
            raise MissingFieldError(key)
    return ControlParams.from_mapping(values)


def load_configuration(path: str, fmt: Optional[str] = None) -> ControlParams:
    fmt = (fmt or _detect_format(path)).lower()
    if fmt not in BACKENDS:
        raise UnsupportedFormatError(f"unsupported configuration format '{fmt}'")

    try:
        # utf-8-sig drops the BOM Windows editors prepend
        with open(path, "r", encoding="utf-8-sig") as f:
            text = f.read()
    except UnicodeDecodeError as e:
        raise ConfigParseError(None, repr(e.object[e.start:e.end]), reason="not valid UTF-8") from e
    except OSError as e:
        raise ConfigIOError(f"cannot read configuration file {path}: {e}") from e

    params = build_params(BACKENDS[fmt](text))
    logger.info("Loaded %s configuration from %s", fmt, path)
    return params
