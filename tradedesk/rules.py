"""Strategy rule table: (preset, risk mode) -> entry/exit thresholds.

These are intentionally dumb constants: no IO, no feed state.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class Preset(str, Enum):
    SWING = "Swing"
    INTRADAY = "Intraday"
    SCALP = "Scalp"


class RiskMode(str, Enum):
    CONSERVATIVE = "Conservative"
    AGGRESSIVE = "Aggressive"


PresetInput = Union[str, Preset, None]
RiskInput = Union[str, RiskMode, None]


@dataclass(frozen=True)
class StrategyRule:
    preset: Preset
    risk: RiskMode
    rsi_threshold: float
    take_profit_pct: float
    stop_loss_pct: float


def _rule(preset: Preset, risk: RiskMode, rsi: float, tp: float, sl: float) -> StrategyRule:
    return StrategyRule(
        preset=preset,
        risk=risk,
        rsi_threshold=rsi,
        take_profit_pct=tp,
        stop_loss_pct=sl,
    )


RULES: dict[tuple[Preset, RiskMode], StrategyRule] = {
    (Preset.SWING, RiskMode.CONSERVATIVE): _rule(Preset.SWING, RiskMode.CONSERVATIVE, 45.0, 0.08, 0.03),
    (Preset.SWING, RiskMode.AGGRESSIVE): _rule(Preset.SWING, RiskMode.AGGRESSIVE, 50.0, 0.15, 0.06),
    (Preset.INTRADAY, RiskMode.CONSERVATIVE): _rule(Preset.INTRADAY, RiskMode.CONSERVATIVE, 40.0, 0.02, 0.01),
    (Preset.INTRADAY, RiskMode.AGGRESSIVE): _rule(Preset.INTRADAY, RiskMode.AGGRESSIVE, 45.0, 0.04, 0.02),
    (Preset.SCALP, RiskMode.CONSERVATIVE): _rule(Preset.SCALP, RiskMode.CONSERVATIVE, 35.0, 0.003, 0.002),
    (Preset.SCALP, RiskMode.AGGRESSIVE): _rule(Preset.SCALP, RiskMode.AGGRESSIVE, 40.0, 0.01, 0.005),
}

_PRESET_ALIASES = {
    "swing": Preset.SWING,
    "intraday": Preset.INTRADAY,
    "intradia": Preset.INTRADAY,
    "intradía": Preset.INTRADAY,
    "scalp": Preset.SCALP,
}
_RISK_ALIASES = {
    "conservative": RiskMode.CONSERVATIVE,
    "conservador": RiskMode.CONSERVATIVE,
    "aggressive": RiskMode.AGGRESSIVE,
    "agresivo": RiskMode.AGGRESSIVE,
}


def normalize_preset(preset: PresetInput) -> Preset | None:
    if isinstance(preset, Preset):
        return preset
    return _PRESET_ALIASES.get(str(preset or "").strip().lower())


def normalize_risk(risk: RiskInput) -> RiskMode | None:
    if isinstance(risk, RiskMode):
        return risk
    return _RISK_ALIASES.get(str(risk or "").strip().lower())


def strategy_rule(preset: PresetInput, risk: RiskInput) -> StrategyRule | None:
    """Look up the rule for a preset/risk pair; unknown names yield None."""
    preset_key = normalize_preset(preset)
    risk_key = normalize_risk(risk)
    if preset_key is None or risk_key is None:
        return None
    return RULES.get((preset_key, risk_key))


def strategy_key(preset: PresetInput, risk: RiskInput) -> str | None:
    """Backend strategy key, e.g. ``swing-conservative``."""
    preset_key = normalize_preset(preset)
    risk_key = normalize_risk(risk)
    if preset_key is None or risk_key is None:
        return None
    return f"{preset_key.value.lower()}-{risk_key.value.lower()}"


def parse_strategy_key(key: str | None) -> tuple[Preset, RiskMode] | None:
    cleaned = str(key or "").strip().lower()
    preset_raw, sep, risk_raw = cleaned.partition("-")
    if not sep:
        return None
    preset = normalize_preset(preset_raw)
    risk = normalize_risk(risk_raw)
    if preset is None or risk is None:
        return None
    return preset, risk
