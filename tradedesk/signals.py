"""Directional signal evaluation from indicator snapshots.

Everything here is a pure function of its inputs so the same snapshot always
yields the same signal and the same justification text.
"""
from __future__ import annotations

from .models import IndicatorSnapshot, Signal, SignalDecision
from .rules import Preset, PresetInput, RiskInput, normalize_preset, strategy_rule

OVERBOUGHT_RSI = 70.0

SWING_BUY_RSI_MAX = 60.0
SWING_SELL_RSI_MIN = 50.0
SWING_MIN_VOLUME_FACTOR = 1.2
INTRADAY_BUY_RSI_MAX = 55.0
INTRADAY_SELL_RSI_MIN = 60.0
SCALP_BUY_RSI_MAX = 40.0
SCALP_SELL_RSI_MIN = OVERBOUGHT_RSI

_EXIT_METHODS = ("percent", "resistance", "atr")

_PRESET_RULES = {
    Preset.SWING: (
        "Swing Trading",
        (
            "BUY: Price > MA50 > MA200 and RSI < 60 and Volume > 1.2x",
            "SELL: Price < MA50 < MA200 and RSI > 50",
            "Horizon: 3-10 days",
        ),
    ),
    Preset.INTRADAY: (
        "Intraday Trading",
        (
            "BUY: Price > EMA10 > MA50 and RSI < 55",
            "SELL: Price < EMA10 < MA50 and RSI > 60",
            "Horizon: 2-12 hours",
        ),
    ),
    Preset.SCALP: (
        "Scalp Trading",
        (
            "BUY: RSI < 40 and Price above EMA10",
            "SELL: RSI > 70 or Price below EMA10",
            "Horizon: minutes",
        ),
    ),
}


def _fmt(value: float | None, digits: int = 2) -> str:
    if value is None:
        return "n/a"
    return f"{value:,.{digits}f}"


def _gt(left: float | None, right: float | None) -> bool:
    return left is not None and right is not None and left > right


def _lt(left: float | None, right: float | None) -> bool:
    return left is not None and right is not None and left < right


def normalize_exit_method(method: str | None) -> str:
    cleaned = str(method or "percent").strip().lower()
    return cleaned if cleaned in _EXIT_METHODS else "percent"


def evaluate_signal(
    indicators: IndicatorSnapshot,
    preset: PresetInput,
    risk: RiskInput,
    *,
    overbought: float = OVERBOUGHT_RSI,
) -> Signal:
    """RSI-only signal: BUY below the rule's entry threshold, SELL above overbought."""
    rsi = indicators.rsi
    if rsi is None:
        return Signal.WAIT
    rule = strategy_rule(preset, risk)
    if rule is None:
        return Signal.WAIT
    if rsi < rule.rsi_threshold:
        return Signal.BUY
    if rsi > overbought:
        return Signal.SELL
    return Signal.WAIT


def evaluate_signal_contextual(
    indicators: IndicatorSnapshot,
    preset: PresetInput,
    risk: RiskInput,
    *,
    exit_method: str | None = "percent",
    overbought: float = OVERBOUGHT_RSI,
) -> Signal:
    """Like `evaluate_signal`, but a resistance-based exit waits until price reaches resistance.

    Without a price or a resistance level there is nothing to wait for and
    the base SELL stands.
    """
    base = evaluate_signal(indicators, preset, risk, overbought=overbought)
    if base is not Signal.SELL:
        return base
    if normalize_exit_method(exit_method) != "resistance":
        return base
    price = indicators.price
    resistance = indicators.resistance_up
    if price is None or resistance is None or price >= resistance:
        return Signal.SELL
    return Signal.WAIT


def trend_signal(price: float | None, ma50: float | None, ma200: float | None) -> Signal:
    if _gt(price, ma50) and _gt(ma50, ma200):
        return Signal.BUY
    if _lt(price, ma50) and _lt(ma50, ma200):
        return Signal.SELL
    return Signal.WAIT


def evaluate_ma_status(indicators: IndicatorSnapshot, preset: PresetInput) -> Signal:
    """Moving-average position of price for a preset, ignoring RSI."""
    price = indicators.price
    preset_key = normalize_preset(preset)
    if price is None or preset_key is None:
        return Signal.WAIT
    if preset_key is Preset.SWING:
        if _gt(price, indicators.ma200) and _gt(price, indicators.ma50):
            return Signal.BUY
        if _lt(price, indicators.ma50) and _lt(price, indicators.ma200):
            return Signal.SELL
        return Signal.WAIT
    if preset_key is Preset.INTRADAY:
        if _gt(price, indicators.ma50) and _gt(price, indicators.ema10):
            return Signal.BUY
        if _lt(price, indicators.ema10):
            return Signal.SELL
        return Signal.WAIT
    if _gt(price, indicators.ema10):
        return Signal.BUY
    if _lt(price, indicators.ema10):
        return Signal.SELL
    return Signal.WAIT


def evaluate_confirmed_signal(
    indicators: IndicatorSnapshot,
    preset: PresetInput,
    risk: RiskInput,
    *,
    overbought: float = OVERBOUGHT_RSI,
) -> SignalDecision:
    """Emit the RSI signal only when the moving-average status agrees with it."""
    base = evaluate_signal(indicators, preset, risk, overbought=overbought)
    trend = evaluate_ma_status(indicators, preset)
    rsi_text = _fmt(indicators.rsi, 1)
    if base is Signal.WAIT:
        return SignalDecision(Signal.WAIT, f"RSI={rsi_text} gives no entry or exit.")
    if base is trend:
        return SignalDecision(
            base, f"RSI={rsi_text} signals {base.value}, moving averages agree."
        )
    return SignalDecision(
        Signal.WAIT,
        f"RSI={rsi_text} signals {base.value} but moving averages say {trend.value}.",
    )


def _threshold_note(preset: Preset, risk: RiskInput) -> str:
    rule = strategy_rule(preset, risk)
    if rule is None:
        return ""
    return f" Entry RSI threshold={_fmt(rule.rsi_threshold, 1)} ({rule.risk.value})."


def evaluate_preset_signal(
    indicators: IndicatorSnapshot,
    preset: PresetInput,
    risk: RiskInput = None,
) -> SignalDecision:
    """Preset-specific signal with trend confirmation and a justification string.

    The justification embeds the numeric values that decided the branch so a
    tooltip can show why a signal was (or was not) emitted.
    """
    preset_key = normalize_preset(preset)
    if preset_key is None:
        return SignalDecision(Signal.WAIT, f"Unrecognized preset: {preset}.")
    rsi = indicators.rsi
    if rsi is None:
        return SignalDecision(
            Signal.WAIT, f"{preset_key.value}: insufficient data, RSI unavailable."
        )

    price = indicators.price
    ema10 = indicators.ema10
    ma50 = indicators.ma50
    ma200 = indicators.ma200
    rsi_text = _fmt(rsi, 1)
    note = _threshold_note(preset_key, risk)

    if preset_key is Preset.SWING:
        volume = indicators.volume_factor
        volume_text = f"{_fmt(volume, 1)}x"
        aligned_up = _gt(price, ma50) and _gt(ma50, ma200)
        if aligned_up and rsi < SWING_BUY_RSI_MAX and _gt(volume, SWING_MIN_VOLUME_FACTOR):
            return SignalDecision(
                Signal.BUY,
                f"Swing: conditions met. RSI={rsi_text}, volume={volume_text}, "
                f"averages aligned (Price {_fmt(price)} > MA50 {_fmt(ma50)} > MA200 {_fmt(ma200)}).{note}",
            )
        if _lt(price, ma50) and _lt(ma50, ma200) and rsi > SWING_SELL_RSI_MIN:
            return SignalDecision(
                Signal.SELL,
                f"Swing: bearish setup. RSI={rsi_text}, "
                f"averages descending (Price {_fmt(price)} < MA50 {_fmt(ma50)} < MA200 {_fmt(ma200)}).{note}",
            )
        return SignalDecision(
            Signal.WAIT,
            f"Swing: no full alignment, waiting for confirmation. RSI={rsi_text}, "
            f"volume={volume_text}, Price {_fmt(price)}, MA50 {_fmt(ma50)}, MA200 {_fmt(ma200)}.{note}",
        )

    if preset_key is Preset.INTRADAY:
        if _gt(price, ema10) and _gt(ema10, ma50) and rsi < INTRADAY_BUY_RSI_MAX:
            return SignalDecision(
                Signal.BUY,
                f"Intraday: conditions met. RSI={rsi_text}, "
                f"averages aligned (Price {_fmt(price)} > EMA10 {_fmt(ema10)} > MA50 {_fmt(ma50)}).{note}",
            )
        if _lt(price, ema10) and _lt(ema10, ma50) and rsi > INTRADAY_SELL_RSI_MIN:
            return SignalDecision(
                Signal.SELL,
                f"Intraday: bearish setup. RSI={rsi_text}, "
                f"averages descending (Price {_fmt(price)} < EMA10 {_fmt(ema10)} < MA50 {_fmt(ma50)}).{note}",
            )
        return SignalDecision(
            Signal.WAIT,
            f"Intraday: no full alignment, waiting for confirmation. RSI={rsi_text}, "
            f"Price {_fmt(price)}, EMA10 {_fmt(ema10)}, MA50 {_fmt(ma50)}.{note}",
        )

    if rsi < SCALP_BUY_RSI_MAX and _gt(price, ema10):
        return SignalDecision(
            Signal.BUY,
            f"Scalp: conditions met. RSI={rsi_text} (oversold), "
            f"Price {_fmt(price)} > EMA10 {_fmt(ema10)}.{note}",
        )
    if rsi > SCALP_SELL_RSI_MIN or _lt(price, ema10):
        overbought = " (overbought)" if rsi > SCALP_SELL_RSI_MIN else ""
        return SignalDecision(
            Signal.SELL,
            f"Scalp: bearish setup. RSI={rsi_text}{overbought}, "
            f"Price {_fmt(price)}, EMA10 {_fmt(ema10)}.{note}",
        )
    return SignalDecision(
        Signal.WAIT,
        f"Scalp: no extreme conditions, waiting for a rebound. RSI={rsi_text}, "
        f"Price {_fmt(price)}, EMA10 {_fmt(ema10)}.{note}",
    )


def preset_description(preset: PresetInput) -> str:
    preset_key = normalize_preset(preset)
    if preset_key is None:
        return "Unrecognized preset"
    title, rules = _PRESET_RULES[preset_key]
    lines = "\n".join(f"- {rule}" for rule in rules)
    return f"{title}\n\n{lines}"
