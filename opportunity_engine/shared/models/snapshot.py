"""
Feature snapshot models.

A FeatureSnapshot is the immutable, point-in-time bundle of per-symbol
indicators, session metadata, order-flow summary and pattern flags produced
by the upstream feature pipeline. Detectors and the confluence aggregator
consume it read-only.

Every field may be missing. The accessor properties below are the single place
where missing or degenerate readings are turned into ``None``:
- non-positive price / ATR -> None
- VWAP distance of exactly 0.0 -> None (known data-quality artifact)
- unknown regime labels -> None
Consumers must treat ``None`` as "unknown", never as zero.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from opportunity_engine.shared.utils.error_policy import InvalidSnapshotError


class MarketRegime(str, Enum):
    """Coarse classification of current price behaviour."""
    TRENDING_UP = "trending_up"
    TRENDING_DOWN = "trending_down"
    RANGING = "ranging"
    CHOPPY = "choppy"
    VOLATILE = "volatile"


class FlowBias(str, Enum):
    """Directional lean of institutional order flow."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class PriceData:
    current: Optional[float] = None
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    prev_close: Optional[float] = None


@dataclass(frozen=True)
class SessionData:
    """
    Session metadata.

    Attributes:
        is_regular_hours: Explicit RTH flag from the pipeline (None = not reported)
        is_weekend: Explicit weekend flag (None = not reported)
        minutes_since_open: Minutes since the regular session opened
    """
    is_regular_hours: Optional[bool] = None
    is_weekend: Optional[bool] = None
    minutes_since_open: Optional[float] = None


@dataclass(frozen=True)
class VolumeData:
    current: Optional[float] = None
    avg: Optional[float] = None
    relative_to_avg: Optional[float] = None  # RVOL, 2.5 = 250% of average


@dataclass(frozen=True)
class VwapData:
    value: Optional[float] = None
    distance_pct: Optional[float] = None  # (price - vwap) / vwap * 100


@dataclass(frozen=True)
class Divergence:
    type: str = "none"  # 'bullish', 'bearish', 'none'
    confidence: Optional[float] = None  # 0-100


@dataclass(frozen=True)
class PatternFlags:
    market_regime: Optional[str] = None
    patient_candle: Optional[bool] = None
    orb_high: Optional[float] = None
    orb_low: Optional[float] = None
    swing_high: Optional[float] = None
    swing_low: Optional[float] = None


@dataclass(frozen=True)
class FlowSummary:
    """
    Aggregated options/order-flow read for a symbol.

    Attributes:
        flow_bias: 'bullish', 'bearish' or 'neutral'
        flow_score: Institutional flow strength (0-100)
        sweep_count: Number of sweep orders in the window
        block_count: Number of block trades in the window
        buy_pressure: Share of buy-side premium (0-100)
        large_trade_pct: Share of institutional-size trades (0-100)
        aggressiveness: 'PASSIVE' .. 'VERY_AGGRESSIVE'
        updated_at: When the flow window was last refreshed
    """
    flow_bias: Optional[str] = None
    flow_score: Optional[float] = None
    sweep_count: Optional[int] = None
    block_count: Optional[int] = None
    buy_pressure: Optional[float] = None
    large_trade_pct: Optional[float] = None
    aggressiveness: Optional[str] = None
    updated_at: Optional[datetime] = None

    @property
    def bias(self) -> Optional[FlowBias]:
        try:
            return FlowBias(self.flow_bias) if self.flow_bias else None
        except ValueError:
            return None

    @property
    def is_empty(self) -> bool:
        return all(
            v is None for v in (
                self.flow_bias, self.flow_score, self.sweep_count,
                self.block_count, self.buy_pressure,
            )
        )


@dataclass(frozen=True)
class TimeframeTrend:
    direction: Optional[str] = None  # 'up', 'down', 'neutral'
    last_bar_at: Optional[datetime] = None


@dataclass(frozen=True)
class KeyLevel:
    price: float
    level_type: str  # 'PDH', 'PDL', 'ORB_HIGH', 'PWH', ...


@dataclass(frozen=True)
class GammaContext:
    """Dealer gamma positioning from the options chain."""
    flip_level: Optional[float] = None
    call_wall: Optional[float] = None
    put_wall: Optional[float] = None
    dealer_net_gamma: Optional[float] = None
    updated_at: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return self.flip_level is None and self.call_wall is None and self.put_wall is None


@dataclass(frozen=True)
class FeatureSnapshot:
    """
    Point-in-time feature bundle for one symbol.

    Pipeline flow:
    1. Upstream feature pipeline builds the snapshot (usually via from_dict)
    2. Session classifier reads the session block
    3. Registered detectors evaluate gate + factors against it
    4. Confluence aggregator reads mtf / flow / key levels / gamma

    The optional ``prev`` snapshot carries the prior tick for momentum deltas.
    """
    symbol: str
    timestamp: Optional[datetime] = None
    price: PriceData = field(default_factory=PriceData)
    session: SessionData = field(default_factory=SessionData)
    volume: VolumeData = field(default_factory=VolumeData)
    vwap: VwapData = field(default_factory=VwapData)
    rsi: Mapping[str, float] = field(default_factory=dict)
    ema: Mapping[str, float] = field(default_factory=dict)
    atr: Optional[float] = None
    divergence: Divergence = field(default_factory=Divergence)
    pattern: PatternFlags = field(default_factory=PatternFlags)
    flow: Optional[FlowSummary] = None
    mtf: Mapping[str, TimeframeTrend] = field(default_factory=dict)
    key_levels: Tuple[KeyLevel, ...] = ()
    gamma: Optional[GammaContext] = None
    prev: Optional["FeatureSnapshot"] = None

    def __post_init__(self):
        if not self.symbol or not str(self.symbol).strip():
            raise InvalidSnapshotError("FeatureSnapshot requires a symbol")
        # Freeze mapping fields so detectors cannot mutate shared state
        object.__setattr__(self, "rsi", MappingProxyType(dict(self.rsi)))
        object.__setattr__(self, "ema", MappingProxyType(dict(self.ema)))
        object.__setattr__(self, "mtf", MappingProxyType(dict(self.mtf)))
        object.__setattr__(self, "key_levels", tuple(self.key_levels))

    # ------------------------------------------------------------------
    # Missing-data aware accessors
    # ------------------------------------------------------------------

    @property
    def current_price(self) -> Optional[float]:
        return _positive(self.price.current)

    @property
    def atr_value(self) -> Optional[float]:
        return _positive(self.atr)

    @property
    def vwap_distance_pct(self) -> Optional[float]:
        """VWAP distance in percent; an exact 0.0 is a feed artifact, not a reading."""
        dist = self.vwap.distance_pct
        if dist is None or dist == 0:
            return None
        return dist

    @property
    def relative_volume(self) -> Optional[float]:
        rvol = self.volume.relative_to_avg
        if rvol is None or rvol < 0:
            return None
        return rvol

    @property
    def market_regime(self) -> Optional[MarketRegime]:
        label = self.pattern.market_regime
        if not label:
            return None
        try:
            return MarketRegime(str(label).lower())
        except ValueError:
            return None

    @property
    def has_options_data(self) -> bool:
        return self.gamma is not None and not self.gamma.is_empty

    def rsi_value(self, period: str = "14") -> Optional[float]:
        return self.rsi.get(period)

    def prev_rsi(self, period: str = "14") -> Optional[float]:
        if self.prev is None:
            return None
        return self.prev.rsi_value(period)

    def ema_value(self, period: str) -> Optional[float]:
        return _positive(self.ema.get(period))

    def ema_distance_pct(self, period: str) -> Optional[float]:
        """Signed distance of price from the EMA in percent (negative = below)."""
        price = self.current_price
        ema = self.ema_value(period)
        if price is None or ema is None:
            return None
        return (price - ema) / ema * 100.0

    def atr_distance_from_ema(self, period: str) -> Optional[float]:
        """Signed distance of price from the EMA in ATR units (negative = below)."""
        price = self.current_price
        ema = self.ema_value(period)
        atr = self.atr_value
        if price is None or ema is None or atr is None:
            return None
        return (price - ema) / atr

    # ------------------------------------------------------------------
    # Construction from the upstream payload
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FeatureSnapshot":
        """
        Build a snapshot from the upstream feature pipeline payload.

        Accepts the camelCase field names emitted by the pipeline
        (``session.isRegularHours``, ``vwap.distancePct``, ``flow.flowBias``)
        as well as snake_case aliases. Non-numeric or non-finite numbers are
        dropped to None.

        Raises:
            InvalidSnapshotError: If the payload carries no symbol
        """
        if not isinstance(payload, Mapping):
            raise InvalidSnapshotError(f"Snapshot payload must be a mapping, got {type(payload).__name__}")

        price = _section(payload, "price")
        session = _section(payload, "session")
        volume = _section(payload, "volume")
        vwap = _section(payload, "vwap")
        divergence = _section(payload, "divergence")
        pattern = _section(payload, "pattern")

        flow_raw = payload.get("flow")
        flow = None
        if isinstance(flow_raw, Mapping):
            flow = FlowSummary(
                flow_bias=_text(_pick(flow_raw, "flowBias", "flow_bias")),
                flow_score=_to_float(_pick(flow_raw, "flowScore", "flow_score")),
                sweep_count=_to_int(_pick(flow_raw, "sweepCount", "sweep_count")),
                block_count=_to_int(_pick(flow_raw, "blockCount", "block_count")),
                buy_pressure=_to_float(_pick(flow_raw, "buyPressure", "buy_pressure")),
                large_trade_pct=_to_float(_pick(flow_raw, "largeTradePercentage", "large_trade_pct")),
                aggressiveness=_text(flow_raw.get("aggressiveness")),
                updated_at=_to_datetime(_pick(flow_raw, "updatedAt", "updated_at")),
            )

        gamma_raw = payload.get("gamma")
        gamma = None
        if isinstance(gamma_raw, Mapping):
            gamma = GammaContext(
                flip_level=_to_float(_pick(gamma_raw, "flipLevel", "flip_level", "gammaFlipLevel")),
                call_wall=_to_float(_pick(gamma_raw, "callWall", "call_wall")),
                put_wall=_to_float(_pick(gamma_raw, "putWall", "put_wall")),
                dealer_net_gamma=_to_float(_pick(gamma_raw, "dealerNetGamma", "dealer_net_gamma")),
                updated_at=_to_datetime(_pick(gamma_raw, "updatedAt", "updated_at")),
            )

        mtf: Dict[str, TimeframeTrend] = {}
        mtf_raw = payload.get("mtf")
        if isinstance(mtf_raw, Mapping):
            for tf, entry in mtf_raw.items():
                if not isinstance(entry, Mapping):
                    continue
                mtf[str(tf)] = TimeframeTrend(
                    direction=_text(_pick(entry, "direction", "trend")),
                    last_bar_at=_to_datetime(_pick(entry, "lastBarAt", "last_bar_at")),
                )

        levels = []
        for raw in payload.get("keyLevels") or payload.get("key_levels") or ():
            if not isinstance(raw, Mapping):
                continue
            level_price = _to_float(raw.get("price"))
            if level_price is None or level_price <= 0:
                continue
            levels.append(KeyLevel(
                price=level_price,
                level_type=str(_pick(raw, "type", "levelType", "level_type") or "LEVEL"),
            ))

        prev_raw = payload.get("prev")
        prev = None
        if isinstance(prev_raw, Mapping) and prev_raw:
            prev_payload = dict(prev_raw)
            prev_payload.setdefault("symbol", payload.get("symbol"))
            prev_payload.pop("prev", None)  # one level of history only
            prev = cls.from_dict(prev_payload)

        return cls(
            symbol=str(payload.get("symbol") or "").strip(),
            timestamp=_to_datetime(_pick(payload, "timestamp", "time")),
            price=PriceData(
                current=_to_float(price.get("current")),
                open=_to_float(price.get("open")),
                high=_to_float(price.get("high")),
                low=_to_float(price.get("low")),
                prev_close=_to_float(_pick(price, "prevClose", "prev_close")),
            ),
            session=SessionData(
                is_regular_hours=_to_bool(_pick(session, "isRegularHours", "is_regular_hours")),
                is_weekend=_to_bool(_pick(session, "isWeekend", "is_weekend")),
                minutes_since_open=_to_float(_pick(session, "minutesSinceOpen", "minutes_since_open")),
            ),
            volume=VolumeData(
                current=_to_float(volume.get("current")),
                avg=_to_float(volume.get("avg")),
                relative_to_avg=_to_float(_pick(volume, "relativeToAvg", "relative_to_avg")),
            ),
            vwap=VwapData(
                value=_to_float(vwap.get("value")),
                distance_pct=_to_float(_pick(vwap, "distancePct", "distance_pct")),
            ),
            rsi=_numeric_map(payload.get("rsi")),
            ema=_numeric_map(payload.get("ema")),
            atr=_to_float(payload.get("atr")),
            divergence=Divergence(
                type=_text(divergence.get("type")) or "none",
                confidence=_to_float(divergence.get("confidence")),
            ),
            pattern=PatternFlags(
                market_regime=_text(_pick(pattern, "market_regime", "marketRegime")),
                patient_candle=_to_bool(_pick(pattern, "patient_candle", "patientCandle")),
                orb_high=_to_float(_pick(pattern, "orbHigh", "orb_high")),
                orb_low=_to_float(_pick(pattern, "orbLow", "orb_low")),
                swing_high=_to_float(_pick(pattern, "swingHigh", "swing_high")),
                swing_low=_to_float(_pick(pattern, "swingLow", "swing_low")),
            ),
            flow=flow,
            mtf=mtf,
            key_levels=tuple(levels),
            gamma=gamma,
            prev=prev,
        )


# ----------------------------------------------------------------------
# Payload coercion helpers
# ----------------------------------------------------------------------

def _section(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, Mapping) else {}


def _pick(mapping: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in mapping and mapping[key] is not None:
            return mapping[key]
    return None


def _positive(value: Optional[float]) -> Optional[float]:
    if value is None or value <= 0:
        return None
    return value


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _to_int(value: Any) -> Optional[int]:
    number = _to_float(value)
    return int(number) if number is not None else None


def _to_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
        return None
    if isinstance(value, (int, float)):
        return bool(value)
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = _to_float(value)
        if number is None:
            return None
        # Epoch milliseconds from the JS pipeline, seconds otherwise
        seconds = number / 1000.0 if number > 1e11 else number
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _numeric_map(value: Any) -> Dict[str, float]:
    if not isinstance(value, Mapping):
        return {}
    result = {}
    for key, raw in value.items():
        number = _to_float(raw)
        if number is not None:
            result[str(key)] = number
    return result
