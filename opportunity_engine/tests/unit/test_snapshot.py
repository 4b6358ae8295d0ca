"""
Tests for FeatureSnapshot parsing and its missing-data accessors.
"""

import dataclasses
from datetime import datetime, timezone

import pytest

from opportunity_engine.shared.models.snapshot import FeatureSnapshot, FlowBias, MarketRegime
from opportunity_engine.shared.utils.error_policy import InvalidSnapshotError
from opportunity_engine.tests.fixtures.snapshots import (
    BASE_TIME,
    build_snapshot,
    confluence_payload,
    mean_reversion_long_payload,
)


class TestFromDict:
    """Parsing of the upstream camelCase payload."""

    def test_parses_camel_case_payload(self):
        snap = build_snapshot(mean_reversion_long_payload())

        assert snap.symbol == "AAPL"
        assert snap.timestamp == BASE_TIME
        assert snap.current_price == 102.5
        assert snap.session.is_regular_hours is True
        assert snap.rsi_value("14") == 22
        assert snap.vwap_distance_pct == -0.8
        assert snap.ema_value("21") == 105
        assert snap.atr_value == 1.0
        assert snap.market_regime == MarketRegime.RANGING
        assert snap.flow.bias == FlowBias.NEUTRAL

    def test_accepts_snake_case_aliases(self):
        snap = FeatureSnapshot.from_dict({
            "symbol": "AAPL",
            "session": {"is_regular_hours": False, "is_weekend": True},
            "volume": {"relative_to_avg": 1.7},
            "vwap": {"distance_pct": -0.4},
            "flow": {"flow_bias": "bearish", "block_count": 3, "sweep_count": 1},
        })

        assert snap.session.is_regular_hours is False
        assert snap.session.is_weekend is True
        assert snap.relative_volume == 1.7
        assert snap.vwap_distance_pct == -0.4
        assert snap.flow.block_count == 3
        assert snap.flow.bias == FlowBias.BEARISH

    def test_parses_mtf_levels_and_gamma(self):
        snap = build_snapshot(confluence_payload())

        assert set(snap.mtf) == {"1m", "5m", "15m", "60m"}
        assert snap.mtf["60m"].direction == "down"
        assert [lvl.level_type for lvl in snap.key_levels] == ["PDH", "PDL"]
        assert snap.gamma.flip_level == 398.0
        assert snap.has_options_data

    def test_missing_symbol_raises(self):
        with pytest.raises(InvalidSnapshotError):
            FeatureSnapshot.from_dict({"price": {"current": 100}})

        with pytest.raises(InvalidSnapshotError):
            FeatureSnapshot(symbol="  ")

    def test_non_mapping_payload_raises(self):
        with pytest.raises(InvalidSnapshotError):
            FeatureSnapshot.from_dict(["AAPL"])

    def test_non_numeric_values_become_none(self):
        snap = FeatureSnapshot.from_dict({
            "symbol": "AAPL",
            "price": {"current": "n/a"},
            "rsi": {"14": float("nan"), "7": "41.5"},
            "atr": float("inf"),
            "volume": {"relativeToAvg": True},
        })

        assert snap.current_price is None
        assert snap.rsi_value("14") is None
        assert snap.rsi_value("7") == 41.5
        assert snap.atr_value is None
        assert snap.relative_volume is None

    def test_epoch_millisecond_and_iso_timestamps(self):
        millis = int(BASE_TIME.timestamp() * 1000)
        assert FeatureSnapshot.from_dict({"symbol": "A", "timestamp": millis}).timestamp == BASE_TIME
        assert FeatureSnapshot.from_dict({"symbol": "A", "time": "2024-03-12T15:30:00Z"}).timestamp == BASE_TIME

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf"), 1e300, -1e300])
    def test_unusable_numeric_timestamps_become_none(self, value):
        snap = FeatureSnapshot.from_dict({
            "symbol": "A",
            "timestamp": value,
            "flow": {"flowBias": "bullish", "flowScore": 70, "updatedAt": value},
            "mtf": {"5m": {"direction": "up", "lastBarAt": value}},
        })
        assert snap.timestamp is None
        assert snap.flow.updated_at is None
        assert snap.mtf["5m"].last_bar_at is None

    def test_prev_snapshot_is_parsed_one_level_deep(self):
        payload = mean_reversion_long_payload()
        payload["prev"] = {"rsi": {"14": 19}, "prev": {"rsi": {"14": 10}}}
        snap = build_snapshot(payload)

        assert snap.prev_rsi("14") == 19
        assert snap.prev.symbol == "AAPL"
        assert snap.prev.prev is None


class TestMissingDataAccessors:
    """Degenerate readings are reported as unknown, never as zero."""

    def test_vwap_distance_of_exactly_zero_is_unavailable(self):
        snap = build_snapshot(mean_reversion_long_payload(), {"vwap": {"distancePct": 0.0}})
        assert snap.vwap_distance_pct is None

    def test_non_positive_price_and_atr_are_unavailable(self):
        snap = build_snapshot(mean_reversion_long_payload(), {"price": {"current": 0}, "atr": -1.0})
        assert snap.current_price is None
        assert snap.atr_value is None
        assert snap.atr_distance_from_ema("21") is None
        assert snap.ema_distance_pct("21") is None

    def test_unknown_regime_label_is_none(self):
        snap = build_snapshot(mean_reversion_long_payload(), {"pattern": {"market_regime": "sideways-ish"}})
        assert snap.market_regime is None

    def test_distance_helpers(self):
        snap = build_snapshot(mean_reversion_long_payload())
        assert snap.atr_distance_from_ema("21") == pytest.approx(-2.5)
        assert snap.ema_distance_pct("21") == pytest.approx(-2.380952, rel=1e-5)
        assert snap.ema_distance_pct("9") is None

    def test_flow_without_fields_is_empty(self):
        snap = FeatureSnapshot.from_dict({"symbol": "AAPL", "flow": {}})
        assert snap.flow.is_empty
        assert snap.flow.bias is None

    def test_gamma_without_levels_is_not_options_data(self):
        snap = FeatureSnapshot.from_dict({"symbol": "SPY", "gamma": {"dealerNetGamma": -5}})
        assert not snap.has_options_data


class TestImmutability:
    def test_snapshot_fields_cannot_be_reassigned(self):
        snap = build_snapshot(mean_reversion_long_payload())
        with pytest.raises(dataclasses.FrozenInstanceError):
            snap.symbol = "MSFT"

    def test_indicator_maps_are_read_only(self):
        snap = build_snapshot(mean_reversion_long_payload())
        with pytest.raises(TypeError):
            snap.rsi["14"] = 50

    def test_constructor_copies_mappings(self):
        rsi = {"14": 25.0}
        snap = FeatureSnapshot(symbol="AAPL", rsi=rsi, timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc))
        rsi["14"] = 90.0
        assert snap.rsi_value("14") == 25.0
