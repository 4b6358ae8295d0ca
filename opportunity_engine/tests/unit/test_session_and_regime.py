"""
Tests for session classification, asset classification and regime policies.
"""

import pytest

from opportunity_engine.analysis.asset_classifier import classify_asset
from opportunity_engine.analysis.data_quality import assess_data_completeness
from opportunity_engine.analysis.regime_policies import REGIME_SUITABILITY, regime_suitability
from opportunity_engine.analysis.session import SessionMode, classify_session, session_threshold
from opportunity_engine.shared.models.scoring import AssetClass
from opportunity_engine.shared.models.snapshot import FeatureSnapshot, MarketRegime
from opportunity_engine.tests.fixtures.snapshots import build_snapshot, mean_reversion_long_payload


def _session(**flags) -> FeatureSnapshot:
    return FeatureSnapshot.from_dict({"symbol": "AAPL", "session": flags})


class TestClassifySession:

    def test_explicit_regular_hours(self):
        info = classify_session(_session(isRegularHours=True))
        assert info.mode == SessionMode.REGULAR
        assert info.source == "explicit"

    def test_explicit_false_is_extended(self):
        info = classify_session(_session(isRegularHours=False))
        assert info.mode == SessionMode.EXTENDED
        assert info.source == "explicit"

    def test_absent_flag_defaults_to_regular(self):
        info = classify_session(_session())
        assert info.mode == SessionMode.REGULAR
        assert info.source == "default"

    def test_weekend_flag_used_only_when_rth_flag_absent(self):
        assert classify_session(_session(isWeekend=True)).mode == SessionMode.EXTENDED
        assert classify_session(_session(isWeekend=True)).source == "weekend_flag"
        # An explicit RTH flag wins over the weekend flag
        assert classify_session(_session(isRegularHours=True, isWeekend=True)).mode == SessionMode.REGULAR

    def test_session_threshold_picks_by_mode(self):
        assert session_threshold(_session(isRegularHours=True), 30, 35) == 30
        assert session_threshold(_session(isRegularHours=False), 30, 35) == 35
        assert session_threshold(_session(), 30, 35) == 30


class TestClassifyAsset:

    @pytest.mark.parametrize("symbol", ["SPX", "NDX", "$SPX", "$ndx", "I:SPX"])
    def test_indices(self, symbol):
        assert classify_asset(symbol) == AssetClass.INDEX

    @pytest.mark.parametrize("symbol", ["SPY", "QQQ", "IWM", "DIA", "XLF", "xlk"])
    def test_etfs(self, symbol):
        assert classify_asset(symbol) == AssetClass.EQUITY_ETF

    @pytest.mark.parametrize("symbol", ["AAPL", "TSLA", "SPYX"])
    def test_everything_else_is_stock(self, symbol):
        assert classify_asset(symbol) == AssetClass.STOCK


class TestRegimePolicies:

    def test_mean_reversion_prefers_ranging_over_downtrend(self):
        table = REGIME_SUITABILITY["mean_reversion_long"]
        assert table[MarketRegime.RANGING] > table[MarketRegime.CHOPPY] > table[MarketRegime.TRENDING_DOWN]

    def test_every_table_covers_every_regime_within_bounds(self):
        for archetype, table in REGIME_SUITABILITY.items():
            assert set(table) == set(MarketRegime), archetype
            assert all(0 <= v <= 100 for v in table.values()), archetype

    def test_unknown_regime_or_archetype_returns_none(self):
        assert regime_suitability("mean_reversion_long", None) is None
        assert regime_suitability("no_such_detector", MarketRegime.RANGING) is None


class TestDataCompleteness:

    def test_empty_snapshot_reports_all_critical_fields_missing(self):
        report = assess_data_completeness(FeatureSnapshot(symbol="AAPL"))
        assert report.score == 0.0
        assert set(report.missing_critical) == {"price", "rsi", "ema", "atr"}

    def test_partial_snapshot(self):
        report = assess_data_completeness(build_snapshot(mean_reversion_long_payload()))
        # price, rsi, atr, vwap, flow, regime and session present; EMA9 missing
        assert report.score == pytest.approx(70.0)
        assert report.missing_critical == ("ema",)
        assert set(report.missing) == {"ema", "volume", "mtf"}
