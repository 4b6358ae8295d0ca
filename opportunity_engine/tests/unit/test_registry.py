"""
Tests for the detector registry: validation, lookup and selection.
"""

import dataclasses
import logging

import pytest

from opportunity_engine.shared.config.thresholds import DEFAULT_THRESHOLDS, MeanReversionThresholds
from opportunity_engine.shared.models.scoring import AssetClass
from opportunity_engine.shared.utils.error_policy import (
    DetectorConfigurationError,
    DuplicateDetectorError,
    InvalidFactorWeightError,
)
from opportunity_engine.strategy.detectors.mean_reversion import build_mean_reversion_long
from opportunity_engine.strategy.detectors.registry import DetectorRegistry, build_default_registry
from opportunity_engine.tests.fixtures.snapshots import (
    build_snapshot,
    gamma_squeeze_bullish_payload,
    mean_reversion_long_payload,
)

EXPECTED_TYPES = [
    "mean_reversion_long",
    "mean_reversion_short",
    "breakout_bullish",
    "breakout_bearish",
    "trend_continuation_long",
    "trend_continuation_short",
    "institutional_flow_bullish",
    "institutional_flow_bearish",
    "gamma_squeeze_bullish",
    "gamma_squeeze_bearish",
]


@pytest.fixture
def registry():
    return build_default_registry()


class TestDefaultRegistry:

    def test_registers_all_detectors_in_order(self, registry):
        assert registry.types == EXPECTED_TYPES
        assert len(registry) == 10
        assert "breakout_bullish" in registry
        assert "vwap_fade" not in registry

    def test_builtin_weights_sum_to_one(self, registry):
        for detector in registry:
            assert detector.total_weight == pytest.approx(1.0), detector.type

    def test_get_unknown_type_raises(self, registry):
        assert registry.get("gamma_squeeze_bearish").type == "gamma_squeeze_bearish"
        with pytest.raises(KeyError, match="Unknown detector type"):
            registry.get("no_such_detector")

    def test_describe_is_serializable_summary(self, registry):
        summary = registry.describe()
        assert [d["type"] for d in summary] == EXPECTED_TYPES
        gamma = summary[-1]
        assert gamma["requires_options_data"] is True
        assert gamma["asset_classes"] == ["EQUITY_ETF", "INDEX"]

    def test_thresholds_flow_into_detectors(self):
        strict = dataclasses.replace(DEFAULT_THRESHOLDS, mean_reversion=MeanReversionThresholds(rsi_oversold=20.0))
        snap = build_snapshot(mean_reversion_long_payload())
        assert build_default_registry().get("mean_reversion_long").gate(snap)
        assert not build_default_registry(strict).get("mean_reversion_long").gate(snap)


class TestSelection:

    def test_stock_without_options_excludes_gamma(self, registry):
        selected = registry.select(AssetClass.STOCK, has_options_data=False)
        assert len(selected) == 8
        assert not any(d.requires_options_data for d in selected)

    def test_stock_with_options_still_excludes_gamma(self, registry):
        assert len(registry.select(AssetClass.STOCK, has_options_data=True)) == 8

    def test_index_with_options_gets_everything(self, registry):
        assert [d.type for d in registry.select(AssetClass.INDEX, has_options_data=True)] == EXPECTED_TYPES

    def test_etf_without_options_data(self, registry):
        assert len(registry.select(AssetClass.EQUITY_ETF, has_options_data=False)) == 8

    def test_for_snapshot_classifies_symbol(self, registry):
        spy = build_snapshot(gamma_squeeze_bullish_payload())
        aapl = build_snapshot(mean_reversion_long_payload())
        assert len(registry.for_snapshot(spy)) == 10
        assert len(registry.for_snapshot(aapl)) == 8
        assert len(registry.for_snapshot(spy, asset_class=AssetClass.STOCK)) == 8

    def test_options_queries(self, registry):
        assert [d.type for d in registry.requiring_options_data()] == EXPECTED_TYPES[-2:]
        assert len(registry.for_asset_class(AssetClass.INDEX)) == 10


class TestValidation:

    def test_duplicate_types_rejected(self):
        detector = build_mean_reversion_long()
        with pytest.raises(DuplicateDetectorError):
            DetectorRegistry([detector, detector])

    def test_empty_factor_list_rejected(self):
        detector = dataclasses.replace(build_mean_reversion_long(), score_factors=())
        with pytest.raises(DetectorConfigurationError, match="no score factors"):
            DetectorRegistry([detector])

    def test_negative_weight_rejected(self):
        base = build_mean_reversion_long()
        factors = (dataclasses.replace(base.score_factors[0], weight=-0.1),) + base.score_factors[1:]
        with pytest.raises(InvalidFactorWeightError):
            DetectorRegistry([dataclasses.replace(base, score_factors=factors)])

    @pytest.mark.parametrize("weight", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_weight_rejected_at_registration(self, weight):
        base = build_mean_reversion_long()
        factors = (dataclasses.replace(base.score_factors[0], weight=weight),) + base.score_factors[1:]
        with pytest.raises(InvalidFactorWeightError, match="invalid weight"):
            DetectorRegistry([dataclasses.replace(base, score_factors=factors)])

    def test_all_zero_weights_rejected(self):
        base = build_mean_reversion_long()
        factors = tuple(dataclasses.replace(f, weight=0.0) for f in base.score_factors)
        with pytest.raises(InvalidFactorWeightError):
            DetectorRegistry([dataclasses.replace(base, score_factors=factors)])

    def test_weight_sum_off_one_only_warns(self, caplog):
        base = build_mean_reversion_long()
        factors = tuple(dataclasses.replace(f, weight=f.weight * 1.2) for f in base.score_factors)

        with caplog.at_level(logging.WARNING):
            registry = DetectorRegistry([dataclasses.replace(base, score_factors=factors)])

        assert len(registry) == 1
        assert "re-normalised" in caplog.text

    def test_with_detectors_revalidates(self, registry):
        with pytest.raises(DuplicateDetectorError):
            registry.with_detectors([build_mean_reversion_long()])
