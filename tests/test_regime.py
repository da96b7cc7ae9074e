import pytest

from indicators import Curvature
from regime import REGIME_INFO, Direction, Regime, classify


@pytest.mark.parametrize(
    "tangent, curvature, expected",
    [
        (1.5, Curvature.NEUTRAL, Regime.LONG_EUPHORIA),
        (1.5, Curvature.DOWN, Regime.LONG_EUPHORIA),
        (1.0, Curvature.NEUTRAL, Regime.LONG_TREND),
        (0.11, Curvature.UP, Regime.LONG_TREND),
        (-1.01, Curvature.UP, Regime.SHORT_EUPHORIA),
        (-1.0, Curvature.NEUTRAL, Regime.SHORT_TREND),
        (-0.5, Curvature.DOWN, Regime.SHORT_TREND),
        (0.10, Curvature.DOWN, Regime.LONG_TERRAIN),
        (-0.10, Curvature.DOWN, Regime.LONG_TERRAIN),
        (0.05, Curvature.UP, Regime.SHORT_TERRAIN),
        (0.0, Curvature.NEUTRAL, Regime.INDECISION),
        (0.09, Curvature.NEUTRAL, Regime.INDECISION),
    ],
)
def test_rule_order(tangent, curvature, expected):
    assert classify(tangent, curvature).regime == expected


def test_long_euphoria_is_not_a_signal():
    c = classify(1.5, Curvature.NEUTRAL)
    assert c.weight == -10
    assert c.terrain is None
    assert c.signal is None


def test_long_terrain_is_a_signal():
    c = classify(0.05, Curvature.DOWN)
    assert c.regime == Regime.LONG_TERRAIN
    assert c.weight == 0
    assert c.terrain == Direction.LONG
    assert c.signal == "LONG"


def test_short_terrain_signal():
    c = classify(-0.05, Curvature.UP)
    assert c.terrain == Direction.SHORT
    assert c.signal == "SHORT"


@pytest.mark.parametrize("regime", list(Regime))
def test_trend_and_euphoria_never_signal(regime):
    info = REGIME_INFO[regime]
    if regime in (Regime.LONG_TERRAIN, Regime.SHORT_TERRAIN):
        assert info.terrain is not None
    else:
        assert info.terrain is None


def test_classify_is_pure():
    first = classify(0.05, Curvature.DOWN)
    for _ in range(5):
        assert classify(0.05, Curvature.DOWN) == first


def test_weights_are_signed_by_direction():
    assert classify(2.0, Curvature.NEUTRAL).weight == -10
    assert classify(0.5, Curvature.NEUTRAL).weight == -5
    assert classify(-2.0, Curvature.NEUTRAL).weight == 10
    assert classify(-0.5, Curvature.NEUTRAL).weight == 5
