import math

import pytest

from mood import LONG_RGB, NEUTRAL_RGB, SHORT_RGB, blend_color, fade, mood_angle, score_mood
from regime import Regime


def test_half_long_weight_is_minus_45_and_euphoric():
    # 12 symbols, total weight -60
    weights = [-10] * 6 + [0] * 6
    mood = score_mood(weights)
    assert mood.angle == -45.0
    assert mood.dominant_regime == Regime.LONG_EUPHORIA
    assert mood.dominant_label == "Long euphoria"


def test_empty_cycle_is_neutral():
    mood = score_mood([])
    assert mood.angle == 0.0
    assert mood.color == NEUTRAL_RGB
    assert mood.dominant_regime == Regime.INDECISION
    assert mood.terrain_note is None
    assert (mood.saturation, mood.opacity, mood.fire_intensity) == (1.0, 1.0, 0.0)


@pytest.mark.parametrize(
    "weights, expected",
    [
        ([10, 10, 0, 0], Regime.SHORT_EUPHORIA),   # 45
        ([5, 5, 0, 0], Regime.SHORT_TREND),        # 22.5
        ([-5, -5, 0, 0], Regime.LONG_TREND),       # -22.5
        ([-5, 0, 0, 0], Regime.INDECISION),        # -11.25
        ([-10, -10, 0, 0], Regime.LONG_EUPHORIA),  # -45
    ],
)
def test_dominant_from_angle(weights, expected):
    assert score_mood(weights).dominant_regime == expected


def test_terrain_counts_override_angle():
    mood = score_mood([10] * 4, long_terrain=2, short_terrain=1)
    assert mood.dominant_regime == Regime.LONG_TERRAIN
    assert mood.terrain_note == "2 LONG / 1 SHORT in terrain"

    mood = score_mood([-10] * 4, long_terrain=0, short_terrain=1)
    assert mood.dominant_regime == Regime.SHORT_TERRAIN


def test_terrain_tie_favours_long():
    mood = score_mood([0, 0], long_terrain=2, short_terrain=2)
    assert mood.dominant_regime == Regime.LONG_TERRAIN


def test_fire_intensity_ramp():
    assert score_mood([-1] * 10).fire_intensity == 0.0       # angle -9
    assert score_mood([-10] * 10).fire_intensity == 1.0      # angle -90
    mid = score_mood([-5] * 10)                              # angle -45
    assert math.isclose(mid.fire_intensity, 30.0 / 75.0)
    assert score_mood([10] * 10).fire_intensity == 0.0


def test_fade_for_short_lean():
    full = score_mood([10] * 4)                              # angle 90
    assert full.saturation == 0.0
    assert math.isclose(full.opacity, 0.4)
    assert fade(15.0) == (1.0, 1.0)
    saturation, opacity = fade(52.5)
    assert math.isclose(saturation, 0.5)
    assert math.isclose(opacity, 0.7)
    long_side = score_mood([-10] * 4)
    assert (long_side.saturation, long_side.opacity) == (1.0, 1.0)


def test_color_blend():
    assert blend_color(0.0) == NEUTRAL_RGB
    assert blend_color(-90.0) == LONG_RGB
    assert blend_color(90.0) == SHORT_RGB
    assert blend_color(-30.0) == (129, 183, 159)
    assert score_mood([10] * 4).color_hex == "#f87171"


def test_angle_monotone_in_total_weight():
    count = 8
    angles = [mood_angle(total, count) for total in range(80, -81, -1)]
    assert all(b <= a for a, b in zip(angles, angles[1:]))
    assert angles[0] == 90.0 and angles[-1] == -90.0
