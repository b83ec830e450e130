"""Scoring on the angular spectrum.

Positions are angles on the 0..180 degree semicircle the needle moves on.
A target has a bullseye of ``width`` degrees centred on it, flanked on each
side by a mid band and a low band of fixed width. The same constants drive
``zone_bands`` (what clients draw) and ``score`` (what players earn).
"""
import random
from typing import List, Optional, Tuple

SCALE_MIN = 0.0
SCALE_MAX = 180.0
# The needle cannot be dragged closer than this to either end
NEEDLE_MIN = 3.0
NEEDLE_MAX = 177.0

BULLSEYE_POINTS = 30
MID_POINTS = 20
LOW_POINTS = 10
MISS_POINTS = 0

DEFAULT_TARGET_WIDTH = 8.0
MIN_TARGET_WIDTH = 6
MAX_TARGET_WIDTH = 10
MID_BAND_WIDTH = 8.0
LOW_BAND_WIDTH = 8.0
# Extra clearance between the outermost band and the ends of the scale
SAFE_MARGIN = 5.0

PREDICTION_BONUS = 1
# Guesses closer than this to the target count as exact for predictions
EXACT_SIDE_TOLERANCE = 1.0

SIDE_LEFT = 'left'
SIDE_RIGHT = 'right'
SIDE_EXACT = 'exact'


def angular_distance(a: float, b: float) -> float:
    return abs(float(a) - float(b))


def score(guess: float, target: float, width: float = DEFAULT_TARGET_WIDTH) -> int:
    """Points for a guess. Band boundaries belong to the higher-scoring band."""
    distance = angular_distance(guess, target)
    inner = width / 2.0
    if distance <= inner:
        return BULLSEYE_POINTS
    if distance <= inner + MID_BAND_WIDTH:
        return MID_POINTS
    if distance <= inner + MID_BAND_WIDTH + LOW_BAND_WIDTH:
        return LOW_POINTS
    return MISS_POINTS


def zone_extent(width: float) -> float:
    """Distance from the target centre to the outer edge of the low band."""
    return width / 2.0 + MID_BAND_WIDTH + LOW_BAND_WIDTH


def zone_bands(center: float, width: float) -> List[dict]:
    """Scoring bands for rendering, clipped to the scale."""
    inner = width / 2.0
    mid = inner + MID_BAND_WIDTH
    low = mid + LOW_BAND_WIDTH

    def _clip(start, end):
        return max(SCALE_MIN, start), min(SCALE_MAX, end)

    bands = []
    for lo, hi, points in (
        (center - low, center - mid, LOW_POINTS),
        (center - mid, center - inner, MID_POINTS),
        (center - inner, center + inner, BULLSEYE_POINTS),
        (center + inner, center + mid, MID_POINTS),
        (center + mid, center + low, LOW_POINTS),
    ):
        start, end = _clip(lo, hi)
        if end > start:
            bands.append({'start': start, 'end': end, 'points': points})
    return bands


def generate_target(rng: Optional[random.Random] = None) -> Tuple[float, float]:
    """Random (center, width) whose bands stay fully on the scale."""
    rng = rng or random
    width = float(rng.randint(MIN_TARGET_WIDTH, MAX_TARGET_WIDTH))
    clearance = zone_extent(width) + SAFE_MARGIN
    center = float(rng.randint(int(SCALE_MIN + clearance + 0.5), int(SCALE_MAX - clearance)))
    return center, width


def target_side(guess: float, target: float) -> str:
    """Which side of the guess the target lies on."""
    if angular_distance(guess, target) < EXACT_SIDE_TOLERANCE:
        return SIDE_EXACT
    return SIDE_LEFT if target < guess else SIDE_RIGHT


def prediction_is_correct(predicted_side: str, guess: float, target: float) -> bool:
    actual = target_side(guess, target)
    return actual == SIDE_EXACT or actual == predicted_side


def clamp_needle(angle: float) -> float:
    return max(NEEDLE_MIN, min(NEEDLE_MAX, float(angle)))
