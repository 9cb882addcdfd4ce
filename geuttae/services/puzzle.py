"""
Puzzle stage scoring.

The home screen shows a puzzle that fills in as a circle accumulates
pieces and meetups. The stage is a fixed step function of a score.
"""

from typing import Union

from common.utils.exceptions import ValidationException

# (minimum score, stage), highest first
STAGE_THRESHOLDS = ((8, 4), (5, 3), (3, 2), (1, 1))

MIN_SCORE = 1
MAX_SCORE = 100
PIECE_WEIGHT = 12
MEETUP_WEIGHT = 8

Number = Union[int, float]


def stage_of(score: Number) -> int:
    """Map a nonnegative score to a stage in 0..4."""
    if score < 0:
        raise ValidationException(
            message="Puzzle score must be nonnegative",
            code="NEGATIVE_SCORE",
        )

    for minimum, stage in STAGE_THRESHOLDS:
        if score >= minimum:
            return stage
    return 0


def puzzle_score(piece_count: int, meetup_count: int) -> int:
    """Combine activity counts into a score clamped to [1, 100]."""
    raw = piece_count * PIECE_WEIGHT + meetup_count * MEETUP_WEIGHT
    return max(MIN_SCORE, min(MAX_SCORE, raw))
