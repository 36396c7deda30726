from __future__ import annotations

from dataclasses import dataclass

from carepoints.models import DisciplineLevel

MAX_POINTS = 18


@dataclass(frozen=True)
class ThresholdBand:
    level: DisciplineLevel
    label: str
    min_points: int
    max_points: int | None
    next_threshold: int | None
    action_required: str


# Ordered by lower bound; bands are contiguous and do not overlap.
THRESHOLD_TABLE: tuple[ThresholdBand, ...] = (
    ThresholdBand(DisciplineLevel.GOOD_STANDING, "Good Standing", 0, 0, 6, "None"),
    ThresholdBand(DisciplineLevel.COACHING, "Coaching", 1, 5, 6, "Documented verbal coaching session"),
    ThresholdBand(DisciplineLevel.VERBAL_WARNING, "Verbal Warning", 6, 9, 10, "Formal verbal warning with documentation"),
    ThresholdBand(DisciplineLevel.WRITTEN_WARNING, "Written Warning", 10, 13, 14, "Written warning in personnel file"),
    ThresholdBand(
        DisciplineLevel.FINAL_WARNING,
        "Final Warning + PIP",
        14,
        17,
        18,
        "Final written warning with Performance Improvement Plan",
    ),
    ThresholdBand(DisciplineLevel.TERMINATION, "Termination", 18, None, None, "Employment termination"),
)

ESCALATION_THRESHOLDS: tuple[int, ...] = (6, 10, 14, 18)


@dataclass(frozen=True)
class ThresholdResolution:
    points: int
    level: DisciplineLevel
    next_threshold: int | None
    points_to_next_threshold: int


def band_for_points(points: int) -> ThresholdBand:
    for band in reversed(THRESHOLD_TABLE):
        if points >= band.min_points:
            return band
    # Negative totals only happen through manual data; treat them as clean.
    return THRESHOLD_TABLE[0]


def resolve_discipline_level(points: int) -> ThresholdResolution:
    band = band_for_points(points)
    if band.next_threshold is None:
        points_to_next = 0
    else:
        points_to_next = band.next_threshold - points
    return ThresholdResolution(
        points=points,
        level=band.level,
        next_threshold=band.next_threshold,
        points_to_next_threshold=points_to_next,
    )


def thresholds_crossed(points_before: int, points_after: int) -> list[int]:
    return [
        threshold
        for threshold in ESCALATION_THRESHOLDS
        if points_before < threshold <= points_after
    ]
