import math
from dataclasses import dataclass, replace
from typing import Optional

DAY_MS = 24 * 60 * 60 * 1000

GRADES = ("again", "hard", "good", "easy")

# Ease delta and interval multiplier per grade (again has no multiplier).
EASE_DELTAS = {"again": -0.2, "hard": -0.15, "good": 0.0, "easy": 0.15}
INTERVAL_MULTIPLIERS = {"hard": 1.0, "good": 1.8, "easy": 2.2}
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 3


@dataclass(frozen=True)
class SRSParams:
    again_delay_minutes: int = 10
    starting_ease: float = 2.5
    min_ease: float = 1.3
    max_ease: float = 2.8


@dataclass(frozen=True)
class SRSUpdate:
    due_at: int
    reps: int
    lapses: int
    interval_days: int
    ease: float
    updated_at: int


def new_srs_state(now: int, params: Optional[SRSParams] = None) -> SRSUpdate:
    """Zero-initialized state for a card that has never been graded."""
    params = params or SRSParams()
    return SRSUpdate(due_at=now, reps=0, lapses=0, interval_days=0, ease=params.starting_ease, updated_at=now)


def params_from_config(srs_cfg: dict) -> SRSParams:
    return SRSParams(
        again_delay_minutes=int(srs_cfg.get("again_delay_minutes", 10)),
        starting_ease=float(srs_cfg.get("starting_ease", 2.5)),
        min_ease=float(srs_cfg.get("min_ease", 1.3)),
        max_ease=float(srs_cfg.get("max_ease", 2.8)),
    )


def _clamp_ease(ease: float, params: SRSParams) -> float:
    return round(max(params.min_ease, min(params.max_ease, ease)), 4)


def next_interval(grade: str, reps: int, previous_interval: int, ease: float) -> int:
    """Interval in days after a passing grade; reps is the already-incremented count."""
    if reps == 1:
        return FIRST_INTERVAL_DAYS
    if reps == 2:
        return SECOND_INTERVAL_DAYS
    # Halves round up.
    return max(1, math.floor(previous_interval * ease * INTERVAL_MULTIPLIERS[grade] + 0.5))


def compute_srs_update(prev: SRSUpdate, grade: str, now: int, params: Optional[SRSParams] = None) -> SRSUpdate:
    """Apply one grade to a card's scheduling state."""
    if grade not in GRADES:
        raise ValueError(f"Unknown grade: {grade}")
    params = params or SRSParams()
    ease = _clamp_ease(prev.ease + EASE_DELTAS[grade], params)
    if grade == "again":
        return replace(
            prev,
            reps=0,
            lapses=prev.lapses + 1,
            interval_days=0,
            ease=ease,
            due_at=now + params.again_delay_minutes * 60 * 1000,
            updated_at=now,
        )
    reps = prev.reps + 1
    interval_days = next_interval(grade, reps, prev.interval_days, ease)
    return replace(
        prev,
        reps=reps,
        interval_days=interval_days,
        ease=ease,
        due_at=now + interval_days * DAY_MS,
        updated_at=now,
    )
