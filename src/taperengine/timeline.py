# src/taperengine/timeline.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .types import TaperPlan, TaperStep


@dataclass(frozen=True)
class StepDates:
    """Calendar span of one step, derived from the plan start and cumulative durations."""
    step: TaperStep
    start: date
    end: date  # inclusive

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def durations(steps: Sequence[TaperStep]) -> np.ndarray:
    """Step lengths in days as an int array."""
    return np.asarray([s.duration_days for s in steps], dtype=int)


def global_day_offsets(steps: Sequence[TaperStep]) -> np.ndarray:
    """
    1-based first day of each step, recomputed from the current durations.
    Unlike the stored global_day_start this follows any extended steps.
    """
    d = durations(steps)
    if d.size == 0:
        return d
    return np.concatenate(([1], 1 + np.cumsum(d)[:-1]))


def step_date_ranges(plan: TaperPlan) -> List[StepDates]:
    """Start/end date of every step, laid out back-to-back from plan.start_date."""
    offsets = global_day_offsets(plan.steps)
    out: List[StepDates] = []
    for step, first_day in zip(plan.steps, offsets):
        start = plan.start_date + timedelta(days=int(first_day) - 1)
        out.append(StepDates(step=step, start=start, end=start + timedelta(days=step.duration_days - 1)))
    return out


def step_on(plan: TaperPlan, day: date) -> Optional[StepDates]:
    """The step scheduled on a calendar date, or None outside the plan."""
    for span in step_date_ranges(plan):
        if span.contains(day):
            return span
    return None


def dose_curve(steps: Sequence[TaperStep]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Chart series: (day, dose) at the start of every step (0-based days), plus
    a closing point at the end of the last step with dose 0.
    """
    d = durations(steps)
    days = np.concatenate(([0], np.cumsum(d))).astype(float)
    doses = np.asarray([s.reference_dose_equivalent for s in steps] + [0.0], dtype=float)
    return days, doses


def daily_doses(steps: Sequence[TaperStep], field: str = "reference_dose_equivalent") -> np.ndarray:
    """
    One value per plan day (mg/day). field may be any per-step dose attribute,
    e.g. "diazepam_dose" or "original_med_dose".
    """
    values = np.asarray([getattr(s, field) for s in steps], dtype=float)
    return np.repeat(values, durations(steps))


def active_step(plan: TaperPlan) -> Optional[TaperStep]:
    """First step that is not fully completed; None once the taper is finished."""
    for step in plan.steps:
        if not step.is_completed:
            return step
    return None


def progress(plan: TaperPlan) -> float:
    """Fraction of plan days ticked off (0.0 - 1.0)."""
    total = plan.total_days
    if total == 0:
        return 0.0
    done = int(np.sum([s.days_done for s in plan.steps]))
    return done / total
