# src/taperengine/tracking.py
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable

from .errors import DayOutOfRangeError, StepNotFoundError
from .types import TaperPlan, TaperStep

logger = logging.getLogger(__name__)


def find_step(plan: TaperPlan, step_id: str) -> TaperStep:
    for step in plan.steps:
        if step.id == step_id:
            return step
    raise StepNotFoundError(step_id)


def toggle_day_completion(plan: TaperPlan, step_id: str, day_index: int) -> TaperPlan:
    """
    Flip one day of one step. Returns a new plan; the old plan and every other
    step object are left untouched.
    """
    def toggle(step: TaperStep) -> TaperStep:
        if isinstance(day_index, bool) or not isinstance(day_index, int) \
                or not (0 <= day_index < step.duration_days):
            raise DayOutOfRangeError(
                f"day_index {day_index} outside step '{step_id}' (0..{step.duration_days - 1})."
            )
        days = list(step.completed_days)
        days[day_index] = not days[day_index]
        return replace(step, completed_days=tuple(days))

    updated = _update_step(plan, step_id, toggle)
    logger.debug("Toggled %s day %d -> %s", step_id, day_index,
                 find_step(updated, step_id).completed_days[day_index])
    return updated


def extend_step_by_one_day(plan: TaperPlan, step_id: str) -> TaperPlan:
    """
    Add one unfinished day to a step.

    Later steps keep their stored global_day_start; calendar dates are derived
    from cumulative durations (see timeline.step_date_ranges), so they drift
    forward by one day.
    """
    def extend(step: TaperStep) -> TaperStep:
        return replace(step, duration_days=step.duration_days + 1,
                       completed_days=step.completed_days + (False,))

    updated = _update_step(plan, step_id, extend)
    logger.info("Extended %s to %d days", step_id, find_step(updated, step_id).duration_days)
    return updated


def _update_step(plan: TaperPlan, step_id: str, change: Callable[[TaperStep], TaperStep]) -> TaperPlan:
    found = False
    steps = []
    for step in plan.steps:
        if step.id == step_id:
            step = change(step)
            found = True
        steps.append(step)
    if not found:
        raise StepNotFoundError(step_id)
    return replace(plan, steps=tuple(steps))
