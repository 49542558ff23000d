# src/taperengine/schedule.py
from __future__ import annotations

import logging
import math
from datetime import date, timedelta
from typing import List, Optional, Tuple, Union

from .errors import InvalidTaperInput, TaperConvergenceError
from .medications import MEDICATION_PROFILES, is_reference, parse_medication
from .types import (
    METABOLISMS,
    BiologicalFactors,
    Medication,
    MedicationProfile,
    TaperPace,
    TaperPlan,
    TaperStep,
)

logger = logging.getLogger(__name__)

MAX_REDUCTION_STEPS = 150
# Anything that rounds to 0.00 mg is treated as exactly zero.
ZERO_DOSE_MG = 0.005

CROSSOVER_FRACTIONS: Tuple[float, ...] = (0.25, 0.50, 0.75, 1.00)
CROSSOVER_STEP_DAYS = 7
INITIAL_STABILIZE_DAYS = 14
SHORT_STEP_DAYS = 7
LONG_STEP_DAYS = 14
ELDERLY_AGE = 65

# Ashton table: (dose threshold mg, drop mg), checked top-down, first match wins.
ASHTON_TABLE: Tuple[Tuple[float, float], ...] = ((50.0, 5.0), (20.0, 2.0), (10.0, 1.0), (5.0, 0.5))
ASHTON_FINAL_DROP = 0.5

MODERATE_RATE = 0.10
MODERATE_FLOOR = 0.25
MICRO_TAPER_DOSE = 1.0
MICRO_TAPER_FLOOR = 0.125
SLOW_RATE = 0.05
SLOW_FLOOR = 0.125
CUSTOM_FLOOR = 0.1

DateLike = Union[date, str]


def round_dose(mg: float) -> float:
    """Round to 2 decimal places, halves up (0.625 -> 0.63)."""
    return math.floor(mg * 100.0 + 0.5) / 100.0 + 0.0


def parse_pace(value: Union[TaperPace, str]) -> TaperPace:
    """Resolve a pace from an enum member, its display value or member name (any case)."""
    if isinstance(value, TaperPace):
        return value
    if isinstance(value, str):
        key = value.strip()
        for pace in TaperPace:
            if key == pace.value or key.upper() == pace.name:
                return pace
    raise InvalidTaperInput(f"Unknown pace '{value}'.")


def parse_date(value: DateLike, name: str = "date") -> date:
    """Accept a date or an ISO-8601 string ("2024-01-01" or a full timestamp)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as exc:
            raise InvalidTaperInput(f"{name} must be an ISO-8601 date (got {value!r}).") from exc
    raise InvalidTaperInput(f"{name} must be an ISO-8601 date (got {value!r}).")


def step_duration(pace: TaperPace, factors: BiologicalFactors) -> int:
    """
    Length of every reduction step: two weeks for the slow pace, patients
    over 65 and slow metabolizers; one week otherwise.
    """
    if pace is TaperPace.SLOW:
        return LONG_STEP_DAYS
    if factors.age is not None and factors.age > ELDERLY_AGE:
        return LONG_STEP_DAYS
    if factors.metabolism == "slow":
        return LONG_STEP_DAYS
    return SHORT_STEP_DAYS


def reduction_amount(pace: TaperPace, dose_mg: float, custom_step_mg: Optional[float] = None) -> float:
    """
    How much to cut from the current diazepam-equivalent dose.

    ASHTON   : fixed drops from the threshold table
    MODERATE : 10% of the dose, at least 0.25 mg (0.125 mg once at or below 1 mg)
    SLOW     : 5% of the dose, at least 0.125 mg
    CUSTOM   : the precomputed per-step amount, at least 0.1 mg
    """
    if pace is TaperPace.ASHTON:
        for threshold, drop in ASHTON_TABLE:
            if dose_mg >= threshold:
                return drop
        return ASHTON_FINAL_DROP
    if pace is TaperPace.MODERATE:
        floor = MICRO_TAPER_FLOOR if dose_mg <= MICRO_TAPER_DOSE else MODERATE_FLOOR
        return max(dose_mg * MODERATE_RATE, floor)
    if pace is TaperPace.SLOW:
        return max(dose_mg * SLOW_RATE, SLOW_FLOOR)
    if pace is TaperPace.CUSTOM:
        if custom_step_mg is None:
            raise InvalidTaperInput("Custom pace needs a per-step reduction amount.")
        return max(custom_step_mg, CUSTOM_FLOOR)
    raise ValueError(f"Unhandled pace {pace!r}.")


def custom_step_reduction(full_equivalent_mg: float, start: date, target_end: date, lead_in_days: int) -> float:
    """
    Even weekly cut that reaches zero by target_end.
    The crossover/stabilization lead-in is subtracted from the available time first.
    """
    adjusted_start = start + timedelta(days=lead_in_days)
    weeks_remaining = max(1.0, (target_end - adjusted_start).days / 7.0)
    return full_equivalent_mg / weeks_remaining


def generate(medication: Union[Medication, str], current_dose: float, pace: Union[TaperPace, str],
             start_date: DateLike, biological_factors: Optional[BiologicalFactors] = None,
             target_end_date: Optional[DateLike] = None) -> TaperPlan:
    """
    Build a complete taper plan.

    medication         : starting benzodiazepine
    current_dose       : mg/day of that medication (> 0)
    pace               : SLOW | MODERATE | ASHTON | CUSTOM
    start_date         : first day of the plan
    biological_factors : age / metabolism / years of use (defaults: average metabolism)
    target_end_date    : required for CUSTOM, strictly after start_date

    Phases: 4 weekly crossover steps onto diazepam (or a 14-day stabilization
    when already on diazepam), then reductions until the dose reaches zero.
    Raises InvalidTaperInput for bad inputs and TaperConvergenceError when the
    reduction loop cannot reach zero within MAX_REDUCTION_STEPS.
    """
    med = parse_medication(medication)
    pace = parse_pace(pace)
    start = parse_date(start_date, "start_date")
    factors = biological_factors or BiologicalFactors()
    _validate_dose("current_dose", current_dose)
    _validate_factors(factors)

    target: Optional[date] = None
    if pace is TaperPace.CUSTOM:
        if target_end_date is None:
            raise InvalidTaperInput("Custom pace requires a target end date.")
        target = parse_date(target_end_date, "target_end_date")
        if not target > start:
            raise InvalidTaperInput(f"target_end_date must be after start_date ({target} <= {start}).")

    profile = MEDICATION_PROFILES[med]
    full_equivalent = float(current_dose) * profile.diazepam_equivalence
    if full_equivalent <= ZERO_DOSE_MG:
        raise InvalidTaperInput(
            f"current_dose {current_dose} mg of {profile.name} is below the smallest schedulable step."
        )

    steps = lead_in_steps(med, profile, float(current_dose), full_equivalent)
    lead_in_days = sum(s.duration_days for s in steps)

    custom_step = None
    if target is not None:
        custom_step = custom_step_reduction(full_equivalent, start, target, lead_in_days)
        logger.debug("Custom pace: %.4f mg per step to finish by %s", custom_step, target)

    duration = step_duration(pace, factors)
    steps.extend(reduction_steps(pace, full_equivalent, duration,
                                 first_day=1 + lead_in_days,
                                 first_week=lead_in_days / 7.0,
                                 custom_step_mg=custom_step))

    plan = TaperPlan(
        medication=med,
        start_dose=float(current_dose),
        start_date=start,
        pace=pace,
        age=factors.age,
        metabolism=factors.metabolism,
        years_using=factors.years_using,
        steps=tuple(steps),
        requires_crossover=not is_reference(med),
        target_end_date=target,
    )
    logger.info(
        "Generated %s taper for %s %.3g mg/day: %d steps over %d days (%.2f mg diazepam-eq start)",
        pace.name.lower(), profile.name, current_dose, len(plan.steps), plan.total_days, full_equivalent,
    )
    return plan


def lead_in_steps(medication: Medication, profile: MedicationProfile,
                  current_dose: float, full_equivalent: float) -> List[TaperStep]:
    """
    Steps before reductions begin.

    Diazepam: a single 14-day stabilization at the starting dose.
    Anything else: four weekly steps each moving another 25% of the dose onto
    diazepam; the last one is a stabilization at 100% diazepam.
    """
    reference = round_dose(full_equivalent)
    if is_reference(medication):
        return [_fixed_step("step-init", week=0.0, phase="stabilize",
                            original_med_dose=current_dose, diazepam_dose=reference,
                            reference=reference, duration=INITIAL_STABILIZE_DAYS, day_start=1,
                            notes="Stabilization phase: hold the starting dose")]

    steps: List[TaperStep] = []
    day = 1
    for i, fraction in enumerate(CROSSOVER_FRACTIONS):
        last = i == len(CROSSOVER_FRACTIONS) - 1
        if last:
            step_id, phase = "step-stabilize", "stabilize"
            notes = "Crossover complete: stabilize on diazepam before reducing"
        else:
            step_id, phase = f"step-crossover-{i + 1}", "crossover"
            notes = f"Replace {fraction:.0%} of {profile.name} with diazepam"
        steps.append(_fixed_step(step_id, week=float(i), phase=phase,
                                 original_med_dose=current_dose * (1.0 - fraction),
                                 diazepam_dose=round_dose(full_equivalent * fraction),
                                 reference=reference, duration=CROSSOVER_STEP_DAYS, day_start=day,
                                 notes=notes))
        day += CROSSOVER_STEP_DAYS
    return steps


def reduction_steps(pace: TaperPace, start_mg: float, duration_days: int, first_day: int,
                    first_week: float, custom_step_mg: Optional[float] = None) -> List[TaperStep]:
    """
    Cut the diazepam-equivalent dose step by step until it reaches zero.
    The step that reaches zero is the jump-off.
    """
    steps: List[TaperStep] = []
    remaining = start_mg
    week = first_week
    day = first_day
    iterations = 0
    while remaining > ZERO_DOSE_MG and iterations < MAX_REDUCTION_STEPS:
        iterations += 1
        remaining -= reduction_amount(pace, remaining, custom_step_mg)
        if remaining <= ZERO_DOSE_MG:
            remaining = 0.0
        dose = round_dose(remaining)
        jump_off = remaining == 0.0
        steps.append(TaperStep(
            id=f"step-{iterations}",
            week=week,
            phase="jump-off" if jump_off else "reduction",
            original_med_dose=0.0,
            diazepam_dose=dose,
            reference_dose_equivalent=dose,
            total_dose_equivalent=dose,
            duration_days=duration_days,
            completed_days=(False,) * duration_days,
            global_day_start=day,
            notes="Jump-off: last step, medication ends after this" if jump_off else None,
        ))
        logger.debug("step-%d week %.1f: %.2f mg", iterations, week, dose)
        week += duration_days / 7.0
        day += duration_days

    if remaining > 0.0:
        logger.error("Reduction stopped at cap of %d steps with %.3f mg left", MAX_REDUCTION_STEPS, remaining)
        raise TaperConvergenceError(remaining, iterations)
    return steps


def _fixed_step(step_id: str, week: float, phase: str, original_med_dose: float, diazepam_dose: float,
                reference: float, duration: int, day_start: int, notes: str) -> TaperStep:
    return TaperStep(
        id=step_id,
        week=week,
        phase=phase,  # type: ignore[arg-type]
        original_med_dose=original_med_dose,
        diazepam_dose=diazepam_dose,
        reference_dose_equivalent=reference,
        total_dose_equivalent=reference,
        duration_days=duration,
        completed_days=(False,) * duration,
        global_day_start=day_start,
        notes=notes,
    )


# --------------------------
# Small input validators
# --------------------------
def _validate_dose(name: str, x: float) -> None:
    if isinstance(x, bool) or not isinstance(x, (int, float)):
        raise InvalidTaperInput(f"{name} must be a number (got {x!r}).")
    if not (math.isfinite(x) and x > 0):
        raise InvalidTaperInput(f"{name} must be > 0 (got {x}).")

def _validate_factors(factors: BiologicalFactors) -> None:
    if factors.age is not None:
        if isinstance(factors.age, bool) or not isinstance(factors.age, int) or factors.age < 0:
            raise InvalidTaperInput(f"age must be a non-negative integer (got {factors.age!r}).")
    if factors.metabolism not in METABOLISMS:
        raise InvalidTaperInput(f"metabolism must be one of {', '.join(METABOLISMS)} (got {factors.metabolism!r}).")
    if factors.years_using is not None and not (
            isinstance(factors.years_using, (int, float)) and factors.years_using >= 0):
        raise InvalidTaperInput(f"years_using must be >= 0 (got {factors.years_using}).")
