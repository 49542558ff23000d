from datetime import date

import numpy as np
import pytest

from taperengine.errors import InvalidTaperInput, TaperConvergenceError
from taperengine.schedule import (
    MAX_REDUCTION_STEPS,
    custom_step_reduction,
    generate,
    reduction_amount,
    step_duration,
)
from taperengine.types import BiologicalFactors, Medication, TaperPace

ALL_PACES = [TaperPace.SLOW, TaperPace.MODERATE, TaperPace.ASHTON, TaperPace.CUSTOM]


def _doses(plan):
    return np.array([s.reference_dose_equivalent for s in plan.steps])


@pytest.mark.parametrize("dose", [2.0, 3.0])
@pytest.mark.parametrize("medication", list(Medication))
@pytest.mark.parametrize("pace", ALL_PACES)
def test_every_plan_ends_at_zero_and_never_goes_up(medication, pace, dose):
    """
    For every medication and pace: the dose never increases, the last step
    is the jump-off at exactly 0 and steps sit back-to-back. 3 mg of
    alprazolam or clonazepam is 60 mg diazepam, above the top Ashton band.
    """
    target = "2024-12-31" if pace is TaperPace.CUSTOM else None
    plan = generate(medication, dose, pace, "2024-01-01", target_end_date=target)
    doses = _doses(plan)

    assert doses[-1] == 0.0
    assert plan.steps[-1].phase == "jump-off"
    assert np.all(np.diff(doses) <= 0)
    assert all(s.phase != "jump-off" for s in plan.steps[:-1])

    for prev, nxt in zip(plan.steps, plan.steps[1:]):
        assert nxt.global_day_start == prev.global_day_start + prev.duration_days
    assert plan.steps[0].global_day_start == 1

    for s in plan.steps:
        assert len(s.completed_days) == s.duration_days
        assert s.is_completed is False
    assert len({s.id for s in plan.steps}) == len(plan.steps)


def test_alprazolam_crossover_then_ashton_table():
    """
    1 mg alprazolam = 20 mg diazepam. Four weekly crossover steps, then the
    Ashton drops (2 mg above 20, 1 mg above 10, 0.5 mg below) down to 0.
    """
    plan = generate(Medication.ALPRAZOLAM, 1.0, TaperPace.ASHTON, "2024-01-01")
    assert plan.requires_crossover is True

    lead = plan.steps[:4]
    assert [s.phase for s in lead] == ["crossover", "crossover", "crossover", "stabilize"]
    assert all(s.duration_days == 7 for s in lead)
    assert np.allclose([s.original_med_dose for s in lead], [0.75, 0.50, 0.25, 0.0])
    assert np.allclose([s.diazepam_dose for s in lead], [5.0, 10.0, 15.0, 20.0])
    assert all(s.reference_dose_equivalent == 20.0 for s in lead)
    assert "stabilize" in lead[-1].notes.lower()

    reductions = plan.steps[4:]
    assert reductions[0].reference_dose_equivalent == 18.0
    assert reductions[1].reference_dose_equivalent == 17.0
    drops = -np.diff([20.0] + [s.reference_dose_equivalent for s in reductions])
    assert set(np.round(drops, 2)) <= {2.0, 1.0, 0.5}
    assert reductions[-1].reference_dose_equivalent == 0.0
    assert all(s.original_med_dose == 0.0 for s in reductions)
    assert reductions[0].global_day_start == 29


def test_diazepam_moderate_direct_taper():
    """
    No crossover for diazepam: one 14-day stabilization at 10 mg, then 10%
    cuts (at least 0.25 mg, 0.125 mg once at or below 1 mg).
    """
    plan = generate(Medication.DIAZEPAM, 10.0, TaperPace.MODERATE, "2024-01-01")
    assert plan.requires_crossover is False

    first = plan.steps[0]
    assert first.phase == "stabilize"
    assert first.duration_days == 14
    assert first.reference_dose_equivalent == 10.0
    assert first.week == 0.0

    reductions = plan.steps[1:]
    assert reductions[0].reference_dose_equivalent == 9.0
    assert reductions[1].reference_dose_equivalent == 8.1
    assert reductions[0].week == 2.0
    assert reductions[1].week == 3.0
    assert all(s.duration_days == 7 for s in reductions)
    assert reductions[-1].reference_dose_equivalent == 0.0

    # Below 1 mg the cut is 0.125 mg
    small = [s.reference_dose_equivalent for s in reductions if 0 < s.reference_dose_equivalent <= 1.0]
    assert len(small) >= 2
    assert set(np.round(-np.diff(small), 2)) <= {0.12, 0.13}


def test_doses_round_half_up_to_pill_fractions():
    plan = generate(Medication.DIAZEPAM, 2.0, TaperPace.MODERATE, "2024-01-01")
    doses = [s.reference_dose_equivalent for s in plan.steps]
    assert doses == [2.0, 1.75, 1.5, 1.25, 1.0, 0.88, 0.75, 0.63, 0.5, 0.38, 0.25, 0.13, 0.0]
    assert [s.diazepam_dose for s in plan.steps] == doses


def test_high_dose_ashton_uses_five_mg_drops():
    plan = generate(Medication.CLONAZEPAM, 3.0, TaperPace.ASHTON, "2024-01-01")
    assert plan.steps[3].reference_dose_equivalent == 60.0
    reductions = [s.reference_dose_equivalent for s in plan.steps[4:8]]
    assert reductions == [55.0, 50.0, 45.0, 43.0]


def test_crossover_originals_are_quarters_of_start_dose():
    plan = generate("lorazepam", 3.0, "moderate", date(2024, 3, 1))
    originals = [s.original_med_dose for s in plan.steps[:4]]
    assert np.allclose(originals, [2.25, 1.5, 0.75, 0.0])
    assert all(s.total_dose_equivalent == 30.0 for s in plan.steps[:4])


def test_custom_pace_spreads_dose_to_target_date():
    """
    20 mg diazepam, 2024-01-01 to 2024-07-01 (182 days). The 14-day
    stabilization leaves 168 days = 24 weeks, so 20/24 mg per step.
    """
    step = custom_step_reduction(20.0, date(2024, 1, 1), date(2024, 7, 1), lead_in_days=14)
    assert np.isclose(step, 20.0 / 24.0)

    plan = generate(Medication.DIAZEPAM, 20.0, TaperPace.CUSTOM, "2024-01-01",
                    target_end_date="2024-07-01")
    reductions = plan.steps[1:]
    assert len(reductions) == 24
    assert np.isclose(reductions[0].reference_dose_equivalent, 19.17)
    assert reductions[-1].reference_dose_equivalent == 0.0
    assert plan.target_end_date == date(2024, 7, 1)
    # Stabilization plus 24 weekly steps fill the days up to the target
    assert plan.total_days == 182


def test_custom_pace_requires_future_target():
    with pytest.raises(InvalidTaperInput):
        generate(Medication.DIAZEPAM, 10.0, TaperPace.CUSTOM, "2024-01-01")
    with pytest.raises(InvalidTaperInput):
        generate(Medication.DIAZEPAM, 10.0, TaperPace.CUSTOM, "2024-01-01", target_end_date="2024-01-01")
    with pytest.raises(InvalidTaperInput):
        generate(Medication.DIAZEPAM, 10.0, TaperPace.CUSTOM, "2024-01-01", target_end_date="2023-12-01")


def test_custom_pace_target_too_far_hits_iteration_cap():
    """A tiny per-step cut floors at 0.1 mg; 20 mg then needs 200 steps."""
    with pytest.raises(TaperConvergenceError) as info:
        generate(Medication.DIAZEPAM, 20.0, TaperPace.CUSTOM, "2024-01-01", target_end_date="2030-01-01")
    assert info.value.iterations == MAX_REDUCTION_STEPS
    assert info.value.remaining_mg > 0


@pytest.mark.parametrize("dose", [0, -1.0, float("nan"), float("inf"), "10", True])
def test_rejects_bad_dose(dose):
    with pytest.raises(InvalidTaperInput):
        generate(Medication.DIAZEPAM, dose, TaperPace.MODERATE, "2024-01-01")


def test_rejects_unknown_medication_pace_and_dates():
    with pytest.raises(InvalidTaperInput):
        generate("midazolam", 1.0, TaperPace.MODERATE, "2024-01-01")
    with pytest.raises(InvalidTaperInput):
        generate(Medication.DIAZEPAM, 1.0, "turbo", "2024-01-01")
    with pytest.raises(InvalidTaperInput):
        generate(Medication.DIAZEPAM, 1.0, TaperPace.MODERATE, "01/01/2024")
    with pytest.raises(InvalidTaperInput):
        generate(Medication.DIAZEPAM, 1.0, TaperPace.MODERATE, "2024-01-01",
                 BiologicalFactors(metabolism="quick"))  # type: ignore[arg-type]
    with pytest.raises(InvalidTaperInput):
        generate(Medication.DIAZEPAM, 1.0, TaperPace.MODERATE, "2024-01-01", BiologicalFactors(age=-3))


def test_invalid_input_is_a_value_error():
    with pytest.raises(ValueError):
        generate(Medication.DIAZEPAM, -5, TaperPace.MODERATE, "2024-01-01")


def test_step_duration_policy():
    avg = BiologicalFactors()
    assert step_duration(TaperPace.MODERATE, avg) == 7
    assert step_duration(TaperPace.SLOW, avg) == 14
    assert step_duration(TaperPace.ASHTON, BiologicalFactors(age=66)) == 14
    assert step_duration(TaperPace.ASHTON, BiologicalFactors(age=65)) == 7
    assert step_duration(TaperPace.MODERATE, BiologicalFactors(metabolism="slow")) == 14
    assert step_duration(TaperPace.MODERATE, BiologicalFactors(metabolism="fast")) == 7


def test_long_steps_only_apply_to_reductions():
    plan = generate(Medication.CLONAZEPAM, 0.5, TaperPace.ASHTON, "2024-01-01", BiologicalFactors(age=70))
    assert [s.duration_days for s in plan.steps[:4]] == [7, 7, 7, 7]
    assert all(s.duration_days == 14 for s in plan.steps[4:])
    weeks = [s.week for s in plan.steps[4:]]
    assert np.allclose(np.diff(weeks), 2.0)


def test_reduction_amount_rules():
    assert reduction_amount(TaperPace.ASHTON, 60.0) == 5.0
    assert reduction_amount(TaperPace.ASHTON, 50.0) == 5.0
    assert reduction_amount(TaperPace.ASHTON, 49.9) == 2.0
    assert reduction_amount(TaperPace.ASHTON, 20.0) == 2.0
    assert reduction_amount(TaperPace.ASHTON, 10.0) == 1.0
    assert reduction_amount(TaperPace.ASHTON, 5.0) == 0.5
    assert reduction_amount(TaperPace.ASHTON, 1.0) == 0.5

    assert np.isclose(reduction_amount(TaperPace.MODERATE, 10.0), 1.0)
    assert reduction_amount(TaperPace.MODERATE, 2.0) == 0.25
    assert reduction_amount(TaperPace.MODERATE, 1.0) == 0.125

    assert np.isclose(reduction_amount(TaperPace.SLOW, 10.0), 0.5)
    assert reduction_amount(TaperPace.SLOW, 1.0) == 0.125

    assert reduction_amount(TaperPace.CUSTOM, 5.0, custom_step_mg=0.05) == 0.1
    assert reduction_amount(TaperPace.CUSTOM, 5.0, custom_step_mg=0.8) == 0.8


def test_years_using_is_kept_but_does_not_change_doses():
    base = generate(Medication.DIAZEPAM, 15.0, TaperPace.SLOW, "2024-01-01")
    veteran = generate(Medication.DIAZEPAM, 15.0, TaperPace.SLOW, "2024-01-01",
                       BiologicalFactors(years_using=12.5))
    assert veteran.years_using == 12.5
    assert veteran.steps == base.steps


def test_generation_is_deterministic():
    a = generate(Medication.TEMAZEPAM, 30.0, TaperPace.SLOW, "2024-05-05")
    b = generate(Medication.TEMAZEPAM, 30.0, TaperPace.SLOW, "2024-05-05")
    assert a == b


def test_dose_too_small_to_schedule():
    with pytest.raises(InvalidTaperInput):
        generate(Medication.CHLORDIAZEPOXIDE, 0.01, TaperPace.MODERATE, "2024-01-01")
