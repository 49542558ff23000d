from dataclasses import replace

import pytest

from taperengine.errors import DayOutOfRangeError, StepNotFoundError
from taperengine.schedule import generate
from taperengine.tracking import extend_step_by_one_day, find_step, toggle_day_completion
from taperengine.types import Medication, TaperPace, TaperStep


@pytest.fixture
def plan():
    return generate(Medication.DIAZEPAM, 5.0, TaperPace.ASHTON, "2024-01-01")


def _three_day_plan(plan):
    """Swap the first step for a 3-day one so toggles are easy to read."""
    short = replace(plan.steps[0], duration_days=3, completed_days=(False, False, False))
    return replace(plan, steps=(short,) + plan.steps[1:])


def test_toggle_flips_one_day(plan):
    plan = _three_day_plan(plan)
    updated = toggle_day_completion(plan, "step-init", 1)

    step = find_step(updated, "step-init")
    assert step.completed_days == (False, True, False)
    assert step.is_completed is False
    # Original value untouched, other steps are the same objects
    assert find_step(plan, "step-init").completed_days == (False, False, False)
    assert all(a is b for a, b in zip(plan.steps[1:], updated.steps[1:]))


def test_toggle_every_day_completes_step_and_back(plan):
    step_id = plan.steps[1].id
    for day in range(plan.steps[1].duration_days):
        plan = toggle_day_completion(plan, step_id, day)
    assert find_step(plan, step_id).is_completed is True

    plan = toggle_day_completion(plan, step_id, 0)
    step = find_step(plan, step_id)
    assert step.is_completed is False
    assert step.completed_days[0] is False


def test_extend_adds_one_unfinished_day(plan):
    step_id = plan.steps[1].id
    for day in range(7):
        plan = toggle_day_completion(plan, step_id, day)
    before = find_step(plan, step_id)
    assert before.duration_days == 7 and before.is_completed

    updated = extend_step_by_one_day(plan, step_id)
    after = find_step(updated, step_id)
    assert after.duration_days == 8
    assert len(after.completed_days) == 8
    assert after.completed_days[-1] is False
    assert after.is_completed is False


def test_extend_leaves_other_offsets_alone(plan):
    updated = extend_step_by_one_day(plan, "step-init")
    assert [s.global_day_start for s in updated.steps] == [s.global_day_start for s in plan.steps]
    assert updated.total_days == plan.total_days + 1


def test_unknown_step_is_reported(plan):
    with pytest.raises(StepNotFoundError):
        toggle_day_completion(plan, "step-999", 0)
    with pytest.raises(StepNotFoundError):
        extend_step_by_one_day(plan, "nope")
    with pytest.raises(KeyError):
        find_step(plan, "nope")


@pytest.mark.parametrize("day", [-1, 14, 100])
def test_day_out_of_range(plan, day):
    with pytest.raises(DayOutOfRangeError):
        toggle_day_completion(plan, "step-init", day)


def test_step_enforces_length_invariant():
    with pytest.raises(ValueError):
        TaperStep(id="x", week=0.0, phase="reduction", original_med_dose=0.0, diazepam_dose=1.0,
                  reference_dose_equivalent=1.0, total_dose_equivalent=1.0, duration_days=3,
                  completed_days=(False,), global_day_start=1)
    with pytest.raises(ValueError):
        TaperStep(id="x", week=0.0, phase="reduction", original_med_dose=0.0, diazepam_dose=1.0,
                  reference_dose_equivalent=1.0, total_dose_equivalent=1.0, duration_days=0,
                  completed_days=(), global_day_start=1)
