from dataclasses import FrozenInstanceError, replace
from datetime import date, timedelta

import pytest

from taperengine.errors import InvalidTaperInput
from taperengine.journal import (
    ADVANCE_ADVICE,
    HOLD_ADVICE,
    needs_attention,
    recent_entries,
    stability_status,
    step_guidance,
    upsert_entry,
)
from taperengine.schedule import generate
from taperengine.tracking import toggle_day_completion
from taperengine.types import DailyLogEntry, Medication, TaperPace


def _entry(day: int, **kw) -> DailyLogEntry:
    return DailyLogEntry(date=date(2024, 1, 1) + timedelta(days=day), **kw)


def test_upsert_replaces_same_day_and_sorts():
    entries = ()
    entries = upsert_entry(entries, _entry(2, stress=3))
    entries = upsert_entry(entries, _entry(0, stress=1))
    entries = upsert_entry(entries, _entry(2, stress=7))

    assert [e.date.day for e in entries] == [1, 3]
    assert entries[1].stress == 7


def test_upsert_validates_scores():
    with pytest.raises(InvalidTaperInput):
        upsert_entry((), _entry(0, tremors=11))
    with pytest.raises(InvalidTaperInput):
        upsert_entry((), _entry(0, sleep_hours=25))


def test_recent_entries_window():
    entries = tuple(_entry(d) for d in range(20, 0, -1))
    recent = recent_entries(entries)
    assert len(recent) == 14
    assert recent[0].date == date(2024, 1, 8)
    assert recent[-1].date == date(2024, 1, 21)


@pytest.mark.parametrize("kw, expected", [
    ({}, False),
    ({"stress": 9}, True),
    ({"dizziness": 8}, False),
    ({"systolic": 165}, True),
    ({"diastolic": 105}, True),
    ({"systolic": 85}, True),
    ({"diastolic": 55}, True),
    ({"systolic": 120, "diastolic": 80}, False),
    ({"sleep_quality": 2}, True),
    ({"sleep_hours": 3.5}, True),
])
def test_needs_attention(kw, expected):
    assert needs_attention(_entry(0, **kw)) is expected


def test_stability_uses_last_five_entries():
    assert stability_status(()) == "unknown"

    calm = [_entry(d, sleep_quality=9) for d in range(5)]
    assert stability_status(calm) == "stable"

    # (6 + 6 + 6 + (10 - 4)) / 4 = 6 > 4.5
    rough = [_entry(d, stress=6, tremors=6, dizziness=6, sleep_quality=4) for d in range(5, 10)]
    assert stability_status(calm + rough) == "unstable"

    # (3 + 3 + 3 + 5) / 4 = 3.5
    middling = [_entry(d, stress=3, tremors=3, dizziness=3, sleep_quality=5) for d in range(10, 15)]
    assert stability_status(rough + middling) == "moderate"


def test_step_guidance_near_end_of_step():
    plan = generate(Medication.DIAZEPAM, 5.0, TaperPace.ASHTON, "2024-01-01")
    step = plan.steps[1]
    calm = [_entry(0, sleep_quality=9)]
    rough = [_entry(0, stress=9, tremors=9, dizziness=9, sleep_quality=1)]

    assert step_guidance(step, calm) is None

    for day in range(step.duration_days - 1):
        plan = toggle_day_completion(plan, step.id, day)
    nearly = plan.steps[1]
    assert step_guidance(nearly, calm) == ADVANCE_ADVICE
    assert step_guidance(nearly, rough) == HOLD_ADVICE
    assert step_guidance(nearly, ()) == ADVANCE_ADVICE


def test_entry_is_immutable():
    entry = _entry(0)
    with pytest.raises(FrozenInstanceError):
        entry.stress = 5  # type: ignore[misc]
    assert replace(entry, stress=5).stress == 5
