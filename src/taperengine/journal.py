# src/taperengine/journal.py
"""
Symptom journal: one entry per calendar day, scored on the Ashton Manual
withdrawal symptoms, plus the stability read used to pace the taper.
"""
from __future__ import annotations

import logging
from typing import Iterable, Literal, Optional, Tuple

from .errors import InvalidTaperInput
from .types import DailyLogEntry, TaperStep

logger = logging.getLogger(__name__)

StabilityStatus = Literal["unknown", "stable", "moderate", "unstable"]

SCORE_FIELDS: Tuple[str, ...] = (
    "stress", "tremors", "dizziness", "sleep_quality",
    "muscle_pain", "nausea", "irritability",
    "depersonalization", "sensory_sensitivity", "tinnitus",
)

RECENT_WINDOW = 14
STABILITY_WINDOW = 5
UNSTABLE_SCORE = 4.5
MODERATE_SCORE = 2.5

HOLD_ADVICE = ("Your recent logs indicate elevated symptoms. The Ashton Manual recommends stabilizing "
               "at the current dose until symptoms subside before reducing further.")
ADVANCE_ADVICE = ("Your symptoms appear stable. If you feel ready, you can move to the next "
                  "reduction step. Listen to your body.")


def validate_entry(entry: DailyLogEntry) -> DailyLogEntry:
    """Check score ranges; returns the entry unchanged so it can be chained."""
    for name in SCORE_FIELDS:
        value = getattr(entry, name)
        if value is None:
            continue
        if not (0 <= value <= 10):
            raise InvalidTaperInput(f"{name} must be between 0 and 10 (got {value}).")
    if not (0 <= entry.sleep_hours <= 24):
        raise InvalidTaperInput(f"sleep_hours must be between 0 and 24 (got {entry.sleep_hours}).")
    for name in ("systolic", "diastolic"):
        value = getattr(entry, name)
        if value is not None and value < 0:
            raise InvalidTaperInput(f"{name} must be >= 0 (got {value}).")
    return entry


def upsert_entry(entries: Iterable[DailyLogEntry], entry: DailyLogEntry) -> Tuple[DailyLogEntry, ...]:
    """Replace any entry on the same date, keep the journal sorted by date."""
    validate_entry(entry)
    existing = list(entries)
    kept = [e for e in existing if e.date != entry.date]
    logger.debug("Saving journal entry for %s (%s)", entry.date,
                 "replaced" if len(kept) < len(existing) else "new")
    return tuple(sorted(kept + [entry], key=lambda e: e.date))


def recent_entries(entries: Iterable[DailyLogEntry], count: int = RECENT_WINDOW) -> Tuple[DailyLogEntry, ...]:
    """The last `count` entries in date order (chart window)."""
    ordered = sorted(entries, key=lambda e: e.date)
    return tuple(ordered[-count:]) if count > 0 else ()


def needs_attention(entry: DailyLogEntry) -> bool:
    """
    True when a day looks concerning enough to warn the user: a core symptom
    above 8, blood pressure outside 90-160 / 60-100, or very poor sleep.
    """
    symptoms_high = entry.stress > 8 or entry.tremors > 8 or entry.dizziness > 8
    sys_bp, dia_bp = entry.systolic, entry.diastolic
    bp_high = (sys_bp is not None and sys_bp > 160) or (dia_bp is not None and dia_bp > 100)
    bp_low = (sys_bp is not None and 0 < sys_bp < 90) or (dia_bp is not None and 0 < dia_bp < 60)
    sleep_bad = entry.sleep_quality < 3 or entry.sleep_hours < 4
    return symptoms_high or bp_high or bp_low or sleep_bad


def day_score(entry: DailyLogEntry) -> float:
    sleep_badness = max(0, 10 - entry.sleep_quality)
    return (entry.stress + entry.tremors + entry.dizziness + sleep_badness) / 4.0


def stability_status(entries: Iterable[DailyLogEntry]) -> StabilityStatus:
    """Average day score over the 5 most recent entries."""
    latest = sorted(entries, key=lambda e: e.date, reverse=True)[:STABILITY_WINDOW]
    if not latest:
        return "unknown"
    avg = sum(day_score(e) for e in latest) / len(latest)
    if avg > UNSTABLE_SCORE:
        return "unstable"
    if avg > MODERATE_SCORE:
        return "moderate"
    return "stable"


def step_guidance(step: TaperStep, entries: Iterable[DailyLogEntry]) -> Optional[str]:
    """
    Advice shown near the end of a step (all but at most one day ticked off).
    None before then.
    """
    if step.days_done < step.duration_days - 1:
        return None
    if stability_status(entries) == "unstable":
        return HOLD_ADVICE
    return ADVANCE_ADVICE

