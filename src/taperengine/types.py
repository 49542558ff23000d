# src/taperengine/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Literal, Optional, Tuple

# All dose arithmetic happens in DIAZEPAM-EQUIVALENT MG. (One scale, no unit drift.)
Metabolism = Literal["slow", "average", "fast"]
TaperPhase = Literal["crossover", "stabilize", "reduction", "jump-off"]

METABOLISMS: Tuple[str, ...] = ("slow", "average", "fast")
PHASES: Tuple[str, ...] = ("crossover", "stabilize", "reduction", "jump-off")


class Medication(str, Enum):
    ALPRAZOLAM = "Alprazolam (Xanax)"
    CLONAZEPAM = "Clonazepam (Klonopin)"
    DIAZEPAM = "Diazepam (Valium)"
    LORAZEPAM = "Lorazepam (Ativan)"
    TEMAZEPAM = "Temazepam (Restoril)"
    CHLORDIAZEPOXIDE = "Chlordiazepoxide (Librium)"


class TaperPace(str, Enum):
    SLOW = "Slow (5% cuts)"
    MODERATE = "Moderate (10% cuts)"
    ASHTON = "Ashton Manual Standard"
    CUSTOM = "Custom (Target Date)"


@dataclass(frozen=True)
class MedicationProfile:
    """
    Reference data for one benzodiazepine.

    name                 : short generic name (e.g., "Alprazolam")
    half_life_range_h    : (low, high) elimination half-life in hours
    diazepam_equivalence : mg of diazepam equal to 1 mg of this drug
    """
    name: str
    half_life_range_h: Tuple[float, float]
    diazepam_equivalence: float

    @property
    def half_life_label(self) -> str:
        lo, hi = self.half_life_range_h
        return f"{lo:g}-{hi:g} hrs"

    @property
    def mean_half_life_h(self) -> float:
        lo, hi = self.half_life_range_h
        return (lo + hi) / 2.0


@dataclass(frozen=True)
class BiologicalFactors:
    """
    Patient inputs that shape the pacing of reduction steps.

    age         : years; over 65 doubles the step length
    metabolism  : slow | average | fast; slow doubles the step length
    years_using : kept on the plan, never used in dose arithmetic
    """
    age: Optional[int] = None
    metabolism: Metabolism = "average"
    years_using: Optional[float] = None


@dataclass(frozen=True)
class TaperStep:
    """
    One scheduled interval at a fixed dose.

    id                        : unique within a plan
    week                      : weeks elapsed before this step starts
    phase                     : crossover | stabilize | reduction | jump-off
    original_med_dose         : mg/day of the starting medication (0 once crossed over)
    diazepam_dose             : mg/day of diazepam actually taken
    reference_dose_equivalent : total daily dose in diazepam-equivalent mg
    total_dose_equivalent     : same value, kept for charting
    duration_days             : calendar days this step spans (>= 1)
    completed_days            : one flag per day, len == duration_days
    global_day_start          : 1-based day of the plan this step starts on
    notes                     : optional annotation
    """
    id: str
    week: float
    phase: TaperPhase
    original_med_dose: float
    diazepam_dose: float
    reference_dose_equivalent: float
    total_dose_equivalent: float
    duration_days: int
    completed_days: Tuple[bool, ...]
    global_day_start: int
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        if not (isinstance(self.duration_days, int) and self.duration_days >= 1):
            raise ValueError(f"duration_days must be a positive integer (got {self.duration_days}).")
        if len(self.completed_days) != self.duration_days:
            raise ValueError(
                f"completed_days has {len(self.completed_days)} entries but duration_days is {self.duration_days}."
            )
        # Accept lists from callers; store an immutable tuple.
        object.__setattr__(self, "completed_days", tuple(bool(d) for d in self.completed_days))

    @property
    def is_completed(self) -> bool:
        return all(self.completed_days)

    @property
    def days_done(self) -> int:
        return sum(self.completed_days)


@dataclass(frozen=True)
class TaperPlan:
    """
    The full output of one generation call.

    steps are laid out back-to-back starting on start_date; requires_crossover
    is True iff the starting medication is not diazepam.
    """
    medication: Medication
    start_dose: float
    start_date: date
    pace: TaperPace
    age: Optional[int]
    metabolism: Metabolism
    years_using: Optional[float]
    steps: Tuple[TaperStep, ...]
    requires_crossover: bool
    target_end_date: Optional[date] = None

    @property
    def biological_factors(self) -> BiologicalFactors:
        return BiologicalFactors(age=self.age, metabolism=self.metabolism, years_using=self.years_using)

    @property
    def total_days(self) -> int:
        return sum(s.duration_days for s in self.steps)


@dataclass(frozen=True)
class DailyLogEntry:
    """
    One day of the symptom journal. Scores run 0 (none) to 10 (severe),
    except sleep_quality where 10 is best.
    """
    date: date
    stress: int = 0
    tremors: int = 0
    dizziness: int = 0
    sleep_quality: int = 5
    sleep_hours: float = 7.0
    muscle_pain: Optional[int] = None
    nausea: Optional[int] = None
    irritability: Optional[int] = None
    depersonalization: Optional[int] = None
    sensory_sensitivity: Optional[int] = None
    tinnitus: Optional[int] = None
    systolic: Optional[int] = None
    diastolic: Optional[int] = None
    medications: str = ""
    activities: Tuple[str, ...] = field(default_factory=tuple)
    notes: str = ""
