# src/taperengine/serialization.py
"""
JSON shape of persisted plans and journal entries.

Keys are camelCase so plans saved by earlier versions of the tracker load
unchanged. Older plans may lack completedDays, durationDays, phase or the
dose-equivalent fields; those are synthesized on load.
"""
from __future__ import annotations

import datetime
import json
import logging
from dataclasses import asdict
from datetime import date
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .errors import StorageError
from .types import DailyLogEntry, Medication, TaperPace, TaperPlan, TaperStep

logger = logging.getLogger(__name__)

LEGACY_DURATION_DAYS = 7


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class StepRecord(_Record):
    id: str
    week: float = 0.0
    phase: Literal["crossover", "stabilize", "reduction", "jump-off"] = "reduction"
    original_med_dose: float = 0.0
    diazepam_dose: float
    reference_dose_equivalent: float
    total_dose_equivalent: float
    is_completed: bool = False
    completed_days: List[bool]
    duration_days: int = Field(ge=1)
    global_day_start: int = Field(default=0, ge=0)
    notes: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _fill_legacy_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = {to_camel(k) if "_" in k else k: v for k, v in data.items()}
        if not data.get("durationDays"):
            days = data.get("completedDays")
            data["durationDays"] = len(days) if isinstance(days, list) and days else LEGACY_DURATION_DAYS
        if not isinstance(data.get("completedDays"), list) or not data["completedDays"]:
            data["completedDays"] = [bool(data.get("isCompleted", False))] * int(data["durationDays"])
        if data.get("phase") == "jump":
            data["phase"] = "jump-off"
        elif "phase" not in data and data.get("id") == "step-init":
            data["phase"] = "stabilize"
        # Earlier versions called the equivalents diazepamDose / totalDiazepamEq
        total = data.get("totalDoseEquivalent", data.get("totalDiazepamEq", data.get("diazepamDose")))
        data.setdefault("totalDoseEquivalent", total)
        data.setdefault("referenceDoseEquivalent", total)
        data.setdefault("diazepamDose", data.get("referenceDoseEquivalent"))
        return data

    @model_validator(mode="after")
    def _derive_completion(self) -> "StepRecord":
        if len(self.completed_days) != self.duration_days:
            raise ValueError(
                f"step {self.id}: completedDays has {len(self.completed_days)} entries, "
                f"durationDays is {self.duration_days}"
            )
        self.is_completed = all(self.completed_days)
        return self


class PlanRecord(_Record):
    medication: Medication
    start_dose: float = Field(gt=0)
    start_date: date
    pace: TaperPace = Field(alias="speed")
    age: Optional[int] = None
    metabolism: Literal["slow", "average", "fast"] = "average"
    years_using: Optional[float] = None
    steps: List[StepRecord]
    requires_crossover: bool = Field(default=False, alias="isDiazepamCrossOver")
    target_end_date: Optional[date] = None

    @field_validator("start_date", "target_end_date", mode="before")
    @classmethod
    def _date_part(cls, value: Any) -> Any:
        # Older plans stored full ISO timestamps
        if isinstance(value, str) and len(value) > 10:
            return value[:10]
        return value

    @field_validator("age", mode="before")
    @classmethod
    def _blank_age(cls, value: Any) -> Any:
        return None if value == "" else value

    @model_validator(mode="after")
    def _lay_out_days(self) -> "PlanRecord":
        # Plans from before globalDayStart existed get back-to-back offsets
        if self.steps and any(s.global_day_start < 1 for s in self.steps):
            day = 1
            for step in self.steps:
                step.global_day_start = day
                day += step.duration_days
        return self


class JournalRecord(_Record):
    date: datetime.date
    stress: int = Field(default=0, ge=0, le=10)
    tremors: int = Field(default=0, ge=0, le=10)
    dizziness: int = Field(default=0, ge=0, le=10)
    sleep_quality: int = Field(default=5, ge=0, le=10)
    sleep_hours: float = Field(default=7.0, ge=0, le=24)
    muscle_pain: Optional[int] = Field(default=None, ge=0, le=10)
    nausea: Optional[int] = Field(default=None, ge=0, le=10)
    irritability: Optional[int] = Field(default=None, ge=0, le=10)
    depersonalization: Optional[int] = Field(default=None, ge=0, le=10)
    sensory_sensitivity: Optional[int] = Field(default=None, ge=0, le=10)
    tinnitus: Optional[int] = Field(default=None, ge=0, le=10)
    systolic: Optional[int] = None
    diastolic: Optional[int] = None
    medications: str = ""
    activities: List[str] = Field(default_factory=list)
    notes: str = ""

    @field_validator("systolic", "diastolic", mode="before")
    @classmethod
    def _blank_pressure(cls, value: Any) -> Any:
        # The journal form stored blood pressure as free text
        if isinstance(value, str) and not value.strip():
            return None
        return value


# --------------------------
# dataclass <-> record
# --------------------------
def step_to_record(step: TaperStep) -> StepRecord:
    return StepRecord(
        id=step.id,
        week=step.week,
        phase=step.phase,
        original_med_dose=step.original_med_dose,
        diazepam_dose=step.diazepam_dose,
        reference_dose_equivalent=step.reference_dose_equivalent,
        total_dose_equivalent=step.total_dose_equivalent,
        is_completed=step.is_completed,
        completed_days=list(step.completed_days),
        duration_days=step.duration_days,
        global_day_start=step.global_day_start,
        notes=step.notes,
    )


def record_to_step(rec: StepRecord) -> TaperStep:
    return TaperStep(
        id=rec.id,
        week=rec.week,
        phase=rec.phase,
        original_med_dose=rec.original_med_dose,
        diazepam_dose=rec.diazepam_dose,
        reference_dose_equivalent=rec.reference_dose_equivalent,
        total_dose_equivalent=rec.total_dose_equivalent,
        duration_days=rec.duration_days,
        completed_days=tuple(rec.completed_days),
        global_day_start=rec.global_day_start,
        notes=rec.notes,
    )


def plan_to_dict(plan: TaperPlan) -> dict:
    """Flat JSON-compatible dict (camelCase keys)."""
    rec = PlanRecord(
        medication=plan.medication,
        start_dose=plan.start_dose,
        start_date=plan.start_date,
        pace=plan.pace,
        age=plan.age,
        metabolism=plan.metabolism,
        years_using=plan.years_using,
        steps=[step_to_record(s) for s in plan.steps],
        requires_crossover=plan.requires_crossover,
        target_end_date=plan.target_end_date,
    )
    return rec.model_dump(mode="json", by_alias=True)


def plan_from_dict(data: dict) -> TaperPlan:
    """Inverse of plan_to_dict; also accepts plans written by older versions."""
    try:
        rec = PlanRecord.model_validate(data)
    except ValidationError as exc:
        raise StorageError(f"Stored plan is not valid: {exc}") from exc
    return TaperPlan(
        medication=rec.medication,
        start_dose=rec.start_dose,
        start_date=rec.start_date,
        pace=rec.pace,
        age=rec.age,
        metabolism=rec.metabolism,
        years_using=rec.years_using,
        steps=tuple(record_to_step(s) for s in rec.steps),
        requires_crossover=rec.requires_crossover,
        target_end_date=rec.target_end_date,
    )


def plan_to_json(plan: TaperPlan, indent: Optional[int] = None) -> str:
    return json.dumps(plan_to_dict(plan), indent=indent)


def plan_from_json(text: str) -> TaperPlan:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StorageError(f"Stored plan is not JSON: {exc}") from exc
    return plan_from_dict(data)


def entry_to_dict(entry: DailyLogEntry) -> dict:
    values = asdict(entry)
    values["activities"] = list(entry.activities)
    rec = JournalRecord(**values)
    return rec.model_dump(mode="json", by_alias=True)


def entry_from_dict(data: dict) -> DailyLogEntry:
    try:
        rec = JournalRecord.model_validate(data)
    except ValidationError as exc:
        raise StorageError(f"Stored journal entry is not valid: {exc}") from exc
    values = rec.model_dump()
    values["activities"] = tuple(values["activities"])
    return DailyLogEntry(**values)


def journal_to_list(entries) -> list:
    return [entry_to_dict(e) for e in entries]


def journal_from_list(items: list) -> tuple:
    if not isinstance(items, list):
        raise StorageError(f"Stored journal must be a list (got {type(items).__name__}).")
    return tuple(entry_from_dict(item) for item in items)
