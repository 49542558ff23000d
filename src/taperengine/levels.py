# src/taperengine/levels.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np
from scipy.integrate import solve_ivp

from .medications import MEDICATION_PROFILES, REFERENCE_MEDICATION
from .models.elimination import oral_first_order
from .timeline import daily_doses
from .types import MedicationProfile, TaperPlan

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24.0
DEFAULT_ABSORPTION_RATE_PER_H = 1.0
TAIL_HALF_LIVES = 5


@dataclass(frozen=True)
class LoadProfile:
    """
    Estimated drug in the body over the course of a taper.

    t_h     : sample times (hours from the first dose)
    by_drug : drug name -> body load (mg diazepam-equivalent) at each sample
    """
    t_h: np.ndarray
    by_drug: Dict[str, np.ndarray]

    @property
    def total(self) -> np.ndarray:
        out = np.zeros_like(self.t_h)
        for load in self.by_drug.values():
            out = out + load
        return out

    def peak(self) -> float:
        return float(np.max(self.total)) if self.t_h.size else 0.0


def elimination_rate(profile: MedicationProfile) -> float:
    """ke (1/h) from the middle of the profile's half-life range."""
    return math.log(2.0) / profile.mean_half_life_h


def simulate_daily_oral(daily_mg: np.ndarray, ka_per_h: float, ke_per_h: float,
                        t_end_h: float, dt_h: float = 6.0):
    """
    Integrate one oral dose per day (daily_mg[i] taken at t = 24*i hours).

    Each day is a separate solve_ivp segment with the dose added to the gut
    compartment at its start.

    Returns:
      t : sample times (h), 0 .. t_end_h every dt_h
      A : body load (mg) at those times
    """
    _validate_positive("ka_per_h", ka_per_h)
    _validate_positive("ke_per_h", ke_per_h)
    _validate_positive("t_end_h", t_end_h)
    _validate_positive("dt_h", dt_h)

    t_grid = np.arange(0.0, t_end_h + dt_h / 2.0, dt_h)
    y0 = [0.0, 0.0]

    def rhs(t, y):
        return oral_first_order(t, y, ka_per_h, ke_per_h)

    t_out: list[float] = []
    A_out: list[float] = []
    n_days = int(math.ceil(t_end_h / HOURS_PER_DAY))
    for day in range(n_days):
        seg_start = day * HOURS_PER_DAY
        seg_end = min(seg_start + HOURS_PER_DAY, t_end_h)
        if day < len(daily_mg):
            y0[0] += float(daily_mg[day])

        # First segment keeps t=0; later ones start just after the boundary
        if day == 0:
            t_eval_seg = t_grid[(t_grid >= seg_start) & (t_grid <= seg_end)]
        else:
            t_eval_seg = t_grid[(t_grid > seg_start) & (t_grid <= seg_end)]
        # Always evaluate at seg_end so the carried state is the boundary state
        if t_eval_seg.size == 0 or t_eval_seg[-1] < seg_end:
            eval_pts = np.append(t_eval_seg, seg_end)
        else:
            eval_pts = t_eval_seg

        sol = solve_ivp(rhs, t_span=(seg_start, seg_end), y0=y0, method="RK45",
                        t_eval=eval_pts, rtol=1e-6, atol=1e-9)
        n_keep = t_eval_seg.size
        t_out.extend(sol.t[:n_keep].tolist())
        A_out.extend(sol.y[1, :n_keep].tolist())
        y0 = [float(sol.y[0, -1]), float(sol.y[1, -1])]

    t_arr = np.asarray(t_out, dtype=float)
    A_arr = np.maximum(np.asarray(A_out, dtype=float), 0.0)
    return t_arr, A_arr


def estimate_body_load(plan: TaperPlan, dt_h: float = 6.0,
                       absorption_rate_per_h: float = DEFAULT_ABSORPTION_RATE_PER_H,
                       tail_days: Optional[int] = None) -> LoadProfile:
    """
    Body load of every drug in the plan, one oral dose per day.

    During crossover the starting medication (converted to diazepam-equivalent
    mg) and diazepam are simulated separately with their own half-lives.
    tail_days extends the horizon past the last dose; by default long enough
    for 5 diazepam half-lives.
    """
    diazepam = MEDICATION_PROFILES[REFERENCE_MEDICATION]
    if tail_days is None:
        tail_days = int(math.ceil(TAIL_HALF_LIVES * diazepam.mean_half_life_h / HOURS_PER_DAY))
    t_end_h = (plan.total_days + tail_days) * HOURS_PER_DAY

    schedules: Dict[str, tuple[np.ndarray, MedicationProfile]] = {
        diazepam.name: (daily_doses(plan.steps, "diazepam_dose"), diazepam),
    }
    if plan.requires_crossover:
        original = MEDICATION_PROFILES[plan.medication]
        eq_doses = daily_doses(plan.steps, "original_med_dose") * original.diazepam_equivalence
        schedules[original.name] = (eq_doses, original)

    t = np.zeros(0)
    by_drug: Dict[str, np.ndarray] = {}
    for name, (doses, profile) in schedules.items():
        t, load = simulate_daily_oral(doses, absorption_rate_per_h, elimination_rate(profile),
                                      t_end_h=t_end_h, dt_h=dt_h)
        by_drug[name] = load
    logger.debug("Simulated body load for %s over %.0f h (%d samples)",
                 ", ".join(by_drug), t_end_h, t.size)
    return LoadProfile(t_h=t, by_drug=by_drug)


def _validate_positive(name: str, x: float) -> None:
    if not (x > 0):
        raise ValueError(f"{name} must be > 0 (got {x}).")
