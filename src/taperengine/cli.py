"""CLI for the taper tracker: generate a plan, tick off days, keep a symptom journal."""

from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from pathlib import Path

import click
import numpy as np

from .config import TaperConfig, load_config
from .errors import ConfigError, TaperError
from .journal import needs_attention, stability_status, step_guidance
from .levels import estimate_body_load
from .log import configure_logging
from .medications import DISCLAIMER_TEXT, MEDICATION_PROFILES, parse_medication
from .schedule import generate, parse_date, parse_pace
from .serialization import plan_from_json, plan_to_json
from .storage import JsonFileStore, PlanRepository
from .timeline import active_step, progress, step_date_ranges
from .tracking import extend_step_by_one_day, toggle_day_completion
from .types import METABOLISMS, BiologicalFactors, DailyLogEntry, TaperPace, TaperPlan

logger = logging.getLogger(__name__)

PACE_CHOICES = [p.name.lower() for p in TaperPace]


@dataclass
class CliState:
    config: TaperConfig
    repo: PlanRepository


@contextmanager
def _reported():
    """Turn domain errors into a clean click error and exit status 1."""
    try:
        yield
    except TaperError as exc:
        raise click.ClickException(str(exc)) from exc


def _require_plan(repo: PlanRepository) -> TaperPlan:
    plan = repo.load()
    if plan is None:
        raise click.ClickException("No plan yet. Run 'taper generate' first.")
    return plan


def _print_schedule(plan: TaperPlan) -> None:
    profile = MEDICATION_PROFILES[plan.medication]
    click.echo(f"{profile.name} {plan.start_dose:g} mg/day, {plan.pace.value}, starting {plan.start_date}")
    if plan.requires_crossover:
        click.echo(f"Crossover: {profile.name} is substituted with diazepam before reductions begin.")
    for span in step_date_ranges(plan):
        step = span.step
        mark = "x" if step.is_completed else " "
        original = f" + {step.original_med_dose:.3g} mg {profile.name}" if step.original_med_dose and plan.requires_crossover else ""
        click.echo(
            f"[{mark}] {step.id:<18} {step.phase:<9} wk {math.ceil(step.week):>3}  "
            f"{span.start} to {span.end}  {step.diazepam_dose:6.2f} mg diazepam{original}  "
            f"({step.days_done}/{step.duration_days} days)"
        )


@click.group()
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="Path to taper.toml")
@click.option("--store", "store_path", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="Override the plan/journal store file")
@click.option("--log-level", default=None, help="Override the configured log level")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, store_path: Path | None, log_level: str | None) -> None:
    """Benzodiazepine taper planner based on the Ashton Manual."""
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    configure_logging(level=log_level or config.logging.level, fmt=config.logging.format)
    path = store_path or config.storage.path
    logger.debug("Using store %s", path)
    ctx.obj = CliState(config=config, repo=PlanRepository(JsonFileStore(path)))


@cli.command()
def medications() -> None:
    """List supported medications and their diazepam equivalence."""
    for med, profile in MEDICATION_PROFILES.items():
        click.echo(f"{med.name.lower():<17} {med.value:<28} half-life {profile.half_life_label:<12} "
                   f"1 mg = {profile.diazepam_equivalence:g} mg diazepam")


@cli.command("generate")
@click.argument("medication")
@click.argument("dose", type=float)
@click.option("--pace", type=click.Choice(PACE_CHOICES), default="moderate", show_default=True)
@click.option("--start", "start", default=None, help="Start date (YYYY-MM-DD), default today")
@click.option("--target-end", default=None, help="Target end date, required for --pace custom")
@click.option("--age", type=click.IntRange(min=0), default=None)
@click.option("--metabolism", type=click.Choice(METABOLISMS), default="average", show_default=True)
@click.option("--years-using", type=click.FloatRange(min=0), default=None)
@click.option("--yes", is_flag=True, help="Accept the medical disclaimer without prompting")
@click.pass_obj
def generate_cmd(state: CliState, medication: str, dose: float, pace: str, start: str | None,
                 target_end: str | None, age: int | None, metabolism: str, years_using: float | None,
                 yes: bool) -> None:
    """Create a new plan, replacing any saved one."""
    repo = state.repo
    with _reported():
        if not repo.disclaimer_accepted():
            if not yes:
                click.echo(DISCLAIMER_TEXT)
                click.confirm("I understand this is not medical advice", abort=True)
            repo.accept_disclaimer()
        plan = generate(
            parse_medication(medication),
            dose,
            parse_pace(pace),
            start or date.today().isoformat(),
            BiologicalFactors(age=age, metabolism=metabolism, years_using=years_using),  # type: ignore[arg-type]
            target_end_date=target_end,
        )
        repo.save(plan)
    _print_schedule(plan)


@cli.command()
@click.pass_obj
def show(state: CliState) -> None:
    """Print the saved schedule with calendar dates."""
    with _reported():
        plan = _require_plan(state.repo)
    _print_schedule(plan)


@cli.command()
@click.argument("step_id")
@click.argument("day", type=click.IntRange(min=1))
@click.pass_obj
def toggle(state: CliState, step_id: str, day: int) -> None:
    """Mark DAY (1-based) of STEP_ID done, or undo it."""
    with _reported():
        plan = toggle_day_completion(_require_plan(state.repo), step_id, day - 1)
        state.repo.save(plan)
    step = next(s for s in plan.steps if s.id == step_id)
    status = "done" if step.completed_days[day - 1] else "not done"
    click.echo(f"{step_id} day {day}: {status} ({step.days_done}/{step.duration_days})")


@cli.command()
@click.argument("step_id")
@click.pass_obj
def extend(state: CliState, step_id: str) -> None:
    """Hold STEP_ID one more day; later dates shift forward."""
    with _reported():
        plan = extend_step_by_one_day(_require_plan(state.repo), step_id)
        state.repo.save(plan)
    step = next(s for s in plan.steps if s.id == step_id)
    click.echo(f"{step_id} now lasts {step.duration_days} days")


@cli.command("log")
@click.argument("day", default=None, required=False)
@click.option("--stress", type=click.IntRange(0, 10), default=0)
@click.option("--tremors", type=click.IntRange(0, 10), default=0)
@click.option("--dizziness", type=click.IntRange(0, 10), default=0)
@click.option("--sleep-quality", type=click.IntRange(0, 10), default=5)
@click.option("--sleep-hours", type=click.FloatRange(0, 24), default=7.0)
@click.option("--tinnitus", type=click.IntRange(0, 10), default=None)
@click.option("--nausea", type=click.IntRange(0, 10), default=None)
@click.option("--systolic", type=click.IntRange(min=0), default=None)
@click.option("--diastolic", type=click.IntRange(min=0), default=None)
@click.option("--medications", "other_meds", default="", help="Other medications taken")
@click.option("--activity", "activities", multiple=True)
@click.option("--notes", default="")
@click.pass_obj
def log_cmd(state: CliState, day: str | None, stress: int, tremors: int, dizziness: int,
            sleep_quality: int, sleep_hours: float, tinnitus: int | None, nausea: int | None,
            systolic: int | None, diastolic: int | None, other_meds: str,
            activities: tuple[str, ...], notes: str) -> None:
    """Record symptoms for DAY (YYYY-MM-DD, default today); replaces that day's entry."""
    with _reported():
        entry = DailyLogEntry(
            date=parse_date(day, "day") if day else date.today(),
            stress=stress, tremors=tremors, dizziness=dizziness,
            sleep_quality=sleep_quality, sleep_hours=sleep_hours,
            tinnitus=tinnitus, nausea=nausea,
            systolic=systolic, diastolic=diastolic,
            medications=other_meds, activities=activities, notes=notes,
        )
        entries = state.repo.save_entry(entry)
    click.echo(f"Saved entry for {entry.date} ({len(entries)} in journal)")
    if needs_attention(entry):
        click.echo("Warning: these readings are concerning. Consider contacting your prescriber.")


@cli.command()
@click.pass_obj
def status(state: CliState) -> None:
    """Current step, progress and symptom stability."""
    with _reported():
        plan = _require_plan(state.repo)
        entries = state.repo.load_journal()
    click.echo(f"Progress: {progress(plan):.0%} of {plan.total_days} days")
    click.echo(f"Stability: {stability_status(entries)}")
    step = active_step(plan)
    if step is None:
        click.echo("All steps complete.")
        return
    click.echo(f"Current step: {step.id} ({step.phase}), {step.reference_dose_equivalent:.2f} mg "
               f"diazepam-equivalent, {step.days_done}/{step.duration_days} days")
    advice = step_guidance(step, entries)
    if advice:
        click.echo(advice)


@cli.command()
@click.option("--every-days", type=click.IntRange(min=1), default=7, show_default=True)
@click.pass_obj
def levels(state: CliState, every_days: int) -> None:
    """Estimated diazepam-equivalent body load over the plan."""
    cfg = state.config.levels
    with _reported():
        plan = _require_plan(state.repo)
    profile = estimate_body_load(plan, dt_h=cfg.dt_h, absorption_rate_per_h=cfg.absorption_rate_per_h)
    total = profile.total
    click.echo(f"Peak estimated load: {profile.peak():.1f} mg")
    for day in range(0, int(profile.t_h[-1] // 24) + 1, every_days):
        idx = int(np.argmin(np.abs(profile.t_h - day * 24.0)))
        click.echo(f"day {day + 1:>4}  {total[idx]:8.2f} mg")


@cli.command("export")
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.pass_obj
def export_cmd(state: CliState, output: Path | None) -> None:
    """Write the saved plan as JSON (stdout by default)."""
    with _reported():
        text = plan_to_json(_require_plan(state.repo), indent=2)
    if output is None:
        click.echo(text)
    else:
        output.write_text(text, encoding="utf-8")
        click.echo(f"Wrote {output}")


@cli.command("import")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def import_cmd(state: CliState, source: Path) -> None:
    """Replace the saved plan with one read from a JSON file."""
    with _reported():
        plan = plan_from_json(source.read_text(encoding="utf-8"))
        state.repo.save(plan)
    click.echo(f"Imported plan with {len(plan.steps)} steps")


@cli.command()
@click.confirmation_option(prompt="Delete the saved plan?")
@click.pass_obj
def reset(state: CliState) -> None:
    """Delete the saved plan (the journal is kept)."""
    with _reported():
        state.repo.clear()
    click.echo("Plan deleted.")


def main() -> None:
    cli()
