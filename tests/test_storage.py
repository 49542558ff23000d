import json
from datetime import date

import pytest

from taperengine.errors import StorageError
from taperengine.schedule import generate
from taperengine.storage import PLAN_KEY, JsonFileStore, MemoryStore, PlanRepository
from taperengine.tracking import toggle_day_completion
from taperengine.types import DailyLogEntry, Medication, TaperPace


@pytest.fixture(params=["memory", "file"])
def repo(request, tmp_path):
    if request.param == "memory":
        return PlanRepository(MemoryStore())
    return PlanRepository(JsonFileStore(tmp_path / "nested" / "store.json"))


def test_empty_store_has_no_plan(repo):
    assert repo.load() is None
    assert repo.load_journal() == ()
    assert repo.disclaimer_accepted() is False


def test_save_then_load_plan(repo):
    plan = generate(Medication.LORAZEPAM, 1.0, TaperPace.SLOW, "2024-01-01")
    plan = toggle_day_completion(plan, "step-crossover-1", 0)
    repo.save(plan)
    assert repo.load() == plan

    repo.clear()
    assert repo.load() is None


def test_journal_upserts_by_date(repo):
    repo.save_entry(DailyLogEntry(date=date(2024, 1, 2), stress=2))
    repo.save_entry(DailyLogEntry(date=date(2024, 1, 1), stress=1))
    entries = repo.save_entry(DailyLogEntry(date=date(2024, 1, 2), stress=6))

    assert [e.stress for e in entries] == [1, 6]
    assert repo.load_journal() == entries


def test_disclaimer_flag(repo):
    repo.accept_disclaimer()
    assert repo.disclaimer_accepted() is True


def test_file_store_persists_across_instances(tmp_path):
    path = tmp_path / "store.json"
    plan = generate(Medication.DIAZEPAM, 4.0, TaperPace.ASHTON, "2024-01-01")
    PlanRepository(JsonFileStore(path)).save(plan)

    assert PlanRepository(JsonFileStore(path)).load() == plan
    on_disk = json.loads(path.read_text())
    assert json.loads(on_disk[PLAN_KEY])["startDose"] == 4.0
    assert not list(tmp_path.glob("*.tmp"))


def test_corrupt_file_raises(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("not json at all")
    with pytest.raises(StorageError):
        PlanRepository(JsonFileStore(path)).load()


def test_corrupt_plan_value_raises():
    repo = PlanRepository(MemoryStore({PLAN_KEY: "{broken"}))
    with pytest.raises(StorageError):
        repo.load()
