import pytest

import fedlink.persistence as persistence
from fedlink.contracts import CompletionType, StepStatus, StepStatusInfo
from fedlink.persistence import (
    InMemoryProgressRepository,
    ProgressSnapshot,
    SQLiteProgressRepository,
    get_repository,
)


def _snapshot(domain="example.com"):
    return ProgressSnapshot(
        domain=domain,
        tenant_id="tenant-1",
        steps={
            "G-1": StepStatusInfo(
                status=StepStatus.COMPLETED,
                completion_type=CompletionType.SERVER_VERIFIED,
                metadata={"resourceUrl": "https://admin.google.com/ac/orgunits"},
            ),
            "G-2": StepStatusInfo(status=StepStatus.FAILED),
        },
        outputs={"g1AutomationOuPath": "/Automation", "flagM10SsoTested": True},
    )


@pytest.mark.asyncio
async def test_sqlite_repository_crud(tmp_path):
    repo = SQLiteProgressRepository(tmp_path / "progress.db")

    await repo.save_progress(_snapshot())
    loaded = await repo.load_progress("example.com")
    assert loaded is not None
    assert loaded.tenant_id == "tenant-1"
    assert loaded.steps["G-1"].status == StepStatus.COMPLETED
    assert loaded.steps["G-1"].completion_type == CompletionType.SERVER_VERIFIED
    assert loaded.steps["G-1"].metadata["resourceUrl"].startswith("https://admin.google.com")
    assert loaded.outputs == {"g1AutomationOuPath": "/Automation", "flagM10SsoTested": True}

    await repo.save_progress(_snapshot("other.org"))
    assert [s.domain for s in await repo.list_progress()] == ["example.com", "other.org"]

    await repo.delete_progress("example.com")
    assert await repo.load_progress("example.com") is None
    repo.close()


@pytest.mark.asyncio
async def test_sqlite_save_replaces_previous_snapshot(tmp_path):
    repo = SQLiteProgressRepository(tmp_path / "progress.db")
    snapshot = _snapshot()
    await repo.save_progress(snapshot)
    snapshot.steps["G-2"] = StepStatusInfo(status=StepStatus.COMPLETED)
    await repo.save_progress(snapshot)

    all_snapshots = await repo.list_progress()
    assert len(all_snapshots) == 1
    assert all_snapshots[0].steps["G-2"].status == StepStatus.COMPLETED
    repo.close()


@pytest.mark.asyncio
async def test_inmemory_repository_returns_copies():
    repo = InMemoryProgressRepository()
    snapshot = _snapshot()
    await repo.save_progress(snapshot)
    snapshot.outputs["g1AutomationOuPath"] = "/Changed"

    loaded = await repo.load_progress("example.com")
    assert loaded.outputs["g1AutomationOuPath"] == "/Automation"
    loaded.outputs.clear()
    assert (await repo.load_progress("example.com")).outputs


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    monkeypatch.delenv("FEDLINK_DATABASE_URL", raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)
    monkeypatch.setattr(persistence, "_repository_url", None)

    sqlite_repo = get_repository(f"sqlite://{tmp_path / 'p.db'}")
    assert isinstance(sqlite_repo, SQLiteProgressRepository)
    assert get_repository() is sqlite_repo
    sqlite_repo.close()

    with pytest.raises(ValueError):
        get_repository("postgresql://localhost/db")
