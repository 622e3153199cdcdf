import pytest

from fedlink.batch import run_all_pending
from fedlink.contracts import CompletionType, StepStatus
from fedlink.outputs import OutputKey
from fedlink.persistence import SQLiteProgressRepository
from fedlink.registry import default_registry
from fedlink.session import SetupSession


async def _reload(repo, session):
    await repo.save_progress(session.snapshot())
    return SetupSession.from_snapshot(await repo.load_progress(session.domain))


@pytest.mark.asyncio
async def test_full_federation_setup(tmp_path, runner, session, graph_fake):
    repo = SQLiteProgressRepository(tmp_path / "progress.db")
    registry = default_registry()

    first = await run_all_pending(runner, session)
    assert first.succeeded
    assert first.blocked == ["M-4", "M-5"]
    assert "M-3" in first.skipped and "M-10" in first.skipped
    assert session.status_of("M-9") == StepStatus.PENDING
    assert session.info("M-9").metadata["requiresConfirmation"] is True
    for step_id in ("G-1", "G-2", "G-3", "G-4", "G-5", "M-1", "M-2", "M-6", "M-7", "M-8", "G-6", "G-7", "G-8"):
        assert session.status_of(step_id) == StepStatus.COMPLETED, step_id

    # The admin authorizes provisioning in the portal, which creates the job.
    graph_fake.add_job(session.outputs.get(OutputKey.PROVISIONING_SP_OBJECT_ID))
    session.mark_complete("M-3", registry.get("M-3").confirmation_outputs)
    session = await _reload(repo, session)

    second = await run_all_pending(runner, session)
    assert second.succeeded
    assert second.executed == ["M-4", "M-5", "M-9"]
    assert session.outputs.get(OutputKey.PROVISIONING_JOB_ID) == "GoogleApps.job1"
    assert session.status_of("M-5") == StepStatus.COMPLETED

    graph_fake.assign_user(session.outputs.get(OutputKey.SAML_SSO_SP_OBJECT_ID))
    session = await _reload(repo, session)
    third = await run_all_pending(runner, session)
    assert third.executed == ["M-9"]
    assert session.info("M-9").completion_type == CompletionType.SERVER_VERIFIED

    session.mark_complete("M-10", registry.get("M-10").confirmation_outputs)
    session = await _reload(repo, session)
    assert all(session.status_of(s.id) == StepStatus.COMPLETED for s in registry)
    assert session.info("M-10").completion_type == CompletionType.USER_MARKED
    assert session.outputs.get(OutputKey.FLAG_M10_SSO_TESTED) is True
    repo.close()


@pytest.mark.asyncio
async def test_rerun_after_completion_executes_nothing(runner, session, google_fake, graph_fake):
    await run_all_pending(runner, session)
    google_calls = google_fake.count("create_org_unit")

    again = await run_all_pending(runner, session)
    assert again.executed == ["M-9"]
    assert again.blocked == ["M-4", "M-5"]
    assert google_fake.count("create_org_unit") == google_calls
    assert graph_fake.count("instantiate_template") == 2
