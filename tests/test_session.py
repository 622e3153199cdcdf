from fedlink.contracts import CompletionType, StepError, StepRunResult, StepStatus
from fedlink.outputs import OutputKey
from fedlink.session import SetupSession


def test_apply_merges_outputs_and_records_status():
    session = SetupSession("example.com", "tenant-1")
    session.begin("G-1")
    assert session.status_of("G-1") == StepStatus.IN_PROGRESS

    info = session.apply(
        StepRunResult(
            step_id="G-1",
            status=StepStatus.COMPLETED,
            completion_type=CompletionType.SERVER_VERIFIED,
            resource_url="https://admin.google.com/ac/orgunits",
            outputs={OutputKey.AUTOMATION_OU_PATH: "/Automation"},
        )
    )
    assert info.status == StepStatus.COMPLETED
    assert info.metadata["resourceUrl"] == "https://admin.google.com/ac/orgunits"
    assert session.context().output(OutputKey.AUTOMATION_OU_PATH) == "/Automation"


def test_failed_result_keeps_diagnostics_in_metadata():
    session = SetupSession("example.com", "tenant-1")
    session.apply(
        StepRunResult(
            step_id="M-1",
            status=StepStatus.FAILED,
            error=StepError(message="expired", code="AUTH_EXPIRED"),
            diagnostics={"errorCode": "AUTH_EXPIRED"},
        )
    )
    assert session.info("M-1").metadata["diagnostics"] == {"errorCode": "AUTH_EXPIRED"}
    assert "errorCode" not in session.outputs


def test_mark_complete_is_user_marked():
    session = SetupSession("example.com", "tenant-1")
    session.mark_complete("M-10", {OutputKey.FLAG_M10_SSO_TESTED: True})
    info = session.info("M-10")
    assert info.status == StepStatus.COMPLETED
    assert info.completion_type == CompletionType.USER_MARKED
    assert session.outputs.get(OutputKey.FLAG_M10_SSO_TESTED) is True


def test_record_check_only_changes_status_when_completed():
    session = SetupSession("example.com", "tenant-1")
    session.record_check("G-4", False, "not verified", {"errorCode": "X"})
    assert session.status_of("G-4") == StepStatus.PENDING
    assert "errorCode" not in session.outputs
    assert session.info("G-4").metadata["diagnostics"] == {"errorCode": "X"}

    session.record_check("G-4", True, "verified")
    assert session.status_of("G-4") == StepStatus.COMPLETED
    assert "diagnostics" not in session.info("G-4").metadata


def test_snapshot_round_trip_and_reset():
    session = SetupSession("example.com", "tenant-1")
    session.mark_blocked("G-2", ["G-1"])
    session.outputs.merge({OutputKey.AUTOMATION_OU_PATH: "/Automation"})

    restored = SetupSession.from_snapshot(session.snapshot())
    assert restored.status_of("G-2") == StepStatus.BLOCKED
    assert restored.info("G-2").metadata["waitingOn"] == ["G-1"]
    assert restored.outputs.get(OutputKey.AUTOMATION_OU_PATH) == "/Automation"

    restored.reset("G-2")
    assert restored.status_of("G-2") == StepStatus.PENDING
    restored.reset()
    assert len(restored.outputs) == 0
