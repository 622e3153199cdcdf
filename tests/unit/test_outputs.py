import pytest

from fedlink.errors import OutputTypeError
from fedlink.outputs import (
    OutputKey,
    OutputStore,
    is_present,
    missing_keys,
    split_outputs,
    validate_output,
)


def test_merge_accumulates_and_overwrites():
    store = OutputStore()
    store.merge({OutputKey.AUTOMATION_OU_PATH: "/Automation"})
    store.merge({OutputKey.AUTOMATION_OU_PATH: "/Automation2", "note": "free-form"})

    assert store.get(OutputKey.AUTOMATION_OU_PATH) == "/Automation2"
    assert store.get("g1AutomationOuPath") == "/Automation2"
    assert store.get("note") == "free-form"
    assert len(store) == 2
    assert OutputKey.AUTOMATION_OU_PATH in store


def test_merge_rejects_wrong_types_without_partial_writes():
    store = OutputStore({OutputKey.IDP_SSO_URL: "https://login"})
    with pytest.raises(OutputTypeError):
        store.merge(
            {
                OutputKey.IDP_ENTITY_ID: "https://sts",
                OutputKey.FLAG_M10_SSO_TESTED: "yes",
            }
        )
    assert OutputKey.IDP_ENTITY_ID not in store


def test_snapshot_is_a_copy():
    store = OutputStore({OutputKey.SAML_SSO_APP_ID: "app"})
    snapshot = store.snapshot()
    snapshot["other"] = 1
    assert "other" not in store


def test_flags_must_be_bool_and_none_is_allowed():
    validate_output(OutputKey.FLAG_M2_PROV_APP_PROPS_CONFIGURED, True)
    validate_output(OutputKey.PROVISIONING_JOB_ID, None)
    with pytest.raises(OutputTypeError) as exc_info:
        validate_output(OutputKey.FLAG_M2_PROV_APP_PROPS_CONFIGURED, 1)
    assert exc_info.value.code == "INVALID_OUTPUT"


def test_presence_treats_empty_values_as_missing():
    assert not is_present(None)
    assert not is_present("")
    assert not is_present([])
    assert is_present(False)
    assert missing_keys(
        {"a": "x", "b": "", "c": None}, ["a", "b", "c", OutputKey.IDP_SSO_URL]
    ) == ["b", "c", "m8IdpSsoUrl"]


def test_split_outputs_separates_error_keys():
    outputs, diagnostics = split_outputs(
        {
            OutputKey.PROVISIONING_JOB_ID: "job-1",
            "provisioningJobState": "Disabled",
            "errorCode": "HTTP_400",
            "customNote": "kept",
        }
    )
    assert outputs == {"m3ProvisioningJobId": "job-1", "customNote": "kept"}
    assert diagnostics == {"provisioningJobState": "Disabled", "errorCode": "HTTP_400"}
    assert split_outputs(None) == ({}, {})
