"""Typed output keys and the accumulating output store."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from .errors import OutputTypeError


class OutputKey(str, Enum):
    """Well-known keys produced by steps and consumed downstream."""

    AUTOMATION_OU_PATH = "g1AutomationOuPath"
    AUTOMATION_OU_ID = "g1AutomationOuId"
    SERVICE_ACCOUNT_EMAIL = "g2ServiceAccountEmail"
    SERVICE_ACCOUNT_ID = "g2ServiceAccountId"
    SUPER_ADMIN_ROLE_ID = "g3SuperAdminRoleId"
    GOOGLE_SAML_PROFILE_NAME = "g5GoogleSsoProfileName"
    GOOGLE_SAML_PROFILE_FULL_NAME = "g5GoogleSsoProfileFullName"
    GOOGLE_SAML_SP_ENTITY_ID = "g5GoogleSamlSpEntityId"
    GOOGLE_SAML_ACS_URL = "g5GoogleSamlAcsUrl"
    PROVISIONING_APP_ID = "m1ProvisioningAppId"
    PROVISIONING_APP_OBJECT_ID = "m1ProvisioningAppObjectId"
    PROVISIONING_SP_OBJECT_ID = "m1ProvisioningSpObjectId"
    PROVISIONING_JOB_ID = "m3ProvisioningJobId"
    SAML_SSO_APP_ID = "m6SamlSsoAppId"
    SAML_SSO_APP_OBJECT_ID = "m6SamlSsoAppObjectId"
    SAML_SSO_SP_OBJECT_ID = "m6SamlSsoSpObjectId"
    IDP_CERTIFICATE_BASE64 = "m8IdpCertificateBase64"
    IDP_SSO_URL = "m8IdpSsoUrl"
    IDP_ENTITY_ID = "m8IdpEntityId"
    FLAG_M2_PROV_APP_PROPS_CONFIGURED = "flagM2ProvAppPropsConfigured"
    FLAG_M3_PROV_CREDS_CONFIGURED = "flagM3ProvCredsConfigured"
    FLAG_M4_PROV_MAPPINGS_CONFIGURED = "flagM4ProvMappingsConfigured"
    FLAG_M7_SAML_APP_SETTINGS_CONFIGURED = "flagM7SamlAppSettingsConfigured"
    FLAG_M10_SSO_TESTED = "flagM10SsoTested"

    def __str__(self) -> str:
        return self.value


_FLAGS = {
    OutputKey.FLAG_M2_PROV_APP_PROPS_CONFIGURED,
    OutputKey.FLAG_M3_PROV_CREDS_CONFIGURED,
    OutputKey.FLAG_M4_PROV_MAPPINGS_CONFIGURED,
    OutputKey.FLAG_M7_SAML_APP_SETTINGS_CONFIGURED,
    OutputKey.FLAG_M10_SSO_TESTED,
}

OUTPUT_TYPES: Dict[str, type] = {
    key.value: (bool if key in _FLAGS else str) for key in OutputKey
}


# Reported by checks and failed executes; kept in status metadata only.
DIAGNOSTIC_KEYS = frozenset(
    {
        "errorCode",
        "errorMessage",
        "errorStatus",
        "errorProvider",
        "requiresReauth",
        "provisioningJobState",
    }
)


def split_outputs(
    values: Optional[Mapping[str, Any]],
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Separate real outputs from diagnostics.

    Returns ``(outputs, diagnostics)``. Anything that is not a diagnostic key
    is an output, whether or not the step that produced it succeeded.
    """

    outputs: Dict[str, Any] = {}
    diagnostics: Dict[str, Any] = {}
    for key, value in (values or {}).items():
        if str(key) in DIAGNOSTIC_KEYS:
            diagnostics[str(key)] = value
        else:
            outputs[str(key)] = value
    return outputs, diagnostics


def validate_output(key: str, value: Any) -> None:
    """Raise ``OutputTypeError`` if a well-known key holds the wrong type.

    ``None`` is accepted for every key so a step can clear a slot.
    """

    expected = OUTPUT_TYPES.get(str(key))
    if expected is None or value is None:
        return
    if expected is str and isinstance(value, str):
        return
    if expected is bool and isinstance(value, bool):
        return
    raise OutputTypeError(str(key), expected, value)


def is_present(value: Any) -> bool:
    """Return ``True`` when ``value`` is set and non-empty."""

    if value is None:
        return False
    if isinstance(value, (str, list, tuple, dict, set)):
        return len(value) > 0
    return True


def missing_keys(outputs: Mapping[str, Any], keys) -> list[str]:
    return [str(k) for k in keys if not is_present(outputs.get(str(k)))]


class OutputStore:
    """Flat mapping of values produced by steps.

    The store only grows through :meth:`merge`; later values overwrite
    earlier ones under the same key.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = {}
        if initial:
            self.merge(initial)

    def merge(self, delta: Optional[Mapping[str, Any]]) -> None:
        if not delta:
            return
        normalized = {str(k): v for k, v in delta.items()}
        for key, value in normalized.items():
            validate_output(key, value)
        self._values.update(normalized)

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(str(key), default)

    def snapshot(self) -> Dict[str, Any]:
        """Return a copy suitable for handing to a step."""
        return dict(self._values)

    def clear(self) -> None:
        self._values.clear()

    def keys(self):
        return self._values.keys()

    def __contains__(self, key: object) -> bool:
        return str(key) in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)
