from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel


class RetryConfig(BaseModel):
    """Bounded retry settings for transient provider failures."""

    attempts: int = 3
    base_delay: float = 1.0
    jitter: float = 0.0


class GoogleConfig(BaseModel):
    """Google Workspace API and admin console endpoints."""

    directory_base: str = "https://admin.googleapis.com/admin/directory/v1"
    identity_base: str = "https://cloudidentity.googleapis.com/v1"
    admin_console_base: str = "https://admin.google.com"
    customer: str = "my_customer"


class MicrosoftConfig(BaseModel):
    """Microsoft Graph, login and portal endpoints."""

    graph_base: str = "https://graph.microsoft.com/v1.0"
    login_base: str = "https://login.microsoftonline.com"
    portal_base: str = "https://portal.azure.com"


class FedlinkConfig(BaseModel):
    """Top-level configuration model."""

    domain: Optional[str] = None
    tenant_id: Optional[str] = None
    database_url: Optional[str] = None
    http_timeout: float = 30.0
    log_level: str = "INFO"
    retry: RetryConfig = RetryConfig()
    google: GoogleConfig = GoogleConfig()
    microsoft: MicrosoftConfig = MicrosoftConfig()


def load_config(path: Optional[str] = None) -> FedlinkConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to FEDLINK_CONFIG env
            variable or 'fedlink.yaml' in the current directory.
    """

    config_path = path or os.getenv("FEDLINK_CONFIG", "fedlink.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = FedlinkConfig(**data)
    else:
        config = FedlinkConfig()

    env_domain = os.getenv("FEDLINK_DOMAIN")
    if env_domain:
        config.domain = env_domain
    env_tenant = os.getenv("FEDLINK_TENANT_ID")
    if env_tenant:
        config.tenant_id = env_tenant
    env_db_url = os.getenv("FEDLINK_DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
