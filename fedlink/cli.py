"""Command line interface for guided federation setup."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

import typer

from fedlink import build_providers, get_repository, load_config
from fedlink.batch import check_all, run_all_pending
from fedlink.config import FedlinkConfig
from fedlink.contracts import StepRunResult, StepStatus
from fedlink.errors import StepNotFoundError
from fedlink.registry import default_registry
from fedlink.runner import StepRunner
from fedlink.session import SetupSession

T = TypeVar("T")

app = typer.Typer(help="Guided Google Workspace and Microsoft Entra ID federation setup")

# Command groups
steps_app = typer.Typer(help="Inspect the step catalog")
step_app = typer.Typer(help="Check, run or confirm a single step")
progress_app = typer.Typer(help="Inspect or reset saved progress")

app.add_typer(steps_app, name="steps")
app.add_typer(step_app, name="step")
app.add_typer(progress_app, name="progress")

DomainOption = typer.Option(None, "--domain", help="Federated domain (overrides config)")
TenantOption = typer.Option(None, "--tenant-id", help="Entra ID tenant id (overrides config)")
ConfigOption = typer.Option(None, "--config", help="Path to a fedlink YAML config file")


@app.callback()
def main() -> None:
    """fedlink CLI entry point."""
    pass


# ----------------------------------------------------------------------
# Helpers
def _settings(
    config_path: Optional[str], domain: Optional[str], tenant_id: Optional[str]
) -> FedlinkConfig:
    config = load_config(config_path)
    if domain:
        config.domain = domain
    if tenant_id:
        config.tenant_id = tenant_id
    logging.basicConfig(level=config.log_level.upper())
    if not config.domain:
        typer.secho("No domain configured. Pass --domain or set FEDLINK_DOMAIN.", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return config


async def _load_session(config: FedlinkConfig) -> SetupSession:
    repo = get_repository(config=config)
    snapshot = await repo.load_progress(config.domain)
    if snapshot is None:
        return SetupSession(config.domain, config.tenant_id or "")
    session = SetupSession.from_snapshot(snapshot)
    if config.tenant_id:
        session.tenant_id = config.tenant_id
    return session


async def _save_session(config: FedlinkConfig, session: SetupSession) -> None:
    await get_repository(config=config).save_progress(session.snapshot())


async def _with_runner(
    config: FedlinkConfig, action: Callable[[StepRunner, SetupSession], Awaitable[T]]
) -> T:
    session = await _load_session(config)
    providers = build_providers(config)
    try:
        result = await action(StepRunner(default_registry(), providers), session)
    finally:
        await providers.aclose()
    await _save_session(config, session)
    return result


def _resolve_step(step_id: str):
    try:
        return default_registry().get(step_id)
    except StepNotFoundError:
        typer.secho(f"Unknown step: {step_id}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _echo_result(result: StepRunResult) -> None:
    line = f"{result.step_id}\t{result.status.value}"
    if result.message:
        line += f"\t{result.message}"
    typer.echo(line)
    if result.error and result.error.code:
        typer.echo(f"  error: {result.error.code}")
    if result.resource_url:
        typer.echo(f"  url: {result.resource_url}")
    if result.requires_confirmation:
        typer.echo(f"  confirm with: fedlink step complete {result.step_id}")


# ----------------------------------------------------------------------
# steps
@steps_app.command("list")
def steps_list(
    domain: Optional[str] = DomainOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """
    List every step with its automation class, prerequisites and status.

    Example:
        fedlink steps list --domain example.com
        # Output: G-1    automated    -      completed    Create 'Automation' Organizational Unit
    """
    config = _settings(config_path, domain, None)
    session = asyncio.run(_load_session(config))
    for step in default_registry():
        requires = ",".join(sorted(step.requires)) or "-"
        status = session.status_of(step.id).value
        typer.echo(f"{step.id}\t{step.automation_class.value}\t{requires}\t{status}\t{step.title}")


@steps_app.command("show")
def steps_show(step_id: str) -> None:
    """Show a step's description, inputs and outputs."""

    step = _resolve_step(step_id)
    typer.echo(f"{step.id}: {step.title}")
    typer.echo(f"  {step.description}")
    typer.echo(f"  category: {step.category.value}  class: {step.automation_class.value}")
    typer.echo(f"  requires: {', '.join(sorted(step.requires)) or '-'}")
    typer.echo(f"  inputs: {', '.join(step.required_output_keys) or '-'}")
    typer.echo(f"  outputs: {', '.join(step.produced_output_keys) or '-'}")
    if step.admin_url:
        typer.echo(f"  admin: {step.admin_url}")


# ----------------------------------------------------------------------
# step
@step_app.command("check")
def step_check(
    step_id: str,
    domain: Optional[str] = DomainOption,
    tenant_id: Optional[str] = TenantOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """Run a step's read-only check and record the result."""

    _resolve_step(step_id)
    config = _settings(config_path, domain, tenant_id)

    async def action(runner: StepRunner, session: SetupSession) -> bool:
        check = await runner.check(step_id, session.context())
        session.record_check(step_id, check.completed, check.message, check.outputs)
        typer.echo(f"{step_id}\t{'completed' if check.completed else 'not completed'}\t{check.message}")
        return check.completed

    asyncio.run(_with_runner(config, action))


@step_app.command("run")
def step_run(
    step_id: str,
    domain: Optional[str] = DomainOption,
    tenant_id: Optional[str] = TenantOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """
    Check a step and execute it when it is not already complete.

    Exits with code 1 when the step fails.

    Example:
        fedlink step run G-1 --domain example.com --tenant-id <tenant>
    """
    _resolve_step(step_id)
    config = _settings(config_path, domain, tenant_id)

    async def action(runner: StepRunner, session: SetupSession) -> StepRunResult:
        session.begin(step_id)
        result = await runner.run(step_id, session.context())
        session.apply(result)
        return result

    result = asyncio.run(_with_runner(config, action))
    _echo_result(result)
    if result.status == StepStatus.FAILED:
        raise typer.Exit(code=1)


@step_app.command("complete")
def step_complete(
    step_id: str,
    domain: Optional[str] = DomainOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """Confirm that a manual step has been done outside fedlink."""

    step = _resolve_step(step_id)
    config = _settings(config_path, domain, None)

    async def confirm() -> None:
        session = await _load_session(config)
        session.mark_complete(step_id, step.confirmation_outputs)
        await _save_session(config, session)

    asyncio.run(confirm())
    typer.echo(f"{step_id}\tcompleted (user-marked)")


# ----------------------------------------------------------------------
# batch
@app.command("run-all")
def run_all(
    domain: Optional[str] = DomainOption,
    tenant_id: Optional[str] = TenantOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """
    Run every pending automatable step in dependency order.

    Stops at the first failure and exits with code 1. Manual steps are
    skipped; confirm them with 'fedlink step complete'.
    """
    config = _settings(config_path, domain, tenant_id)
    report = asyncio.run(_with_runner(config, run_all_pending))
    for result in report.results:
        _echo_result(result)
    for step_id in report.blocked:
        typer.echo(f"{step_id}\tblocked")
    if report.auth_expired:
        typer.secho("Authentication expired. Sign in again and re-run.", fg=typer.colors.YELLOW)
    if not report.succeeded:
        raise typer.Exit(code=1)


@app.command("refresh")
def refresh(
    domain: Optional[str] = DomainOption,
    tenant_id: Optional[str] = TenantOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """Re-check every incomplete step without executing anything."""

    config = _settings(config_path, domain, tenant_id)
    report = asyncio.run(_with_runner(config, check_all))
    for result in report.results:
        typer.echo(f"{result.step_id}\t{result.status.value}\t{result.message or ''}")
    if report.auth_expired:
        typer.secho("Authentication expired. Sign in again and re-run.", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)


# ----------------------------------------------------------------------
# progress
@progress_app.command("show")
def progress_show(
    domain: Optional[str] = DomainOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """Show saved step statuses and outputs for a domain."""

    config = _settings(config_path, domain, None)
    snapshot = asyncio.run(get_repository(config=config).load_progress(config.domain))
    if snapshot is None:
        typer.echo("No progress found")
        return
    typer.echo(f"Progress for {snapshot.domain} (updated {snapshot.updated_at.isoformat()})")
    for step_id, info in snapshot.steps.items():
        suffix = f" [{info.completion_type.value}]" if info.completion_type else ""
        typer.echo(f"- {step_id}: {info.status.value}{suffix}")
    for key, value in snapshot.outputs.items():
        typer.echo(f"  {key} = {value}")


@progress_app.command("reset")
def progress_reset(
    step_id: Optional[str] = typer.Argument(None, help="Reset only this step"),
    domain: Optional[str] = DomainOption,
    config_path: Optional[str] = ConfigOption,
) -> None:
    """Forget saved progress for a domain, or a single step's status."""

    config = _settings(config_path, domain, None)
    if step_id:
        _resolve_step(step_id)

    async def reset() -> None:
        repo = get_repository(config=config)
        if step_id is None:
            await repo.delete_progress(config.domain)
            return
        session = await _load_session(config)
        session.reset(step_id)
        await repo.save_progress(session.snapshot())

    asyncio.run(reset())
    typer.echo(f"Reset {step_id or 'all progress'} for {config.domain}")
