"""disclosure-gov CLI: command-line interface for the governance engine.

Commands:
    init                 Scaffold a project config and database
    datapoint add        Register a data point
    status show          Show a data point and its missing fields
    status set           Change a data point's completeness status
    summary              Section completeness summary
    exceptions add       Record a completion exception
    exceptions list      List completion exceptions for a section
    plans add            Create a remediation plan
    plans list           List remediation plans for a section
    plans complete       Mark a remediation plan completed
    periods add          Register a reporting period
    generations create   Store a report generation from a snapshot file
    generations list     Generation history of a period
    generations show     Show one generation
    generations finalize Mark a generation final
    generations compare  Compare two generations of a period
    generations verify   Re-check a generation's snapshot checksum
    access request       Request access to a section or report
    access list          List access requests
    access approve       Approve a pending access request
    access deny          Deny a pending access request
    audit verify         Verify audit trail chain integrity
    audit show           Show recent audit trail entries
"""

from __future__ import annotations

import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click
import yaml
from pydantic import ValidationError

from disclosure_governance import __version__
from disclosure_governance.completeness.validator import missing_fields
from disclosure_governance.config import CONFIG_FILENAME, GovernanceConfig, load_config
from disclosure_governance.errors import GovernanceError, ValidationFailedError
from disclosure_governance.models import (
    AccessStatus,
    Actor,
    CompletenessStatus,
    DataPoint,
    DifferenceType,
    ExceptionType,
    GenerationStatus,
    PlanStatus,
    Priority,
    ResourceType,
)
from disclosure_governance.sdk.client import GovernanceEngine
from disclosure_governance.storage.sqlite import SQLiteStore

# --- Defaults ---

DEFAULT_STORE = "./governance.db"
DEFAULT_ACTOR = "cli"


def _resolve_cfg() -> GovernanceConfig:
    """Load config from disclosure-governance.yaml (auto-discover, never error)."""
    try:
        return load_config()
    except (OSError, ValueError, yaml.YAMLError):
        return GovernanceConfig()


def _engine(store: str | None) -> GovernanceEngine:
    """Build an engine: explicit --store > config file > default path."""
    cfg = _resolve_cfg()
    return GovernanceEngine(
        store=store or cfg.store or DEFAULT_STORE,
        authorizer=cfg.permissions,
        min_justification_length=cfg.min_justification_length,
    )


def _actor(actor_id: str, actor_name: str | None) -> Actor:
    return Actor(id=actor_id, name=actor_name or "")


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@contextmanager
def _handle_errors() -> Iterator[None]:
    """Print governance errors to stderr and exit 1."""
    try:
        yield
    except ValidationFailedError as exc:
        click.echo(click.style("BLOCKED", fg="red", bold=True) + f" {exc.message}", err=True)
        for missing in exc.missing_fields:
            click.echo(f"  - {missing.field}: {missing.reason}", err=True)
        sys.exit(1)
    except GovernanceError as exc:
        click.echo(click.style(f"{exc.kind.value.upper()}:", fg="red", bold=True)
                   + f" {exc.message}", err=True)
        sys.exit(1)
    except ValidationError as exc:
        click.echo(click.style("INVALID_INPUT:", fg="red", bold=True) + f" {exc}", err=True)
        sys.exit(1)


def _store_option(fn: Any) -> Any:
    return click.option(
        "--store", default=None,
        help=f"Path to the SQLite store (default: config or {DEFAULT_STORE})",
    )(fn)


def _actor_options(fn: Any) -> Any:
    fn = click.option("--actor-name", default=None, help="Display name of the acting user")(fn)
    return click.option(
        "--actor", "actor_id", default=DEFAULT_ACTOR, envvar="DISCLOSURE_GOV_ACTOR",
        help="Id of the acting user",
    )(fn)


def _status_badge(status: str) -> str:
    color = {
        "missing": "red", "incomplete": "yellow",
        "complete": "green", "not applicable": "white",
        "draft": "yellow", "final": "green",
        "planned": "white", "in-progress": "yellow",
        "completed": "green", "cancelled": "white",
        "pending": "yellow", "approved": "green", "denied": "red",
    }.get(status, "white")
    return click.style(f"[{status}]", fg=color)


# --- Root group ---


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Disclosure governance: completeness, remediation and report generations."""


# --- init command ---


_INIT_CONFIG = f"""\
# Disclosure governance project configuration ({CONFIG_FILENAME})

# SQLite store (relative to this file)
store: {DEFAULT_STORE}

# Minimum length of a completion exception justification
min_justification_length: 10

# Action permissions per actor id (fnmatch patterns). Omit to allow all.
# permissions:
#   auditor-1: ["*.get", "*.list*", "generation.compare", "audit.read"]
#   "*": ["access_request.create"]
"""


@cli.command()
@click.argument("directory", default=".")
def init(directory: str) -> None:
    """Scaffold a config file and an empty governance database."""
    root = Path(directory)
    root.mkdir(parents=True, exist_ok=True)

    created: list[str] = []
    skipped: list[str] = []

    config_file = root / CONFIG_FILENAME
    if not config_file.exists():
        config_file.write_text(_INIT_CONFIG, encoding="utf-8")
        created.append(CONFIG_FILENAME)
    else:
        skipped.append(CONFIG_FILENAME)

    db_file = root / Path(DEFAULT_STORE).name
    if not db_file.exists():
        with _handle_errors():
            SQLiteStore(db_file).close()
        created.append(db_file.name)
    else:
        skipped.append(db_file.name)

    if created:
        click.echo(click.style("Created:", fg="green", bold=True))
        for f in created:
            click.echo(f"  + {f}")
    for s in skipped:
        click.echo(f"  skip  {s} (already exists)")


# --- data points and status ---


@cli.group()
def datapoint() -> None:
    """Data point commands."""


@datapoint.command("add")
@click.argument("data_point_id")
@click.option("--section", "section_id", required=True, help="Section id")
@click.option("--title", default="", help="Data point title")
@click.option("--value", default=None, help="Reported value")
@click.option("--period", default=None, help="Reporting period")
@click.option("--deadline", default=None, help="Deadline")
@click.option("--methodology", default=None, help="Methodology")
@click.option("--source", default=None, help="Data source")
@click.option("--owner", "owner_id", default=None, help="Owner id")
@_store_option
@_actor_options
def datapoint_add(
    data_point_id: str,
    section_id: str,
    title: str,
    value: str | None,
    period: str | None,
    deadline: str | None,
    methodology: str | None,
    source: str | None,
    owner_id: str | None,
    store: str | None,
    actor_id: str,
    actor_name: str | None,
) -> None:
    """Register a data point (status starts as missing)."""
    with _handle_errors():
        engine = _engine(store)
        dp = engine.register_data_point(
            DataPoint(
                id=data_point_id, section_id=section_id, title=title, value=value,
                period=period, deadline=deadline, methodology=methodology,
                source=source, owner_id=owner_id,
            ),
            _actor(actor_id, actor_name),
        )
    click.echo(f"Registered {dp.id} in section {dp.section_id} " + _status_badge(dp.completeness_status))


@cli.group()
def status() -> None:
    """Completeness status commands."""


@status.command("show")
@click.argument("data_point_id")
@_store_option
@_actor_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def status_show(
    data_point_id: str, store: str | None, actor_id: str, actor_name: str | None, json_output: bool,
) -> None:
    """Show a data point's status and any missing required fields."""
    with _handle_errors():
        dp = _engine(store).get_data_point(_actor(actor_id, actor_name), data_point_id)
    missing = missing_fields(dp)

    if json_output:
        data = dp.model_dump(mode="json")
        data["missing_fields"] = [m.model_dump() for m in missing]
        _echo_json(data)
        return

    click.echo(_status_badge(dp.completeness_status) + f" {dp.id}  {dp.title}")
    click.echo(f"  section: {dp.section_id}")
    click.echo(f"  version: {dp.version}")
    if missing:
        click.echo("  missing:")
        for m in missing:
            click.echo(f"    - {m.field}: {m.reason}")


@status.command("set")
@click.argument("data_point_id")
@click.argument("new_status", type=click.Choice([s.value for s in CompletenessStatus]))
@click.option("--note", default=None, help="Change note recorded in the audit trail")
@click.option("--expected-version", type=int, default=None, help="Fail if the stored version differs")
@_store_option
@_actor_options
def status_set(
    data_point_id: str,
    new_status: str,
    note: str | None,
    expected_version: int | None,
    store: str | None,
    actor_id: str,
    actor_name: str | None,
) -> None:
    """Change a data point's completeness status."""
    with _handle_errors():
        dp = _engine(store).update_status(
            data_point_id, new_status, _actor(actor_id, actor_name),
            note=note, expected_version=expected_version,
        )
    click.echo(f"{dp.id} " + _status_badge(dp.completeness_status) + f" (version {dp.version})")


@cli.command()
@click.argument("section_id")
@_store_option
@_actor_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def summary(
    section_id: str, store: str | None, actor_id: str, actor_name: str | None, json_output: bool,
) -> None:
    """Completeness summary for a section."""
    with _handle_errors():
        result = _engine(store).summarize_section(_actor(actor_id, actor_name), section_id)

    if json_output:
        _echo_json(result.model_dump(mode="json"))
        return

    click.echo(click.style(f"Section {section_id}", bold=True)
               + f": {result.completion_percentage:.1f}% complete ({result.total} data points)")
    for status_value in CompletenessStatus:
        click.echo(f"  {status_value.value:<15} {result.counts.get(status_value, 0)}")
    for dp_id, missing in result.blocked.items():
        click.echo(f"  blocked {dp_id}: " + ", ".join(m.field for m in missing))


# --- exceptions ---


@cli.group()
def exceptions() -> None:
    """Completion exception commands."""


@exceptions.command("add")
@click.argument("section_id")
@click.option("--title", required=True, help="Short title")
@click.option(
    "--type", "exception_type", required=True,
    type=click.Choice([t.value for t in ExceptionType]), help="Exception type",
)
@click.option("--justification", required=True, help="Why completion is allowed without the data")
@click.option("--data-point", "data_point_id", default=None, help="Limit to one data point")
@click.option("--expires", "expires_at", default=None, help="Expiry date (YYYY-MM-DD)")
@_store_option
@_actor_options
def exceptions_add(
    section_id: str,
    title: str,
    exception_type: str,
    justification: str,
    data_point_id: str | None,
    expires_at: str | None,
    store: str | None,
    actor_id: str,
    actor_name: str | None,
) -> None:
    """Record a completion exception."""
    with _handle_errors():
        exc = _engine(store).create_exception(
            section_id, title, exception_type, justification, _actor(actor_id, actor_name),
            data_point_id=data_point_id, expires_at=expires_at,
        )
    click.echo(f"Created exception {exc.id}")


@exceptions.command("list")
@click.argument("section_id")
@click.option("--active", is_flag=True, help="Hide expired exceptions")
@_store_option
@_actor_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def exceptions_list(
    section_id: str, active: bool, store: str | None,
    actor_id: str, actor_name: str | None, json_output: bool,
) -> None:
    """List completion exceptions of a section, newest first."""
    with _handle_errors():
        items = _engine(store).list_exceptions(
            _actor(actor_id, actor_name), section_id=section_id, include_expired=not active,
        )

    if json_output:
        _echo_json([e.model_dump(mode="json") for e in items])
        return
    if not items:
        click.echo("No completion exceptions.")
        return
    for e in items:
        scope = e.data_point_id or "(whole section)"
        expires = e.expires_at.isoformat() if e.expires_at else "never"
        click.echo(f"  {e.id}  [{e.exception_type.value}]  {scope:<20} expires={expires}  {e.title}")


# --- remediation plans ---


@cli.group()
def plans() -> None:
    """Remediation plan commands."""


@plans.command("add")
@click.argument("section_id")
@click.option("--title", required=True, help="Plan title")
@click.option("--description", default="", help="Description")
@click.option("--target-period", default="", help="Target reporting period")
@click.option("--owner", "owner_id", default="", help="Owner id")
@click.option(
    "--priority", default=Priority.MEDIUM.value,
    type=click.Choice([p.value for p in Priority]), help="Priority",
)
@click.option("--gap", "gap_id", default=None, help="Linked gap id")
@click.option("--assumption", "assumption_id", default=None, help="Linked assumption id")
@click.option("--data-point", "data_point_id", default=None, help="Linked data point id")
@_store_option
@_actor_options
def plans_add(
    section_id: str,
    title: str,
    description: str,
    target_period: str,
    owner_id: str,
    priority: str,
    gap_id: str | None,
    assumption_id: str | None,
    data_point_id: str | None,
    store: str | None,
    actor_id: str,
    actor_name: str | None,
) -> None:
    """Create a remediation plan."""
    with _handle_errors():
        plan = _engine(store).create_plan(
            section_id, title, _actor(actor_id, actor_name),
            description=description, target_period=target_period,
            owner_id=owner_id, priority=priority,
            gap_id=gap_id, assumption_id=assumption_id, data_point_id=data_point_id,
        )
    click.echo(f"Created plan {plan.id}")


@plans.command("list")
@click.argument("section_id")
@_store_option
@_actor_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def plans_list(
    section_id: str, store: str | None, actor_id: str, actor_name: str | None, json_output: bool,
) -> None:
    """List remediation plans of a section, newest first."""
    with _handle_errors():
        items = _engine(store).list_plans(_actor(actor_id, actor_name), section_id)

    if json_output:
        _echo_json([p.model_dump(mode="json") for p in items])
        return
    if not items:
        click.echo("No remediation plans.")
        return
    for p in items:
        click.echo(f"  {p.id}  " + _status_badge(p.status) + f"  [{p.priority.value}]  {p.title}")
    click.echo(f"\n{len(items)} plan(s).")


@plans.command("complete")
@click.argument("plan_id")
@click.option("--note", default=None, help="Completion note")
@_store_option
@_actor_options
def plans_complete(
    plan_id: str, note: str | None, store: str | None, actor_id: str, actor_name: str | None,
) -> None:
    """Mark a remediation plan completed."""
    with _handle_errors():
        plan = _engine(store).complete_plan(plan_id, _actor(actor_id, actor_name), note=note)
    click.echo(click.style(PlanStatus.COMPLETED.value.upper(), fg="green", bold=True) + f" {plan.id}")


# --- periods and generations ---


@cli.group()
def periods() -> None:
    """Reporting period commands."""


@periods.command("add")
@click.argument("period_id")
@click.option("--name", required=True, help="Period name, e.g. FY2025")
@_store_option
@_actor_options
def periods_add(
    period_id: str, name: str, store: str | None, actor_id: str, actor_name: str | None,
) -> None:
    """Register a reporting period."""
    with _handle_errors():
        period = _engine(store).register_period(period_id, name, _actor(actor_id, actor_name))
    click.echo(f"Registered period {period.id} ({period.name})")


@cli.group()
def generations() -> None:
    """Report generation commands."""


@generations.command("create")
@click.argument("period_id")
@click.argument("snapshot_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--variant", "variant_name", default=None, help="Variant name")
@click.option("--note", default=None, help="Generation note")
@_store_option
@_actor_options
def generations_create(
    period_id: str,
    snapshot_file: str,
    variant_name: str | None,
    note: str | None,
    store: str | None,
    actor_id: str,
    actor_name: str | None,
) -> None:
    """Store a generation from a JSON or YAML snapshot file."""
    try:
        snapshot = yaml.safe_load(Path(snapshot_file).read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        click.echo(f"Cannot parse snapshot file: {exc}", err=True)
        sys.exit(1)
    with _handle_errors():
        gen = _engine(store).create_generation(
            period_id, snapshot, _actor(actor_id, actor_name), variant_name=variant_name, note=note,
        )
    click.echo(f"Created generation {gen.id}  checksum={gen.checksum}")


@generations.command("list")
@click.argument("period_id")
@_store_option
@_actor_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def generations_list(
    period_id: str, store: str | None, actor_id: str, actor_name: str | None, json_output: bool,
) -> None:
    """Generation history of a period, newest first."""
    with _handle_errors():
        items = _engine(store).list_history(_actor(actor_id, actor_name), period_id)

    if json_output:
        _echo_json([g.model_dump(mode="json") for g in items])
        return
    if not items:
        click.echo("No generations.")
        return
    for g in items:
        click.echo(
            f"  {g.id}  " + _status_badge(g.status)
            + f"  {g.generated_at.isoformat()[:19]}  by={g.generated_by}"
            + f"  sections={g.section_count} data_points={g.data_point_count}"
        )
    click.echo(f"\n{len(items)} generation(s).")


@generations.command("show")
@click.argument("generation_id")
@_store_option
@_actor_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def generations_show(
    generation_id: str, store: str | None, actor_id: str, actor_name: str | None, json_output: bool,
) -> None:
    """Show details of one generation."""
    with _handle_errors():
        gen = _engine(store).get_generation(_actor(actor_id, actor_name), generation_id)

    if json_output:
        _echo_json(gen.model_dump(mode="json"))
        return
    click.echo(_status_badge(gen.status) + f" {gen.id}")
    click.echo(f"  period:      {gen.period_id}")
    click.echo(f"  checksum:    {gen.checksum}")
    click.echo(f"  generated:   {gen.generated_at.isoformat()[:19]} by {gen.generated_by}")
    click.echo(f"  sections:    {gen.section_count}")
    click.echo(f"  data points: {gen.data_point_count}")
    if gen.variant_name:
        click.echo(f"  variant:     {gen.variant_name}")
    if gen.status == GenerationStatus.FINAL and gen.marked_final_at:
        click.echo(f"  final:       {gen.marked_final_at.isoformat()[:19]} by {gen.marked_final_by}")


@generations.command("finalize")
@click.argument("generation_id")
@click.option("--note", default=None, help="Finalization note")
@_store_option
@_actor_options
def generations_finalize(
    generation_id: str, note: str | None, store: str | None, actor_id: str, actor_name: str | None,
) -> None:
    """Mark a generation as the final version."""
    with _handle_errors():
        gen = _engine(store).mark_final(generation_id, _actor(actor_id, actor_name), note=note)
    click.echo(click.style("FINAL", fg="green", bold=True) + f" {gen.id}")


@generations.command("compare")
@click.argument("generation_id1")
@click.argument("generation_id2")
@_store_option
@_actor_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def generations_compare(
    generation_id1: str,
    generation_id2: str,
    store: str | None,
    actor_id: str,
    actor_name: str | None,
    json_output: bool,
) -> None:
    """Compare two generations of the same period."""
    with _handle_errors():
        result = _engine(store).compare_generations(
            _actor(actor_id, actor_name), generation_id1, generation_id2,
        )

    if json_output:
        _echo_json(result.to_dict())
        return

    s = result.summary
    click.echo(
        f"Sections: +{s.sections_added} -{s.sections_removed} ~{s.sections_modified}"
        f" ={s.sections_unchanged}   Data points: +{s.data_points_added}"
        f" -{s.data_points_removed} ~{s.data_points_modified}"
    )
    for diff in result.section_differences:
        if diff.difference_type == DifferenceType.UNCHANGED:
            continue
        click.echo(f"  [{diff.difference_type.value}] {diff.section_title or diff.section_id}")
        for change in diff.changes:
            click.echo(f"    - {change}")
    if result.changed_data_sources:
        click.echo("Changed data sources: " + ", ".join(result.changed_data_sources))


@generations.command("verify")
@click.argument("generation_id")
@_store_option
@_actor_options
def generations_verify(
    generation_id: str, store: str | None, actor_id: str, actor_name: str | None,
) -> None:
    """Re-check a generation's snapshot against its stored checksum."""
    with _handle_errors():
        ok = _engine(store).verify_generation(_actor(actor_id, actor_name), generation_id)
    if ok:
        click.echo(click.style("VALID", fg="green", bold=True) + f": snapshot matches checksum ({generation_id})")
    else:
        click.echo(click.style("INVALID", fg="red", bold=True) + f": snapshot does not match checksum ({generation_id})")
        sys.exit(1)


# --- access requests ---


@cli.group()
def access() -> None:
    """Access request commands."""


@access.command("request")
@click.argument("resource_type", type=click.Choice([r.value for r in ResourceType]))
@click.argument("resource_id")
@click.option("--reason", required=True, help="Why access is needed")
@click.option("--resource-name", default="", help="Display name of the resource")
@_store_option
@_actor_options
def access_request(
    resource_type: str,
    resource_id: str,
    reason: str,
    resource_name: str,
    store: str | None,
    actor_id: str,
    actor_name: str | None,
) -> None:
    """Request access to a restricted section or report."""
    with _handle_errors():
        req = _engine(store).create_access_request(
            _actor(actor_id, actor_name), resource_type, resource_id, reason,
            resource_name=resource_name,
        )
    click.echo(f"Created access request {req.id} " + _status_badge(req.status))


@access.command("list")
@click.option(
    "--status", "status_filter", default=None,
    type=click.Choice([s.value for s in AccessStatus]), help="Filter by status",
)
@_store_option
@_actor_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def access_list(
    status_filter: str | None, store: str | None,
    actor_id: str, actor_name: str | None, json_output: bool,
) -> None:
    """List access requests, newest first."""
    with _handle_errors():
        items = _engine(store).list_access_requests(_actor(actor_id, actor_name), status=status_filter)

    if json_output:
        _echo_json([r.model_dump(mode="json") for r in items])
        return
    if not items:
        click.echo("No access requests.")
        return
    for r in items:
        click.echo(
            f"  {r.id}  " + _status_badge(r.status)
            + f"  {r.resource_type.value}/{r.resource_id}  by={r.requested_by}"
        )
        click.echo(f"    reason: {r.reason}")
    click.echo(f"\n{len(items)} request(s).")


def _resolve_access(
    request_id: str, outcome: AccessStatus, comment: str | None,
    store: str | None, actor_id: str, actor_name: str | None,
) -> None:
    with _handle_errors():
        req = _engine(store).resolve_access_request(
            request_id, outcome, _actor(actor_id, actor_name), comment=comment,
        )
    color = "green" if req.status == AccessStatus.APPROVED else "red"
    click.echo(click.style(req.status.value.upper(), fg=color, bold=True) + f" {req.id}")


@access.command("approve")
@click.argument("request_id")
@click.option("--comment", default=None, help="Resolution comment")
@_store_option
@_actor_options
def access_approve(
    request_id: str, comment: str | None, store: str | None, actor_id: str, actor_name: str | None,
) -> None:
    """Approve a pending access request."""
    _resolve_access(request_id, AccessStatus.APPROVED, comment, store, actor_id, actor_name)


@access.command("deny")
@click.argument("request_id")
@click.option("--comment", default=None, help="Resolution comment")
@_store_option
@_actor_options
def access_deny(
    request_id: str, comment: str | None, store: str | None, actor_id: str, actor_name: str | None,
) -> None:
    """Deny a pending access request."""
    _resolve_access(request_id, AccessStatus.DENIED, comment, store, actor_id, actor_name)


# --- audit ---


@cli.group()
def audit() -> None:
    """Audit trail commands."""


@audit.command("verify")
@_store_option
@_actor_options
def audit_verify(store: str | None, actor_id: str, actor_name: str | None) -> None:
    """Verify audit trail chain integrity."""
    with _handle_errors():
        engine = _engine(store)
        is_valid, errors = engine.audit_verify(_actor(actor_id, actor_name))

    if is_valid:
        click.echo(click.style("VALID", fg="green", bold=True) + ": audit trail chain is intact")
    else:
        click.echo(click.style("INVALID", fg="red", bold=True) + f": {len(errors)} error(s) found:")
        for error in errors:
            click.echo(f"  - {error}")
        sys.exit(1)


@audit.command("show")
@click.option("--last", "count", default=20, help="Number of entries to show")
@click.option("--entity-type", default=None, help="Filter by entity type, e.g. DataPoint")
@click.option("--entity-id", default=None, help="Filter by entity id")
@_store_option
@_actor_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def audit_show(
    count: int,
    entity_type: str | None,
    entity_id: str | None,
    store: str | None,
    actor_id: str,
    actor_name: str | None,
    json_output: bool,
) -> None:
    """Show recent audit trail entries, newest first."""
    with _handle_errors():
        entries = _engine(store).audit_trail(
            _actor(actor_id, actor_name), entity_type=entity_type, entity_id=entity_id, limit=count,
        )

    if json_output:
        _echo_json([e.model_dump(mode="json") for e in entries])
        return
    if not entries:
        click.echo("No audit entries found.")
        return
    for entry in entries:
        click.echo(
            f"  {entry.timestamp.isoformat()[:19]}  "
            + click.style(f"{entry.action:<15}", fg="cyan")
            + f" {entry.entity_type}/{entry.entity_id}  actor={entry.actor_id}"
        )
        for change in entry.changes:
            click.echo(f"      {change.field}: {change.old_value!r} -> {change.new_value!r}")
    click.echo(f"\n{len(entries)} entr{'y' if len(entries) == 1 else 'ies'} shown.")
