"""
HUBZone CLI - Command Line Interface

Entry point for zone lookups, single and bulk verification, and history.
"""

import json
import logging
import time

import click
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.table import Table
from tabulate import tabulate

from hubzone import __version__
from hubzone.config import config
from hubzone.errors import HubzoneError

RISK_COLORS = {
    "low": "green",
    "medium": "yellow",
    "high": "red",
    "critical": "magenta",
}


class HubzoneGroup(click.Group):
    """Turns engine errors from any subcommand into a red message and exit 1."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except HubzoneError as e:
            click.echo(click.style(f"Error: {e}", fg="red"), err=True)
            raise SystemExit(1)


@click.group(cls=HubzoneGroup)
@click.version_option(version=__version__, prog_name="hubzone")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, verbose):
    """HUBZone - Eligibility & Compliance Verification Engine.

    Resolves locations against designated zones, verifies business
    compliance and runs bulk verification jobs.
    """
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=logging.DEBUG if verbose else config.log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _date_option(help_text="Evaluation date (default today)"):
    return click.option("--date", "as_of", type=click.DateTime(formats=["%Y-%m-%d"]), help=help_text)


def _load_holder():
    """Build the zone index from the configured dataset."""
    from hubzone.geo import ZoneIndexHolder, ZoneRefresher

    if config.zones_file is None:
        click.echo(click.style("No zone dataset configured.", fg="red"))
        click.echo("Set zones.data_file in config.yaml or HUBZONE_ZONES_FILE.")
        raise SystemExit(1)

    holder = ZoneIndexHolder()
    ZoneRefresher(holder, config.zones_file).refresh()
    return holder


def _build_service(holder=None):
    from hubzone.verification import (
        CachingResolver,
        HttpGeocoder,
        SqlBusinessSource,
        SqlVerificationStore,
        VerificationService,
    )

    geocoder = CachingResolver(HttpGeocoder()) if config.geocoder_url else None
    return VerificationService(
        source=SqlBusinessSource(),
        holder=holder if holder is not None else _load_holder(),
        store=SqlVerificationStore(),
        geocoder=geocoder,
    )


def _risk(level: str) -> str:
    return click.style(level.upper(), fg=RISK_COLORS.get(level, "white"))


def _yes_no(value) -> str:
    if value is None:
        return "-"
    return click.style("Yes", fg="green") if value else click.style("No", fg="red")


# =============================================================================
# Init & Config Commands
# =============================================================================

@cli.command()
@click.option("--drop", is_flag=True, help="Drop existing tables before creating")
def init(drop):
    """Initialize the database and create all tables."""
    from sqlalchemy import text
    from hubzone.database import init_db, drop_db, get_engine

    click.echo("Initializing HUBZone database...")

    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        click.echo(f"  Connected to: {config.database_url.split('@')[-1]}")
    except Exception as e:
        click.echo(click.style(f"  Database connection failed: {e}", fg="red"))
        click.echo("\nCheck your config.yaml database settings or environment variables.")
        raise SystemExit(1)

    if drop:
        if click.confirm("This will DELETE all verification history. Continue?"):
            click.echo("  Dropping existing tables...")
            drop_db()
        else:
            click.echo("Aborted.")
            return

    click.echo("  Creating tables...")
    init_db()
    click.echo(click.style("Database initialized successfully!", fg="green"))


@cli.command("config")
@click.option("--show", is_flag=True, help="Show current configuration")
def show_config(show):
    """View configuration."""
    if show:
        from hubzone.compliance import ComplianceRules

        url = config.database_url
        click.echo("\n=== Current Configuration ===\n")
        click.echo(f"Database URL: {url.split('@')[1] if '@' in url else url}")
        click.echo(f"Zone dataset: {config.zones_file or '[NOT SET]'}")
        click.echo(f"Zone refresh: every {config.zone_refresh_hours} hours")
        click.echo(f"Compliance scan: daily at {config.compliance_scan_hour:02d}:00")
        click.echo(f"Geocoder: {config.geocoder_url or '[NOT SET]'} ({config.geocoder_timeout}s timeout, cache {config.geocoder_cache_size})")
        click.echo(f"Bulk: max {config.bulk_max_batch_size} identifiers, {config.bulk_max_workers} workers")
        click.echo("\nCompliance Rules:")
        rules = ComplianceRules.from_config()
        for key, value in vars(rules).items():
            click.echo(f"  {key}: {value}")
    else:
        click.echo("Edit config.yaml directly or set environment variables.")
        click.echo("Use 'hubzone config --show' to view current settings.")


# =============================================================================
# Zone Commands
# =============================================================================

# Negative longitudes would otherwise parse as unknown short options
COORDINATE_ARGS = {"ignore_unknown_options": True}


@cli.group()
def zones():
    """Zone lookup commands."""
    pass


@zones.command("check", context_settings=COORDINATE_ARGS)
@click.argument("latitude", type=float)
@click.argument("longitude", type=float)
@_date_option()
def zones_check(latitude, longitude, as_of):
    """Check whether a coordinate is in a designated zone."""
    from hubzone.eligibility import EligibilityResolver
    from hubzone.geo import Coordinate

    coordinate = Coordinate(latitude, longitude).validate()
    holder = _load_holder()
    verdict = EligibilityResolver(holder).resolve(coordinate, as_of.date() if as_of else None)

    color = "green" if verdict.is_eligible else "red"
    click.echo(f"\n{coordinate.latitude}, {coordinate.longitude} on {verdict.as_of}: "
               + click.style(verdict.state.value.upper(), fg=color, bold=True))
    if verdict.zone_id:
        click.echo(f"  Zone: {verdict.zone_id} ({verdict.zone_name})")
        click.echo(f"  Designation: {verdict.designation_type.value}")
    if verdict.is_in_grace_period:
        click.echo(f"  Grace period ends {verdict.grace_period_end} "
                   f"({verdict.grace_period_days_remaining} days remaining)")

    overlapping = holder.current().resolve(coordinate)
    if len(overlapping) > 1:
        click.echo("\nAll overlapping zones:")
        click.echo(tabulate(
            [[z.zone_id, z.designation_type.value, z.status.value, z.effective_date,
              z.expiration_date or "-"] for z in overlapping],
            headers=["Zone", "Designation", "Status", "Effective", "Expires"],
            tablefmt="simple",
        ))


@zones.command("nearest", context_settings=COORDINATE_ARGS)
@click.argument("latitude", type=float)
@click.argument("longitude", type=float)
@click.option("--limit", "-n", default=5, help="Number of zones to show")
def zones_nearest(latitude, longitude, limit):
    """List the zones closest to a coordinate."""
    from hubzone.geo import Coordinate

    coordinate = Coordinate(latitude, longitude).validate()
    found = _load_holder().current().nearest(coordinate, limit=limit)
    _print_zone_distances(found)


@zones.command("radius", context_settings=COORDINATE_ARGS)
@click.argument("latitude", type=float)
@click.argument("longitude", type=float)
@click.argument("miles", type=float)
def zones_radius(latitude, longitude, miles):
    """List zones within MILES of a coordinate (capped at 50 miles)."""
    from hubzone.geo import Coordinate, MAX_RADIUS_MILES

    coordinate = Coordinate(latitude, longitude).validate()
    if miles > MAX_RADIUS_MILES:
        click.echo(click.style(f"Radius capped at {MAX_RADIUS_MILES:g} miles", fg="yellow"))
    _print_zone_distances(_load_holder().current().within_radius(coordinate, miles))


def _print_zone_distances(found):
    if not found:
        click.echo("No zones found.")
        return

    click.echo(tabulate(
        [[z.zone_id, z.name[:40], z.designation_type.value, z.status.value, f"{d:.2f}"]
         for z, d in found],
        headers=["Zone", "Name", "Designation", "Status", "Miles"],
        tablefmt="simple",
    ))


# =============================================================================
# Verification Commands
# =============================================================================

@cli.command()
@click.argument("uei")
@_date_option()
@click.option("--user", "-u", help="Name recorded as the requester")
@click.option("--json", "as_json", is_flag=True, help="Print the full verification as JSON")
def verify(uei, as_of, user, as_json):
    """Verify one business by UEI."""
    from hubzone.verification import NotFound

    service = _build_service()
    outcome = service.verify(uei, as_of=as_of.date() if as_of else None, triggered_by=user)

    if isinstance(outcome, NotFound):
        click.echo(click.style(f"{outcome.identifier}: {outcome.message}", fg="red"))
        raise SystemExit(1)

    if as_json:
        click.echo(json.dumps(outcome.to_dict(), indent=2))
        return

    b = outcome.breakdown
    click.echo(f"\n=== {outcome.business_name} ({outcome.uei}) ===\n")
    click.echo(f"Status: {outcome.status.value}")
    click.echo(f"Risk: {_risk(outcome.risk_level.value)} (score {outcome.risk_score})")
    click.echo(f"Office zone: {outcome.verdict.state.value}"
               + (f" ({outcome.verdict.zone_id})" if outcome.verdict.zone_id else ""))
    click.echo()
    click.echo(tabulate(
        [
            ["Residency", _yes_no(b.residency.is_compliant),
             f"{b.residency.percentage}% of {b.residency.total_employees} (need {b.residency.threshold}%)"],
            ["Office", _yes_no(b.office.is_compliant), b.office.verdict],
            ["Ownership", _yes_no(b.ownership.is_compliant),
             f"{b.ownership.percentage}%, citizen owned: {'yes' if b.ownership.citizen_owned else 'no'}"],
            ["Certification", _yes_no(b.certification.is_compliant),
             f"{b.certification.status or 'none'}, expires {b.certification.expiration_date or '-'}"],
        ],
        headers=["Fact", "Compliant", "Details"],
        tablefmt="simple",
    ))

    if outcome.risk_factors:
        click.echo("\nRisk factors:")
        for factor in outcome.risk_factors:
            click.echo(f"  -{factor.points:>3}  {factor.description}")

    if outcome.recommendations:
        click.echo("\nRecommendations:")
        for action in outcome.recommendations:
            click.echo(f"  * {action}")

    if outcome.next_review_date:
        click.echo(f"\nNext review: {outcome.next_review_date}")


@cli.command()
@click.argument("uei")
@click.option("--agency", "-a", required=True, help="Requesting agency name")
@click.option("--verifier", help="Name of the person verifying")
def report(uei, agency, verifier):
    """Build a verification report (JSON) for certificate rendering."""
    from hubzone.verification import NotFound

    outcome = _build_service().report(uei, agency_name=agency, verifier_name=verifier)
    if isinstance(outcome, NotFound):
        click.echo(click.style(f"{outcome.identifier}: {outcome.message}", fg="red"))
        raise SystemExit(1)

    click.echo(json.dumps(outcome.to_dict(), indent=2))


# =============================================================================
# Bulk Commands
# =============================================================================

@cli.group()
def bulk():
    """Bulk verification commands."""
    pass


def _bulk_display(job) -> Table:
    """Create the progress display table."""
    progress = job.progress()
    summary = job.summary()

    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Job", style="bold", width=34)
    table.add_column("Status", width=12)
    table.add_column("Progress", justify="right", width=14)
    table.add_column("Outcomes", ratio=1)

    status_styles = {
        "pending": "[dim]pending[/dim]",
        "processing": "[yellow]processing[/yellow]",
        "completed": "[green]completed[/green]",
        "failed": "[red]failed[/red]",
        "cancelled": "[dim]cancelled[/dim]",
    }
    outcomes = (
        f"[green]{summary.compliant} compliant[/green]  "
        f"[yellow]{summary.non_compliant} non-compliant[/yellow]  "
        f"{summary.expired} expired  "
        f"[dim]{summary.not_found} not found[/dim]  "
        f"[red]{summary.errors} errors[/red]"
    )
    table.add_row(
        job.job_id,
        status_styles.get(progress.status.value, progress.status.value),
        f"{progress.processed}/{progress.total} ({progress.percent:.0f}%)",
        outcomes,
    )
    for warning in job.warnings:
        table.add_row("", "[yellow]warning[/yellow]", "", warning)
    return table


@bulk.command("run")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write results to CSV")
@click.option("--workers", "-w", type=int, help="Concurrent verifications")
@click.option("--user", "-u", help="Name recorded as the requester")
@_date_option()
def bulk_run(file, output, workers, user, as_of):
    """Verify every UEI listed in FILE."""
    from hubzone.bulk import BulkVerificationOrchestrator, export_csv

    console = Console()
    orchestrator = BulkVerificationOrchestrator(_build_service(), max_workers=workers)
    job = orchestrator.submit_file(file, requested_by=user)
    console.print(f"Submitted {len(job.identifiers):,} identifiers as job {job.job_id}")

    future = orchestrator.start(job, as_of=as_of.date() if as_of else None)
    try:
        with Live(_bulk_display(job), console=console, refresh_per_second=4) as live:
            while not future.done():
                live.update(_bulk_display(job))
                time.sleep(0.25)
            live.update(_bulk_display(job))
    except KeyboardInterrupt:
        console.print("[yellow]Cancelling, waiting for in-flight verifications...[/yellow]")
        orchestrator.cancel(job.job_id)
    finally:
        result = future.result()
        orchestrator.shutdown()

    summary = result.summary
    console.print()
    if result.status.value == "completed":
        console.print(f"[green]✓ Job complete:[/green] {result.processed:,} verified, "
                      f"{summary.compliant:,} compliant")
    else:
        console.print(f"[yellow]⚠ Job {result.status.value}:[/yellow] "
                      f"{result.processed:,}/{result.total_requested:,} processed"
                      + (f" ({result.error_message})" if result.error_message else ""))

    if output:
        rows = export_csv(result, output)
        console.print(f"Wrote {rows:,} rows to {output}")


# =============================================================================
# History Commands
# =============================================================================

@cli.group()
def history():
    """Verification history commands."""
    pass


@history.command("list")
@click.option("--uei", help="Only this business")
@click.option("--status", type=click.Choice(["valid", "expired", "non_compliant", "pending"]))
@click.option("--risk", type=click.Choice(["low", "medium", "high", "critical"]))
@click.option("--since", type=click.DateTime(formats=["%Y-%m-%d"]), help="Verified on or after")
@click.option("--until", type=click.DateTime(formats=["%Y-%m-%d"]), help="Verified on or before")
@click.option("--limit", "-n", default=20, help="Number of records to show")
def history_list(uei, status, risk, since, until, limit):
    """List past verifications, newest first."""
    from hubzone.compliance import RiskLevel, VerificationStatus
    from hubzone.verification import SqlVerificationStore, VerificationFilters

    filters = VerificationFilters(
        uei=uei,
        status=VerificationStatus(status) if status else None,
        risk_level=RiskLevel(risk) if risk else None,
        start=since.date() if since else None,
        end=until.date() if until else None,
        limit=limit,
    )
    records = SqlVerificationStore().query(filters)

    if not records:
        click.echo("No verifications found.")
        return

    click.echo(tabulate(
        [[
            v.verified_at.strftime("%Y-%m-%d %H:%M"),
            v.uei,
            v.business_name[:40],
            v.status.value,
            _risk(v.risk_level.value),
            v.risk_score,
            v.method,
            v.triggered_by or "-",
        ] for v in records],
        headers=["Verified", "UEI", "Business", "Status", "Risk", "Score", "Method", "By"],
        tablefmt="simple",
    ))


# =============================================================================
# Scheduler Command
# =============================================================================

@cli.command()
@click.option("--no-scan", is_flag=True, help="Only refresh zone data, skip the nightly compliance scan")
def scheduler(no_scan):
    """Run zone refresh and the nightly compliance scan until interrupted."""
    from hubzone.bulk import BulkVerificationOrchestrator
    from hubzone.geo import ZoneIndexHolder, ZoneRefresher
    from hubzone.scheduler import run_scheduler

    if config.zones_file is None:
        click.echo(click.style("No zone dataset configured.", fg="red"))
        raise SystemExit(1)

    # The scan verifies against whatever index the refresh job last published
    holder = ZoneIndexHolder()
    refresher = ZoneRefresher(holder, config.zones_file)
    orchestrator = None if no_scan else BulkVerificationOrchestrator(_build_service(holder))

    click.echo("Starting scheduler...")
    click.echo(f"Zone refresh interval: {config.zone_refresh_hours} hours")
    if orchestrator is not None:
        click.echo(f"Compliance scan: daily at {config.compliance_scan_hour:02d}:00")

    run_scheduler(refresher, orchestrator)


if __name__ == "__main__":
    cli()
