"""
Command-line interface for field dispatch.
Provides commands for snapshot import, slot search, suggestions and assignment.
"""

import json
import logging
from datetime import datetime
from pathlib import Path

import click

from .errors import DispatchError
from .service import DispatchService
from .util.time_utils import format_date_label, format_time_display


logger = logging.getLogger(__name__)


def _parse_day(value: str):
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise click.BadParameter(f"expected YYYY-MM-DD, got {value!r}")


def _service(ctx) -> DispatchService:
    service = DispatchService(ctx.obj['config_path'], ctx.obj.get('database_url'))
    try:
        service.apply_overrides(ctx.obj.get('overrides'))
    except DispatchError as e:
        raise click.ClickException(str(e))
    return service


@click.group()
@click.option('--config', default='config/params.yaml', help='Configuration file path')
@click.option('--db', 'database_url', default=None, help='Database URL override')
@click.option('--buffer', type=int, help='Override scheduling.buffer_minutes')  # CLI > YAML
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def main(ctx, config: str, database_url: str, buffer: int, verbose: bool):
    """Field Dispatch CLI."""
    # Setup logging
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Store options in context
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['database_url'] = database_url
    ctx.obj['overrides'] = {'scheduling.buffer_minutes': buffer} if buffer is not None else {}


@main.command('import-snapshot')
@click.argument('input_file', type=click.Path(exists=True))
@click.option('--clear', is_flag=True, help='Remove existing jobs first')
@click.pass_context
def import_snapshot(ctx, input_file: str, clear: bool):
    """Import jobs and technicians from a JSON snapshot file."""
    service = _service(ctx)
    try:
        data = json.loads(Path(input_file).read_text())
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON in {input_file}: {e}")

    stats = service.import_snapshot(
        data.get('jobs', []), data.get('technicians', []), clear_existing=clear
    )

    click.echo("Import completed:")
    click.echo(f"  Jobs imported: {stats.jobs_imported}")
    click.echo(f"  Technicians imported: {stats.technicians_imported}")
    if stats.errors:
        click.echo("\nRejected rows:")
        for error in stats.errors:
            click.echo(f"  - {error}")


@main.command()
@click.option('--date', 'day', required=True, help='Day to search (YYYY-MM-DD)')
@click.option('--tech', 'tech_id', default=None, help="Search one technician's calendar")
@click.option('--duration', type=int, default=None, help='Required minutes (default: business default)')
@click.pass_context
def slots(ctx, day: str, tech_id: str, duration: int):
    """List open windows for a day."""
    service = _service(ctx)
    target = _parse_day(day)
    try:
        found = service.find_slots(target, tech_id=tech_id, duration_minutes=duration)
    except DispatchError as e:
        raise click.ClickException(str(e))

    if not found:
        click.echo(f"No open windows on {format_date_label(target)}.")
        return
    click.echo(f"Open windows on {format_date_label(target)}:")
    for slot in found:
        click.echo(f"  {format_time_display(slot.start_minute)} - {format_time_display(slot.end_minute)}"
                   f"  ({slot.duration_minutes} min, {slot.kind})")


@main.command()
@click.option('--job', 'job_id', required=True, help='Job to schedule')
@click.option('--days', type=int, default=None, help='Days ahead to analyze')
@click.pass_context
def suggest(ctx, job_id: str, days: int):
    """Rank candidate appointment times for a job."""
    service = _service(ctx)
    try:
        result = service.suggest_times(job_id, days_to_analyze=days)
    except DispatchError as e:
        raise click.ClickException(str(e))

    for warning in result.warnings:
        click.echo(f"! {warning.message}")
    if not result.suggestions:
        click.echo("No openings found in the analyzed window.")
    for s in result.suggestions:
        marker = '*' if s.is_recommended else ' '
        click.echo(f"{marker} {s.date_label}  {s.time_label}  score {s.score}: {', '.join(s.reasons)}")
    for insight in result.insights:
        click.echo(f"i {insight.message}")


@main.command('auto-assign')
@click.option('--date', 'day', required=True, help='Dispatch day (YYYY-MM-DD)')
@click.option('--commit', is_flag=True, help='Save the assignments')
@click.pass_context
def auto_assign(ctx, day: str, commit: bool):
    """Assign every unassigned job on a day."""
    service = _service(ctx)
    result = service.auto_assign(_parse_day(day), commit=commit)

    click.echo(f"Assigned {result.summary['assigned']}/{result.summary['total']} jobs"
               f"{'' if commit else ' (dry run)'}")
    for a in result.successful:
        click.echo(f"  {a.job.label} -> {a.tech.display_name} (score {a.score})")
    for f in result.failed:
        click.echo(f"  {f.job.label}: {f.reason}")


@main.command()
@click.option('--job', 'job_id', required=True, help='Job to assign')
@click.option('--tech', 'tech_id', required=True, help='Technician receiving the job')
@click.option('--start', default=None, help='New start (YYYY-MM-DDTHH:MM)')
@click.option('--override', is_flag=True, help='Commit despite hard conflicts')
@click.pass_context
def assign(ctx, job_id: str, tech_id: str, start: str, override: bool):
    """Assign a job to a technician."""
    service = _service(ctx)
    try:
        scheduled_start = datetime.fromisoformat(start) if start else None
        job = service.assign_job_to_tech(job_id, tech_id, scheduled_start=scheduled_start, override=override)
    except ValueError as e:
        raise click.BadParameter(str(e))
    except DispatchError as e:
        raise click.ClickException(str(e))
    click.echo(f"{job.label} assigned to {tech_id} ({job.status.value})")


@main.command()
@click.option('--job', 'job_id', required=True, help='Job to unassign')
@click.pass_context
def unassign(ctx, job_id: str):
    """Remove the technician from a job."""
    service = _service(ctx)
    try:
        job = service.unassign_job(job_id)
    except DispatchError as e:
        raise click.ClickException(str(e))
    click.echo(f"{job.label} is unassigned")


@main.command()
@click.option('--tech', 'tech_id', required=True, help='Technician')
@click.option('--date', 'day', required=True, help='Day (YYYY-MM-DD)')
@click.pass_context
def route(ctx, tech_id: str, day: str):
    """Suggest a stop order for a technician's day."""
    service = _service(ctx)
    try:
        comparison = service.route_for_technician(tech_id, _parse_day(day))
    except DispatchError as e:
        raise click.ClickException(str(e))

    plan = comparison.optimized
    if not plan.ordered_jobs:
        click.echo("No stops booked.")
        return
    for i, leg in enumerate(plan.legs, 1):
        distance = f"{leg.miles:.1f} mi" if leg.miles is not None else "distance unknown"
        click.echo(f"  {i}. {leg.to_job.label} ({distance})")
    click.echo(f"Total: {plan.total_miles:.1f} mi, ~{plan.total_travel_minutes} min driving")
    if comparison.improved:
        click.echo(f"Saves {comparison.miles_saved:.1f} mi over the booked order")


@main.command()
@click.pass_context
def status(ctx):
    """Show service health and data summary."""
    service = _service(ctx)
    health = service.health_check()
    click.echo("Status:")
    click.echo("=" * 30)
    click.echo(f"Database: {'✓' if health['database_connected'] else '✗'}")
    click.echo(f"Jobs: {health['jobs']}")
    click.echo(f"Technicians: {len(service.repo.get_technicians())}")


@main.command()
@click.option('--host', default='0.0.0.0', help='Bind address')
@click.option('--port', default=8000, type=int, help='Port')
def serve(host: str, port: int):
    """Start the FastAPI server."""
    import uvicorn

    click.echo("Starting Field Dispatch API server...")
    click.echo(f"API documentation: http://localhost:{port}/docs")
    uvicorn.run("dispatcher.api:app", host=host, port=port)


if __name__ == '__main__':
    main()
