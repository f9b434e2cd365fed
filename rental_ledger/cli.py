"""CLI for Rental Ledger: trigger and inspect recurring expense generation."""

import asyncio
import json
import logging
import sys

import click

from rental_ledger import __version__
from rental_ledger.models.expense import GenerationOptions
from rental_ledger.orchestrator import RecurringFlow, create_app_components
from rental_ledger.periods.codec import InvalidPeriod, Period, decode_period
from rental_ledger.services.storage import EntityKind, PathResolutionError


class PeriodParamType(click.ParamType):
    """A YYYY-MM period on the command line."""

    name = "YYYY-MM"

    def convert(self, value, param, ctx) -> Period:
        if isinstance(value, Period):
            return value
        try:
            return decode_period(value)
        except InvalidPeriod as e:
            self.fail(str(e), param, ctx)


PERIOD = PeriodParamType()


def _flow(ctx: click.Context) -> RecurringFlow:
    """The flow injected by the caller, or one built from settings."""
    if ctx.obj is None:
        ctx.obj, _ = create_app_components()
    return ctx.obj


def _options(source, target, dry_run: bool = False) -> GenerationOptions:
    return GenerationOptions(
        source_year=source.year if source else None,
        source_month=source.month if source else None,
        target_year=target.year if target else None,
        target_month=target.month if target else None,
        dry_run=dry_run,
    )


def _echo_json(model) -> None:
    click.echo(json.dumps(model.to_dict(), indent=2, ensure_ascii=False))


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Show info-level logs")
def cli(verbose: bool) -> None:
    """Rental Ledger: recurring expenses for rental properties."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        stream=sys.stderr,
    )


@cli.command()
@click.option("--source", type=PERIOD, help="Period to copy from (default: current month)")
@click.option("--target", type=PERIOD, help="Period to copy into (default: month after source)")
@click.option("--dry-run", is_flag=True, help="Report what would be created without writing")
@click.option("--scheduled", is_flag=True, help="Audit the run as triggered by the scheduler, not an operator")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
@click.pass_context
def generate(
    ctx: click.Context, source, target, dry_run: bool, scheduled: bool, as_json: bool
) -> None:
    """Copy recurring expenses from one month into the next."""
    flow = _flow(ctx)
    try:
        result = asyncio.run(
            flow.generate(_options(source, target, dry_run), is_user_action=not scheduled)
        )
    except InvalidPeriod as e:
        raise click.ClickException(str(e))

    if as_json:
        _echo_json(result)
    else:
        summary = result.summary
        mode = " (dry run)" if dry_run else ""
        click.echo(f"{summary.source_period} -> {summary.target_period}{mode}")
        if not result.success:
            click.echo(f"Generation failed: {result.error}")
        else:
            click.echo(
                f"Created: {result.created}  Skipped: {result.skipped}  "
                f"Errors: {len(result.errors)}  Properties: {summary.properties_processed}"
            )
            for error in result.errors:
                scope = error.item_id or error.property_id
                click.echo(f"  [{error.kind}] {scope}: {error.error}")

    if not result.success:
        sys.exit(1)


@cli.command()
@click.option("--source", type=PERIOD, help="Period to copy from (default: current month)")
@click.option("--target", type=PERIOD, help="Period to copy into (default: month after source)")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
@click.pass_context
def validate(ctx: click.Context, source, target, as_json: bool) -> None:
    """Check a source/target pair before generating."""
    flow = _flow(ctx)
    try:
        result = asyncio.run(flow.validate(_options(source, target)))
    except InvalidPeriod as e:
        raise click.ClickException(str(e))

    if as_json:
        _echo_json(result)
    else:
        click.echo(f"{result.source.key} -> {result.target.key}")
        click.echo("Can generate" if result.can_generate else "Cannot generate")
        for issue in result.issues:
            click.echo(f"  {issue.severity}: {issue.message}")

    if not result.can_generate:
        sys.exit(1)


@cli.command()
@click.argument("period", type=PERIOD)
@click.option("--json", "as_json", is_flag=True, help="Print the full summary as JSON")
@click.pass_context
def summary(ctx: click.Context, period, as_json: bool) -> None:
    """Show expense counts per property for PERIOD."""
    flow = _flow(ctx)
    try:
        result = asyncio.run(flow.summarize(period.year, period.month))
    except InvalidPeriod as e:
        raise click.ClickException(str(e))

    if as_json:
        _echo_json(result)
    elif not result.success:
        click.echo(f"Summary failed: {result.error}")
    else:
        click.echo(
            f"{result.period}: {result.properties} properties, "
            f"{result.total_expenses} expenses ({result.total_recurring_expenses} recurring)"
        )
        for entry in result.properties_summary:
            line = (
                f"  {entry.property_name:<24} {entry.total_expenses:>4} "
                f"({entry.recurring_expenses} recurring)"
            )
            if entry.error:
                line += f"  error: {entry.error}"
            click.echo(line)

    if not result.success:
        sys.exit(1)


@cli.command()
@click.argument("property_id")
@click.option(
    "--kind",
    type=click.Choice([EntityKind.EXPENSES.value, EntityKind.INCOMES.value]),
    default=EntityKind.EXPENSES.value,
    show_default=True,
)
@click.option("--unit", "unit_id", help="Unit id (required for incomes)")
@click.pass_context
def periods(ctx: click.Context, property_id: str, kind: str, unit_id) -> None:
    """List the periods that have data for PROPERTY_ID."""
    flow = _flow(ctx)
    try:
        listing = asyncio.run(flow.list_periods(kind, property_id, unit_id))
    except PathResolutionError as e:
        raise click.UsageError(str(e))

    if not listing.ok:
        click.echo(f"Could not list periods: {listing.error}")
        sys.exit(1)
    if not listing.periods:
        click.echo("No periods found")
        return
    for key in listing.keys:
        click.echo(key)


@cli.command("set-recurring")
@click.argument("property_id")
@click.argument("period", type=PERIOD)
@click.argument("expense_id")
@click.option("--off", is_flag=True, help="Clear the flag instead of setting it")
@click.pass_context
def set_recurring(ctx: click.Context, property_id: str, period, expense_id: str, off: bool) -> None:
    """Mark EXPENSE_ID of PROPERTY_ID in PERIOD as recurring (or not, with --off)."""
    flow = _flow(ctx)
    try:
        result = asyncio.run(
            flow.set_recurring(property_id, period.year, period.month, expense_id, not off)
        )
    except InvalidPeriod as e:
        raise click.ClickException(str(e))
    if not result.success:
        click.echo(f"Update failed: {result.error}")
        sys.exit(1)
    click.echo(result.message)


@cli.command("recurring")
@click.argument("period", type=PERIOD)
@click.option("--property", "property_id", help="Only this property")
@click.option("--json", "as_json", is_flag=True, help="Print the listing as JSON")
@click.pass_context
def recurring(ctx: click.Context, period, property_id, as_json: bool) -> None:
    """List the items flagged recurring in PERIOD."""
    flow = _flow(ctx)
    try:
        listing = asyncio.run(flow.list_recurring(period.year, period.month, property_id))
    except InvalidPeriod as e:
        raise click.ClickException(str(e))

    if as_json:
        _echo_json(listing)
        if not listing.success:
            sys.exit(1)
        return
    if not listing.success:
        click.echo(f"Could not list recurring items: {listing.error}")
        sys.exit(1)

    groups = [listing] if property_id else listing.properties_data
    for group in groups:
        click.echo(f"{group.property_name or group.property_id}: {group.count}")
        if group.error:
            click.echo(f"  error: {group.error}")
        for expense in group.expenses:
            click.echo(f"  {expense['id']:<24} {expense.get('description', '')} {expense.get('amount', '')}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
