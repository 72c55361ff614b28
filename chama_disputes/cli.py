"""Flask CLI commands for the dispute deadline scanner.

    flask disputes check-reminders   # hourly
    flask disputes check-overdue     # daily
"""

import click
from flask.cli import AppGroup

from chama_disputes.utils.dates import parse_datetime

disputes_cli = AppGroup('disputes', help='Dispute deadline scanner.')


def _now_option(value):
    try:
        return parse_datetime(value)
    except ValueError:
        raise click.BadParameter('expected an ISO-8601 timestamp')


@disputes_cli.command('check-reminders')
@click.option('--now', 'now', default=None, help='Pretend the current UTC time is this ISO timestamp.')
def check_reminders_command(now):
    """Remind members about discussion and voting deadlines in the next window."""
    from chama_disputes.services.dispute_reminders import check_approaching_deadlines

    summary = check_approaching_deadlines(now=_now_option(now))
    click.echo(f"Checked {summary['checked']} dispute(s), sent {summary['reminded']} reminder(s), "
               f"{summary['errors']} error(s)")


@disputes_cli.command('check-overdue')
@click.option('--now', 'now', default=None, help='Pretend the current UTC time is this ISO timestamp.')
def check_overdue_command(now):
    """Close overdue voting and flag overdue discussions."""
    from chama_disputes.services.dispute_reminders import check_overdue_disputes

    summary = check_overdue_disputes(now=_now_option(now))
    click.echo(f"Finalized {summary['finalized']} vote(s) ({summary['resolved']} resolved, "
               f"{summary['escalated']} escalated), {summary['overdue_notices']} overdue notice(s), "
               f"{summary['errors']} error(s)")
