#!/usr/bin/env python3
"""
cal-sync - Apple Calendar and Reminders from the command line.

Reads go through a short-lived month cache; edits re-resolve the live item
before writing.
"""

import argparse
import logging
import sys

from cal_sync.core.config import load_config, get_default_config_path
from cal_sync.commands import (
    AccessCommand,
    CalendarsCommand,
    EventsCommand,
    EventEditCommand,
    RemindersCommand,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cal-sync",
        description="Browse and edit Apple Calendar events and reminders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cal-sync access                        # Grant calendar and reminder access
  cal-sync day --date 2024-06-03         # Events on a day
  cal-sync agenda --days 14              # Two week agenda
  cal-sync add "Lunch with Sam" --start "2024-06-03 12:30"
  cal-sync move EVENT_ID --to "2024-06-04 09:00"
  cal-sync remind "Call the bank" --due "2024-06-03 17:00" --priority high
        """
    )

    default_config = get_default_config_path()

    parser.add_argument(
        '--config',
        help=f'Path to configuration file (default: {default_config})',
        default=None
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Verbose output'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    subparsers.add_parser('access', help='Request calendar and reminder access')

    subparsers.add_parser('calendars', help='List calendars and their visibility')

    toggle_parser = subparsers.add_parser('toggle', help='Show or hide a calendar')
    toggle_parser.add_argument('calendar_id', help='Calendar identifier')

    default_parser = subparsers.add_parser('default', help='Set the calendar used for new events')
    default_parser.add_argument('calendar_id', help='Calendar identifier')

    for name, help_text in (('day', 'Events on one day'), ('week', 'Events in the week containing a day')):
        view_parser = subparsers.add_parser(name, help=help_text)
        view_parser.add_argument('--date', help='Day to show (YYYY-MM-DD, default: today)')

    agenda_parser = subparsers.add_parser('agenda', help='Events for a run of days')
    agenda_parser.add_argument('--date', help='First day (YYYY-MM-DD, default: today)')
    agenda_parser.add_argument('--days', type=int, default=7, help='Number of days (default: 7)')

    search_parser = subparsers.add_parser('search', help='Search loaded events by title, location or notes')
    search_parser.add_argument('query', help='Text to look for')

    add_parser = subparsers.add_parser('add', help='Create an event')
    add_parser.add_argument('title', help='Event title (or free text when --start is omitted)')
    add_parser.add_argument('--start', help='Start time (YYYY-MM-DD HH:MM or ISO 8601)')
    add_parser.add_argument('--end', help='End time (default: one hour after start)')
    add_parser.add_argument('--calendar', dest='calendar_id', help='Target calendar identifier')
    add_parser.add_argument('--notes', help='Event notes')
    add_parser.add_argument('--location', help='Event location')
    add_parser.add_argument('--all-day', action='store_true', help='Mark as an all-day event')

    move_parser = subparsers.add_parser('move', help='Move an event, keeping its duration')
    move_parser.add_argument('identifier', help='Event identifier')
    move_parser.add_argument('--to', required=True, help='New start time')

    delete_parser = subparsers.add_parser('delete', help='Delete an event')
    delete_parser.add_argument('identifier', help='Event identifier')

    subparsers.add_parser('reminders', help='List open reminders by list')

    remind_parser = subparsers.add_parser('remind', help='Create a reminder')
    remind_parser.add_argument('title', help='Reminder title')
    remind_parser.add_argument('--due', help='Due time (YYYY-MM-DD HH:MM or ISO 8601)')
    remind_parser.add_argument(
        '--priority',
        choices=['none', 'low', 'medium', 'high'],
        default='none',
        help='Priority band'
    )
    remind_parser.add_argument('--list', dest='list_id', help='Reminder list identifier')
    remind_parser.add_argument('--notes', help='Reminder notes')

    complete_parser = subparsers.add_parser('complete', help='Toggle a reminder between open and completed')
    complete_parser.add_argument('identifier', help='Reminder identifier')

    return parser


def main(argv=None):
    """Main entry point for cal-sync."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging if verbose mode is enabled
    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    if not args.command:
        parser.print_help()
        return 1

    config = load_config(args.config)

    if args.verbose:
        actual_config_path = args.config if args.config else get_default_config_path()
        print(f"Using config: {actual_config_path}")

    common = dict(verbose=args.verbose, config_path=args.config)

    try:
        if args.command == 'access':
            success = AccessCommand(config, **common).run()

        elif args.command == 'calendars':
            success = CalendarsCommand(config, **common).run()

        elif args.command in ('toggle', 'default'):
            success = CalendarsCommand(config, **common).run(
                action=args.command, calendar_id=args.calendar_id
            )

        elif args.command in ('day', 'week', 'agenda'):
            success = EventsCommand(config, **common).run(
                view=args.command,
                date_str=args.date,
                days=getattr(args, 'days', 7),
            )

        elif args.command == 'search':
            success = EventsCommand(config, **common).run(view='search', query=args.query)

        elif args.command == 'add':
            success = EventEditCommand(config, **common).add(
                args.title,
                start=args.start,
                end=args.end,
                calendar_id=args.calendar_id,
                notes=args.notes,
                location=args.location,
                all_day=args.all_day,
            )

        elif args.command == 'move':
            success = EventEditCommand(config, **common).move(args.identifier, args.to)

        elif args.command == 'delete':
            success = EventEditCommand(config, **common).delete(args.identifier)

        elif args.command == 'reminders':
            success = RemindersCommand(config, **common).run()

        elif args.command == 'remind':
            success = RemindersCommand(config, **common).add(
                args.title,
                due=args.due,
                priority=args.priority,
                list_id=args.list_id,
                notes=args.notes,
            )

        elif args.command == 'complete':
            success = RemindersCommand(config, **common).complete(args.identifier)

        else:
            print(f"Unknown command '{args.command}'.")
            return 1

        return 0 if success else 1

    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        return 130
    except Exception as e:
        print(f"Error: {e}")
        if not args.verbose:
            print("Re-run with --verbose for more detail.")
        else:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
