"""
CLI Interface Module

Handles command-line argument parsing and dispatches to the commands or
the interactive menu.
"""
import argparse
import sys

from rich.console import Console

from . import __version__
from .bulk import validate_operation
from .commands import (
    apex_command, bulk_command, connect, init_command, load_json_payload, query_command,
    read_text_file, rest_command, track_command,
)
from .config import Config
from .display import display_error
from .errors import SfuError
from .logging_setup import configure_logging
from .rest import BODY_METHODS, METHODS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='sfu',
        description="Salesforce utility CLI for SOQL queries, REST API, change tracking, "
                    "Bulk API, and Apex execution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Create a .env template:
    sfu init

  Interactive mode:
    sfu -u me@example.com

  Run a query:
    sfu query -q "SELECT Id, Name FROM Account LIMIT 10"
    sfu query -f accounts.soql --plan

  Call a REST resource:
    sfu rest -m GET -r /services/data/v60.0/limits

  Upsert contacts with Bulk API 2.0:
    sfu bulk -s Contact -o upsert -e Email__c -d contacts.csv
        """
    )

    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('-u', '--username', help='Salesforce username (remembered for next time)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Show debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Init command
    init_parser = subparsers.add_parser('init', help='Create a .env template')
    init_parser.add_argument('--env-file', default='.env', help='Path of the file to create (default: .env)')
    init_parser.add_argument('--force', action='store_true', help='Overwrite an existing file')

    # Query command
    query_parser = subparsers.add_parser('query', help='Run a SOQL query')
    source = query_parser.add_mutually_exclusive_group(required=True)
    source.add_argument('-q', '--query', help='SOQL query string')
    source.add_argument('-f', '--file', help='Path to .soql file containing the query')
    query_parser.add_argument('-t', '--tooling', action='store_true', help='Use Tooling API')
    query_parser.add_argument('-p', '--plan', action='store_true',
                              help='Run Explain Plan (Standard API only)')

    # REST command
    rest_parser = subparsers.add_parser('rest', help='Call a REST API resource')
    rest_parser.add_argument('-m', '--method', required=True, type=str.upper, choices=METHODS,
                             help='HTTP method')
    rest_parser.add_argument('-r', '--resource', required=True,
                             help='Relative REST API URL (e.g. /services/data/v60.0/sobjects/Account/describe)')
    rest_parser.add_argument('-p', '--payload', help='Path to JSON payload file (for POST/PATCH)')

    # Track command
    track_parser = subparsers.add_parser('track', help='Track changes (SourceMember)')
    track_parser.add_argument('-d', '--date', help='Date to track changes since (YYYY-MM-DD)')
    track_parser.add_argument('--user', help='Username of the last modified user')

    # Bulk command
    bulk_parser = subparsers.add_parser('bulk', help='Run a Bulk API 2.0 job')
    bulk_parser.add_argument('-s', '--sobject', required=True, help='Salesforce object (e.g. Account)')
    bulk_parser.add_argument('-o', '--operation', required=True,
                             help='Operation (Insert, Update, Upsert, Delete)')
    bulk_parser.add_argument('-d', '--data', required=True, help='Path to CSV data file')
    bulk_parser.add_argument('-e', '--external-id', help='External ID field for Upsert')

    # Apex command
    apex_parser = subparsers.add_parser('apex', help='Run anonymous Apex code')
    code = apex_parser.add_mutually_exclusive_group(required=True)
    code.add_argument('-c', '--code', help='Apex code string')
    code.add_argument('-f', '--file', help='Path to Apex code file')

    return parser


def run_command(args, client, config: Config) -> int:
    """Dispatch parsed arguments to a command."""
    if args.command == 'query':
        soql = read_text_file(args.file, 'SOQL') if args.file else args.query
        return query_command(client, soql, tooling=args.tooling, plan=args.plan)

    elif args.command == 'rest':
        payload = load_json_payload(args.payload) if args.payload else None
        return rest_command(client, args.method, args.resource, payload)

    elif args.command == 'track':
        return track_command(client, since=args.date, username=args.user)

    elif args.command == 'bulk':
        return bulk_command(client, config, args.sobject, args.operation, args.data,
                            external_id=args.external_id)

    elif args.command == 'apex':
        apex_code = read_text_file(args.file, 'Apex') if args.file else args.code
        return apex_command(client, apex_code)

    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose, console=Console(stderr=True))

    try:
        if args.command == 'init':
            return init_command(Config(args.env_file), force=args.force)

        if args.command == 'bulk':
            validate_operation(args.operation, args.external_id)
        elif args.command == 'rest' and args.payload and args.method not in BODY_METHODS:
            raise SfuError("Payload is only valid for POST or PATCH methods.")

        config = Config()
        config.load()
        client = connect(config, args.username)

        # No command = interactive mode
        if not args.command:
            from .interactive import InteractiveSession
            return InteractiveSession(client, config).run()

        return run_command(args, client, config)

    except KeyboardInterrupt:
        print("\n\nExiting...")
        return 0
    except (SfuError, ValueError, LookupError) as e:
        display_error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
