#!/usr/bin/env python3
"""
Command line access to a Cerb instance.

Credentials are read from ~/.config/cerb/creds.json unless --cerb-creds
points elsewhere; copy sample-creds.json there and fill in your API keys.
"""

import argparse
import logging
import sys

from .client import CerbClient
from .constants import DEFAULT_CREDS_PATH
from .credentials import load_credentials
from .exceptions import CerbClientError
from .models import CustomerQuestion


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cerb-client", description=__doc__.strip().splitlines()[0])
    parser.add_argument("--cerb-creds", default=DEFAULT_CREDS_PATH,
                        help="Path to file containing Cerb credentials.")
    parser.add_argument("--base-url", help="REST API base URL (overrides the credentials file).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log requests.")

    commands = parser.add_subparsers(dest="command", required=True)

    find = commands.add_parser("find-by-email", help="Find open tickets started by an email address.")
    find.add_argument("email")

    commands.add_parser("list-open", help="List every open ticket.")
    commands.add_parser("list-groups", help="List groups and their buckets.")

    create = commands.add_parser("create-message", help="Create a ticket with a first message.")
    create.add_argument("--group-id", type=int, required=True)
    create.add_argument("--bucket-id", type=int, required=True)
    create.add_argument("--from", dest="from_", required=True)
    create.add_argument("--to", required=True)
    create.add_argument("--subject", required=True)
    create.add_argument("--content", required=True)
    create.add_argument("--notes")

    return parser


def find_by_email(client: CerbClient, args):
    tickets = client.find_tickets_by_email(args.email)
    print(f"Found {len(tickets)} open tickets for {args.email}.")
    for ticket in tickets:
        print(f"  [{ticket.mask}] {ticket.subject} {ticket.url or ''}")


def list_open(client: CerbClient, args):
    page = 0
    while True:
        tickets, remaining = client.list_open_tickets(page)
        print(f"Loaded {len(tickets)} tickets from page {page}. "
              f"{remaining} tickets remain on subsequent pages.")
        for ticket in tickets:
            print(f"  [{ticket.mask}] {ticket.subject} <{ticket.email or '?'}>")
        if remaining == 0 or not tickets:
            break
        page += 1


def list_groups(client: CerbClient, args):
    groups = client.find_all_groups_and_buckets()
    print(f"Found {len(groups)} groups")
    for group in groups:
        print(f"  {group.id}: {group.name}")
        for bucket in group.buckets:
            print(f"      {bucket.id}: {bucket.name}")


def create_message(client: CerbClient, args):
    question = CustomerQuestion(
        group_id=args.group_id,
        bucket_id=args.bucket_id,
        to=args.to,
        from_=args.from_,
        subject=args.subject,
        content=args.content,
        notes=args.notes,
    )
    m = client.create_message(question)
    print(f"Created message {m.id} within ticket {m.ticket_id}! {m.ticket_url or ''}")


COMMANDS = {
    "find-by-email": find_by_email,
    "list-open": list_open,
    "list-groups": list_groups,
    "create-message": create_message,
}


def main(argv=None) -> int:
    """Run the command line client."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        creds = load_credentials(args.cerb_creds)
        with CerbClient.from_credentials(creds, base_url=args.base_url) as client:
            COMMANDS[args.command](client, args)
    except CerbClientError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
