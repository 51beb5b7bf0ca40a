#!/usr/bin/env python3
"""
Command-line interface for the Revend marketplace backend.

Usage:
    uv run python cli.py [command] [options]

Commands:
    demo        Run demo scenarios
    search      Search the catalogue fixtures
    send-email  Invoke the send-email function against the fixtures
    promote     Promote a user to admin (in-memory service, for trying it out)
    test        Run the test suite
    serve       Start the API server

Every command except ``test`` and ``serve`` works on a fresh in-memory
service seeded from ``data/``; nothing is persisted.
"""

import argparse
import asyncio
import logging
import subprocess
import sys


def run_search(query: str, category: str, location: str, max_price: float) -> None:
    """Print catalogue listings matching the query and filters."""
    from stores.products import ProductFilters, ProductStore

    async def search() -> list:
        store = ProductStore()
        await store.refresh()
        return store.search(query, ProductFilters(category=category, location=location, max_price=max_price))

    listings = asyncio.run(search())
    for listing in listings:
        kind = "batch " if listing.is_batch else "single"
        price = listing.listing_price_amount
        price_text = f"{price:>9.2f}" if price is not None else " " * 9
        print(f"{listing.id:<10} {kind} {price_text}  {listing.title} ({listing.listing_location or '-'})")
    print(f"\n{len(listings)} listing(s)")


def run_send_email(email_type: str, user_id: str, variables: list[str]) -> None:
    """Send one templated email through the recording channel and print it."""
    from api.send_email import register_send_email
    from backend.client import get_remote_service
    from backend.errors import RemoteError
    from shared.channels import EmailChannel

    body = {"type": email_type, "userId": user_id}
    for item in variables:
        key, _, value = item.partition("=")
        body[key] = value

    channel = EmailChannel()
    service = get_remote_service()
    register_send_email(service, channel=channel)
    try:
        asyncio.run(service.functions.invoke("send-email", body))
    except RemoteError as e:
        print(f"send-email failed: {e}")
        sys.exit(1)

    sent = channel.sent_messages[-1]
    print(f"To:      {sent.recipient}")
    print(f"Subject: {sent.subject}")
    print()
    print(sent.body)


def run_promote(email: str) -> None:
    """Promote the profile with ``email`` to admin and print it."""
    from backend.errors import RemoteError
    from stores.admin import AdminService

    try:
        profile = asyncio.run(AdminService().promote_by_email(email))
    except RemoteError as e:
        print(f"Could not promote {email}: {e}")
        sys.exit(1)
    print(f"{profile.name} <{profile.email}> is now {profile.role}")


def run_tests(args: list[str]) -> None:
    """Run the test suite."""
    cmd = ["uv", "run", "pytest"] + args
    subprocess.run(cmd)


def run_server(host: str, port: int, reload: bool) -> None:
    """Start the API server."""
    cmd = ["uv", "run", "uvicorn", "api.main:app", f"--host={host}", f"--port={port}"]
    if reload:
        cmd.append("--reload")

    print(f"Starting server at http://{host}:{port}")
    print(f"API docs available at http://{host}:{port}/docs")
    subprocess.run(cmd)


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Revend Marketplace CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s demo catalog
  %(prog)s demo all
  %(prog)s search dell --category Laptops --max-price 300
  %(prog)s send-email listing_interest usr-alice listingId=prod-002 message="Still available?"
  %(prog)s promote bob@greencycle.be
  %(prog)s serve --reload
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    demo_parser = subparsers.add_parser("demo", help="Run demo scenarios")
    demo_parser.add_argument(
        "scenario",
        choices=["catalog", "account", "notifications", "all"],
        help="Which scenario to run",
    )

    search_parser = subparsers.add_parser("search", help="Search the catalogue fixtures")
    search_parser.add_argument("query", nargs="?", default="", help="Substring of title or description")
    search_parser.add_argument("--category", help="Exact category")
    search_parser.add_argument("--location", help="Substring of the location")
    search_parser.add_argument("--max-price", type=float, help="Inclusive upper price bound")

    email_parser = subparsers.add_parser("send-email", help="Invoke the send-email function")
    email_parser.add_argument("type", help="Email type, e.g. welcome or listing_interest")
    email_parser.add_argument("user_id", help="Recipient profile id")
    email_parser.add_argument("variables", nargs="*", default=[], help="Template variables as key=value")

    promote_parser = subparsers.add_parser("promote", help="Promote a user to admin")
    promote_parser.add_argument("email", help="Email address of the profile")

    test_parser = subparsers.add_parser("test", help="Run the test suite")
    test_parser.add_argument(
        "pytest_args",
        nargs="*",
        default=[],
        help="Arguments to pass to pytest",
    )

    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    if args.command in ("search", "send-email", "promote"):
        logging.basicConfig(level=logging.WARNING, format="%(name)s | %(levelname)s | %(message)s")

    if args.command == "demo":
        from stores.demo import run_demo
        run_demo(args.scenario)
    elif args.command == "search":
        run_search(args.query, args.category, args.location, args.max_price)
    elif args.command == "send-email":
        run_send_email(args.type, args.user_id, args.variables)
    elif args.command == "promote":
        run_promote(args.email)
    elif args.command == "test":
        run_tests(args.pytest_args)
    elif args.command == "serve":
        run_server(args.host, args.port, args.reload)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
