"""Operator CLI for HNS registrations and lookups."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import List

from .client import HNSClient
from .config import HNSSettings
from .errors import HNSError
from .logging_utils import configure_logging


def _client(args: argparse.Namespace) -> HNSClient:
    settings = HNSSettings.from_env()
    if args.rpc_url:
        settings = settings.merged({"rpc_url": args.rpc_url})
    if args.indexer_url:
        settings = settings.merged({"indexer_url": args.indexer_url})
    private_key = os.getenv("HNS_PRIVATE_KEY")
    return HNSClient.from_settings(settings, private_key=private_key)


def _print(payload: object) -> None:
    print(json.dumps(payload, indent=2, default=str))


def command_tlds(args: argparse.Namespace) -> None:
    client = _client(args)
    _print([record.model_dump() for record in client.directory.records()])


def command_price(args: argparse.Namespace) -> None:
    client = _client(args)
    record = client.directory.get(args.tld) if args.tld else client.directory.primary()
    duration = client.settings.default_duration * args.years

    async def runner() -> dict:
        quote = await client.manager.rent_price(args.label, duration, record.tld)
        available = await client.manager.available(args.label, record.tld)
        return {
            "name": client.directory.full_name(args.label.lower(), record.tld),
            "available": available,
            "base": quote.base,
            "premium": quote.premium,
            "total": quote.total,
        }

    _print(asyncio.run(runner()))


def command_domains(args: argparse.Namespace) -> None:
    client = _client(args)
    result = asyncio.run(
        client.ownership.domains_owned_by(args.address, expected_count=args.expected, refresh=True)
    )
    _print(result.model_dump(mode="json"))
    if result.indexer_degraded:
        print("warning: indexer is degraded, results may be incomplete", file=sys.stderr)


def command_register(args: argparse.Namespace) -> None:
    client = _client(args)
    records = dict(item.split("=", 1) for item in args.text or [])
    machine = client.registration()
    duration = client.settings.default_duration * args.years
    try:
        snapshot = asyncio.run(
            machine.register(
                args.label,
                tld=args.tld or client.directory.primary().tld,
                duration=duration,
                secret=args.secret,
                owner=args.owner,
                extra_records=records,
                include_default_email=not args.no_default_email,
            )
        )
    except HNSError as exc:
        raise SystemExit(f"Registration failed [{exc.code}]: {exc}") from exc
    _print(snapshot.model_dump(mode="json"))


def command_renew(args: argparse.Namespace) -> None:
    client = _client(args)
    tld = args.tld or client.directory.primary().tld
    try:
        tx_hash = asyncio.run(
            client.manager.renew(args.label, client.settings.default_duration * args.years, tld)
        )
    except HNSError as exc:
        raise SystemExit(f"Renewal failed [{exc.code}]: {exc}") from exc
    _print({"tx_hash": tx_hash})


def command_transfer(args: argparse.Namespace) -> None:
    client = _client(args)
    try:
        result = asyncio.run(client.manager.transfer(args.name, args.new_owner))
    except HNSError as exc:
        raise SystemExit(f"Transfer failed [{exc.code}]: {exc}") from exc
    _print({"tx_hash": result.tx_hash, "method": result.method})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Register and inspect HNS names from the command line.")
    parser.add_argument("--rpc-url", default=None, help="Override HNS_RPC_URL.")
    parser.add_argument("--indexer-url", default=None, help="Override HNS_INDEXER_URL.")
    parser.add_argument("--log-file", default=None, help="Write JSON lines logs to this file.")
    parser.add_argument("--verbose", action="store_true")

    subparsers = parser.add_subparsers(dest="command", required=True)

    tlds = subparsers.add_parser("tlds", help="List configured TLDs")
    tlds.set_defaults(func=command_tlds)

    price = subparsers.add_parser("price", help="Quote the registration price of a label")
    price.add_argument("label")
    price.add_argument("--tld", default=None)
    price.add_argument("--years", type=int, default=1)
    price.set_defaults(func=command_price)

    domains = subparsers.add_parser("domains", help="List domains owned by an address")
    domains.add_argument("address")
    domains.add_argument("--expected", type=int, default=None, help="Known minimum number of owned domains.")
    domains.set_defaults(func=command_domains)

    register = subparsers.add_parser("register", help="Commit and register a label (needs HNS_PRIVATE_KEY)")
    register.add_argument("label")
    register.add_argument("--tld", default=None)
    register.add_argument("--years", type=int, default=1)
    register.add_argument("--secret", default=None)
    register.add_argument("--owner", default=None)
    register.add_argument("--text", action="append", help="Text record as key=value; repeatable.")
    register.add_argument(
        "--no-default-email",
        action="store_true",
        help="Do not add the TLD's default email text record.",
    )
    register.set_defaults(func=command_register)

    renew = subparsers.add_parser("renew", help="Extend a registration (needs HNS_PRIVATE_KEY)")
    renew.add_argument("label")
    renew.add_argument("--tld", default=None)
    renew.add_argument("--years", type=int, default=1)
    renew.set_defaults(func=command_renew)

    transfer = subparsers.add_parser("transfer", help="Transfer a name (needs HNS_PRIVATE_KEY)")
    transfer.add_argument("name")
    transfer.add_argument("new_owner")
    transfer.set_defaults(func=command_transfer)

    return parser


def main(argv: List[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_file, level=logging.DEBUG if args.verbose else logging.INFO)
    args.func(args)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main(sys.argv[1:])
