# discgraph_sdk/cli.py
# SPDX-License-Identifier: Apache-2.0
"""
Discriminator graph command line.

Usage examples:
  discgraph init
  discgraph query <PROGRAM_ID>
  discgraph ingest <PROGRAM_ID> 0102030405060708 0a0b0c --user <USER>
  discgraph instructions <DISCRIMINATOR_KEY>
  discgraph watch [PROGRAM_ID ...]
  discgraph --memory query <PROGRAM_ID>

Configuration comes from DISCGRAPH_* environment variables (see
discgraph_sdk.core.config.Settings).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Optional, Sequence

from discgraph_sdk.core.config import Settings
from discgraph_sdk.core.decoder import decode_hex
from discgraph_sdk.core.errors import (
    ConfigurationError,
    DiscGraphError,
    InvalidInputError,
    NotFound,
)
from discgraph_sdk.core.retry import RetryPolicy
from discgraph_sdk.service import DiscriminatorService, build_service

LOG = logging.getLogger("discgraph_sdk.cli")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_FOUND = 2
EXIT_CONFIG = 3


# --------------------------------------------------------------------------- #
# Helpers
# --------------------------------------------------------------------------- #

def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, sort_keys=True))


def _open_service(args: argparse.Namespace, settings: Settings) -> DiscriminatorService:
    """Build the service for this invocation (in-memory store with --memory)."""
    if not args.memory:
        return build_service(settings)

    from discgraph_sdk.ledger.solana_rpc import SolanaRpcLedgerSource
    from discgraph_sdk.mock_graph_store import InMemoryGraphStore

    ledger = SolanaRpcLedgerSource(
        settings.rpc_url,
        commitment=settings.rpc_commitment,
        timeout_s=settings.rpc_timeout_s,
        mode=settings.mode,
    )
    return DiscriminatorService(
        InMemoryGraphStore(mode=settings.mode),
        ledger,
        poll_interval_s=settings.poll_interval_s,
        retry_policy=RetryPolicy(max_attempts=settings.ingest_retry_attempts),
    )


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #

async def _cmd_init(service: DiscriminatorService, args: argparse.Namespace) -> int:
    await service.provision()
    print("collections ready")
    return EXIT_OK


async def _cmd_query(service: DiscriminatorService, args: argparse.Namespace) -> int:
    views = await service.get_discriminators(args.program_id)
    _print_json([v.to_dict() for v in views])
    return EXIT_OK


async def _cmd_ingest(service: DiscriminatorService, args: argparse.Namespace) -> int:
    receipt = await service.ingest_one(
        args.program_id,
        decode_hex(args.discriminator),
        decode_hex(args.instruction),
        args.user,
    )
    _print_json(
        {
            "program_key": receipt.program_key,
            "discriminator_key": receipt.discriminator_key,
            "instruction_key": receipt.instruction_key,
            "user_key": receipt.user_key,
        }
    )
    return EXIT_OK


async def _cmd_instructions(service: DiscriminatorService, args: argparse.Namespace) -> int:
    views = await service.get_instructions(args.discriminator_key)
    if not views:
        print(f"no instructions linked to {args.discriminator_key}", file=sys.stderr)
        return EXIT_NOT_FOUND
    _print_json([v.to_dict() for v in views])
    return EXIT_OK


async def _cmd_watch(service: DiscriminatorService, args: argparse.Namespace) -> int:
    programs = await service.start(list(args.program_ids or ()) + list(args.settings.programs))
    if not programs:
        print("no programs to watch", file=sys.stderr)
        return EXIT_NOT_FOUND
    print(f"watching {len(programs)} program(s): {', '.join(programs)}", file=sys.stderr)
    if args.duration is not None:
        await asyncio.sleep(args.duration)
    else:
        await asyncio.Event().wait()
    return EXIT_OK


COMMANDS = {
    "init": _cmd_init,
    "query": _cmd_query,
    "ingest": _cmd_ingest,
    "instructions": _cmd_instructions,
    "watch": _cmd_watch,
}


async def _run(args: argparse.Namespace) -> int:
    service = _open_service(args, args.settings)
    async with service:
        return await COMMANDS[args.command](service, args)


# --------------------------------------------------------------------------- #
# main
# --------------------------------------------------------------------------- #

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="discgraph",
        description="Discriminator graph - ingest and query program discriminators",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Configuration (environment variables):
  DISCGRAPH_ARANGO_URL        Graph store URL (default: http://localhost:8529)
  DISCGRAPH_ARANGO_USER       Graph store user (default: root)
  DISCGRAPH_ARANGO_PASSWORD   Graph store password
  DISCGRAPH_ARANGO_DB         Graph store database (default: disc_dir)
  DISCGRAPH_RPC_URL           Ledger JSON-RPC URL (default: devnet)
  DISCGRAPH_POLL_INTERVAL_S   Seconds between polls (default: 10)
  DISCGRAPH_PROGRAMS          Comma-separated programs to watch

Exit codes: 0 ok, 1 error, 2 not found / usage, 3 configuration error.
        """.strip(),
    )
    parser.add_argument(
        "--memory", action="store_true",
        help="Use an in-memory graph store instead of ArangoDB",
    )
    parser.add_argument(
        "--log-level", default=None,
        help="Log level (default: DISCGRAPH_LOG_LEVEL or INFO)",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        required=True,
        help="command to execute",
        metavar="COMMAND",
    )

    subparsers.add_parser("init", help="Provision graph collections")

    query_parser = subparsers.add_parser("query", help="List discriminators of a program")
    query_parser.add_argument("program_id")

    ingest_parser = subparsers.add_parser("ingest", help="Ingest one discriminator/instruction pair")
    ingest_parser.add_argument("program_id")
    ingest_parser.add_argument("discriminator", help="Discriminator bytes as hex")
    ingest_parser.add_argument("instruction", help="Instruction bytes as hex")
    ingest_parser.add_argument("--user", required=True, help="Contributing user id")

    instr_parser = subparsers.add_parser(
        "instructions", help="List instructions linked to a discriminator key"
    )
    instr_parser.add_argument("discriminator_key")

    watch_parser = subparsers.add_parser("watch", help="Poll known and given programs")
    watch_parser.add_argument("program_ids", nargs="*")
    watch_parser.add_argument(
        "--duration", type=float, default=None,
        help="Stop after this many seconds (default: run until interrupted)",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    try:
        args = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else EXIT_ERROR

    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return EXIT_CONFIG
    args.settings = settings

    level = logging.getLevelName((args.log_level or settings.log_level).upper())
    if not isinstance(level, int):
        print(f"error: unknown log level {args.log_level or settings.log_level!r}", file=sys.stderr)
        return EXIT_CONFIG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    LOG.debug("settings: %s", settings.redacted())

    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return EXIT_OK
    except ConfigurationError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return EXIT_CONFIG
    except NotFound as e:
        print(f"not found: {e.message}", file=sys.stderr)
        return EXIT_NOT_FOUND
    except InvalidInputError as e:
        print(f"invalid input: {e.message}", file=sys.stderr)
        return EXIT_NOT_FOUND
    except DiscGraphError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
