"""Command line runner: execute one statement through the bridge."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Sequence, TextIO

from .config import BridgeConfig, build_registry, load_config
from .connections import DemoSessionFactory, SessionAcquisitionError
from .models import RequestMethod, StatementRequest
from .paths import normalize_schema
from .query import QueryExecutionError, StatementExecutor
from .session import SessionRegistry

LOG = logging.getLogger(__name__)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="iotdbbridge", description=__doc__)
    parser.add_argument("statement", help="IoTDB statement to execute")
    parser.add_argument("--profile", help="Connection profile name from config.toml")
    parser.add_argument(
        "--method",
        type=str.upper,
        choices=[method.value for method in RequestMethod],
        default=RequestMethod.GET.value,
        help="Request method used to classify the statement",
    )
    parser.add_argument("--schema", default="", help="Schema (database) the statement targets")
    parser.add_argument("--table", default="", help="Device path below the schema")
    parser.add_argument("--rows", action="store_true", help="Print every row instead of the folded document")
    parser.add_argument("--loose-typing", action="store_true", help="Keep values exactly as the client decodes them")
    parser.add_argument("--demo", action="store_true", help="Use the in-memory demo store")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    return parser.parse_args(argv)


def build_request(args: argparse.Namespace, config: BridgeConfig) -> StatementRequest:
    """Translate CLI options and the selected profile into a request."""

    profile = config.profile(args.profile)
    schema = normalize_schema(args.schema, config.default_schema, config.store_enabled) or ""
    return StatementRequest(
        uri=profile.uri,
        account=profile.account,
        password=profile.password,
        method=RequestMethod(args.method),
        schema=schema,
        table=args.table,
    )


def run(args: argparse.Namespace, config: BridgeConfig, out: TextIO) -> int:
    request = build_request(args, config)
    registry = SessionRegistry(DemoSessionFactory()) if args.demo else build_registry(config)
    executor = StatementExecutor(registry)
    LOG.info("Running statement", extra={"profile": args.profile, "method": request.method.value})
    with registry:
        if args.rows and request.method.is_query:
            result: object = executor.execute_query(request, args.statement, args.loose_typing)
        else:
            result = executor.execute(request, args.statement, args.loose_typing)
    json.dump(result, out, indent=2, default=str)
    out.write("\n")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = load_config()
    try:
        return run(args, config, sys.stdout)
    except ValueError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except (SessionAcquisitionError, QueryExecutionError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


__all__ = ["build_request", "main", "parse_args", "run"]
