# web3_query/__main__.py
import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

import aiohttp
from loguru import logger

from web3_query.exceptions import Web3QueryError
from web3_query.query_client import QueryClient


def _parse_pairs(pairs: Optional[List[str]]) -> Dict[str, str]:
    parsed: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got {pair!r}")
        parsed[key] = value
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="web3_query",
        description="Query Moralis Web3 API endpoints.",
    )
    parser.add_argument("endpoint", help='Endpoint path, e.g. "/:address/balance"')
    parser.add_argument("--address")
    parser.add_argument("--chain")
    parser.add_argument("--network")
    parser.add_argument("--param", action="append", metavar="KEY=VALUE")
    parser.add_argument("--path-param", action="append", metavar="KEY=VALUE")
    parser.add_argument("--method", default=None)
    parser.add_argument("--body", type=json.loads, help="JSON request body")
    parser.add_argument("--base-url")
    parser.add_argument("--from-date")
    parser.add_argument("--to-date")
    parser.add_argument("--paginate", action="store_true")
    parser.add_argument("--max-results", type=int, default=0)
    parser.add_argument("--batch", nargs="+", metavar="ADDRESS")
    parser.add_argument("--concurrency", type=int)
    parser.add_argument("--metrics", action="store_true", help="Print request counters")
    parser.add_argument("--verbose", action="store_true")
    return parser


async def run(args: argparse.Namespace) -> Any:
    """
    Execute the request described by the parsed command line.

    Returns:
        Any: JSON-serialisable result of the query, page walk or batch.
    """
    options: Dict[str, Any] = {
        "chain": args.chain,
        "network": args.network,
        "params": args.param,
        "path_params": args.path_param,
        "method": args.method,
        "body": args.body,
        "base_url": args.base_url,
        "from_date": args.from_date,
        "to_date": args.to_date,
    }

    async with QueryClient() as client:
        try:
            if args.batch:
                batch = await client.batch_query(
                    args.endpoint, args.batch, concurrency=args.concurrency, **options,
                )
                result: Any = {
                    "results": list(batch),
                    "errors": [str(error) if error else None for error in batch.errors],
                    "failed": batch.failed,
                }
            elif args.paginate:
                result = await client.paginate(
                    args.endpoint,
                    max_results=args.max_results,
                    address=args.address,
                    **options,
                )
            else:
                result = await client.query(args.endpoint, address=args.address, **options)
        finally:
            if args.metrics:
                print(json.dumps(client.get_metrics()), file=sys.stderr)
    return result


def main(argv: Optional[List[str]] = None) -> int:
    """Command line entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        args.param = _parse_pairs(args.param)
        args.path_param = _parse_pairs(args.path_param)
    except ValueError as exc:
        parser.error(str(exc))

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "WARNING")

    try:
        result = asyncio.run(run(args))
    except (Web3QueryError, aiohttp.ClientError, OSError) as exc:
        logger.error(str(exc) or repr(exc))
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
