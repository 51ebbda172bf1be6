"""Command-line runner: execute scanner queries once and print them as JSON."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Dict, List, Optional

from .config import load_config
from .core.enums import QueryKind
from .core.errors import ScannerError
from .service import QueryResult, QueryService

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = 'INFO') -> None:
    """Configure root logging; stdout is reserved for JSON output."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def result_to_dict(result: QueryResult) -> Dict:
    """JSON-ready view of a query result."""
    payload = result.results
    if isinstance(payload, list):
        body = [item.model_dump(mode='json') for item in payload]
    else:
        body = payload.model_dump(mode='json')
    return {
        'kind': result.kind.value,
        'cached': result.cached,
        'stale': result.stale,
        'computed_at': result.computed_at.isoformat(),
        'results': body,
    }


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog='boostiq-scan', description="Scan market tickers for explosive movers.")
    parser.add_argument(
        'kind',
        nargs='?',
        default='all',
        choices=[k.value for k in QueryKind] + ['all'],
        help="query to run (default: all)",
    )
    parser.add_argument('--top-n', type=int, help="number of results per ranked query")
    parser.add_argument('--source', choices=['ccxt', 'rest'], help="upstream data source")
    parser.add_argument('--enrich', action='store_true', help="attach candle indicators to results")
    parser.add_argument('--log-level', help="logging level, e.g. DEBUG")
    return parser.parse_args(argv)


def _overrides_from_args(args: argparse.Namespace) -> Dict:
    overrides: Dict = {}
    if args.top_n:
        overrides.setdefault('scanner', {})['top_n'] = args.top_n
    if args.enrich:
        overrides.setdefault('scanner', {})['enrich_with_candles'] = True
    if args.source:
        overrides['source'] = {'name': args.source}
    if args.log_level:
        overrides['logging'] = {'level': args.log_level}
    return overrides


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    config = load_config(_overrides_from_args(args))
    setup_logging(config['logging']['level'])

    kinds = list(QueryKind) if args.kind == 'all' else [QueryKind(args.kind)]
    service = QueryService.from_config(config)
    output = []
    exit_code = 0

    try:
        for kind in kinds:
            try:
                result = await service.query(kind)
                output.append(result_to_dict(result))
            except ScannerError as e:
                logger.error(f"Query {kind.value} failed: {e}")
                output.append({'kind': kind.value, 'error': e.message, 'stage': e.stage})
                exit_code = 1
    finally:
        await service.close()

    print(json.dumps(output, indent=2))
    return exit_code


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
