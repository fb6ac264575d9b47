"""
Command line entry point.

Usage:
    m2proxy [-h HOST] [-p PORT]

Then request ``http://HOST:PORT/<url>``, e.g. ``curl localhost:1234/https://example.com/``.
"""

import argparse
import ipaddress
import logging
import sys
from typing import List, Optional

import uvicorn

from config import DEFAULT_HOST, DEFAULT_PORT, configure_logging
from proxy import create_app

logger = logging.getLogger(__name__)


def _host(value: str) -> str:
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid IP address: {value!r}") from None


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from None
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def build_parser() -> argparse.ArgumentParser:
    # -h is taken by --host
    parser = argparse.ArgumentParser(
        prog="m2proxy",
        description="Path-prefix HTTP reverse proxy: GET /https://example.com/foo fetches https://example.com/foo.",
        add_help=False,
    )
    parser.add_argument("-h", "--host", type=_host, default=DEFAULT_HOST, help="Host to bind to")
    parser.add_argument("-p", "--port", type=_port, default=DEFAULT_PORT, help="Port to bind to")
    parser.add_argument("--help", action="help", help="Print help")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging()

    display_host = f"[{args.host}]" if ":" in args.host else args.host
    logger.info("Proxy is running on http://%s:%s", display_host, args.port)
    uvicorn.run(
        create_app(),
        host=args.host,
        port=args.port,
        log_config=None,
        access_log=False,
        # redirects are rewritten against the scheme of the accepted connection
        proxy_headers=False,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
