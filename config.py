import logging
import os
import sys
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

LOG_LEVEL = os.getenv("LOG_LEVEL", "info")
PROXY_TIMEOUT = float(os.getenv("PROXY_TIMEOUT", "30"))
PROXY_VERIFY_TLS = os.getenv("PROXY_VERIFY_TLS", "true").lower() == "true"
STRIP_HOP_BY_HOP_HEADERS = (
    os.getenv("STRIP_HOP_BY_HOP_HEADERS", "true").lower() == "true"
)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 1234
DEFAULT_SCHEME = "https"
# Authority used for rewritten redirects when the client sent no Host header
FALLBACK_AUTHORITY = "localhost:1234"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s :: %(message)s"

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "off": logging.CRITICAL + 10,
}


def _level(name: str) -> int:
    try:
        return _LEVELS[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {name!r}") from None


def parse_log_filter(expression: str) -> Tuple[int, Dict[str, int]]:
    """
    Parse a log filter such as ``"info"`` or ``"proxy=debug,httpx=warn,info"``.

    Bare levels set the root level (the last one wins), ``name=level``
    directives set the level of a named logger.
    """
    root = logging.INFO
    loggers: Dict[str, int] = {}
    for directive in expression.split(","):
        directive = directive.strip()
        if not directive:
            continue
        if "=" in directive:
            name, level = directive.split("=", 1)
            loggers[name.strip()] = _level(level)
        else:
            root = _level(directive)
    return root, loggers


def configure_logging(expression: Optional[str] = None) -> None:
    """Apply a log filter, falling back to ``info`` when it cannot be parsed."""
    expression = LOG_LEVEL if expression is None else expression
    error = None
    try:
        root, loggers = parse_log_filter(expression)
    except ValueError as exc:
        root, loggers, error = logging.INFO, {}, exc

    logging.basicConfig(level=root, format=LOG_FORMAT, stream=sys.stdout, force=True)
    for name, level in loggers.items():
        logging.getLogger(name).setLevel(level)
    if error is not None:
        logger.warning("Ignoring log filter %r: %s", expression, error)
