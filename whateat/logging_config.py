"""
Centralised logging configuration.

Call `configure_logging()` once when the client starts. Each module then uses:

    import logging
    logger = logging.getLogger(__name__)

and passes structured context through ``extra={...}``. Headers and JSON bodies
go through `redact_headers()` / `redact_body()` before they are logged.
"""

import json
import logging
import sys

REDACTED = "Bearer <redacted>"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logger with a structured formatter."""
    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    datefmt = "%Y-%m-%dT%H:%M:%S"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    # Avoid duplicate handlers if called more than once
    if not root.handlers:
        root.addHandler(handler)
    else:
        root.handlers = [handler]

    # Quieten noisy third-party loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)


def redact_headers(headers) -> dict[str, str]:
    """Return a copy of *headers* with any Authorization value masked."""
    redacted = {}
    for key, value in dict(headers or {}).items():
        if key.lower() == "authorization":
            redacted[key] = REDACTED
        else:
            redacted[key] = value
    return redacted


def redact_body(body: str | None) -> str | None:
    """Mask token-looking fields (``refreshToken``, ``idToken`` ...) in a JSON body."""
    if not body:
        return body
    try:
        payload = json.loads(body)
    except ValueError:
        return body
    return json.dumps(_redact_value(payload))


def _redact_value(value):
    if isinstance(value, dict):
        return {
            k: "<redacted>" if "token" in k.lower() and isinstance(v, str) else _redact_value(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_redact_value(v) for v in value]
    return value
