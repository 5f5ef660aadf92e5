from __future__ import annotations

"""
Structured logging for the orbit SDK.

Library modules only ever do::

    log = get_logger(__name__)
    log.info("devnet_ready", chain_id="devnet-1a2b3c4d", port=26657)

and leave sinks to the application. ``setup_logging()`` is for processes
that own their output (the devnet manager, scripts, tests that want JSON):
structlog renders events, stdlib ``logging`` carries them, and records from
uvicorn or httpx go through the same processor chain.

Every event gets ``sdk`` (package version) and ``service``. Values under
secret-looking keys are masked at any depth, since genesis accounts and
identities are dicts that carry mnemonics.

Environment: LOG_LEVEL (default INFO), LOG_FORMAT ("json" default, or "console").
"""

import logging
import os
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import structlog

from .version import __version__

__all__ = [
    "SECRET_KEYS",
    "UVICORN_LOGGERS",
    "setup_logging",
    "get_logger",
    "bind_context",
]

SECRET_KEYS = frozenset({"mnemonic", "password", "passphrase", "secret", "token", "private_key", "authorization"})

UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

# third-party loggers that are only interesting when debugging them
_QUIET = {"asyncio": "WARNING", "httpcore": "WARNING", "httpx": "WARNING"}


def _mask(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: ("***" if str(k).lower() in SECRET_KEYS and v is not None else _mask(v)) for k, v in value.items()}
    if isinstance(value, list):
        return [_mask(v) for v in value]
    return value


def _mask_secrets(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    return _mask(event_dict)


def _stamp(service_name: str):
    def stamp(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service_name)
        event_dict.setdefault("sdk", __version__)
        return event_dict

    return stamp


def _chain(service_name: str, tracebacks: bool) -> List[Any]:
    chain: List[Any] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.contextvars.merge_contextvars,
        structlog.processors.StackInfoRenderer(),
    ]
    if tracebacks:
        chain.append(structlog.processors.format_exc_info)
    chain += [_mask_secrets, structlog.processors.UnicodeDecoder(), _stamp(service_name)]
    return chain


def setup_logging(
    *,
    service_name: str = "orbit-sdk",
    level: Optional[Union[str, int]] = None,
    log_format: Optional[str] = None,
    adopt: Iterable[str] = (),
) -> None:
    """
    Route structlog and stdlib logging to one stderr handler.

    `adopt` names stdlib loggers (e.g. ``UVICORN_LOGGERS``) that get the same
    handler and stop propagating, so their records are not printed twice.
    JSON output carries formatted tracebacks; the console renderer prints
    its own.
    """
    level = level or os.getenv("LOG_LEVEL", "").upper() or "INFO"
    log_format = (log_format or os.getenv("LOG_FORMAT", "") or "json").lower()
    shared = _chain(service_name, tracebacks=log_format == "json")

    if log_format == "console":
        renderer: Any = structlog.dev.ConsoleRenderer(colors=True, sort_keys=False)
    else:
        renderer = structlog.processors.JSONRenderer(sort_keys=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=[structlog.stdlib.add_logger_name, *shared],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in adopt:
        lg = logging.getLogger(name)
        lg.handlers = [handler]
        lg.propagate = False
        lg.setLevel(level)

    for name, quiet_level in _QUIET.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    log = structlog.get_logger()
    return log.bind(logger=name) if name else log


def bind_context(**kv: Any) -> None:
    """Tag every later event of the current task (e.g. chain_id) via contextvars."""
    structlog.contextvars.bind_contextvars(**kv)
