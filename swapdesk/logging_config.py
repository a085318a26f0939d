"""
Logging setup for the service and the CLI.

Everything, stdlib records from uvicorn and httpx included, is rendered by
structlog: JSON lines by default, a colored console at DEBUG. API keys from
settings are masked before any renderer sees them.
"""

import logging
import sys
from typing import Any, Dict, List, Optional

import structlog

from .config import settings

MASK = "***"

# Field names whose values are always masked
SENSITIVE_FIELDS = {"apikey", "api_key", "x-api-key", "authorization", "supabase_key", "jupiter_api_key"}

NOISY_LOGGERS = ("uvicorn.access", "httpcore", "httpx")


def _configured_secrets() -> List[str]:
    return [secret for secret in (settings.jupiter_api_key, settings.supabase_key) if secret]


def mask_secrets(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """structlog processor: hide keys that leak into log fields (e.g. in upstream URLs)."""
    secrets = _configured_secrets()
    for key, value in event_dict.items():
        if key.lower() in SENSITIVE_FIELDS:
            event_dict[key] = MASK
        elif secrets and isinstance(value, str):
            for secret in secrets:
                value = value.replace(secret, MASK)
            event_dict[key] = value
    return event_dict


def setup_logging(log_level: Optional[str] = None, *, json_output: Optional[bool] = None) -> None:
    """Install structlog as the renderer for all logging.

    Args:
        log_level: Override log level (default: settings.log_level)
        json_output: Force JSON (True) or console (False) rendering;
            by default JSON unless the level is DEBUG
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    if json_output is None:
        json_output = level != logging.DEBUG

    pre_chain: List[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        mask_secrets,
    ]
    if json_output:
        pre_chain.append(structlog.processors.format_exc_info)
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
