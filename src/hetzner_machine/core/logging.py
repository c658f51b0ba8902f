"""Logging configuration for the Hetzner machine driver using stdlib logging with rich."""

import logging
from collections.abc import MutableMapping
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

# Loggers of the HTTP stack underneath the hcloud client
HTTP_LOGGERS = ("hcloud", "urllib3")

# Keyword arguments that belong to the logging call itself
STDLIB_KWARGS = {"exc_info", "stack_info", "stacklevel", "extra"}


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that formats kwargs as structured context data.

    Context data can be passed as kwargs to the logging methods and is
    rendered as a dimmed suffix after the message. Values are escaped, so
    bracketed identifiers such as "web-1[42]" survive rich markup.

    Example:
        logger = get_logger(__name__)
        logger.info("Created SSH key", key_id=42, name="worker-1")
        # Output: Created SSH key [key_id=42 name=worker-1]
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        """Move context kwargs into the message, keeping the stdlib ones."""
        context = {k: v for k, v in kwargs.items() if k not in STDLIB_KWARGS}
        clean_kwargs = {k: v for k, v in kwargs.items() if k in STDLIB_KWARGS}

        if context:
            rendered = " ".join(f"{k}={escape(str(v))}" for k, v in sorted(context.items()))
            msg = f"{msg} [dim][[/dim]{rendered}[dim]][/dim]"

        return msg, clean_kwargs


def setup_logging(verbose: bool = False, trace: bool = False) -> None:
    """Configure structured logging with rich integration.

    Args:
        verbose: Enable debug logging
        trace: Enable trace logging, including the HTTP traffic of the API client
    """
    log_level = logging.DEBUG if verbose or trace else logging.INFO

    console = Console(stderr=True)

    handler = RichHandler(
        console=console,
        show_time=True,
        show_path=trace,
        markup=True,
        rich_tracebacks=True,
        tracebacks_show_locals=trace,
        log_time_format="[%Y-%m-%d %H:%M:%S]",
    )

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )

    # The HTTP stack is noisy; only let it through when tracing
    for name in HTTP_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if trace else logging.WARNING)


def get_logger(name: str = "") -> StructuredLoggerAdapter:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Configured logger adapter with structured logging support
    """
    logger = logging.getLogger(name) if name else logging.getLogger(__name__)

    return StructuredLoggerAdapter(logger, {})
