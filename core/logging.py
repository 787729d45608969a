"""
Structured Logging Configuration

structlog setup for the scoring service:
- correlation IDs: "req-" per HTTP request, "tick-" per scheduler tick,
  "run-" per pipeline run
- match_context() binds match_id onto every line logged while one match
  is being processed
- JSON output in production, console output for local runs
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Optional

import structlog


correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> None:
    correlation_id_var.set(cid)


def new_correlation_id(prefix: str = "") -> str:
    """Mint and set a fresh correlation ID, e.g. new_correlation_id("tick-")."""
    cid = f"{prefix}{uuid.uuid4().hex[:12]}"
    correlation_id_var.set(cid)
    return cid


@contextmanager
def match_context(match_id: int, **extra: Any) -> Iterator[None]:
    """Tag every log line inside the block with the match being processed."""
    with structlog.contextvars.bound_contextvars(match_id=match_id, **extra):
        yield


def _add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    cid = correlation_id_var.get()
    if cid:
        event_dict.setdefault("correlation_id", cid)
    return event_dict


def _service_tagger(service_name: str) -> structlog.typing.Processor:
    def processor(
        logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict["service"] = service_name
        return event_dict

    return processor


def setup_logging(
    log_level: str = "INFO",
    json_format: bool = True,
    service_name: str = "trend-league-scoring",
) -> None:
    """
    Configure structlog once at startup.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_format: JSON lines when True, coloured console output otherwise
        service_name: Value of the "service" key on every event
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _service_tagger(service_name),
        _add_correlation_id,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(colors=True, exception_formatter=structlog.dev.plain_traceback)
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """
    Example:
        log = get_logger("aggregator")
        log.info("team_score_persisted", team_id=12, total=431)
    """
    return structlog.get_logger(name)
