"""
Structured logging for the tiered document cache.

Loggers are named ``<service>.<component>`` (``cache.redis``,
``cache.product_service``); the name is split into separate fields so log
queries can filter on either. Request and collection tags live in context
variables and are attached to every event emitted while they are set.
"""

import logging
import sys
import uuid
from contextvars import ContextVar, Token
from typing import Any, Dict, List, Optional

import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
collection_var: ContextVar[Optional[str]] = ContextVar("collection", default=None)

EventDict = Dict[str, Any]


def split_logger_name(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """``cache.redis`` -> ``service="cache", component="redis"``."""
    service, _, component = event_dict.get("logger", "").partition(".")
    if component:
        event_dict["service"] = service
        event_dict["component"] = component
    return event_dict


def add_cache_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Attach the current request id and the collection being invalidated."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    collection = collection_var.get()
    if collection:
        event_dict.setdefault("collection", collection)
    return event_dict


def _processors() -> List[Any]:
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        split_logger_name,
        add_cache_context,
        structlog.processors.JSONRenderer(),
    ]


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Route structlog through stdlib logging as one JSON object per line."""
    structlog.configure(
        processors=_processors(),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level.upper())
    get_logger(f"{service_name}.logging").debug("Logging configured", level=log_level)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Tag the current context with ``request_id``, generating one when absent."""
    request_id = request_id or str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_collection_context(collection: Optional[str] = None) -> Token:
    return collection_var.set(collection)


def reset_collection_context(token: Token) -> None:
    collection_var.reset(token)


def clear_context() -> None:
    request_id_var.set(None)
    collection_var.set(None)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
