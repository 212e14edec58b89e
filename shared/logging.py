"""
Simple structured logging setup for the outfit analysis gateway.
"""

import sys

from loguru import logger

from .config import ServiceSettings, get_settings


def setup_logging(service_name: str, settings: ServiceSettings | None = None) -> None:
    """Configure basic structured logging for a service."""
    settings = settings if settings is not None else get_settings()
    serialize = settings.log_format.lower() == "json"

    # Remove default logger
    logger.remove()

    # Context keys bound by get_logger/bind are appended to the text format
    format_string = (
        "{time:HH:mm:ss} | {level: <8} | {extra[service]} | {message} | {extra}"
    )

    logger.configure(extra={"service": service_name})
    logger.add(
        sys.stdout,
        format=format_string,
        level=settings.log_level,
        serialize=serialize,
    )


def get_logger(component: str | None = None, request_id: str | None = None):
    """Get a logger bound to a component and an optional request ID."""
    context = {}
    if component:
        context["component"] = component
    if request_id:
        context["request_id"] = request_id
    return logger.bind(**context) if context else logger
