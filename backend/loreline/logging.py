"""
Logging configuration for the Loreline API.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

AUDIT_PREFIX = "[timeline-audit]"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure application logging.

    :param level: Log level name for the root handler
    :type level: str
    :return: Root logger for the loreline application
    :rtype: logging.Logger
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    return logging.getLogger('loreline')


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    :param name: The module name for the logger
    :type name: str
    :return: Logger instance for the specified module
    :rtype: logging.Logger
    """
    return logging.getLogger(f'loreline.{name}')


_audit_logger = get_logger('audit')


def audit_timeline_operation(
    enabled: bool,
    action: str,
    **details: Any,
) -> dict[str, Any] | None:
    """
    Emit a single structured audit line for a timeline operation.

    Keys whose value is None are dropped from the payload.

    :param enabled: Whether timeline auditing is switched on
    :type enabled: bool
    :param action: Operation name, e.g. ``timeline-axes.create``
    :type action: str
    :return: The emitted payload, or None when auditing is disabled
    :rtype: dict[str, Any] | None
    """
    if not enabled:
        return None
    payload: dict[str, Any] = {"action": action}
    payload.update({key: value for key, value in details.items() if value is not None})
    payload["at"] = datetime.now(timezone.utc).isoformat()
    _audit_logger.info(f"{AUDIT_PREFIX} {json.dumps(payload, default=str)}")
    return payload
