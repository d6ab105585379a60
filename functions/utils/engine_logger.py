"""Engine event logging for QuoteSmith.

Wraps structlog with helpers for the events both engines emit over and
over: session lifecycle, extraction results, state transitions and
knowledge base updates.
"""

import logging
import structlog
from typing import Dict, Any, Optional

from config.settings import settings

logger = structlog.get_logger(__name__)

PREVIEW_LENGTH = 100


def configure_logging(level: Optional[str] = None) -> None:
    """Configure structlog with ISO timestamps and console output.

    Applications embedding the engines call this once at startup.

    Args:
        level: Minimum log level name (DEBUG, INFO, WARNING, ...).
            Defaults to settings.log_level (LOG_LEVEL).
    """
    numeric_level = logging.getLevelName((level or settings.log_level).upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
    )


def preview(text: str, max_length: int = PREVIEW_LENGTH) -> str:
    """Shorten text for log output."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def _truncate_large_values(data: Dict[str, Any], max_length: int = 200) -> Dict[str, Any]:
    """Truncate large string values and long lists for display purposes."""
    if not isinstance(data, dict):
        return data

    result = {}
    for key, value in data.items():
        if isinstance(value, str) and len(value) > max_length:
            result[key] = value[:max_length] + f"... [truncated {len(value) - max_length} chars]"
        elif isinstance(value, dict):
            result[key] = _truncate_large_values(value, max_length)
        elif isinstance(value, list) and len(value) > 10:
            result[key] = value[:10] + [f"... and {len(value) - 10} more items"]
        else:
            result[key] = value
    return result


def log_session_started(session_id: str) -> None:
    logger.info("session_started", session_id=session_id)


def log_message_received(session_id: str, message: str, state: str) -> None:
    """Log an incoming user message with a truncated preview."""
    logger.info(
        "message_received",
        session_id=session_id,
        state=state,
        preview=preview(message),
        length=len(message)
    )


def log_details_extracted(session_id: str, delta: Dict[str, Any]) -> None:
    """Log the delta produced by the information extractor."""
    if delta:
        logger.info(
            "project_details_extracted",
            session_id=session_id,
            fields=sorted(delta.keys()),
            delta=_truncate_large_values(delta)
        )
    else:
        logger.debug("no_project_details_extracted", session_id=session_id)


def log_state_transition(session_id: str, from_state: str, to_state: str) -> None:
    logger.info(
        "conversation_state_transition",
        session_id=session_id,
        from_state=from_state,
        to_state=to_state
    )


def log_learning_event(
    contractor_id: str,
    project_type: Optional[str],
    was_accepted: bool,
    materials: int,
    services: int,
    pattern_count: int,
    client_id: Optional[str] = None
) -> None:
    """Log a completed learn-from-estimate update."""
    logger.info(
        "estimate_learned",
        contractor_id=contractor_id,
        project_type=project_type,
        was_accepted=was_accepted,
        materials=materials,
        services=services,
        pattern_count=pattern_count,
        client_id=client_id
    )


def log_knowledge_base_reset(contractor_id: str, reason: str) -> None:
    """Log that a corrupt knowledge base was replaced by an empty one."""
    logger.warning(
        "knowledge_base_reset",
        contractor_id=contractor_id,
        reason=preview(reason, 200)
    )
