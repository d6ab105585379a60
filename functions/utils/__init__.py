"""Utility modules for QuoteSmith functions."""

from utils.engine_logger import (
    configure_logging,
    log_session_started,
    log_message_received,
    log_details_extracted,
    log_state_transition,
    log_learning_event,
    log_knowledge_base_reset,
)

__all__ = [
    "configure_logging",
    "log_session_started",
    "log_message_received",
    "log_details_extracted",
    "log_state_transition",
    "log_learning_event",
    "log_knowledge_base_reset",
]
