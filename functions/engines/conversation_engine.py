"""Conversation engine for QuoteSmith.

Drives the slot-filling chat that collects project details: each user
message is mined for new details, the session advances through its
forward-only phases, missing details are asked for once, and as soon
as the details allow it an estimate-ready response is produced.
"""

import uuid
from typing import Optional

import structlog

from config.errors import SessionNotFoundError
from models.conversation import ConversationResult, ConversationState, MessageRole
from models.estimate import EstimateResult
from models.project import ProjectDetails
from engines.dialogue_state import DialogueStateTracker, SessionState
from engines.estimate_builder import build_preliminary_estimate
from engines.information_extractor import extract_project_info
from engines.project_catalog import can_generate_estimate, generate_questions
from engines import response_builder
from services.session_store import InMemorySessionRepository, SessionRepository
from utils.engine_logger import (
    log_details_extracted,
    log_message_received,
    log_session_started,
    preview,
)

logger = structlog.get_logger(__name__)

ESTIMATE_KEYWORDS = ("estimado", "costo", "precio", "cotización", "estimate", "cost", "quote")
REVIEW_ESTIMATE_ACTION = "review_estimate"


class ConversationEngine:
    """Slot-filling conversation over an injected session repository.

    Example:
        engine = ConversationEngine()
        session_id = engine.start_session()
        result = engine.process_message(
            session_id, "Necesito una cerca de 100 pies de largo y 6 pies de alto"
        )
    """

    def __init__(self, session_repository: Optional[SessionRepository] = None):
        self.sessions = session_repository or InMemorySessionRepository()

    def start_session(self) -> str:
        """Create an empty session and return its id."""
        session_id = f"session_{uuid.uuid4().hex}"
        self.sessions.save(SessionState(session_id=session_id))
        log_session_started(session_id)
        return session_id

    def _get_session(self, session_id: str) -> SessionState:
        session = self.sessions.get(session_id)
        if session is None:
            logger.error("session_not_found", session_id=session_id)
            raise SessionNotFoundError(session_id)
        return session

    def process_message(self, session_id: str, message: str) -> ConversationResult:
        """Process one user message.

        Args:
            session_id: Session returned by start_session.
            message: The user's message text.

        Returns:
            ConversationResult with the response, the questions asked for
            the first time, the accumulated details and the new phase.

        Raises:
            SessionNotFoundError: If the session id is unknown.
        """
        session = self._get_session(session_id)
        tracker = DialogueStateTracker(session)
        log_message_received(session_id, message, session.conversation_state.value)

        # Transcript and context
        prior_messages = list(session.messages)
        tracker.add_message(MessageRole.USER, message)
        session.last_context_summary = response_builder.context_summary(
            session.messages, session.project_details
        )

        # Extraction and merge
        delta = extract_project_info(message, session.project_details, prior_messages)
        log_details_extracted(session_id, delta)
        tracker.apply_delta(delta)

        # Phase transitions
        estimate_possible = can_generate_estimate(session.project_details)
        tracker.advance(estimate_possible)

        # Follow-up questions
        prior_question_count = len(session.question_history)
        questions = tracker.record_questions(generate_questions(session.project_details))
        tracker.reconcile_answers(message, upto=prior_question_count)

        # Response
        is_action_required = False
        action = None
        lower_message = message.lower()

        if (
            session.conversation_state == ConversationState.READY_FOR_ESTIMATE
            and not session.estimate_generated
        ):
            response = response_builder.estimate_ready_response(session.project_details)
            tracker.mark_estimate_generated()
            is_action_required = True
            action = REVIEW_ESTIMATE_ACTION
        elif not estimate_possible and any(keyword in lower_message for keyword in ESTIMATE_KEYWORDS):
            response = response_builder.need_more_info_response(session.project_details)
        else:
            response = response_builder.contextual_response(message, session.project_details)

        tracker.add_message(MessageRole.ASSISTANT, response)
        self.sessions.save(session)

        logger.info(
            "message_processed",
            session_id=session_id,
            state=session.conversation_state.value,
            new_questions=len(questions),
            response=preview(response),
            action=action
        )

        return ConversationResult(
            response=response,
            questions=questions,
            project_details=session.project_details.model_copy(deep=True),
            is_action_required=is_action_required,
            action=action,
            conversation_state=session.conversation_state,
        )

    def get_project_details(self, session_id: str) -> ProjectDetails:
        """Get a copy of the details accumulated in a session.

        Raises:
            SessionNotFoundError: If the session id is unknown.
        """
        session = self._get_session(session_id)
        return session.project_details.model_copy(deep=True)

    def get_preliminary_estimate(self, session_id: str) -> Optional[EstimateResult]:
        """Build a rough estimate once the session has enough details.

        Returns:
            The estimate, or None while required details are missing.

        Raises:
            SessionNotFoundError: If the session id is unknown.
        """
        session = self._get_session(session_id)
        if not can_generate_estimate(session.project_details):
            logger.info("preliminary_estimate_not_ready", session_id=session_id)
            return None

        estimate = build_preliminary_estimate(session.project_details)
        logger.info(
            "preliminary_estimate_generated",
            session_id=session_id,
            total_cost=estimate.total_cost
        )
        return estimate
