"""Dialogue state tracking for QuoteSmith conversations.

SessionState holds everything one chat session accumulates.
DialogueStateTracker applies the mutations the conversation engine
needs: transcript appends, detail merges, forward-only phase changes
and the asked-question registry.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, List, Optional, Set, Sequence
import structlog

from config.errors import InvalidStateTransitionError
from models.conversation import (
    ChatMessage,
    ConversationState,
    MessageRole,
    QuestionRecord,
    utc_now,
)
from models.project import ProjectDetails
from engines.project_catalog import Slot, is_question_already_asked
from utils.engine_logger import log_state_transition

logger = structlog.get_logger(__name__)

# Answer category -> words that show a message addresses it
ANSWER_KEYWORDS: Dict[str, Sequence[str]] = {
    "type": ("cerca", "terraza", "techo", "concreto", "fence", "deck", "roof"),
    "material": ("madera", "vinilo", "cadena", "aluminio", "wood", "vinyl", "chain", "composite", "compuesto"),
    "dimensions": ("pies", "metros", "feet", "ft", "largo", "alto", "altura", "longitud", "área", "area", "cuadrados"),
    "location": ("ciudad", "estado", "ubicación", "city", "state", "location"),
}

TOPIC_CATEGORIES: Dict[str, str] = {
    "length": "dimensions",
    "height": "dimensions",
    "area": "dimensions",
    "thickness": "dimensions",
    "material": "material",
    "type": "type",
    "location": "location",
}

DIGIT = re.compile(r"\d")


@dataclass
class SessionState:
    """Accumulated state of one chat session."""

    session_id: str
    messages: List[ChatMessage] = field(default_factory=list)
    project_details: ProjectDetails = field(default_factory=ProjectDetails)
    asked_questions: Set[str] = field(default_factory=set)
    question_history: List[QuestionRecord] = field(default_factory=list)
    conversation_state: ConversationState = ConversationState.INITIAL_GREETING
    estimate_generated: bool = False
    last_context_summary: str = ""
    created_at: datetime = field(default_factory=utc_now)
    last_activity: datetime = field(default_factory=utc_now)


def question_category(record: QuestionRecord) -> Optional[str]:
    """Get the answer category of a recorded question."""
    if record.topic in TOPIC_CATEGORIES:
        return TOPIC_CATEGORIES[record.topic]

    lower_question = record.question.lower()
    for category, keywords in ANSWER_KEYWORDS.items():
        if any(keyword in lower_question for keyword in keywords):
            return category
    return None


class DialogueStateTracker:
    """Mutations on a single SessionState."""

    def __init__(self, session: SessionState):
        self.session = session

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def state(self) -> ConversationState:
        return self.session.conversation_state

    def add_message(self, role: MessageRole, content: str) -> ChatMessage:
        """Append a message to the transcript."""
        message = ChatMessage(role=role, content=content)
        self.session.messages.append(message)
        self.session.last_activity = message.timestamp
        return message

    def recent_user_messages(self, count: int) -> List[str]:
        contents = [m.content for m in self.session.messages if m.role == MessageRole.USER]
        return contents[-count:]

    def apply_delta(self, delta: Dict[str, Any]) -> List[str]:
        """Merge an extraction delta into the project details.

        Returns:
            Names of the fields that changed.
        """
        if not delta:
            return []

        before = self.session.project_details.model_dump()
        changed = self.session.project_details.apply_delta(delta)
        after = self.session.project_details.model_dump()

        for name in changed:
            logger.info(
                "project_detail_updated",
                session_id=self.session_id,
                field=name,
                before=before.get(name),
                after=after.get(name)
            )
        return changed

    def transition_to(self, new_state: ConversationState) -> None:
        """Move the conversation to the next phase.

        Raises:
            InvalidStateTransitionError: If new_state is not the phase
                directly after the current one.
        """
        current = self.session.conversation_state
        if new_state == current:
            return
        if new_state != current.next_state():
            raise InvalidStateTransitionError(
                session_id=self.session_id,
                current_state=current.value,
                requested_state=new_state.value
            )

        self.session.conversation_state = new_state
        log_state_transition(self.session_id, current.value, new_state.value)

    def advance(self, estimate_possible: bool) -> None:
        """Apply the forward transitions the current details allow."""
        if (
            self.state == ConversationState.INITIAL_GREETING
            and self.session.project_details.type
        ):
            self.transition_to(ConversationState.COLLECTING_PROJECT_DETAILS)

        if (
            self.state == ConversationState.COLLECTING_PROJECT_DETAILS
            and estimate_possible
        ):
            self.transition_to(ConversationState.READY_FOR_ESTIMATE)

    def mark_estimate_generated(self) -> None:
        self.session.estimate_generated = True
        self.transition_to(ConversationState.ESTIMATE_GENERATED)

    def record_questions(self, candidates: Sequence[Slot]) -> List[str]:
        """Register the candidates that were not asked before.

        A candidate is dropped when its text, or any question on the same
        topic, is already in the registry.

        Returns:
            Texts of the newly asked questions, in candidate order.
        """
        new_questions = []
        for slot in candidates:
            if is_question_already_asked(slot.question, self.session.asked_questions, slot.topic):
                continue

            self.session.asked_questions.add(slot.question.lower().strip())
            self.session.question_history.append(
                QuestionRecord(question=slot.question, topic=slot.topic)
            )
            new_questions.append(slot.question)
        return new_questions

    def reconcile_answers(self, message: str, upto: Optional[int] = None) -> int:
        """Mark earlier questions answered when the message addresses them.

        Args:
            message: The user's message.
            upto: Only consider history entries before this index.

        Returns:
            Number of questions marked answered.
        """
        lower_message = message.lower()
        history = self.session.question_history
        if upto is not None:
            history = history[:upto]

        answered = 0
        for record in history:
            if record.answered:
                continue

            category = question_category(record)
            if category is None:
                continue

            if any(keyword in lower_message for keyword in ANSWER_KEYWORDS[category]) or (
                category == "dimensions" and DIGIT.search(lower_message)
            ):
                record.answered = True
                answered += 1
                logger.debug(
                    "question_answered",
                    session_id=self.session_id,
                    question=record.question
                )
        return answered
