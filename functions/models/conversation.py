"""Conversation models for QuoteSmith.

Pydantic models for chat transcripts, question tracking and the
result returned to callers for every processed message.
"""

from enum import Enum
from typing import Optional, List
from datetime import datetime, timezone
from pydantic import BaseModel, Field

from models.project import ProjectDetails


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    """Author of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"


class ConversationState(str, Enum):
    """Phases of the slot-filling conversation, in forward order."""

    INITIAL_GREETING = "initial_greeting"
    COLLECTING_PROJECT_DETAILS = "collecting_project_details"
    READY_FOR_ESTIMATE = "ready_for_estimate"
    ESTIMATE_GENERATED = "estimate_generated"

    @property
    def order(self) -> int:
        return CONVERSATION_STATE_ORDER.index(self)

    def next_state(self) -> Optional["ConversationState"]:
        """Get the only state this one may move to, if any."""
        if self.order + 1 < len(CONVERSATION_STATE_ORDER):
            return CONVERSATION_STATE_ORDER[self.order + 1]
        return None


CONVERSATION_STATE_ORDER = [
    ConversationState.INITIAL_GREETING,
    ConversationState.COLLECTING_PROJECT_DETAILS,
    ConversationState.READY_FOR_ESTIMATE,
    ConversationState.ESTIMATE_GENERATED,
]


class ChatMessage(BaseModel):
    """A single message in a session transcript."""

    role: MessageRole = Field(description="Message author")
    content: str = Field(description="Message text")
    timestamp: datetime = Field(default_factory=utc_now, description="When the message was recorded")


class QuestionRecord(BaseModel):
    """A follow-up question asked during a session."""

    question: str = Field(description="Question text as shown to the user")
    topic: Optional[str] = Field(
        default=None,
        description="Topic the question asks about (length, material, location, ...)"
    )
    answered: bool = Field(default=False, description="Whether a later message addressed it")
    timestamp: datetime = Field(default_factory=utc_now, description="When the question was asked")


class ConversationResult(BaseModel):
    """Result of processing one user message."""

    response: str = Field(description="Assistant response text")
    questions: List[str] = Field(
        default_factory=list,
        description="Follow-up questions asked for the first time in this turn"
    )
    project_details: ProjectDetails = Field(
        alias="projectDetails",
        description="Accumulated project details after this message"
    )
    is_action_required: bool = Field(
        default=False,
        alias="isActionRequired",
        description="True when the caller should act (e.g. show the estimate)"
    )
    action: Optional[str] = Field(default=None, description="Action name, e.g. review_estimate")
    conversation_state: ConversationState = Field(
        alias="conversationState",
        description="Conversation phase after this message"
    )

    class Config:
        populate_by_name = True
        use_enum_values = True
