"""QuoteSmith error handling.

Custom exceptions and error codes for the conversation and learning engines.
"""

from typing import Optional, Dict, Any


# Error Codes
class ErrorCode:
    """Error code constants."""

    # Validation Errors (1xxx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_SCHEMA = "INVALID_SCHEMA"
    MISSING_FIELD = "MISSING_FIELD"

    # Conversation Errors (2xxx)
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"

    # Knowledge Store Errors (3xxx)
    KNOWLEDGE_BASE_CORRUPT = "KNOWLEDGE_BASE_CORRUPT"
    KNOWLEDGE_STORE_READ_FAILED = "KNOWLEDGE_STORE_READ_FAILED"
    KNOWLEDGE_STORE_WRITE_FAILED = "KNOWLEDGE_STORE_WRITE_FAILED"

    # Configuration Errors (4xxx)
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"


class QuoteSmithError(Exception):
    """Base exception for QuoteSmith errors.

    Provides structured error information for callers.

    Attributes:
        code: Error code from ErrorCode constants
        message: Human-readable error message
        details: Additional error context
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """Initialize QuoteSmithError.

        Args:
            code: Error code from ErrorCode constants
            message: Human-readable error message
            details: Additional error context
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API response.

        Returns:
            Dictionary with code, message, and details.
        """
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }

    def __repr__(self) -> str:
        return f"QuoteSmithError(code={self.code!r}, message={self.message!r})"


class ValidationError(QuoteSmithError):
    """Validation-specific error."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            details={**(details or {}), "field": field} if field else details
        )


class SessionNotFoundError(QuoteSmithError):
    """Raised when a conversation session id is unknown."""

    def __init__(self, session_id: str):
        super().__init__(
            code=ErrorCode.SESSION_NOT_FOUND,
            message=f"Session not found: {session_id}",
            details={"session_id": session_id}
        )
        self.session_id = session_id


class InvalidStateTransitionError(QuoteSmithError):
    """Raised when a conversation would move backwards or skip a phase."""

    def __init__(self, session_id: str, current_state: str, requested_state: str):
        super().__init__(
            code=ErrorCode.INVALID_STATE_TRANSITION,
            message=f"Cannot move from {current_state} to {requested_state}",
            details={
                "session_id": session_id,
                "current_state": current_state,
                "requested_state": requested_state
            }
        )
        self.current_state = current_state
        self.requested_state = requested_state


class KnowledgeStoreError(QuoteSmithError):
    """Knowledge store backend failure."""

    def __init__(
        self,
        code: str,
        message: str,
        contractor_id: str,
        details: Optional[Dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            details={**(details or {}), "contractor_id": contractor_id}
        )
        self.contractor_id = contractor_id


class KnowledgeBaseCorruptError(KnowledgeStoreError):
    """Persisted knowledge base could not be parsed."""

    def __init__(self, contractor_id: str, reason: str):
        super().__init__(
            code=ErrorCode.KNOWLEDGE_BASE_CORRUPT,
            message=f"Knowledge base for contractor {contractor_id} is corrupt: {reason}",
            contractor_id=contractor_id,
            details={"reason": reason}
        )
        self.reason = reason
