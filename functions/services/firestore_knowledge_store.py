"""Firestore knowledge store for QuoteSmith.

One document per contractor in the contractorKnowledge collection.
Transient RPC errors are retried; other failures surface as
KnowledgeStoreError.
"""

from typing import Dict, Any, Optional, Callable
from datetime import datetime
import inspect
import os
import structlog

import firebase_admin
from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from config.errors import KnowledgeStoreError, ErrorCode
from config.settings import settings
from services.knowledge_store import KnowledgeStore

logger = structlog.get_logger(__name__)

TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
)


def initialize_firebase_app() -> None:
    """Initialize the default Firebase app from settings if not done yet."""
    if settings.is_emulator_mode:
        os.environ.setdefault("FIRESTORE_EMULATOR_HOST", settings.firestore_emulator_host)

    options = {"projectId": settings.firebase_project_id} if settings.firebase_project_id else None
    try:
        firebase_admin.initialize_app(options=options)
        logger.info(
            "firebase_app_initialized",
            project_id=settings.firebase_project_id,
            emulator=settings.is_emulator_mode
        )
    except ValueError:
        # Already initialized
        pass


async def _maybe_await(result: Any) -> Any:
    """Await result if it is awaitable (supports AsyncMock in unit tests)."""
    if inspect.isawaitable(result):
        return await result
    return result


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    reraise=True,
)
async def _get_document(doc_ref) -> Any:
    return await _maybe_await(doc_ref.get())


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    reraise=True,
)
async def _set_document(doc_ref, data: Dict[str, Any]) -> None:
    await _maybe_await(doc_ref.set(data))


class FirestoreKnowledgeStore(KnowledgeStore):
    """Knowledge store backed by Firestore.

    Note: Firebase Admin SDK for Python is synchronous. Methods are
    async for interface compatibility but operations are sync.
    """

    COLLECTION_KNOWLEDGE = "contractorKnowledge"

    def __init__(self, db=None, clock: Optional[Callable[[], datetime]] = None):
        """Initialize FirestoreKnowledgeStore.

        Args:
            db: Optional Firestore client. If not provided, uses default.
            clock: Optional time source for new knowledge bases.
        """
        super().__init__(clock)
        self._db = db

    @property
    def db(self):
        """Get Firestore client (lazy initialization)."""
        if self._db is None:
            initialize_firebase_app()
            self._db = firestore.client()
        return self._db

    def _document(self, contractor_id: str):
        return self.db.collection(self.COLLECTION_KNOWLEDGE).document(contractor_id)

    async def _read(self, contractor_id: str) -> Optional[Dict[str, Any]]:
        try:
            doc = await _get_document(self._document(contractor_id))
        except Exception as e:
            logger.error("firestore_knowledge_get_failed", contractor_id=contractor_id, error=str(e))
            raise KnowledgeStoreError(
                code=ErrorCode.KNOWLEDGE_STORE_READ_FAILED,
                message=f"Failed to get knowledge base: {str(e)}",
                contractor_id=contractor_id
            )

        if not doc.exists:
            return None
        return doc.to_dict()

    async def _write(self, contractor_id: str, document: Dict[str, Any]) -> None:
        try:
            await _set_document(self._document(contractor_id), document)
            logger.debug("firestore_knowledge_saved", contractor_id=contractor_id)
        except Exception as e:
            logger.error("firestore_knowledge_set_failed", contractor_id=contractor_id, error=str(e))
            raise KnowledgeStoreError(
                code=ErrorCode.KNOWLEDGE_STORE_WRITE_FAILED,
                message=f"Failed to save knowledge base: {str(e)}",
                contractor_id=contractor_id
            )
