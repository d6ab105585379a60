"""Knowledge store for QuoteSmith.

Persists one KnowledgeBase document per contractor. Backends only move
raw documents; parsing, lazy creation and self-healing of corrupt
documents live in KnowledgeStore.load.
"""

import copy
import json
import os
import re
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from config.errors import (
    ErrorCode,
    KnowledgeBaseCorruptError,
    KnowledgeStoreError,
    QuoteSmithError,
)
from config.settings import settings
from models.conversation import utc_now
from models.knowledge_base import KNOWLEDGE_BASE_SCHEMA_VERSION, KnowledgeBase
from utils.engine_logger import log_knowledge_base_reset

logger = structlog.get_logger(__name__)

KNOWLEDGE_BASE_FILENAME = "knowledge_base.json"


def parse_knowledge_base(contractor_id: str, document: Any) -> KnowledgeBase:
    """Parse a persisted document into a KnowledgeBase.

    Documents without a schemaVersion are read as version 1.0.0.

    Raises:
        KnowledgeBaseCorruptError: If the document does not match the schema.
        KnowledgeStoreError: If the document has an unsupported major version.
    """
    if not isinstance(document, dict):
        raise KnowledgeBaseCorruptError(contractor_id, f"expected an object, got {type(document).__name__}")

    version = str(document.get("schemaVersion") or KNOWLEDGE_BASE_SCHEMA_VERSION)
    if version.split(".")[0] != KNOWLEDGE_BASE_SCHEMA_VERSION.split(".")[0]:
        raise KnowledgeStoreError(
            code=ErrorCode.KNOWLEDGE_STORE_READ_FAILED,
            message=f"Unsupported knowledge base schema version {version}",
            contractor_id=contractor_id,
            details={"schema_version": version}
        )

    try:
        return KnowledgeBase.model_validate(document)
    except PydanticValidationError as e:
        raise KnowledgeBaseCorruptError(contractor_id, str(e)) from e


class KnowledgeStore(ABC):
    """Load/save access to contractor knowledge bases.

    Subclasses implement _read and _write over raw JSON-compatible
    documents.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or utc_now

    @abstractmethod
    async def _read(self, contractor_id: str) -> Optional[Dict[str, Any]]:
        """Read the raw document, or None if the contractor has none.

        Raises:
            KnowledgeBaseCorruptError: If stored data cannot be decoded.
            KnowledgeStoreError: If the backend read fails.
        """

    @abstractmethod
    async def _write(self, contractor_id: str, document: Dict[str, Any]) -> None:
        """Write the raw document.

        Raises:
            KnowledgeStoreError: If the backend write fails.
        """

    async def load(self, contractor_id: str) -> KnowledgeBase:
        """Load a contractor's knowledge base.

        A missing knowledge base is created empty and persisted. A corrupt
        one is logged, replaced by an empty one and persisted.

        Raises:
            KnowledgeStoreError: If the backend read fails.
        """
        try:
            document = await self._read(contractor_id)
            if document is not None:
                return parse_knowledge_base(contractor_id, document)
            logger.info("knowledge_base_initialized", contractor_id=contractor_id)
        except KnowledgeBaseCorruptError as e:
            log_knowledge_base_reset(contractor_id, e.reason)

        knowledge_base = KnowledgeBase.empty(self._clock())
        try:
            await self.save(contractor_id, knowledge_base)
        except KnowledgeStoreError as e:
            # The empty knowledge base is still usable in memory
            logger.warning(
                "knowledge_base_init_save_failed",
                contractor_id=contractor_id,
                error=e.message
            )
        return knowledge_base

    async def save(self, contractor_id: str, knowledge_base: KnowledgeBase) -> None:
        """Persist a contractor's knowledge base, stamping the schema version.

        Raises:
            KnowledgeStoreError: If the backend write fails.
        """
        knowledge_base.schema_version = KNOWLEDGE_BASE_SCHEMA_VERSION
        await self._write(contractor_id, knowledge_base.to_document())
        logger.debug("knowledge_base_saved", contractor_id=contractor_id)


class InMemoryKnowledgeStore(KnowledgeStore):
    """Knowledge bases held in a process-local dict of documents."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        super().__init__(clock)
        self.documents: Dict[str, Any] = {}

    async def _read(self, contractor_id: str) -> Optional[Dict[str, Any]]:
        document = self.documents.get(contractor_id)
        return copy.deepcopy(document) if document is not None else None

    async def _write(self, contractor_id: str, document: Dict[str, Any]) -> None:
        self.documents[contractor_id] = copy.deepcopy(document)


class JsonFileKnowledgeStore(KnowledgeStore):
    """One JSON file per contractor under base_dir.

    Layout: <base_dir>/contractor_<id>/knowledge_base.json
    """

    def __init__(self, base_dir: str, clock: Optional[Callable[[], datetime]] = None):
        super().__init__(clock)
        self.base_dir = Path(base_dir)

    def path_for(self, contractor_id: str) -> Path:
        safe_id = re.sub(r"[^A-Za-z0-9_.-]", "_", contractor_id)
        return self.base_dir / f"contractor_{safe_id}" / KNOWLEDGE_BASE_FILENAME

    async def _read(self, contractor_id: str) -> Optional[Dict[str, Any]]:
        path = self.path_for(contractor_id)
        if not path.exists():
            return None

        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error("knowledge_base_read_failed", contractor_id=contractor_id, path=str(path), error=str(e))
            raise KnowledgeStoreError(
                code=ErrorCode.KNOWLEDGE_STORE_READ_FAILED,
                message=f"Failed to read knowledge base: {str(e)}",
                contractor_id=contractor_id,
                details={"path": str(path)}
            )

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise KnowledgeBaseCorruptError(contractor_id, f"invalid JSON: {e.msg}") from e

    async def _write(self, contractor_id: str, document: Dict[str, Any]) -> None:
        path = self.path_for(contractor_id)
        tmp_path = path.with_suffix(".json.tmp")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error("knowledge_base_write_failed", contractor_id=contractor_id, path=str(path), error=str(e))
            raise KnowledgeStoreError(
                code=ErrorCode.KNOWLEDGE_STORE_WRITE_FAILED,
                message=f"Failed to write knowledge base: {str(e)}",
                contractor_id=contractor_id,
                details={"path": str(path)}
            )


def create_knowledge_store(
    backend: Optional[str] = None,
    clock: Optional[Callable[[], datetime]] = None
) -> KnowledgeStore:
    """Build the configured knowledge store backend.

    Args:
        backend: memory, json or firestore. Defaults to
            settings.knowledge_store_backend.
        clock: Optional time source for new knowledge bases.
    """
    settings.validate()
    backend = (backend or settings.knowledge_store_backend).lower()

    if backend == "memory":
        return InMemoryKnowledgeStore(clock=clock)
    if backend == "json":
        return JsonFileKnowledgeStore(settings.knowledge_base_dir, clock=clock)
    if backend == "firestore":
        from services.firestore_knowledge_store import FirestoreKnowledgeStore
        return FirestoreKnowledgeStore(clock=clock)

    raise QuoteSmithError(
        code=ErrorCode.INVALID_CONFIGURATION,
        message=f"Unknown knowledge store backend: {backend}",
        details={"backend": backend}
    )
