"""QuoteSmith configuration settings.

Loads configuration from environment variables with sensible defaults.
"""

import os
from typing import Optional
from dataclasses import dataclass, field
from dotenv import load_dotenv

from config.errors import QuoteSmithError, ErrorCode

# Load .env file for local configuration (store backend, emulator hosts, etc.)
load_dotenv()

KNOWLEDGE_STORE_BACKENDS = ("memory", "json", "firestore")


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    # Knowledge store
    knowledge_store_backend: str = field(default_factory=lambda: os.getenv("KNOWLEDGE_STORE_BACKEND", "json").lower())
    knowledge_base_dir: str = field(default_factory=lambda: os.getenv("KNOWLEDGE_BASE_DIR", "cache"))

    # Learning
    pattern_history_limit: int = field(default_factory=lambda: int(os.getenv("PATTERN_HISTORY_LIMIT", "100")))
    contractor_profile_refresh_days: int = field(default_factory=lambda: int(os.getenv("CONTRACTOR_PROFILE_REFRESH_DAYS", "14")))
    default_markup: float = field(default_factory=lambda: float(os.getenv("DEFAULT_MARKUP", "0.25")))

    # Estimate payload validation
    strict_estimate_validation: bool = field(default_factory=lambda: os.getenv("STRICT_ESTIMATE_VALIDATION", "false").lower() == "true")

    # Firebase Configuration
    firebase_project_id: Optional[str] = field(default_factory=lambda: os.getenv("FIREBASE_PROJECT_ID"))
    use_firebase_emulators: bool = field(default_factory=lambda: os.getenv("USE_FIREBASE_EMULATORS", "false").lower() == "true")
    firestore_emulator_host: str = field(default_factory=lambda: os.getenv("FIRESTORE_EMULATOR_HOST", "localhost:8081"))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    def validate(self) -> None:
        """Validate settings values.

        Raises:
            QuoteSmithError: If a setting is out of range or unknown.
        """
        if self.knowledge_store_backend not in KNOWLEDGE_STORE_BACKENDS:
            raise QuoteSmithError(
                code=ErrorCode.INVALID_CONFIGURATION,
                message=f"Unknown knowledge store backend: {self.knowledge_store_backend}",
                details={"allowed": list(KNOWLEDGE_STORE_BACKENDS)}
            )
        if self.pattern_history_limit < 2:
            raise QuoteSmithError(
                code=ErrorCode.INVALID_CONFIGURATION,
                message="PATTERN_HISTORY_LIMIT must be at least 2",
                details={"pattern_history_limit": self.pattern_history_limit}
            )
        if self.contractor_profile_refresh_days < 0:
            raise QuoteSmithError(
                code=ErrorCode.INVALID_CONFIGURATION,
                message="CONTRACTOR_PROFILE_REFRESH_DAYS cannot be negative",
                details={"contractor_profile_refresh_days": self.contractor_profile_refresh_days}
            )

    @property
    def is_emulator_mode(self) -> bool:
        """Check if running against the Firestore emulator."""
        return self.use_firebase_emulators


# Singleton settings instance
settings = Settings()
