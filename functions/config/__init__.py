"""QuoteSmith configuration.

This package contains:
- settings: Environment variables and configuration
- errors: Custom exceptions and error codes
"""

from config.settings import settings
from config.errors import QuoteSmithError

__all__ = [
    "settings",
    "QuoteSmithError",
]
